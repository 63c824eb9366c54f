"""
Verification run: optimizer output in, simulated vs measured curves out.

Steps
-----
1. Recover physical Armstrong-Frederick parameters and save them.
2. Select the requested tests and validate them (fatal on missing fields).
3. Unless reusing earlier analyses, write decks and run the Abaqus batch.
4. Fetch simulated curves, pair them with test data, plot and export.
5. Report every test that could not be run or compared.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import numpy as np

from .compare import ComparisonRecord, compare_results, records_to_series
from .config import VerificationConfig
from .decks import AbaqusDeckWriter
from .export import print_parameters
from .jobs import AbaqusSolver, JobResult, run_jobs
from .parameters import MaterialParameterSet, OptimizerVector, recover_parameters, save_parameters
from .results import AbaqusOdbFetcher
from .testset import Selection, load_test_collection, select_tests, validate_tests


@dataclass
class VerificationResult:
    """Everything a verification run produced"""
    parameters: MaterialParameterSet
    forces: Dict[str, np.ndarray]  # simulated RF2 per test
    displacements: Dict[str, np.ndarray]  # simulated U2 per test
    records: List[ComparisonRecord] = field(default_factory=list)
    jobs: List[JobResult] = field(default_factory=list)
    failures: "OrderedDict[str, str]" = field(default_factory=OrderedDict)

    @property
    def ok(self) -> bool:
        return not self.failures


def run_verification(
    vector: OptimizerVector,
    combined_error: float,
    tests: Union[Mapping, str, Path],
    selection: Selection = "all",
    needs_analysis: bool = True,
    save_xlsx: bool = False,
    *,
    config: Optional[VerificationConfig] = None,
    deck_writer=None,
    solver=None,
    fetcher=None,
    cancel_event: Optional[threading.Event] = None,
) -> VerificationResult:
    """
    Recover parameters from an optimizer result and verify them in Abaqus.

    Parameters
    ----------
    vector : NormalizedVector, PhysicalParameterSet or sequence of float
        Optimizer output (best position)
    combined_error : float
        Optimizer's best value; only shown on the plots
    tests : mapping or path
        Test collection (name -> record), or a .mat/.yaml/.json file holding one
    selection : "all" or sequence of int / str
        0-based positions or names of the tests to run
    needs_analysis : bool
        False reuses the results of an earlier run (plot only)
    save_xlsx : bool
        Export simulated curves to the configured workbook
    config : VerificationConfig, optional
    deck_writer, solver, fetcher : optional
        Collaborators; Abaqus implementations built from ``config`` by default
    cancel_event : threading.Event, optional
        Setting it stops jobs that are still queued or running

    Returns
    -------
    result : VerificationResult

    Raises
    ------
    MissingFieldError
        If a selected test lacks a required field; nothing is submitted
    ExternalJobFailure
        Only when ``config.on_job_failure == "raise"``
    """
    config = config or VerificationConfig()
    work_dir = config.work_path
    verbose = config.verbose

    params = recover_parameters(vector)
    save_parameters(params, config.parameter_path)
    if verbose:
        print_parameters(params, combined_error)

    collection = load_test_collection(tests) if isinstance(tests, (str, Path)) else tests
    names = select_tests(collection, selection)
    selected = validate_tests(collection, names)

    deck_writer = deck_writer or AbaqusDeckWriter(work_dir)
    solver = solver or AbaqusSolver(
        command=config.abaqus_command,
        work_dir=work_dir,
        cpus=config.cpus,
        timeout=config.job_timeout_s,
    )
    fetcher = fetcher or AbaqusOdbFetcher(command=config.abaqus_command, work_dir=work_dir)

    jobs = run_jobs(
        selected, params, needs_analysis,
        deck_writer=deck_writer,
        solver=solver,
        max_concurrent=config.max_concurrent_jobs,
        job_suffix=config.job_suffix,
        on_job_failure=config.on_job_failure,
        cancel_event=cancel_event,
        verbose=verbose,
    )
    skip = OrderedDict(
        (r.test_name, f"job {r.job_id} {r.status.value}" + (f" ({r.message})" if r.message else ""))
        for r in jobs if not r.ok
    )

    report = compare_results(
        selected, fetcher, combined_error,
        job_suffix=config.job_suffix,
        skip=skip,
        plot=config.plot,
        save_xlsx=save_xlsx,
        output_dir=work_dir,
        workbook=config.workbook,
        plot_formats=config.plot_formats,
        verbose=verbose,
    )
    if verbose and not report.ok:
        print(report.format_failures())

    forces, displacements = records_to_series(report.records)
    return VerificationResult(
        parameters=params,
        forces=forces,
        displacements=displacements,
        records=report.records,
        jobs=jobs,
        failures=report.failures,
    )
