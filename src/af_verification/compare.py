"""
Pairing of simulated and measured force-displacement curves.

For every selected test the simulated reaction force / displacement history
is fetched from the solver output and paired with the measured curve.
Symmetric half models see half the specimen displacement, so measured
displacements are halved for them; forces are never rescaled. No
interpolation or error metric is computed here: the optimizer's combined
error is carried along for annotation only.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .export import export_to_excel
from .jobs import DEFAULT_JOB_SUFFIX, job_id_for
from .plotting import plot_comparison
from .results import ExternalFetchFailure
from .testset import TestCase


@dataclass(frozen=True)
class ComparisonRecord:
    """Simulated and measured curves of one test"""
    test_name: str
    sim_displ: np.ndarray
    sim_force: np.ndarray
    test_displ: np.ndarray  # symmetry-adjusted
    test_force: np.ndarray
    combined_error: float  # informational, from the optimizer run


@dataclass
class ComparisonReport:
    """Records in selection order plus per-test failures"""
    records: List[ComparisonRecord] = field(default_factory=list)
    failures: "OrderedDict[str, str]" = field(default_factory=OrderedDict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def by_name(self) -> Dict[str, ComparisonRecord]:
        return {r.test_name: r for r in self.records}

    def format_failures(self) -> str:
        """End-of-run failure report; empty string when everything worked."""
        if not self.failures:
            return ""
        lines = [f"{len(self.failures)} test(s) could not be compared:"]
        for name, reason in self.failures.items():
            lines.append(f"  - {name}: {reason}")
        return "\n".join(lines)


def measured_curve(test: TestCase) -> Tuple[np.ndarray, np.ndarray]:
    """
    Measured (displacement, force) as seen by the model.

    Parameters
    ----------
    test : TestCase

    Returns
    -------
    displ : np.ndarray
        Halved when the model is a symmetric half, otherwise unchanged
    force : np.ndarray
        Unchanged
    """
    displ = np.asarray(test.displ, dtype=float)
    if test.symmetric:
        displ = displ / 2.0
    else:
        displ = displ.copy()
    return displ, np.asarray(test.force, dtype=float).copy()


def compare_results(
    tests: Mapping[str, TestCase],
    fetcher,
    combined_error: float,
    *,
    job_suffix: str = DEFAULT_JOB_SUFFIX,
    skip: Optional[Mapping[str, str]] = None,
    plot: bool = True,
    save_xlsx: bool = False,
    output_dir: Union[str, Path] = ".",
    workbook: Union[str, Path] = "ForceDispl.xlsx",
    plot_formats: Sequence[str] = ("pdf", "png"),
    verbose: bool = True,
) -> ComparisonReport:
    """
    Build one ComparisonRecord per test, in selection order.

    Parameters
    ----------
    tests : mapping of name -> TestCase
        Validated tests in selection order
    fetcher : object
        ``fetch(job_id, node_set) -> SolverCurve``
    combined_error : float
        Optimizer's combined error, used for annotation
    skip : mapping of name -> reason, optional
        Tests not to fetch (e.g. failed jobs); reported as failures
    plot : bool
        Save a comparison plot per test
    save_xlsx : bool
        Write the simulated curves to ``workbook``, one sheet per test
    output_dir : str or Path
        Directory for plots; a relative ``workbook`` is placed here too

    Returns
    -------
    report : ComparisonReport
    """
    skip = skip or {}
    report = ComparisonReport()
    output_dir = Path(output_dir)

    if verbose:
        print("Comparing displacement curves... ", end="", flush=True)

    for name, test in tests.items():
        if name in skip:
            report.failures[name] = skip[name]
            continue

        try:
            curve = fetcher.fetch(job_id_for(name, job_suffix), test.rx_node_set)
        except ExternalFetchFailure as e:
            report.failures[name] = str(e)
            continue

        test_displ, test_force = measured_curve(test)
        record = ComparisonRecord(
            test_name=name,
            sim_displ=np.asarray(curve.displ, dtype=float),
            sim_force=np.asarray(curve.force, dtype=float),
            test_displ=test_displ,
            test_force=test_force,
            combined_error=float(combined_error),
        )
        report.records.append(record)

        if plot:
            try:
                plot_comparison(record, output_dir, formats=plot_formats)
            except OSError as e:
                report.failures[name] = f"could not save plot: {e}"

    if save_xlsx and report.records:
        workbook = Path(workbook)
        if not workbook.is_absolute():
            workbook = output_dir / workbook
        export_to_excel(report.records, workbook)

    if verbose:
        print("Done!")

    return report


def records_to_series(records: Iterable[ComparisonRecord]) -> Tuple[Dict[str, np.ndarray], Dict[str, np.ndarray]]:
    """Simulated (force, displacement) series keyed by test name."""
    forces = OrderedDict()
    displacements = OrderedDict()
    for r in records:
        forces[r.test_name] = r.sim_force
        displacements[r.test_name] = r.sim_displ
    return forces, displacements
