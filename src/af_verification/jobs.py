"""
Abaqus job generation and batch submission.

Each selected test becomes one job whose id is derived from the test name,
so results can always be matched back to their test whatever order the
jobs finish in. Jobs run as separate solver processes; a thread pool only
waits on them and caps how many run at once.
"""

from __future__ import annotations

import subprocess
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

from .parameters import MaterialParameterSet
from .testset import TestCase


DEFAULT_MAX_CONCURRENT = 5
DEFAULT_JOB_SUFFIX = "-dum"


class JobStatus(Enum):
    """Terminal state of a solver job"""
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class JobResult:
    """Outcome of one solver job"""
    job_id: str
    test_name: Optional[str] = None
    status: JobStatus = JobStatus.COMPLETED
    returncode: Optional[int] = None
    elapsed_s: float = 0.0
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is JobStatus.COMPLETED


class ExternalJobFailure(RuntimeError):
    """One or more solver jobs did not complete."""

    def __init__(self, failed: Sequence[JobResult]):
        self.failed = list(failed)
        details = "; ".join(
            f"{r.job_id} ({r.status.value}{': ' + r.message if r.message else ''})"
            for r in self.failed
        )
        super().__init__(f"{len(self.failed)} solver job(s) failed: {details}")


def job_id_for(test_name: str, suffix: str = DEFAULT_JOB_SUFFIX) -> str:
    """Job (and .inp/.odb file) name for a test."""
    return f"{test_name}{suffix}"


# ============================================================================
# SOLVER
# ============================================================================

class AbaqusSolver:
    """
    Runs Abaqus jobs as subprocesses.

    Parameters
    ----------
    command : str
        Abaqus launcher (``abaqus`` or a versioned alias such as ``abq2023``)
    work_dir : str or Path
        Directory holding the ``<job_id>.inp`` files; jobs run there
    cpus : int
        CPUs per job
    timeout : float, optional
        Wall clock limit per job in seconds. None waits indefinitely.
    poll_interval : float
        Seconds between checks for completion, timeout and cancellation
    terminate_timeout : float
        Limit for the ``abaqus terminate`` call issued after a timeout or cancellation
    """

    def __init__(self, command: str = "abaqus", work_dir: Union[str, Path] = ".",
                 cpus: int = 1, timeout: Optional[float] = None,
                 poll_interval: float = 1.0, terminate_timeout: float = 60.0):
        self.command = command
        self.work_dir = Path(work_dir)
        self.cpus = int(cpus)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.terminate_timeout = terminate_timeout

    def build_command(self, job_id: str) -> List[str]:
        return [
            self.command,
            f"job={job_id}",
            f"input={job_id}.inp",
            f"cpus={self.cpus}",
            "interactive",
            "ask_delete=OFF",
        ]

    def run_job(self, job_id: str, cancel_event: Optional[threading.Event] = None) -> JobResult:
        """Run one job to a terminal state. Solver failures never raise."""
        result = JobResult(job_id=job_id)
        t0 = time.time()

        try:
            proc = subprocess.Popen(
                self.build_command(job_id),
                cwd=str(self.work_dir),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            result.status = JobStatus.FAILED
            result.message = f"could not launch '{self.command}': {e}"
            return result

        while True:
            try:
                _, stderr = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                elapsed = time.time() - t0
                if cancel_event is not None and cancel_event.is_set():
                    result.status = JobStatus.CANCELLED
                    result.message = "cancelled" + self._stop(proc, job_id)
                    result.elapsed_s = elapsed
                    return result
                if self.timeout is not None and elapsed > self.timeout:
                    result.status = JobStatus.TIMED_OUT
                    result.message = f"timed out after {self.timeout:g}s" + self._stop(proc, job_id)
                    result.elapsed_s = elapsed
                    return result

        result.elapsed_s = time.time() - t0
        result.returncode = proc.returncode
        if proc.returncode != 0:
            result.status = JobStatus.FAILED
            err = (stderr or "").strip()
            result.message = f"exit code {proc.returncode}" + (f": {err[:500]}" if err else "")
        return result

    def build_terminate_command(self, job_id: str) -> List[str]:
        return [self.command, "terminate", f"job={job_id}"]

    def terminate_job(self, job_id: str) -> str:
        """
        Stop the analysis processes the launcher spawned for ``job_id``.

        Returns an empty string on success, otherwise what went wrong.
        """
        try:
            proc = subprocess.run(
                self.build_terminate_command(job_id), cwd=str(self.work_dir),
                stdout=subprocess.DEVNULL, stderr=subprocess.PIPE,
                text=True, timeout=self.terminate_timeout,
            )
        except OSError as e:
            return f"could not run terminate: {e}"
        except subprocess.TimeoutExpired:
            return f"terminate timed out after {self.terminate_timeout:g}s"
        if proc.returncode != 0:
            return f"terminate exited with code {proc.returncode}: {(proc.stderr or '').strip()[:200]}"
        return ""

    def _stop(self, proc: subprocess.Popen, job_id: str) -> str:
        """Kill the launcher, then its solver; returns a message suffix."""
        proc.kill()
        proc.communicate()
        problem = self.terminate_job(job_id)
        return f" ({problem})" if problem else ""


# ============================================================================
# BATCH SUBMISSION
# ============================================================================

def submit_batch(
    job_ids: Sequence[str],
    solver,
    max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    cancel_event: Optional[threading.Event] = None,
    test_names: Optional[Sequence[str]] = None,
) -> List[JobResult]:
    """
    Run a batch of jobs with at most ``max_concurrent`` running at once.

    Blocks until every job is in a terminal state. Results come back in
    submission order. Jobs that have not started when ``cancel_event`` is set
    are reported as CANCELLED without being launched.

    Parameters
    ----------
    job_ids : sequence of str
    solver : object
        Anything with ``run_job(job_id, cancel_event) -> JobResult``
    max_concurrent : int
    cancel_event : threading.Event, optional
    test_names : sequence of str, optional
        Test name per job, copied onto the results
    """
    if max_concurrent < 1:
        raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
    if test_names is not None and len(test_names) != len(job_ids):
        raise ValueError("test_names must match job_ids one to one")
    if not job_ids:
        return []

    def _run(job_id: str) -> JobResult:
        if cancel_event is not None and cancel_event.is_set():
            return JobResult(job_id=job_id, status=JobStatus.CANCELLED, message="cancelled before start")
        try:
            return solver.run_job(job_id, cancel_event)
        except Exception as e:
            return JobResult(job_id=job_id, status=JobStatus.FAILED, message=f"{type(e).__name__}: {e}")

    workers = min(int(max_concurrent), len(job_ids))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(_run, job_id) for job_id in job_ids]
        results = [f.result() for f in futures]

    if test_names is not None:
        for result, name in zip(results, test_names):
            result.test_name = name
    return results


# ============================================================================
# ORCHESTRATION
# ============================================================================

def run_jobs(
    tests: Mapping[str, TestCase],
    parameters: MaterialParameterSet,
    needs_analysis: bool = True,
    *,
    deck_writer,
    solver,
    max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    job_suffix: str = DEFAULT_JOB_SUFFIX,
    on_job_failure: str = "skip",
    cancel_event: Optional[threading.Event] = None,
    verbose: bool = True,
) -> List[JobResult]:
    """
    Write per-test decks and run them as one batch.

    Parameters
    ----------
    tests : mapping of name -> TestCase
        Validated tests, in selection order
    parameters : MaterialParameterSet
        Written into every submitted deck
    needs_analysis : bool
        False skips everything (reuse results of an earlier run)
    deck_writer : object
        ``write_history(test, target)`` and ``write_parameters(base, target, params)``
    solver : object
        ``run_job(job_id, cancel_event) -> JobResult``
    on_job_failure : {"skip", "raise"}
        "skip" returns failed jobs in the results for the caller to report;
        "raise" raises ExternalJobFailure once the batch is done.

    Returns
    -------
    results : list of JobResult
        One per test in selection order; empty when needs_analysis is False
    """
    if on_job_failure not in ("skip", "raise"):
        raise ValueError(f"on_job_failure must be 'skip' or 'raise', got {on_job_failure!r}")

    if not needs_analysis:
        if verbose:
            print("Skipping analyses, reusing existing results.")
        return []

    names = list(tests.keys())
    job_ids = [job_id_for(name, job_suffix) for name in names]

    if verbose:
        print("Writing INP Histories...", end="", flush=True)
    for name in names:
        deck_writer.write_history(tests[name], f"{name}.inp")
    if verbose:
        print(" Done!")

    if verbose:
        print("Writing INP Parameters...", end="", flush=True)
    for name, job_id in zip(names, job_ids):
        deck_writer.write_parameters(f"{name}.inp", f"{job_id}.inp", parameters)
    if verbose:
        print(" Done!")

    if verbose:
        print(f"Running {len(job_ids)} Abaqus job(s), at most {max_concurrent} at a time...",
              end="", flush=True)
    results = submit_batch(
        job_ids, solver,
        max_concurrent=max_concurrent,
        cancel_event=cancel_event,
        test_names=names,
    )
    failed = [r for r in results if not r.ok]
    if verbose:
        print(f" Done! ({len(results) - len(failed)}/{len(results)} completed)")

    if failed and on_job_failure == "raise":
        raise ExternalJobFailure(failed)
    return results
