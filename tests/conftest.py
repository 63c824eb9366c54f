"""
Pytest configuration for af-verification tests.

Adds src/ to sys.path so tests can import af_verification without an
install, selects a non-interactive matplotlib backend, and provides fake
solver / fetcher collaborators so no Abaqus installation is needed.
"""

import sys
import os
import threading

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest

repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
src_path = os.path.join(repo_root, 'src')

if src_path not in sys.path:
    sys.path.insert(0, src_path)

from af_verification.jobs import JobResult, JobStatus  # noqa: E402
from af_verification.results import ExternalFetchFailure, SolverCurve  # noqa: E402


TEMPLATE_INP = """\
*Heading
** Coupon template
*Part, name=COUPON
*End Part
*Material, name=STEEL
*Elastic
29000., 0.3
*Plastic
36., 0.
*Amplitude, name=DISP-HIST
0., 0., 1., 1.
*Step, name=LOAD, nlgeom=YES
*Static
0.01, 1., 1e-08, 0.05
*Boundary, amplitude=DISP-HIST
TOP, 2, 2, 1.
*End Step
"""


@pytest.fixture
def template_path(tmp_path):
    path = tmp_path / "coupon_template.inp"
    path.write_text(TEMPLATE_INP)
    return path


@pytest.fixture
def collection(template_path):
    """Two tests, one symmetric, as loosely typed records."""
    return {
        "coupon_A": {
            "template": str(template_path),
            "rxNodeSet": "TOP",
            "symmetric": True,
            "displ": [0.0, 1.0, 2.0, 1.0, -1.0, 0.0],
            "force": [0.0, 10.0, 15.0, 5.0, -12.0, 0.0],
        },
        "coupon_B": {
            "template": str(template_path),
            "rxNodeSet": "RP-1",
            "symmetric": False,
            "displ": [0.0, 0.5, 1.5],
            "force": [0.0, 8.0, 11.0],
        },
    }


class FakeSolver:
    """Records submissions; fails the job ids it is told to."""

    def __init__(self, fail=(), delay=0.0):
        self.fail = set(fail)
        self.delay = delay
        self.submitted = []
        self.running = 0
        self.max_running = 0
        self._lock = threading.Lock()

    def run_job(self, job_id, cancel_event=None):
        with self._lock:
            self.submitted.append(job_id)
            self.running += 1
            self.max_running = max(self.max_running, self.running)
        try:
            if self.delay:
                threading.Event().wait(self.delay)
            if job_id in self.fail:
                return JobResult(job_id=job_id, status=JobStatus.FAILED, returncode=1, message="exit code 1")
            return JobResult(job_id=job_id, returncode=0)
        finally:
            with self._lock:
                self.running -= 1


class FakeFetcher:
    """Serves canned curves; raises ExternalFetchFailure for unknown jobs."""

    def __init__(self, curves=None):
        self.curves = dict(curves or {})
        self.requests = []

    def fetch(self, job_id, node_set):
        self.requests.append((job_id, node_set))
        if job_id not in self.curves:
            raise ExternalFetchFailure(job_id, "no output database")
        displ, force = self.curves[job_id]
        return SolverCurve(
            time=np.arange(len(displ), dtype=float),
            displ=np.asarray(displ, dtype=float),
            force=np.asarray(force, dtype=float),
        )


@pytest.fixture
def fake_solver():
    return FakeSolver()


@pytest.fixture
def fake_fetcher():
    return FakeFetcher({
        "coupon_A-dum": ([0.0, 0.5, 1.0], [0.0, 9.0, 14.0]),
        "coupon_B-dum": ([0.0, 0.75, 1.5], [0.0, 7.5, 10.5]),
    })
