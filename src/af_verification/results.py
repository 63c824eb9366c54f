"""
Force-displacement results from Abaqus output databases.

ODB files can only be opened by the Python interpreter bundled with
Abaqus, so extraction runs a small script through ``abaqus python`` that
dumps the reaction-node-set history to CSV (``time,U2,RF2``). The CSV is
then read here with pandas. CsvResultFetcher reads existing CSV dumps
directly, which is enough when the analyses ran elsewhere.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd


class ExternalFetchFailure(RuntimeError):
    """Solver output for a job is missing or unreadable."""

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Could not fetch results for job '{job_id}': {reason}")


@dataclass
class SolverCurve:
    """Simulated reaction force vs displacement of one node set"""
    time: np.ndarray
    displ: np.ndarray  # U2
    force: np.ndarray  # RF2, summed over the node set


# Runs under `abaqus python`; odbAccess only exists there.
_EXTRACT_SCRIPT = '''\
import sys
from odbAccess import openOdb


def main(odb_path, node_set, csv_path):
    odb = openOdb(odb_path, readOnly=True)
    rows = []
    try:
        region = odb.rootAssembly.nodeSets[node_set.upper()]
        t0 = 0.0
        for step in odb.steps.values():
            for frame in step.frames:
                rf = frame.fieldOutputs['RF'].getSubset(region=region).values
                u = frame.fieldOutputs['U'].getSubset(region=region).values
                rf2 = sum(v.data[1] for v in rf)
                u2 = u[0].data[1] if len(u) else 0.0
                rows.append((t0 + frame.frameValue, u2, rf2))
            t0 += step.timePeriod
    finally:
        odb.close()

    with open(csv_path, 'w') as f:
        f.write('time,U2,RF2\\n')
        for row in rows:
            f.write('%.12g,%.12g,%.12g\\n' % row)


if __name__ == '__main__':
    main(sys.argv[1], sys.argv[2], sys.argv[3])
'''


class CsvResultFetcher:
    """Reads ``<job_id>_<NODESET>.csv`` dumps from a working directory."""

    def __init__(self, work_dir: Union[str, Path] = "."):
        self.work_dir = Path(work_dir)

    def csv_path(self, job_id: str, node_set: str) -> Path:
        return self.work_dir / f"{job_id}_{node_set.upper()}.csv"

    def fetch(self, job_id: str, node_set: str) -> SolverCurve:
        """
        Load the simulated curve of ``node_set`` for ``job_id``.

        Raises
        ------
        ExternalFetchFailure
            If the dump is missing, empty, or lacks the U2/RF2 columns
        """
        path = self.csv_path(job_id, node_set)
        if not path.exists():
            raise ExternalFetchFailure(job_id, f"result file not found: {path}")

        try:
            df = pd.read_csv(path)
        except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
            raise ExternalFetchFailure(job_id, f"unreadable result file {path}: {e}")

        missing = [c for c in ("U2", "RF2") if c not in df.columns]
        if missing:
            raise ExternalFetchFailure(job_id, f"{path} lacks column(s) {', '.join(missing)}")
        if len(df) == 0:
            raise ExternalFetchFailure(job_id, f"{path} holds no frames")

        try:
            time = df["time"].to_numpy(dtype=float) if "time" in df.columns else np.arange(len(df), dtype=float)
            displ = df["U2"].to_numpy(dtype=float)
            force = df["RF2"].to_numpy(dtype=float)
        except (TypeError, ValueError) as e:
            raise ExternalFetchFailure(job_id, f"malformed result file {path}: {e}")

        return SolverCurve(time=time, displ=displ, force=force)


class AbaqusOdbFetcher(CsvResultFetcher):
    """
    Extracts RF2/U2 histories from ``<job_id>.odb`` via ``abaqus python``.

    Parameters
    ----------
    command : str
        Abaqus launcher
    work_dir : str or Path
        Directory holding the ODB files
    timeout : float, optional
        Limit for one extraction in seconds
    """

    script_name = "_af_fetch_load_displ.py"

    def __init__(self, command: str = "abaqus", work_dir: Union[str, Path] = ".",
                 timeout: Optional[float] = 600.0):
        super().__init__(work_dir)
        self.command = command
        self.timeout = timeout

    def extract(self, job_id: str, node_set: str) -> Path:
        """Dump the node set history of one ODB to CSV and return its path."""
        odb = self.work_dir / f"{job_id}.odb"
        if not odb.exists():
            raise ExternalFetchFailure(job_id, f"output database not found: {odb}")

        script = self.work_dir / self.script_name
        if not script.exists():
            script.write_text(_EXTRACT_SCRIPT)

        csv_path = self.csv_path(job_id, node_set)
        cmd = [self.command, "python", script.name, odb.name, node_set, csv_path.name]
        try:
            proc = subprocess.run(
                cmd, cwd=str(self.work_dir),
                capture_output=True, text=True, timeout=self.timeout,
            )
        except FileNotFoundError:
            raise ExternalFetchFailure(job_id, f"'{self.command}' not found")
        except subprocess.TimeoutExpired:
            raise ExternalFetchFailure(job_id, f"extraction timed out after {self.timeout:g}s")

        if proc.returncode != 0:
            err = (proc.stderr or proc.stdout or "").strip()
            raise ExternalFetchFailure(
                job_id, f"extraction exited with code {proc.returncode}: {err[:500]}"
            )
        return csv_path

    def fetch(self, job_id: str, node_set: str) -> SolverCurve:
        self.extract(job_id, node_set)
        return super().fetch(job_id, node_set)
