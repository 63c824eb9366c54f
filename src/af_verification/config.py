"""
Verification run configuration.

Settings live in a dataclass that round-trips through JSON and YAML, so a
run can be repeated from a saved file:

    work_dir: runs/verification
    abaqus_command: abq2023
    max_concurrent_jobs: 5
    job_timeout_s: 7200
    on_job_failure: skip
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import yaml

from .jobs import DEFAULT_JOB_SUFFIX, DEFAULT_MAX_CONCURRENT
from .parameters import PARAMETER_FILE


@dataclass
class VerificationConfig:
    """Settings for one verification run"""
    # Files
    work_dir: str = "."  # decks, ODBs, plots and the workbook go here
    parameter_file: str = PARAMETER_FILE
    workbook: str = "ForceDispl.xlsx"

    # Solver
    abaqus_command: str = "abaqus"
    cpus: int = 1
    max_concurrent_jobs: int = DEFAULT_MAX_CONCURRENT
    job_timeout_s: Optional[float] = None  # None waits indefinitely
    job_suffix: str = DEFAULT_JOB_SUFFIX
    on_job_failure: str = "skip"  # "skip" or "raise"

    # Output
    plot: bool = True
    plot_formats: List[str] = field(default_factory=lambda: ["pdf", "png"])
    verbose: bool = True

    def __post_init__(self):
        if int(self.max_concurrent_jobs) < 1:
            raise ValueError(f"max_concurrent_jobs must be >= 1, got {self.max_concurrent_jobs}")
        if int(self.cpus) < 1:
            raise ValueError(f"cpus must be >= 1, got {self.cpus}")
        if self.job_timeout_s is not None and float(self.job_timeout_s) <= 0:
            raise ValueError(f"job_timeout_s must be positive, got {self.job_timeout_s}")
        if self.on_job_failure not in ("skip", "raise"):
            raise ValueError(f"on_job_failure must be 'skip' or 'raise', got {self.on_job_failure!r}")
        self.plot_formats = list(self.plot_formats)

    @property
    def work_path(self) -> Path:
        return Path(self.work_dir)

    @property
    def parameter_path(self) -> Path:
        path = Path(self.parameter_file)
        return path if path.is_absolute() else self.work_path / path

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON/YAML export"""
        return {
            "work_dir": self.work_dir,
            "parameter_file": self.parameter_file,
            "workbook": self.workbook,
            "abaqus_command": self.abaqus_command,
            "cpus": self.cpus,
            "max_concurrent_jobs": self.max_concurrent_jobs,
            "job_timeout_s": self.job_timeout_s,
            "job_suffix": self.job_suffix,
            "on_job_failure": self.on_job_failure,
            "plot": self.plot,
            "plot_formats": list(self.plot_formats),
            "verbose": self.verbose,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VerificationConfig':
        """Construct from dictionary (inverse of to_dict)"""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration key(s): {', '.join(unknown)}")
        return cls(**data)

    def save_json(self, filepath: str):
        """Save to JSON file"""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def save_yaml(self, filepath: str):
        """Save to YAML file"""
        with open(filepath, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)

    @classmethod
    def load_json(cls, filepath: str) -> 'VerificationConfig':
        """Load from JSON file"""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data or {})

    @classmethod
    def load_yaml(cls, filepath: str) -> 'VerificationConfig':
        """Load from YAML file"""
        with open(filepath, 'r') as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})


def load_config(path: Optional[str] = None) -> VerificationConfig:
    """Load a config file by suffix; defaults when path is None."""
    if path is None:
        return VerificationConfig()
    if Path(path).suffix.lower() == ".json":
        return VerificationConfig.load_json(path)
    return VerificationConfig.load_yaml(path)
