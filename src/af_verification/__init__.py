"""
AF Verification - Armstrong-Frederick Parameter Recovery and Abaqus Verification

This package recovers physical combined (nonlinear kinematic / isotropic)
hardening parameters from a normalized optimizer result, runs the matching
Abaqus analyses for a set of physical tests, and compares the simulated
force-displacement curves with the measured ones.

Example usage:
    from af_verification import recover_parameters, run_verification

    # Parameters only
    params = recover_parameters([30, 50, 5000, 0.8, 100, 0.6, 10, 0.3])
    params.as_vector()  # [30, 5, 0.8, 5000, 0, 3000, 100, 150, 10]

    # Full verification against the tests in a MATLAB struct file
    result = run_verification(
        [30, 50, 5000, 0.8, 100, 0.6, 10, 0.3],
        combined_error=0.12,        # Optimizer best value, shown on plots
        tests="tests.mat",
        selection=[0, 2],           # or "all"
        needs_analysis=True,        # False reuses existing results
        save_xlsx=True
    )
"""

__version__ = "1.0.0"
__author__ = "AF Verification Contributors"

# Parameter recovery
from .parameters import (
    NormalizedVector,
    PhysicalParameterSet,
    MaterialParameterSet,
    ShapeAmbiguityWarning,
    classify_vector,
    recover_parameters,
    save_parameters,
    load_parameters,
)

# Test data
from .testset import (
    TestCase,
    MissingFieldError,
    select_tests,
    validate_tests,
    load_test_collection,
)

# Decks and jobs
from .decks import AbaqusDeckWriter, displacement_reversals
from .jobs import (
    AbaqusSolver,
    ExternalJobFailure,
    JobResult,
    JobStatus,
    job_id_for,
    run_jobs,
    submit_batch,
)

# Results and comparison
from .results import AbaqusOdbFetcher, CsvResultFetcher, ExternalFetchFailure, SolverCurve
from .compare import ComparisonRecord, ComparisonReport, compare_results, measured_curve

# Plotting and export
from .plotting import plot_comparison
from .export import export_to_excel, print_parameters

# Configuration and entry point
from .config import VerificationConfig, load_config
from .verification import VerificationResult, run_verification

__all__ = [
    # Parameter recovery
    'NormalizedVector',
    'PhysicalParameterSet',
    'MaterialParameterSet',
    'ShapeAmbiguityWarning',
    'classify_vector',
    'recover_parameters',
    'save_parameters',
    'load_parameters',

    # Test data
    'TestCase',
    'MissingFieldError',
    'select_tests',
    'validate_tests',
    'load_test_collection',

    # Decks and jobs
    'AbaqusDeckWriter',
    'displacement_reversals',
    'AbaqusSolver',
    'ExternalJobFailure',
    'JobResult',
    'JobStatus',
    'job_id_for',
    'run_jobs',
    'submit_batch',

    # Results and comparison
    'AbaqusOdbFetcher',
    'CsvResultFetcher',
    'ExternalFetchFailure',
    'SolverCurve',
    'ComparisonRecord',
    'ComparisonReport',
    'compare_results',
    'measured_curve',

    # Plotting and export
    'plot_comparison',
    'export_to_excel',
    'print_parameters',

    # Configuration and entry point
    'VerificationConfig',
    'load_config',
    'VerificationResult',
    'run_verification',
]
