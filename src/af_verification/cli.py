"""
Command Line Interface Module

Runs a verification from the shell:

    af-verify --vector 30,50,5000,0.8,100,0.6,10,0.3 --error 0.12 --tests tests.mat
    af-verify --vector ... --error 0.12 --tests tests.mat --select 1,3 --save-xlsx
    af-verify --vector ... --error 0.12 --tests tests.mat --no-analysis
"""

import argparse
import dataclasses
import sys

from .config import load_config
from .jobs import ExternalJobFailure
from .parameters import NormalizedVector, PhysicalParameterSet
from .testset import MissingFieldError
from .verification import run_verification


def parse_vector(text, kind='auto'):
    """Comma separated floats, tagged according to kind."""
    values = [float(v) for v in text.replace(' ', '').split(',') if v]
    if kind == 'normalized':
        return NormalizedVector(tuple(values))
    if kind == 'physical':
        return PhysicalParameterSet(tuple(values))
    return values


def parse_selection(text):
    """'all', or comma separated 1-based positions / test names."""
    if text is None or text.strip().lower() == 'all':
        return 'all'
    selection = []
    for item in text.split(','):
        item = item.strip()
        if not item:
            continue
        if item.isdigit():
            if int(item) < 1:
                raise ValueError(f"Test positions start at 1, got {item}")
            selection.append(int(item) - 1)
        else:
            selection.append(item)
    return selection


def config_from_args(args):
    """Config file (or defaults) with the command line overrides applied."""
    overrides = {}
    if args.work_dir is not None:
        overrides['work_dir'] = args.work_dir
    if args.max_jobs is not None:
        overrides['max_concurrent_jobs'] = args.max_jobs
    if args.timeout is not None:
        overrides['job_timeout_s'] = args.timeout
    if args.no_plot:
        overrides['plot'] = False
    if args.quiet:
        overrides['verbose'] = False
    return dataclasses.replace(load_config(args.config), **overrides)


def build_parser():
    parser = argparse.ArgumentParser(
        prog='af-verify',
        description="Recover Armstrong-Frederick parameters and verify them with Abaqus",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  af-verify --vector 30,50,5000,0.8,100,0.6,10,0.3 --error 0.12 --tests tests.mat
  af-verify --vector 30,5,0.8,5000,0,3000,100 --kind physical --error 0.12 --tests tests.yaml
  af-verify --vector ... --error 0.12 --tests tests.mat --select 1,3 --no-analysis
        """
    )

    parser.add_argument('--vector', type=str, required=True,
                        help='Optimizer best position, comma separated')
    parser.add_argument('--error', type=float, required=True,
                        help='Optimizer best value (combined error), for plot titles')
    parser.add_argument('--tests', type=str, required=True,
                        help='Test collection (.mat, .yaml or .json)')
    parser.add_argument('--select', type=str, default='all',
                        help="1-based test positions or names, comma separated (default: all)")
    parser.add_argument('--kind', type=str, default='auto',
                        choices=['auto', 'normalized', 'physical'],
                        help='How to read --vector (default: auto, by length)')
    parser.add_argument('--config', type=str,
                        help='YAML or JSON configuration file')
    parser.add_argument('--work-dir', type=str,
                        help='Working directory (overrides config)')
    parser.add_argument('--max-jobs', type=int,
                        help='Maximum concurrent Abaqus jobs (overrides config)')
    parser.add_argument('--timeout', type=float,
                        help='Per-job timeout in seconds (overrides config)')
    parser.add_argument('--no-analysis', action='store_true',
                        help='Reuse existing results instead of running Abaqus')
    parser.add_argument('--save-xlsx', action='store_true',
                        help='Export simulated curves to an Excel workbook')
    parser.add_argument('--no-plot', action='store_true',
                        help='Do not save comparison plots')
    parser.add_argument('--quiet', action='store_true',
                        help='Only print errors')
    return parser


def main(argv=None):
    """
    Main CLI function.

    Returns 0 when every selected test was compared, 1 when some could not be,
    and 2 on invalid input.
    """
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        vector = parse_vector(args.vector, args.kind)
        selection = parse_selection(args.select)
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        result = run_verification(
            vector,
            args.error,
            args.tests,
            selection=selection,
            needs_analysis=not args.no_analysis,
            save_xlsx=args.save_xlsx,
            config=config,
        )
    except (MissingFieldError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except ExternalJobFailure as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not result.ok:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
