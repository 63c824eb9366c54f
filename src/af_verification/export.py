"""
Export Module

Functions for exporting simulated force-displacement curves to Excel and
for printing the recovered parameter set.
"""

from pathlib import Path

import pandas as pd

from .parameters import parameter_labels


MAX_SHEET_NAME = 31  # Excel limit


def sheet_name_for(test_name, used=()):
    """
    Excel sheet name for a test: cut to 31 characters, and given a ~n suffix
    when the cut name is already in use (compared case-insensitively).
    """
    name = test_name[:MAX_SHEET_NAME]
    n = 1
    while name.lower() in used:
        n += 1
        suffix = f"~{n}"
        name = test_name[:MAX_SHEET_NAME - len(suffix)] + suffix
    return name


def export_to_excel(records, filename='ForceDispl.xlsx'):
    """
    Export simulated curves to an Excel workbook, one sheet per test.

    Args:
        records: Iterable of ComparisonRecord
        filename: Output Excel filename (default: 'ForceDispl.xlsx')

    Returns:
        Path: Path to the created Excel file
    """
    path = Path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)

    used = set()
    with pd.ExcelWriter(path) as writer:
        for record in records:
            sheet = sheet_name_for(record.test_name, used)
            used.add(sheet.lower())
            df = pd.DataFrame({
                'Displ': record.sim_displ,
                'Force': record.sim_force,
            })
            df.to_excel(writer, sheet_name=sheet, index=False)

    return path


def print_parameters(params, combined_error=None):
    """
    Print the recovered parameter set.

    Args:
        params: MaterialParameterSet
        combined_error: Optimizer's combined error, shown for reference
    """
    print('\n' + '='*60)
    print('ARMSTRONG-FREDERICK PARAMETERS')
    print('='*60)
    for label, value in zip(parameter_labels(params), params.as_vector()):
        print(f'{label:>8s} = {value:.6g}')
    print(f'Saturated hardening: {params.saturated_hardening:.6g}')
    if combined_error is not None:
        print(f'Combined error: {combined_error:g}')
    print('='*60)
