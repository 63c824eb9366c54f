"""
Plotting Module

Functions for visualizing simulated vs measured force-displacement curves.
"""

from pathlib import Path

import matplotlib.pyplot as plt


SIM_STYLE = {"color": "g", "linestyle": "-"}
TEST_STYLE = {"color": "#1f77b4", "linestyle": "-"}


def comparison_title(test_name, combined_error):
    """Plot title: test name over the optimizer's combined error."""
    return f" {test_name}\n combined error = {combined_error:g}"


def plot_curve(ax, x, y, label, style=None):
    """
    Plot a single force-displacement curve.

    Args:
        ax: Matplotlib axes
        x: Displacement data
        y: Force data
        label: Legend label
        style: Optional style dictionary
    """
    if style is None:
        style = TEST_STYLE
    ax.plot(x, y, label=label, **style)


def plot_comparison(record, output_dir='.', formats=('pdf', 'png'), show=False):
    """
    Plot one comparison record and save it once per format.

    Args:
        record: ComparisonRecord
        output_dir: Directory for the image files
        formats: File formats, e.g. ('pdf', 'png')
        show: Show the figure before closing it

    Returns:
        list: Paths of the written files, named <test name>.<format>
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots()

    plot_curve(ax, record.sim_displ, record.sim_force, 'ABAQUS', SIM_STYLE)
    plot_curve(ax, record.test_displ, record.test_force, 'Test', TEST_STYLE)

    ax.set_title(comparison_title(record.test_name, record.combined_error))
    ax.set_xlabel('Displacement')
    ax.set_ylabel('Force')
    ax.grid()
    ax.legend(loc='best')

    paths = []
    try:
        for fmt in formats:
            path = output_dir / f"{record.test_name}.{fmt}"
            fig.savefig(path, format=fmt)
            paths.append(path)
        if show:
            plt.show()
    finally:
        plt.close(fig)

    return paths
