"""
Abaqus input deck writers.

Two passes per test:

1. History: the test's template deck gets an ``*Amplitude`` block built from
   the reversal points of the measured displacement, and a ``*Static`` step
   long enough to run through it. Written to ``<test>.inp``.
2. Parameters: a copy of the history deck with the ``*Plastic`` and
   ``*Cyclic Hardening`` blocks rewritten for the recovered parameter set.
   Written to ``<job id>.inp``; this is the deck that is submitted.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence, Tuple, Union

import numpy as np

from .parameters import MaterialParameterSet
from .testset import TestCase


MAX_VALUES_PER_LINE = 8  # Abaqus data line limit


def displacement_reversals(displ: Sequence[float]) -> np.ndarray:
    """
    Reversal points of a displacement history.

    Keeps the first point, every point where the increment changes sign, and
    the last point. Flat stretches are skipped when looking for sign changes.

    Example: [0, 1, 2, 1, -1, 0.5] -> [0, 2, -1, 0.5]
    """
    d = np.asarray(displ, dtype=float).ravel()
    if len(d) < 3:
        return d.copy()

    steps = np.diff(d)
    moving = np.nonzero(steps)[0]
    if len(moving) == 0:
        return d[[0, -1]]

    signs = np.sign(steps[moving])
    # index into d of the point where the direction flips
    flips = moving[1:][signs[1:] != signs[:-1]]
    keep = np.concatenate(([0], flips, [len(d) - 1]))
    return d[np.unique(keep)]


def amplitude_table(test: TestCase) -> np.ndarray:
    """(time, displacement) pairs for the *Amplitude block, shape (n, 2)."""
    peaks = displacement_reversals(test.displ)
    if test.symmetric:
        peaks = peaks / 2.0
    times = np.arange(len(peaks), dtype=float)
    return np.column_stack((times, peaks))


def format_data_lines(values: Sequence[float], per_line: int = MAX_VALUES_PER_LINE) -> List[str]:
    """Comma separated data lines with at most per_line values each."""
    values = [f"{float(v):.10g}" for v in values]
    return [", ".join(values[i:i + per_line]) for i in range(0, len(values), per_line)]


# ============================================================================
# KEYWORD BLOCK EDITING
# ============================================================================

def _is_keyword(line: str) -> bool:
    s = line.lstrip()
    return s.startswith("*") and not s.startswith("**")


def _is_comment(line: str) -> bool:
    return line.lstrip().startswith("**")


def _keyword_name(line: str) -> str:
    return line.strip()[1:].split(",")[0].strip().lower()


def find_keyword_blocks(lines: List[str], keyword: str) -> List[Tuple[int, int]]:
    """
    Locate keyword blocks as (start, end) line ranges.

    ``start`` is the keyword line and ``end`` is one past its last data line.
    Comment lines inside a block are kept as part of it.
    """
    keyword = keyword.lower()
    blocks = []
    i = 0
    while i < len(lines):
        if _is_keyword(lines[i]) and _keyword_name(lines[i]) == keyword:
            j = i + 1
            while j < len(lines) and not _is_keyword(lines[j]):
                j += 1
            # trailing comments belong to whatever comes next
            while j > i + 1 and _is_comment(lines[j - 1]):
                j -= 1
            blocks.append((i, j))
            i = j
        else:
            i += 1
    return blocks


def replace_keyword_block(lines: List[str], keyword: str, new_block: List[str]) -> List[str]:
    """Replace every block of ``keyword`` with ``new_block``; ValueError if none."""
    blocks = find_keyword_blocks(lines, keyword)
    if not blocks:
        raise ValueError(f"No *{keyword} keyword found")

    out = []
    prev = 0
    for start, end in blocks:
        out.extend(lines[prev:start])
        out.extend(new_block)
        prev = end
    out.extend(lines[prev:])
    return out


# ============================================================================
# WRITER
# ============================================================================

class AbaqusDeckWriter:
    """Writes history and parameter decks into a working directory."""

    def __init__(self, work_dir: Union[str, Path] = "."):
        self.work_dir = Path(work_dir)

    def _resolve(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.work_dir / path

    def write_history(self, test: TestCase, target: Union[str, Path]) -> Path:
        """
        Instantiate the test's template with its displacement history.

        The first ``*Amplitude`` block keeps its keyword line (and so its
        name) and gets new data; every ``*Static`` data line gets a total
        time equal to the last amplitude time.
        """
        template = self._resolve(test.template)
        if not template.exists():
            raise FileNotFoundError(f"Template for test '{test.name}' not found: {template}")

        lines = template.read_text().splitlines()
        table = amplitude_table(test)
        total_time = float(table[-1, 0]) if len(table) > 1 else 1.0

        blocks = find_keyword_blocks(lines, "amplitude")
        if not blocks:
            raise ValueError(f"Template {template} has no *Amplitude keyword")
        start, end = blocks[0]
        lines[start + 1:end] = format_data_lines(table.ravel())

        static_blocks = find_keyword_blocks(lines, "static")
        if not static_blocks:
            raise ValueError(f"Template {template} has no *Static keyword")
        for start, end in reversed(static_blocks):
            lines[start + 1:end] = [_static_data_line(lines[start + 1:end], total_time)]

        target = self._resolve(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("\n".join(lines) + "\n")
        return target

    def write_parameters(self, base: Union[str, Path], target: Union[str, Path],
                         params: MaterialParameterSet) -> Path:
        """Copy ``base`` to ``target`` with the hardening blocks rewritten."""
        base = self._resolve(base)
        lines = base.read_text().splitlines()

        plastic = [
            "*Plastic, hardening=COMBINED, datatype=PARAMETERS, "
            f"number backstresses={params.n_backstresses}"
        ]
        kinematic = [params.fy, params.c0, params.gamma0]
        for c, gamma in params.backstresses:
            kinematic.extend((c, gamma))
        plastic += format_data_lines(kinematic)

        if not find_keyword_blocks(lines, "plastic"):
            raise ValueError(f"Deck {base} has no *Plastic keyword to write parameters into")
        lines = replace_keyword_block(lines, "plastic", plastic)

        cyclic = ["*Cyclic Hardening, parameters"] + format_data_lines([params.fy, params.q_inf, params.b])
        if find_keyword_blocks(lines, "cyclic hardening"):
            lines = replace_keyword_block(lines, "cyclic hardening", cyclic)
        else:
            _, end = find_keyword_blocks(lines, "plastic")[-1]
            lines[end:end] = cyclic

        target = self._resolve(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("\n".join(lines) + "\n")
        return target


def _static_data_line(data_lines: List[str], total_time: float) -> str:
    """Rebuild a *Static data line: initial inc, total time, min inc, max inc."""
    fields = []
    for line in data_lines:
        if not _is_comment(line) and line.strip():
            fields = [s.strip() for s in line.split(",")]
            break

    initial = fields[0] if len(fields) > 0 and fields[0] else "0.01"
    minimum = fields[2] if len(fields) > 2 and fields[2] else "1e-08"
    maximum = fields[3] if len(fields) > 3 and fields[3] else "0.1"
    return f"{initial}, {total_time:.10g}, {minimum}, {maximum}"
