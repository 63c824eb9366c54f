"""
Tests for Abaqus deck writing: displacement reversals, amplitude and step
rewriting, and the hardening parameter blocks.
"""

import numpy as np
import pytest

from af_verification.decks import (
    AbaqusDeckWriter,
    amplitude_table,
    displacement_reversals,
    find_keyword_blocks,
    format_data_lines,
)
from af_verification.parameters import recover_parameters
from af_verification.testset import validate_tests


def _data_after(lines, keyword):
    """Data lines of the first block of keyword."""
    (start, end), = find_keyword_blocks(lines, keyword)[:1]
    return lines[start + 1:end]


def test_displacement_reversals():
    d = [0.0, 1.0, 2.0, 1.0, -1.0, 0.5]
    assert np.allclose(displacement_reversals(d), [0.0, 2.0, -1.0, 0.5])


def test_displacement_reversals_skips_flat_stretches():
    d = [0.0, 1.0, 1.0, 1.0, 0.0, 0.0, 2.0]
    assert np.allclose(displacement_reversals(d), [0.0, 1.0, 0.0, 2.0])


def test_displacement_reversals_monotonic_and_short():
    assert np.allclose(displacement_reversals([0.0, 1.0, 2.0, 3.0]), [0.0, 3.0])
    assert np.allclose(displacement_reversals([0.0, 1.0]), [0.0, 1.0])
    assert np.allclose(displacement_reversals([2.0, 2.0, 2.0]), [2.0, 2.0])


def test_amplitude_table_halves_symmetric_tests(collection):
    tests = validate_tests(collection, ["coupon_A", "coupon_B"])

    sym = amplitude_table(tests["coupon_A"])
    full = amplitude_table(tests["coupon_B"])

    assert np.allclose(sym[:, 0], [0.0, 1.0, 2.0, 3.0])
    assert np.allclose(sym[:, 1], [0.0, 1.0, -0.5, 0.0])
    assert np.allclose(full[:, 1], [0.0, 1.5])


def test_format_data_lines_wraps_at_eight_values():
    lines = format_data_lines(range(10))
    assert len(lines) == 2
    assert lines[0].count(",") == 7
    assert lines[1] == "8, 9"


def test_write_history(tmp_path, collection):
    test = validate_tests(collection, ["coupon_A"])["coupon_A"]
    writer = AbaqusDeckWriter(tmp_path)

    path = writer.write_history(test, "coupon_A.inp")
    lines = path.read_text().splitlines()

    assert path == tmp_path / "coupon_A.inp"
    assert "*Amplitude, name=DISP-HIST" in lines
    amp = [float(v) for line in _data_after(lines, "amplitude") for v in line.split(",")]
    assert np.allclose(amp, [0, 0, 1, 1, 2, -0.5, 3, 0])
    assert _data_after(lines, "static") == ["0.01, 3, 1e-08, 0.05"]
    # untouched parts of the template survive
    assert "*Boundary, amplitude=DISP-HIST" in lines
    assert "** Coupon template" in lines


def test_write_history_without_amplitude(tmp_path, collection):
    template = tmp_path / "bare.inp"
    template.write_text("*Heading\n*Step\n*Static\n0.1, 1.\n*End Step\n")
    collection["coupon_B"]["template"] = str(template)
    test = validate_tests(collection, ["coupon_B"])["coupon_B"]

    with pytest.raises(ValueError, match="Amplitude"):
        AbaqusDeckWriter(tmp_path).write_history(test, "coupon_B.inp")


def test_write_history_missing_template(tmp_path, collection):
    collection["coupon_B"]["template"] = "does_not_exist.inp"
    test = validate_tests(collection, ["coupon_B"])["coupon_B"]

    with pytest.raises(FileNotFoundError, match="coupon_B"):
        AbaqusDeckWriter(tmp_path).write_history(test, "coupon_B.inp")


def test_write_parameters(tmp_path, template_path):
    params = recover_parameters([30, 50, 5000, 0.8, 100, 0.6, 10, 0.3])
    writer = AbaqusDeckWriter(tmp_path)

    path = writer.write_parameters(template_path, "coupon-dum.inp", params)
    lines = path.read_text().splitlines()

    assert ("*Plastic, hardening=COMBINED, datatype=PARAMETERS, "
            "number backstresses=3") in lines
    plastic = [float(v) for v in _data_after(lines, "plastic")[0].split(",")]
    assert np.allclose(plastic, [30, 5000, 0, 3000, 100, 150, 10])

    assert "*Cyclic Hardening, parameters" in lines
    cyclic = [float(v) for v in _data_after(lines, "cyclic hardening")[0].split(",")]
    assert np.allclose(cyclic, [30, 5, 0.8])

    # cyclic hardening follows the plastic block inside the material
    assert lines.index("*Cyclic Hardening, parameters") < lines.index("*Amplitude, name=DISP-HIST")
    # base deck untouched
    assert "36., 0." in template_path.read_text()


def test_write_parameters_replaces_existing_blocks(tmp_path, template_path):
    params = recover_parameters([30, 50, 5000, 0.8, 100, 0.6, 10, 0.3])
    writer = AbaqusDeckWriter(tmp_path)

    first = writer.write_parameters(template_path, "once.inp", params)
    second = writer.write_parameters(first, "twice.inp", params)

    text = second.read_text()
    assert text.count("*Plastic") == 1
    assert text.count("*Cyclic Hardening") == 1
    assert text == first.read_text()


def test_write_parameters_without_plastic(tmp_path):
    deck = tmp_path / "elastic.inp"
    deck.write_text("*Material, name=STEEL\n*Elastic\n29000., 0.3\n")
    params = recover_parameters([30, 50, 5000, 0.8, 100, 0.6])

    with pytest.raises(ValueError, match="Plastic"):
        AbaqusDeckWriter(tmp_path).write_parameters(deck, "out.inp", params)
