"""
Tests for pairing simulated and measured curves, plots and workbook export.
"""

import numpy as np
import pandas as pd
import pytest

from af_verification.compare import (
    ComparisonRecord,
    compare_results,
    measured_curve,
    records_to_series,
)
from af_verification.export import export_to_excel
from af_verification.plotting import comparison_title
from af_verification.results import CsvResultFetcher
from af_verification.testset import validate_tests

from conftest import FakeFetcher


def test_measured_curve_halves_symmetric_displacement(collection):
    tests = validate_tests(collection, ["coupon_A", "coupon_B"])

    displ, force = measured_curve(tests["coupon_A"])
    assert np.allclose(displ, [0.0, 0.5, 1.0, 0.5, -0.5, 0.0])
    assert np.allclose(force, collection["coupon_A"]["force"])

    displ, force = measured_curve(tests["coupon_B"])
    assert np.allclose(displ, collection["coupon_B"]["displ"])
    assert np.allclose(force, collection["coupon_B"]["force"])


def test_measured_curve_does_not_alias_test_data(collection):
    test = validate_tests(collection, ["coupon_B"])["coupon_B"]
    displ, _ = measured_curve(test)
    displ[:] = -1.0
    assert np.allclose(test.displ, [0.0, 0.5, 1.5])


def test_compare_results_records_in_selection_order(tmp_path, collection, fake_fetcher):
    tests = validate_tests(collection, ["coupon_B", "coupon_A"])

    report = compare_results(tests, fake_fetcher, 0.42, plot=False,
                             output_dir=tmp_path, verbose=False)

    assert report.ok
    assert [r.test_name for r in report.records] == ["coupon_B", "coupon_A"]
    assert fake_fetcher.requests == [("coupon_B-dum", "RP-1"), ("coupon_A-dum", "TOP")]

    a = report.by_name()["coupon_A"]
    assert np.allclose(a.sim_displ, [0.0, 0.5, 1.0])
    assert np.allclose(a.sim_force, [0.0, 9.0, 14.0])
    assert np.allclose(a.test_displ, [0.0, 0.5, 1.0, 0.5, -0.5, 0.0])
    assert a.combined_error == pytest.approx(0.42)


def test_fetch_failure_is_per_test(tmp_path, collection):
    tests = validate_tests(collection, ["coupon_A", "coupon_B"])
    fetcher = FakeFetcher({"coupon_B-dum": ([0.0, 1.0], [0.0, 5.0])})

    report = compare_results(tests, fetcher, 0.1, plot=False,
                             output_dir=tmp_path, verbose=False)

    assert not report.ok
    assert [r.test_name for r in report.records] == ["coupon_B"]
    assert list(report.failures) == ["coupon_A"]
    assert "coupon_A-dum" in report.failures["coupon_A"]
    assert "coupon_A" in report.format_failures()


def test_skipped_tests_are_not_fetched(tmp_path, collection, fake_fetcher):
    tests = validate_tests(collection, ["coupon_A", "coupon_B"])

    report = compare_results(tests, fake_fetcher, 0.1,
                             skip={"coupon_A": "job coupon_A-dum failed"},
                             plot=False, output_dir=tmp_path, verbose=False)

    assert fake_fetcher.requests == [("coupon_B-dum", "RP-1")]
    assert report.failures["coupon_A"] == "job coupon_A-dum failed"
    assert [r.test_name for r in report.records] == ["coupon_B"]


def test_plots_saved_per_test_and_format(tmp_path, collection, fake_fetcher):
    tests = validate_tests(collection, ["coupon_A", "coupon_B"])

    compare_results(tests, fake_fetcher, 0.1, output_dir=tmp_path, verbose=False)

    for name in ("coupon_A", "coupon_B"):
        assert (tmp_path / f"{name}.pdf").exists()
        assert (tmp_path / f"{name}.png").exists()


def test_plot_title():
    assert comparison_title("coupon_A", 0.125) == " coupon_A\n combined error = 0.125"


def test_workbook_has_sheet_per_test(tmp_path, collection, fake_fetcher):
    tests = validate_tests(collection, ["coupon_A", "coupon_B"])

    compare_results(tests, fake_fetcher, 0.1, plot=False, save_xlsx=True,
                    output_dir=tmp_path, verbose=False)

    sheets = pd.read_excel(tmp_path / "ForceDispl.xlsx", sheet_name=None)
    assert list(sheets) == ["coupon_A", "coupon_B"]
    assert list(sheets["coupon_A"].columns) == ["Displ", "Force"]
    assert np.allclose(sheets["coupon_B"]["Displ"], [0.0, 0.75, 1.5])
    assert np.allclose(sheets["coupon_B"]["Force"], [0.0, 7.5, 10.5])


def test_no_workbook_unless_requested(tmp_path, collection, fake_fetcher):
    tests = validate_tests(collection, ["coupon_A"])
    compare_results(tests, fake_fetcher, 0.1, plot=False, output_dir=tmp_path, verbose=False)
    assert not (tmp_path / "ForceDispl.xlsx").exists()


def test_export_truncates_long_sheet_names(tmp_path):
    name = "a_very_long_coupon_name_exceeding_excel_limits"
    record = ComparisonRecord(name, np.array([0.0, 1.0]), np.array([0.0, 2.0]),
                              np.array([0.0, 1.0]), np.array([0.0, 2.0]), 0.0)

    path = export_to_excel([record], tmp_path / "out.xlsx")

    assert list(pd.read_excel(path, sheet_name=None)) == [name[:31]]


def test_records_to_series(tmp_path, collection, fake_fetcher):
    tests = validate_tests(collection, ["coupon_A", "coupon_B"])
    report = compare_results(tests, fake_fetcher, 0.1, plot=False,
                             output_dir=tmp_path, verbose=False)

    forces, displacements = records_to_series(report.records)

    assert list(forces) == ["coupon_A", "coupon_B"]
    assert np.allclose(forces["coupon_B"], [0.0, 7.5, 10.5])
    assert np.allclose(displacements["coupon_A"], [0.0, 0.5, 1.0])


def test_progress_output(tmp_path, collection, fake_fetcher, capsys):
    tests = validate_tests(collection, ["coupon_A"])
    compare_results(tests, fake_fetcher, 0.1, plot=False, output_dir=tmp_path)
    assert "Comparing displacement curves... Done!" in capsys.readouterr().out


def test_malformed_dump_is_per_test(tmp_path, collection):
    (tmp_path / "coupon_A-dum_TOP.csv").write_text("time,U2,RF2\n1,***,nan\n")
    (tmp_path / "coupon_B-dum_RP-1.csv").write_text("time,U2,RF2\n0,0,0\n1,1.5,10.5\n")
    tests = validate_tests(collection, ["coupon_A", "coupon_B"])

    report = compare_results(tests, CsvResultFetcher(tmp_path), 0.1, plot=False,
                             output_dir=tmp_path, verbose=False)

    assert list(report.failures) == ["coupon_A"]
    assert "malformed" in report.failures["coupon_A"]
    assert [r.test_name for r in report.records] == ["coupon_B"]


def test_plot_failure_is_per_test(tmp_path, collection, fake_fetcher):
    blocked = tmp_path / "blocked"
    blocked.write_text("a file where the plot directory should be")
    tests = validate_tests(collection, ["coupon_A", "coupon_B"])

    report = compare_results(tests, fake_fetcher, 0.1, output_dir=blocked, verbose=False)

    assert list(report.failures) == ["coupon_A", "coupon_B"]
    assert "could not save plot" in report.failures["coupon_A"]
    assert [r.test_name for r in report.records] == ["coupon_A", "coupon_B"]


def test_export_keeps_sheets_with_shared_prefix_apart(tmp_path):
    names = ["x" * 31 + "_A", "x" * 31 + "_B", "x" * 31]
    records = [
        ComparisonRecord(name, np.array([0.0, float(i)]), np.array([0.0, 1.0]),
                         np.array([0.0, 1.0]), np.array([0.0, 1.0]), 0.0)
        for i, name in enumerate(names)
    ]

    path = export_to_excel(records, tmp_path / "out.xlsx")
    sheets = pd.read_excel(path, sheet_name=None)

    assert list(sheets) == ["x" * 31, "x" * 29 + "~2", "x" * 29 + "~3"]
    assert all(len(name) <= 31 for name in sheets)
    assert [s["Displ"].iloc[-1] for s in sheets.values()] == [0.0, 1.0, 2.0]
