"""
Tests for VerificationConfig serialization and validation.
"""

import pytest

from af_verification.config import VerificationConfig, load_config


def test_defaults():
    config = VerificationConfig()
    assert config.max_concurrent_jobs == 5
    assert config.job_suffix == "-dum"
    assert config.on_job_failure == "skip"
    assert config.plot_formats == ["pdf", "png"]


@pytest.mark.parametrize("suffix", [".json", ".yaml"])
def test_roundtrip(tmp_path, suffix):
    config = VerificationConfig(
        work_dir="runs/verification",
        abaqus_command="abq2023",
        cpus=4,
        max_concurrent_jobs=2,
        job_timeout_s=3600.0,
        on_job_failure="raise",
        plot_formats=["png"],
    )
    path = tmp_path / f"config{suffix}"
    if suffix == ".json":
        config.save_json(str(path))
    else:
        config.save_yaml(str(path))

    loaded = load_config(str(path))

    assert loaded == config
    assert loaded.to_dict() == config.to_dict()


def test_partial_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("max_concurrent_jobs: 3\nverbose: false\n")

    config = load_config(str(path))

    assert config.max_concurrent_jobs == 3
    assert config.verbose is False
    assert config.abaqus_command == "abaqus"


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(str(path)) == VerificationConfig()


def test_unknown_key_rejected():
    with pytest.raises(ValueError, match="max_jobs"):
        VerificationConfig.from_dict({"max_jobs": 3})


@pytest.mark.parametrize("kwargs", [
    {"max_concurrent_jobs": 0},
    {"cpus": 0},
    {"job_timeout_s": -1.0},
    {"on_job_failure": "retry"},
])
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        VerificationConfig(**kwargs)


def test_paths(tmp_path):
    config = VerificationConfig(work_dir=str(tmp_path))
    assert config.work_path == tmp_path
    assert config.parameter_path == tmp_path / "AF_parameters.json"

    absolute = tmp_path / "elsewhere" / "params.mat"
    config.parameter_file = str(absolute)
    assert config.parameter_path == absolute
