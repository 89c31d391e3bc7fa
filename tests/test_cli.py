from __future__ import annotations

import json
from argparse import Namespace

import pytest

from devconform.cli import conform
from devconform.cli.common import apply_overrides, validate_capability
from devconform.config import AppConfig


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch) -> None:
    monkeypatch.setattr(conform, "configure_logging", lambda *args, **kwargs: None)


def _write_config(tmp_path) -> str:
    path = tmp_path / "conform.json"
    path.write_text(
        json.dumps({"tests": {"settle_delay_s": 0, "poll_interval_s": 0.01}, "logging": {"level": "WARNING"}}),
        encoding="utf-8",
    )
    return str(path)


def test_list_capabilities(capsys) -> None:
    assert conform.main(["--list-capabilities"]) == 0
    assert capsys.readouterr().out.split() == ["covercalibrator"]


def test_simulated_run_exits_with_zero_and_writes_results(tmp_path) -> None:
    results = tmp_path / "out" / "results.json"
    exit_code = conform.main(["--config", _write_config(tmp_path), "--results", str(results)])
    assert exit_code == 0
    assert json.loads(results.read_text(encoding="utf-8"))["error_count"] == 0


def test_disabled_categories_count_towards_exit_code(tmp_path) -> None:
    results = tmp_path / "results.json"
    exit_code = conform.main(
        ["--config", _write_config(tmp_path), "--results", str(results), "--no-properties", "--no-methods"]
    )
    assert exit_code == 2


def test_unsupported_config_suffix_is_a_configuration_error(tmp_path, capsys) -> None:
    bad = tmp_path / "conform.ini"
    bad.write_text("[tests]\n", encoding="utf-8")
    assert conform.main(["--config", str(bad)]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_unknown_capability_is_a_configuration_error(tmp_path, capsys) -> None:
    assert conform.main(["--config", _write_config(tmp_path), "--capability", "telescope"]) == 2
    assert "telescope" in capsys.readouterr().err


def test_setup_opens_the_simulator_dialog(tmp_path) -> None:
    assert conform.main(["--config", _write_config(tmp_path), "--setup"]) == 0


def test_apply_overrides_updates_sections() -> None:
    args = Namespace(
        capability="CoverCalibrator",
        transport="alpaca",
        host="10.0.0.5",
        port=32323,
        device_number=2,
        plugin=None,
        cycles=0,
        no_properties=False,
        no_methods=True,
        performance=True,
        good_timings=False,
        bad_timings=True,
        results="out.json",
        log_directory=None,
        log_file=None,
        log_level="debug",
    )
    config = apply_overrides(AppConfig(), args)

    assert config.device.transport == "alpaca"
    assert config.device.port == 32323
    assert config.device.device_number == 2
    assert config.tests.cycles == 1
    assert config.tests.test_methods is False
    assert config.tests.test_performance is True
    assert config.tests.report_bad_timings is True
    assert str(config.report.results_path) == "out.json"
    assert config.logging.level == "DEBUG"

    with pytest.raises(ValueError):
        apply_overrides(AppConfig(), Namespace(port=70000))


def test_validate_capability_normalises_names() -> None:
    assert validate_capability(" CoverCalibrator ") == "covercalibrator"
    with pytest.raises(ValueError):
        validate_capability("focuser")
