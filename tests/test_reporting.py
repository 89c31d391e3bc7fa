from __future__ import annotations

import json
from pathlib import Path

from devconform.config import ReportConfig, TestConfig
from devconform.reporting import (
    default_report_path,
    render_summary,
    summary_context,
    summary_lines,
    write_results,
)
from devconform.reporting.reports import PASS_MESSAGE, TIMING_PASS_MESSAGE
from devconform.results import ConformResults, FindingRecorder
from devconform.timing import TimingBudget


def test_clean_run_gets_pass_message() -> None:
    assert summary_lines(ConformResults()) == [PASS_MESSAGE]


def test_summary_lists_each_category() -> None:
    results = ConformResults()
    results.add_error("OpenCover", "did not open")
    results.add_issue("HaltCover", "still moving")
    results.add_configuration_alert("Conform configuration", "methods skipped")

    lines = summary_lines(results)
    assert lines[0] == "Your device had 1 issue(s), 1 error(s) and 1 configuration alert(s)"
    assert "Error Summary:" in lines
    assert "  OpenCover: did not open" in lines
    assert lines.index("Error Summary:") < lines.index("Issue Summary:") < lines.index("Configuration Alert Summary:")


def test_timing_summary_only_when_timings_are_reported() -> None:
    recorder = FindingRecorder(report_good_timings=True)
    recorder.report_timing("Name", 0.01, TimingBudget.FAST)

    assert "Timing Summary:" not in summary_lines(recorder.results, TestConfig())
    lines = summary_lines(recorder.results, TestConfig(report_good_timings=True))
    assert "Timing Summary:" in lines
    assert "  Reporting response times within their targets" in lines
    assert f"  {TIMING_PASS_MESSAGE}" in lines


def test_timing_summary_counts_slow_members() -> None:
    recorder = FindingRecorder(report_bad_timings=True)
    recorder.report_timing("Name", 0.01, TimingBudget.FAST)
    recorder.report_timing("OpenCover", 3.0, TimingBudget.STANDARD)

    lines = summary_lines(recorder.results, TestConfig(report_bad_timings=True))
    assert lines[-1] == "  1 of 2 member(s) took longer than their target response times."


def test_default_report_path_prefers_explicit_path(tmp_path) -> None:
    assert default_report_path(ReportConfig(results_path=tmp_path / "out.json")) == tmp_path / "out.json"
    assert default_report_path(ReportConfig(log_directory=tmp_path)) == tmp_path / "conform.report.txt"


def test_write_results_creates_parent_directories(tmp_path) -> None:
    results = ConformResults()
    results.add_issue("CoverState", "odd")
    output = write_results(results, tmp_path / "nested" / "report.json")

    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["issues"] == [{"key": "CoverState", "message": "odd"}]
    assert payload["issue_count"] == 1


def test_render_summary_flattens_findings_for_simple_templates(tmp_path) -> None:
    results = ConformResults()
    results.add_error("OpenCover", "did not open")
    context = summary_context(results, capability="covercalibrator", report_path=Path("report.json"))

    template = tmp_path / "summary.tpl"
    template.write_text("$capability $errors_count $errors_0_key $unknown", encoding="utf-8")
    assert render_summary(template, context) == "covercalibrator 1 OpenCover $unknown"

    jinja = tmp_path / "summary.jinja"
    jinja.write_text("{% for e in errors %}{{ e.key }}={{ e.message }}{% endfor %}", encoding="utf-8")
    assert render_summary(jinja, context) == "OpenCover=did not open"
