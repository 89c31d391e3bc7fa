"""Results file, human-readable summary and optional summary templates."""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from string import Template
from typing import Any, Dict, List, Mapping, Optional

from ..config import ReportConfig, TestConfig
from ..constants import DEFAULT_REPORT_NAME
from ..results import ConformResults, Finding
from ..timing import TimingBudget

PASS_MESSAGE = "Congratulations, no errors, warnings or issues found: your device passes conformance validation!!"
TIMING_PASS_MESSAGE = "Congratulations, all members returned within their target response times!!"


def default_report_path(report: ReportConfig) -> Path:
    """Destination of the results file when no explicit path is configured."""

    return report.results_path or (Path(report.log_directory) / DEFAULT_REPORT_NAME)


def write_results(results: ConformResults, output: Path) -> Path:
    """Write *results* to *output* as indented JSON."""

    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open('w', encoding='utf-8') as handle:
        json.dump(results.to_dict(), handle, ensure_ascii=False, indent=2)
        handle.write('\n')
    return output


def _finding_lines(title: str, findings: List[Finding]) -> List[str]:
    if not findings:
        return []
    lines = ["", f"{title}:"]
    lines.extend(f"  {finding.key}: {finding.message}" for finding in findings)
    return lines


def summary_lines(results: ConformResults, settings: Optional[TestConfig] = None) -> List[str]:
    """Human-readable end-of-run summary."""

    lines: List[str] = []
    if results.total == 0:
        lines.append(PASS_MESSAGE)
    else:
        lines.append(
            f"Your device had {results.issue_count} issue(s), {results.error_count} error(s) "
            f"and {results.configuration_alert_count} configuration alert(s)"
        )
    lines.extend(_finding_lines("Error Summary", results.errors))
    lines.extend(_finding_lines("Issue Summary", results.issues))
    lines.extend(_finding_lines("Configuration Alert Summary", results.configuration_alerts))

    if settings is not None and settings.reports_timings:
        lines.extend(timing_summary_lines(results, settings))
    return lines


def timing_summary_lines(results: ConformResults, settings: TestConfig) -> List[str]:
    if settings.report_good_timings and settings.report_bad_timings:
        mode = "all response times"
    elif settings.report_bad_timings:
        mode = "response times outside their targets"
    else:
        mode = "response times within their targets"
    lines = ["", "Timing Summary:"]
    lines.extend(f"  {budget.label} target response time: {budget.seconds:.1f} seconds" for budget in TimingBudget)
    lines.append(f"  Reporting {mode}")
    lines.extend(f"  {finding.message}" for finding in results.timings)
    if results.timing_issues_count == 0:
        lines.append(f"  {TIMING_PASS_MESSAGE}")
    else:
        lines.append(
            f"  {results.timing_issues_count} of {results.timing_count} member(s) took longer than "
            f"their target response times."
        )
    return lines


def summary_context(results: ConformResults, *, capability: str, report_path: Optional[Path]) -> Dict[str, Any]:
    payload = results.to_dict()
    return {
        'capability': capability,
        'generated_at': datetime.now().isoformat(timespec='seconds'),
        'report_path': str(report_path) if report_path else '',
        'passed': results.total == 0,
        'total': results.total,
        **payload,
    }


def render_summary(template_path: Path, context: Mapping[str, Any]) -> str:
    """Render a summary template chosen by suffix (Jinja2, ``string.Template`` or ``str.format_map``)."""

    suffix = template_path.suffix.lower()
    if suffix in {".j2", ".jinja", ".jinja2"}:
        try:
            from jinja2 import Environment, FileSystemLoader  # type: ignore
        except ModuleNotFoundError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "Jinja2 is required to render templates with .j2/.jinja extensions"
            ) from exc
        env = Environment(loader=FileSystemLoader(str(template_path.parent)), autoescape=False)
        return env.get_template(template_path.name).render(**context)
    mapping = _flatten_context(context)
    text = template_path.read_text(encoding="utf-8")
    if suffix in {".tmpl", ".tpl"}:
        return Template(text).safe_substitute(mapping)
    return text.format_map(_SafeFormatDict(mapping))


def write_summary(template_path: Path, context: Mapping[str, Any], output: Path) -> Path:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(render_summary(template_path, context), encoding="utf-8")
    return output


def _flatten_context(context: Mapping[str, Any]) -> Dict[str, Any]:
    """Scalars keep their names; lists become JSON plus a ``<name>_count`` entry."""

    flattened: Dict[str, Any] = {}
    for key, value in context.items():
        if isinstance(value, (list, tuple)):
            flattened[key] = json.dumps(value, ensure_ascii=False)
            flattened[f"{key}_count"] = len(value)
            for index, item in enumerate(value):
                if isinstance(item, Mapping):
                    for sub_key, sub_value in item.items():
                        flattened[f"{key}_{index}_{sub_key}"] = sub_value
        elif isinstance(value, Mapping):
            flattened[key] = json.dumps(value, ensure_ascii=False)
        else:
            flattened[key] = value
    return flattened


class _SafeFormatDict(dict):
    def __missing__(self, key: str) -> str:
        return ""
