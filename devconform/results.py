"""Result aggregation and the finding recorder used by every tester."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .classifier import Outcome, Requirement, classify
from .hardware.faults import MemberType
from .timing import TimingBudget, measure

logger = logging.getLogger(__name__)

T = TypeVar("T")

MEMBER_PAD = 22


@dataclass(slots=True, frozen=True)
class Finding:
    """One labelled deviation or timing line."""

    key: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {'key': self.key, 'message': self.message}


@dataclass(slots=True)
class ConformResults:
    """Ordered, append-only collections of findings for one session."""

    errors: List[Finding] = field(default_factory=list)
    issues: List[Finding] = field(default_factory=list)
    configuration_alerts: List[Finding] = field(default_factory=list)
    timings: List[Finding] = field(default_factory=list)
    timing_count: int = 0
    timing_issues_count: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add_error(self, key: str, message: str) -> None:
        with self._lock:
            self.errors.append(Finding(key, message))

    def add_issue(self, key: str, message: str) -> None:
        with self._lock:
            self.issues.append(Finding(key, message))

    def add_configuration_alert(self, key: str, message: str) -> None:
        with self._lock:
            self.configuration_alerts.append(Finding(key, message))

    def add_timing(self, key: str, message: Optional[str], *, over_budget: bool) -> None:
        with self._lock:
            self.timing_count += 1
            if over_budget:
                self.timing_issues_count += 1
            if message is not None:
                self.timings.append(Finding(key, message))

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def issue_count(self) -> int:
        return len(self.issues)

    @property
    def configuration_alert_count(self) -> int:
        return len(self.configuration_alerts)

    @property
    def total(self) -> int:
        return self.error_count + self.issue_count + self.configuration_alert_count

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'errors': [finding.to_dict() for finding in self.errors],
                'issues': [finding.to_dict() for finding in self.issues],
                'configuration_alerts': [finding.to_dict() for finding in self.configuration_alerts],
                'timings': [finding.to_dict() for finding in self.timings],
                'error_count': len(self.errors),
                'issue_count': len(self.issues),
                'configuration_alert_count': len(self.configuration_alerts),
                'timing_count': self.timing_count,
                'timing_issues_count': self.timing_issues_count,
            }


class FindingRecorder:
    """Log outcomes and file findings into a :class:`ConformResults`."""

    def __init__(
        self,
        results: Optional[ConformResults] = None,
        *,
        report_good_timings: bool = False,
        report_bad_timings: bool = False,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.results = results if results is not None else ConformResults()
        self.report_good_timings = report_good_timings
        self.report_bad_timings = report_bad_timings
        self._log = log or logger

    def _emit(self, level: int, key: str, outcome: str, message: str) -> None:
        self._log.log(level, "%s %-5s %s", key.ljust(MEMBER_PAD), outcome, message)

    def ok(self, key: str, message: str) -> None:
        self._emit(logging.INFO, key, "OK", message)

    def info(self, key: str, message: str) -> None:
        self._emit(logging.INFO, key, "INFO", message)

    def debug(self, key: str, message: str) -> None:
        self._emit(logging.DEBUG, key, "DEBUG", message)

    def issue(self, key: str, message: str) -> None:
        self.results.add_issue(key, message)
        self._emit(logging.WARNING, key, "ISSUE", message)

    def error(self, key: str, message: str) -> None:
        self.results.add_error(key, message)
        self._emit(logging.ERROR, key, "ERROR", message)

    def configuration_alert(self, key: str, message: str) -> None:
        self.results.add_configuration_alert(key, message)
        self._emit(logging.WARNING, key, "ALERT", message)

    def record(self, outcome: Outcome, key: str, message: str) -> None:
        if outcome is Outcome.OK:
            self.ok(key, message)
        elif outcome is Outcome.INFO:
            self.info(key, message)
        elif outcome is Outcome.ISSUE:
            self.issue(key, message)
        else:
            self.error(key, message)

    def handle_fault(
        self,
        member: str,
        member_type: MemberType,
        requirement: Requirement,
        fault: BaseException,
        context: str = "",
    ) -> Outcome:
        """Classify *fault* and record the result under *member*."""

        classification = classify(fault, requirement, member_type, context)
        self.record(classification.outcome, member, classification.message)
        self.debug(member, f"Fault detail: {fault!r}")
        return classification.outcome

    def timed(self, member: str, budget: TimingBudget, func: Callable[[], T]) -> T:
        """Call *func*, record its response time against *budget* and return its value."""

        value, elapsed = measure(func)
        self.report_timing(member, elapsed, budget)
        return value

    def report_timing(self, member: str, elapsed: float, budget: TimingBudget) -> None:
        stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        over_budget = elapsed > budget.seconds
        message: Optional[str] = None
        if over_budget and self.report_bad_timings:
            message = (
                f"At {stamp} {member.ljust(MEMBER_PAD)} {elapsed:.3f} seconds. "
                f"OUTSIDE {budget.label} RESPONSE TIME TARGET: {budget.seconds:.1f} seconds."
            )
        elif not over_budget and self.report_good_timings:
            message = f"At {stamp} {member.ljust(MEMBER_PAD)} {elapsed:.3f} seconds. ✓ ({budget.label})"
        self.results.add_timing(member, message, over_budget=over_budget)
        if message:
            self._emit(logging.INFO, member, "TIME", message)
