"""Shared constants used across the conformance engine."""
from __future__ import annotations

FAST_TARGET_RESPONSE_S = 0.1
STANDARD_TARGET_RESPONSE_S = 1.0
EXTENDED_TARGET_RESPONSE_S = 600.0

POLL_INTERVAL_S = 0.5
POLL_LIMIT = 60  # 60 polls at 500 ms = 30 s ceiling

PERFORMANCE_WINDOW_S = 5.0
PERFORMANCE_PASS_RATE = 2.0  # calls per second

DEFAULT_REPORT_NAME = "conform.report.txt"

EXIT_REPORT_WRITE_FAILED = -99998
EXIT_UNHANDLED_FAULT = -99997

STOP_KEY = "StopKey"
CONFIGURATION_KEY = "Conform configuration"
INCOMPLETE_MESSAGE = (
    "The conformance test is incomplete because it was interrupted by the stop key "
    "or to protect the device being tested."
)
