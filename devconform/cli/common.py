"""Shared CLI helpers for the conformance tools."""
from __future__ import annotations

from argparse import Namespace
from pathlib import Path

from ..config import AppConfig
from ..testers import available_capabilities


def apply_overrides(config: AppConfig, args: Namespace) -> AppConfig:
    """Apply command-line overrides stored in *args* to *config*."""

    device = config.device
    tests = config.tests
    report = config.report
    logging_config = config.logging

    if getattr(args, "capability", None):
        device.capability = args.capability.strip().lower()
    if getattr(args, "transport", None):
        device.transport = args.transport.strip().lower()
    if getattr(args, "host", None):
        device.host = args.host
    if getattr(args, "port", None) is not None:
        if not 0 < args.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        device.port = args.port
    if getattr(args, "device_number", None) is not None:
        device.device_number = max(args.device_number, 0)
    if getattr(args, "plugin", None):
        device.plugin = args.plugin

    if getattr(args, "cycles", None) is not None:
        tests.cycles = max(args.cycles, 1)
    if getattr(args, "no_properties", False):
        tests.test_properties = False
    if getattr(args, "no_methods", False):
        tests.test_methods = False
    if getattr(args, "performance", False):
        tests.test_performance = True
    if getattr(args, "good_timings", False):
        tests.report_good_timings = True
    if getattr(args, "bad_timings", False):
        tests.report_bad_timings = True

    if getattr(args, "results", None):
        report.results_path = Path(args.results)
    if getattr(args, "log_directory", None):
        report.log_directory = Path(args.log_directory)
    if getattr(args, "log_file", None):
        logging_config.log_file = Path(args.log_file)
    if getattr(args, "log_level", None):
        logging_config.level = args.log_level.upper()
    return config


def validate_capability(capability: str) -> str:
    """Return *capability* if a tester is registered for it, else raise ``ValueError``."""

    key = capability.strip().lower()
    known = available_capabilities()
    if key not in known:
        raise ValueError(
            f"Capability '{capability}' is not supported. Available capabilities: {', '.join(known) or '<none>'}"
        )
    return key
