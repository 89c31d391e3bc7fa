"""CLI entry point for running a device conformance session."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from ..config import load_config
from ..logging_config import configure_logging
from ..service import StopFileWatcher, TestSession
from ..testers import available_capabilities
from ..timing import CancellationToken
from .common import apply_overrides, validate_capability

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Run conformance checks against a device driver.',
        epilog='The exit status is the number of errors, issues and configuration alerts found (0 = conformant).',
    )
    parser.add_argument('--config', type=Path, help='Path to a JSON, TOML or YAML configuration file.')
    parser.add_argument('--capability', type=str, help='Capability to test (see --list-capabilities).')
    parser.add_argument('--transport', choices=['sim', 'local', 'alpaca'], help='How to reach the device.')
    parser.add_argument('--host', type=str, help='Alpaca device host.')
    parser.add_argument('--port', type=int, help='Alpaca device port.')
    parser.add_argument('--device-number', type=int, help='Alpaca device number.')
    parser.add_argument('--plugin', type=str, help="In-process driver factory ('package.module:Factory').")
    parser.add_argument('--results', type=Path, help='Where to write the JSON results file.')
    parser.add_argument('--log-directory', type=Path, help='Directory for logs and the default results file.')
    parser.add_argument('--log-file', type=Path, help='Write the session log to this file as well as the console.')
    parser.add_argument('--log-level', type=str, help='Logging level (DEBUG, INFO, WARNING, ...).')
    parser.add_argument('--cycles', type=int, help='Repeat the property/method checks this many times.')
    parser.add_argument('--no-properties', action='store_true', help='Skip property checks.')
    parser.add_argument('--no-methods', action='store_true', help='Skip method checks.')
    parser.add_argument('--performance', action='store_true', help='Run the performance checks.')
    parser.add_argument('--good-timings', action='store_true', help='Report members that met their response time target.')
    parser.add_argument('--bad-timings', action='store_true', help='Report members that missed their response time target.')
    parser.add_argument('--stop-file', type=Path, help='Cancel the run when this file appears.')
    parser.add_argument('--setup', action='store_true', help="Open the device's setup dialog instead of testing.")
    parser.add_argument('--list-capabilities', action='store_true', help='List testable capabilities and exit.')
    return parser.parse_args(argv)


def _install_signal_handlers(cancel: CancellationToken) -> Dict[int, Any]:
    previous: Dict[int, Any] = {}

    def _handler(signum, frame) -> None:
        if not cancel.cancelled:
            print(f'Received signal {signum}, stopping the conformance run...')
            cancel.cancel()

    for signum in (signal.SIGINT, getattr(signal, 'SIGTERM', None)):
        if signum is None:
            continue
        try:
            previous[signum] = signal.signal(signum, _handler)
        except ValueError:  # not the main thread
            continue
    return previous


def _restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    if args.list_capabilities:
        for capability in available_capabilities():
            print(capability)
        return 0

    try:
        config = apply_overrides(load_config(args.config), args)
        validate_capability(config.device.capability)
        configure_logging(
            config.logging.level,
            console=config.logging.console,
            log_file=config.logging.log_file,
        )
    except (ValueError, TypeError, RuntimeError, OSError) as exc:
        print(f'Configuration error: {exc}', file=sys.stderr)
        return 2

    cancel = CancellationToken()
    session = TestSession(config, cancel=cancel)
    previous = _install_signal_handlers(cancel)
    watcher: Optional[StopFileWatcher] = None
    if args.stop_file:
        watcher = StopFileWatcher(cancel, args.stop_file, poll_interval_s=config.tests.poll_interval_s)
        watcher.start()
    try:
        if args.setup:
            try:
                result = session.run_setup()
            except RuntimeError as exc:
                print(f'Setup failed: {exc}', file=sys.stderr)
                return 1
            return 0 if result.completed else 1
        return session.run()
    finally:
        if watcher is not None:
            watcher.stop()
        _restore_signal_handlers(previous)


if __name__ == '__main__':
    raise SystemExit(main(sys.argv[1:]))
