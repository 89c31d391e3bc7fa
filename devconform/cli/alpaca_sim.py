"""Serve the simulated cover/calibrator over the Alpaca REST protocol."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from ..api import create_app
from ..config import load_config
from ..hardware import LocalDriverAdapter, SimulatedCoverCalibrator
from ..logging_config import configure_logging

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Serve the simulated cover/calibrator as an Alpaca device.')
    parser.add_argument('--config', type=Path, help='Configuration file; the [simulator] section shapes the device.')
    parser.add_argument('--host', type=str, default='127.0.0.1', help='Bind address (default: 127.0.0.1).')
    parser.add_argument('--port', type=int, default=11111, help='Listen port (default: 11111).')
    parser.add_argument('--device-number', type=int, default=0, help='Alpaca device number (default: 0).')
    parser.add_argument('--log-level', type=str, default='INFO', help='Logging level.')
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        config = load_config(args.config)
        configure_logging(args.log_level)
    except (ValueError, TypeError, RuntimeError, OSError) as exc:
        print(f'Configuration error: {exc}', file=sys.stderr)
        return 2

    device = LocalDriverAdapter(SimulatedCoverCalibrator(config.simulator))
    app = create_app(device, device_number=args.device_number)
    logger.info(
        "Alpaca cover/calibrator simulator on http://%s:%d/api/v1/covercalibrator/%d",
        args.host,
        args.port,
        args.device_number,
    )
    try:
        app.run(host=args.host, port=args.port, debug=False, use_reloader=False, threaded=True)
    finally:
        device.close()
    return 0


if __name__ == '__main__':
    raise SystemExit(main(sys.argv[1:]))
