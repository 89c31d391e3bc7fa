"""Session orchestration and watchers."""

from .orchestrator import TestSession, default_device_factory, run_session
from .watchdog import RaceResult, StopFileWatcher, WatchdogEvent, race_with_cancellation

__all__ = [
    "RaceResult",
    "StopFileWatcher",
    "TestSession",
    "WatchdogEvent",
    "default_device_factory",
    "race_with_cancellation",
    "run_session",
]
