"""Cancellation watchers for a running conformance session."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from ..timing import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class WatchdogEvent:
    """Represents a lifecycle event emitted by a watcher."""

    kind: str
    message: str
    occurred_at: datetime
    payload: Optional[dict[str, Any]] = None


class StopFileWatcher:
    """Cancel the session as soon as *path* exists."""

    def __init__(
        self,
        cancel: CancellationToken,
        path: Path,
        poll_interval_s: float = 0.5,
        on_event: Optional[Callable[[WatchdogEvent], None]] = None,
    ) -> None:
        if poll_interval_s <= 0:
            raise ValueError('poll_interval_s must be positive')
        self._cancel = cancel
        self._path = Path(path)
        self._poll_interval_s = poll_interval_s
        self._on_event = on_event
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @property
    def path(self) -> Path:
        return self._path

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name='stop-file-watcher', daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)

    def _emit(self, kind: str, message: str, payload: Optional[dict[str, Any]] = None) -> None:
        if not self._on_event:
            return
        event = WatchdogEvent(kind=kind, message=message, occurred_at=datetime.now(timezone.utc), payload=payload)
        try:
            self._on_event(event)
        except Exception:
            logger.exception("Stop watcher event handler failed")

    def _run(self) -> None:
        while not self._stop.wait(self._poll_interval_s):
            if self._cancel.cancelled:
                return
            if self._path.exists():
                logger.warning("Stop file %s found, cancelling the conformance run", self._path)
                self._cancel.cancel()
                self._emit('stop', 'Stop file detected', {'path': str(self._path)})
                return


@dataclass(slots=True)
class RaceResult:
    """Outcome of :func:`race_with_cancellation`."""

    completed: bool
    value: Any = None


def race_with_cancellation(
    task: Callable[[threading.Event], T],
    cancel: CancellationToken,
    *,
    poll_interval_s: float = 0.1,
    join_timeout_s: float = 2.0,
    name: str = 'interactive-task',
) -> RaceResult:
    """Run *task* on a worker thread while a watcher waits for cancellation.

    Whichever finishes first wins. The task receives an abort event that is set
    when cancellation wins; the watcher is stopped when the task wins. An
    exception raised by the task is re-raised in the caller.
    """

    first = threading.Event()
    abort = threading.Event()
    outcome: dict[str, Any] = {}

    def _work() -> None:
        try:
            outcome['value'] = task(abort)
        except BaseException as exc:  # re-raised in the caller
            outcome['error'] = exc
        finally:
            outcome['done'] = True
            first.set()

    def _watch() -> None:
        while not first.is_set():
            if cancel.wait(poll_interval_s):
                first.set()
                return

    worker = threading.Thread(target=_work, name=name, daemon=True)
    watcher = threading.Thread(target=_watch, name=f'{name}-watcher', daemon=True)
    worker.start()
    watcher.start()
    first.wait()

    if outcome.get('done'):
        watcher.join(timeout=join_timeout_s)
        if 'error' in outcome:
            raise outcome['error']
        return RaceResult(completed=True, value=outcome.get('value'))

    logger.info("%s abandoned because the run was cancelled", name)
    abort.set()
    worker.join(timeout=join_timeout_s)
    return RaceResult(completed=False)
