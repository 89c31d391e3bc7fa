"""Response-time budgets, cancellation and bounded polling."""
from __future__ import annotations

import enum
import threading
import time
from typing import Callable, Optional, Tuple, TypeVar

from .constants import (
    EXTENDED_TARGET_RESPONSE_S,
    FAST_TARGET_RESPONSE_S,
    STANDARD_TARGET_RESPONSE_S,
)

T = TypeVar("T")


class TimingBudget(enum.Enum):
    FAST = ("FAST", FAST_TARGET_RESPONSE_S)
    STANDARD = ("STANDARD", STANDARD_TARGET_RESPONSE_S)
    EXTENDED = ("EXTENDED", EXTENDED_TARGET_RESPONSE_S)

    def __init__(self, label: str, seconds: float) -> None:
        self.label = label
        self.seconds = seconds


def transition_budget(current_interface: bool) -> TimingBudget:
    """Budget for a state-changing call: current interfaces must return promptly."""

    return TimingBudget.STANDARD if current_interface else TimingBudget.EXTENDED


class CancellationToken:
    """Cooperative stop signal shared between the session and its watchers."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block up to *timeout* seconds; return True if cancelled."""

        return self._event.wait(timeout)


def measure(func: Callable[[], T]) -> Tuple[T, float]:
    """Call *func* and return its result with the elapsed seconds."""

    started = time.perf_counter()
    value = func()
    return value, time.perf_counter() - started


def wait_while(
    predicate: Callable[[], bool],
    *,
    interval_s: float,
    max_polls: int,
    cancel: Optional[CancellationToken] = None,
) -> bool:
    """Poll *predicate* until it returns False.

    Returns True when the predicate cleared, False when *max_polls* sleeps
    elapsed or *cancel* fired first. Sleeps are aligned to multiples of
    *interval_s* so a slow predicate does not stretch the schedule.
    """

    if interval_s <= 0:
        raise ValueError("interval_s must be positive")
    if max_polls < 1:
        raise ValueError("max_polls must be at least 1")
    token = cancel or CancellationToken()
    started = time.monotonic()
    polls = 0
    while predicate():
        if polls >= max_polls or token.cancelled:
            return False
        elapsed = time.monotonic() - started
        next_tick = interval_s * (int(elapsed / interval_s) + 1)
        if token.wait(max(next_tick - elapsed, 0.0)):
            return False
        polls += 1
    return True


def wait_for(seconds: float, cancel: Optional[CancellationToken] = None) -> bool:
    """Sleep for *seconds* unless cancelled; return True if the full wait elapsed."""

    if seconds <= 0:
        return True
    token = cancel or CancellationToken()
    return not token.wait(seconds)
