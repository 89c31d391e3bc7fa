"""Capability tester registry."""
from __future__ import annotations

from typing import Callable, Dict, List, TypeVar

from .base import (
    CapabilityTester,
    TestContext,
    TesterFlags,
    check_common_members,
    check_configuration,
    connect_device,
    disconnect_device,
)

_REGISTRY: Dict[str, Callable[[], CapabilityTester]] = {}

F = TypeVar("F", bound=Callable[[], CapabilityTester])


def register_tester(capability: str) -> Callable[[F], F]:
    """Class decorator registering a tester constructor under *capability*."""

    key = capability.strip().lower()
    if not key:
        raise ValueError("capability id must not be empty")

    def _decorator(factory: F) -> F:
        if key in _REGISTRY and _REGISTRY[key] is not factory:
            raise ValueError(f"A tester is already registered for '{key}'")
        _REGISTRY[key] = factory
        return factory

    return _decorator


def available_capabilities() -> List[str]:
    return sorted(_REGISTRY)


def create_tester(capability: str) -> CapabilityTester:
    key = (capability or "").strip().lower()
    try:
        factory = _REGISTRY[key]
    except KeyError as exc:
        known = ", ".join(available_capabilities()) or "<none>"
        raise KeyError(f"No tester registered for capability '{capability}'. Known capabilities: {known}") from exc
    return factory()


# Registration happens on import.
from . import cover_calibrator  # noqa: E402,F401

__all__ = [
    "CapabilityTester",
    "TestContext",
    "TesterFlags",
    "available_capabilities",
    "check_common_members",
    "check_configuration",
    "connect_device",
    "create_tester",
    "disconnect_device",
    "register_tester",
]
