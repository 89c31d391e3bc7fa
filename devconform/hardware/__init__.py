"""Device client helpers."""
from __future__ import annotations

from .alpaca import AlpacaCoverCalibrator
from .device_manager import (
    CalibratorStatus,
    CoverCalibratorDevice,
    CoverStatus,
    LATEST_COVER_CALIBRATOR_INTERFACE,
    LocalDriverAdapter,
    MemberDispatchDevice,
    create_device,
    load_plugin,
)
from .faults import DeviceFault, FaultKind, MemberType
from .simulator import SimulatedCoverCalibrator

__all__ = [
    "AlpacaCoverCalibrator",
    "CalibratorStatus",
    "CoverCalibratorDevice",
    "CoverStatus",
    "DeviceFault",
    "FaultKind",
    "LATEST_COVER_CALIBRATOR_INTERFACE",
    "LocalDriverAdapter",
    "MemberDispatchDevice",
    "MemberType",
    "SimulatedCoverCalibrator",
    "create_device",
    "load_plugin",
]
