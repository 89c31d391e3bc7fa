"""In-memory cover/calibrator driver for bench runs and self-checks."""
from __future__ import annotations

import time
from typing import Callable, Optional

from ..config import SimulatorConfig
from .device_manager import CalibratorStatus, CoverStatus
from .faults import DeviceFault, FaultKind, MemberType

_COVER_STATES = {
    "notpresent": CoverStatus.NOT_PRESENT,
    "closed": CoverStatus.CLOSED,
    "moving": CoverStatus.MOVING,
    "open": CoverStatus.OPEN,
    "unknown": CoverStatus.UNKNOWN,
    "error": CoverStatus.ERROR,
}


class SimulatedCoverCalibrator:
    """Driver object modelling cover travel and calibrator warm-up.

    Transitions are evaluated lazily against monotonic deadlines, so a zero
    travel or warm-up time gives a synchronous device and a positive one an
    asynchronous device. Absent capabilities raise not-implemented faults.
    """

    def __init__(self, config: SimulatorConfig, clock: Callable[[], float] = time.monotonic) -> None:
        self._config = config
        self._clock = clock
        self._connected = False
        if config.cover_present:
            self._cover = _COVER_STATES[config.cover_state]
            if self._cover is CoverStatus.NOT_PRESENT:
                self._cover = CoverStatus.CLOSED
        else:
            self._cover = CoverStatus.NOT_PRESENT
        self._cover_target: Optional[CoverStatus] = None
        self._cover_deadline = 0.0
        self._calibrator = CalibratorStatus.OFF if config.calibrator_present else CalibratorStatus.NOT_PRESENT
        self._calibrator_target: Optional[CalibratorStatus] = None
        self._calibrator_deadline = 0.0
        self._brightness = 0
        self.setup_calls = 0

    @property
    def current_interface(self) -> bool:
        return self._config.interface_version >= 2

    @property
    def supports_halt(self) -> bool:
        if self._config.supports_halt is None:
            return self._config.cover_travel_s > 0
        return self._config.supports_halt

    # Common members

    @property
    def connected(self) -> bool:
        return self._connected

    @connected.setter
    def connected(self, value: bool) -> None:
        self._connected = bool(value)

    @property
    def connecting(self) -> bool:
        self._require_current("Connecting", MemberType.PROPERTY)
        return False

    def connect(self) -> None:
        self._require_current("Connect", MemberType.METHOD)
        self._connected = True

    def disconnect(self) -> None:
        self._require_current("Disconnect", MemberType.METHOD)
        self._connected = False

    @property
    def description(self) -> str:
        return self._config.description

    @property
    def driver_info(self) -> str:
        return "devconform in-memory simulator"

    @property
    def driver_version(self) -> str:
        return "1.0"

    @property
    def interface_version(self) -> int:
        return self._config.interface_version

    @property
    def name(self) -> str:
        return "Simulator"

    @property
    def supported_actions(self) -> list[str]:
        return []

    def setup_dialog(self) -> None:
        self.setup_calls += 1

    def dispose(self) -> None:
        self._connected = False

    # Cover

    @property
    def cover_state(self) -> CoverStatus:
        self._require_connected("CoverState")
        self._advance()
        return self._cover

    @property
    def cover_moving(self) -> bool:
        self._require_current("CoverMoving", MemberType.PROPERTY)
        self._require_connected("CoverMoving")
        self._advance()
        return self._cover is CoverStatus.MOVING

    def open_cover(self) -> None:
        self._move_cover("OpenCover", CoverStatus.OPEN)

    def close_cover(self) -> None:
        self._move_cover("CloseCover", CoverStatus.CLOSED)

    def halt_cover(self) -> None:
        self._require_cover("HaltCover")
        if not self.supports_halt:
            raise DeviceFault.not_implemented("HaltCover", MemberType.METHOD)
        self._advance()
        if self._cover is CoverStatus.MOVING:
            self._cover = CoverStatus.UNKNOWN
            self._cover_target = None

    # Calibrator

    @property
    def calibrator_state(self) -> CalibratorStatus:
        self._require_connected("CalibratorState")
        self._advance()
        return self._calibrator

    @property
    def calibrator_changing(self) -> bool:
        self._require_current("CalibratorChanging", MemberType.PROPERTY)
        self._require_connected("CalibratorChanging")
        self._advance()
        return self._calibrator is CalibratorStatus.NOT_READY

    @property
    def brightness(self) -> int:
        self._require_calibrator("Brightness", MemberType.PROPERTY)
        self._advance()
        return self._brightness

    @property
    def max_brightness(self) -> int:
        self._require_calibrator("MaxBrightness", MemberType.PROPERTY)
        return self._config.max_brightness

    def calibrator_on(self, brightness: int) -> None:
        self._require_calibrator("CalibratorOn", MemberType.METHOD)
        if brightness < 0 or brightness > self._config.max_brightness:
            raise DeviceFault.invalid_value(
                "CalibratorOn",
                f"Brightness {brightness} is outside the range 0 to {self._config.max_brightness}",
            )
        self._brightness = int(brightness)
        self._change_calibrator(CalibratorStatus.READY)

    def calibrator_off(self) -> None:
        self._require_calibrator("CalibratorOff", MemberType.METHOD)
        self._brightness = 0
        self._change_calibrator(CalibratorStatus.OFF)

    # Internals

    def _advance(self) -> None:
        now = self._clock()
        if self._cover_target is not None and now >= self._cover_deadline:
            self._cover = self._cover_target
            self._cover_target = None
        if self._calibrator_target is not None and now >= self._calibrator_deadline:
            self._calibrator = self._calibrator_target
            self._calibrator_target = None

    def _move_cover(self, member: str, target: CoverStatus) -> None:
        self._require_cover(member)
        travel = self._config.cover_travel_s
        if travel <= 0:
            self._cover = target
            self._cover_target = None
            return
        self._cover = CoverStatus.MOVING
        self._cover_target = target
        self._cover_deadline = self._clock() + travel

    def _change_calibrator(self, target: CalibratorStatus) -> None:
        warmup = self._config.calibrator_warmup_s
        if warmup <= 0:
            self._calibrator = target
            self._calibrator_target = None
            return
        self._calibrator = CalibratorStatus.NOT_READY
        self._calibrator_target = target
        self._calibrator_deadline = self._clock() + warmup

    def _require_connected(self, member: str) -> None:
        if not self._connected:
            raise DeviceFault(FaultKind.OTHER, f"{member}: the device is not connected", member=member)

    def _require_current(self, member: str, member_type: MemberType) -> None:
        if not self.current_interface:
            raise DeviceFault.not_implemented(member, member_type)

    def _require_cover(self, member: str) -> None:
        self._require_connected(member)
        if self._cover is CoverStatus.NOT_PRESENT:
            raise DeviceFault.not_implemented(member, MemberType.METHOD)

    def _require_calibrator(self, member: str, member_type: MemberType) -> None:
        self._require_connected(member)
        if self._calibrator is CalibratorStatus.NOT_PRESENT:
            raise DeviceFault.not_implemented(member, member_type)
