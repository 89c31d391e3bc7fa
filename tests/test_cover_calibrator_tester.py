from __future__ import annotations

import logging
from typing import Any, List, Optional

import pytest

from devconform.config import SimulatorConfig, TestConfig
from devconform.hardware import (
    CalibratorStatus,
    CoverStatus,
    DeviceFault,
    FaultKind,
    LocalDriverAdapter,
    MemberType,
    SimulatedCoverCalibrator,
)
from devconform.results import FindingRecorder
from devconform.testers import TestContext, create_tester
from devconform.testers.cover_calibrator import (
    MAX_INT32,
    CoverCalibratorState,
    CoverCalibratorTester,
    brightness_test_levels,
)
from devconform.timing import CancellationToken


def _context(device: Any, *, version: int = 2, **settings: Any) -> TestContext:
    options = {"poll_interval_s": 0.01, "poll_limit": 100, "settle_delay_s": 0, "performance_window_s": 0.05}
    options.update(settings)
    return TestContext(device, FindingRecorder(), TestConfig(**options), CancellationToken(), version)


def _simulated(**overrides: Any) -> LocalDriverAdapter:
    device = LocalDriverAdapter(SimulatedCoverCalibrator(SimulatorConfig(**overrides)))
    device.connected = True
    return device


def _run_checks(ctx: TestContext) -> CoverCalibratorState:
    tester = CoverCalibratorTester()
    state = tester.new_state()
    tester.check_properties(ctx, state)
    tester.check_methods(ctx, state)
    return state


class _ScriptedCoverCalibrator:
    """Device whose cover and calibrator readings are scripted per operation.

    ``cover_script`` and ``calibrator_script`` hold the (state, flag) pairs
    returned by successive reads; the last pair repeats.
    """

    def __init__(
        self,
        *,
        cover: CoverStatus = CoverStatus.CLOSED,
        calibrator: CalibratorStatus = CalibratorStatus.NOT_PRESENT,
        max_brightness: int = 3,
    ) -> None:
        self.connected = True
        self.interface_version = 2
        self.cover_script: List[tuple] = [(cover, False)]
        self.calibrator_script: List[tuple] = [(calibrator, False)]
        self._max_brightness = max_brightness
        self._brightness = 0
        self.calls: List[str] = []
        self.on_levels: List[int] = []
        self.accept_out_of_range = False
        self.halt_fault: Optional[Exception] = DeviceFault.not_implemented("HaltCover", MemberType.METHOD)

    def _next(self, script: List[tuple]) -> tuple:
        return script.pop(0) if len(script) > 1 else script[0]

    def _read_cover(self, index: int) -> Any:
        # State and flag are read as a pair: the flag read consumes the pair.
        pair = self.cover_script[0]
        if index == 1:
            self._next(self.cover_script)
        return pair[index]

    def _read_calibrator(self, index: int) -> Any:
        pair = self.calibrator_script[0]
        if index == 1:
            self._next(self.calibrator_script)
        return pair[index]

    @property
    def cover_state(self) -> CoverStatus:
        return self._read_cover(0)

    @property
    def cover_moving(self) -> bool:
        return self._read_cover(1)

    @property
    def calibrator_state(self) -> CalibratorStatus:
        return self._read_calibrator(0)

    @property
    def calibrator_changing(self) -> bool:
        return self._read_calibrator(1)

    @property
    def max_brightness(self) -> int:
        if self.calibrator_script[0][0] is CalibratorStatus.NOT_PRESENT:
            raise DeviceFault.not_implemented("MaxBrightness", MemberType.PROPERTY)
        return self._max_brightness

    @property
    def brightness(self) -> int:
        if self.calibrator_script[0][0] is CalibratorStatus.NOT_PRESENT:
            raise DeviceFault.not_implemented("Brightness", MemberType.PROPERTY)
        return self._brightness

    def _cover_absent(self, member: str) -> None:
        if self.cover_script[0][0] is CoverStatus.NOT_PRESENT:
            raise DeviceFault.not_implemented(member, MemberType.METHOD)

    def open_cover(self) -> None:
        self.calls.append("open")
        self._cover_absent("OpenCover")
        self.cover_script = [(CoverStatus.OPEN, False)]

    def close_cover(self) -> None:
        self.calls.append("close")
        self._cover_absent("CloseCover")
        self.cover_script = [(CoverStatus.CLOSED, False)]

    def halt_cover(self) -> None:
        self.calls.append("halt")
        self._cover_absent("HaltCover")
        if self.halt_fault is not None:
            raise self.halt_fault

    def calibrator_on(self, brightness: int) -> None:
        self.on_levels.append(brightness)
        if self.calibrator_script[0][0] is CalibratorStatus.NOT_PRESENT:
            raise DeviceFault.not_implemented("CalibratorOn", MemberType.METHOD)
        if brightness < 0 or (brightness > self._max_brightness and not self.accept_out_of_range):
            raise DeviceFault.invalid_value("CalibratorOn", f"{brightness} is out of range")
        self._brightness = brightness
        self.calibrator_script = [(CalibratorStatus.READY, False)]

    def calibrator_off(self) -> None:
        if self.calibrator_script[0][0] is CalibratorStatus.NOT_PRESENT:
            raise DeviceFault.not_implemented("CalibratorOff", MemberType.METHOD)
        self._brightness = 0
        self.calibrator_script = [(CalibratorStatus.OFF, False)]


def test_registry_creates_cover_calibrator_tester() -> None:
    tester = create_tester("CoverCalibrator")
    assert isinstance(tester, CoverCalibratorTester)
    assert tester.flags.has_post_run_check
    assert tester.flags.has_performance_check
    assert not tester.flags.has_pre_connect_check
    with pytest.raises(KeyError):
        create_tester("telescope")


@pytest.mark.parametrize(
    ("maximum", "expected"),
    [
        (1, [-1, 0, 1, 2]),
        (3, [-1, 0, 1, 2, 3, 4]),
        (4, [-1, 0, 1, 2, 3, 4, 5]),
        (100, [-1, 0, 25, 49, 74, 100, 101]),
        (MAX_INT32, [-1, 0, 536870911, 1073741823, 1610612735, MAX_INT32]),
    ],
)
def test_brightness_test_levels(maximum: int, expected: List[int]) -> None:
    assert brightness_test_levels(maximum) == expected


def test_synchronous_simulator_passes_without_findings() -> None:
    ctx = _context(_simulated())
    state = _run_checks(ctx)

    assert ctx.recorder.results.errors == []
    assert ctx.recorder.results.issues == []
    assert state.max_brightness == 100
    assert state.cover_is_async is False


def test_asynchronous_simulator_passes_and_halt_is_exercised() -> None:
    device = _simulated(cover_travel_s=0.2, calibrator_warmup_s=0.03, max_brightness=3)
    ctx = _context(device, poll_interval_s=0.02)
    state = _run_checks(ctx)

    assert ctx.recorder.results.errors == []
    assert ctx.recorder.results.issues == []
    assert state.cover_is_async is True
    assert state.cover_async_s >= 0.2
    assert state.calibrator_is_async is True
    # Halting mid-travel leaves the cover neither open nor closed.
    assert device.cover_state is CoverStatus.UNKNOWN


def test_legacy_interface_uses_state_only() -> None:
    device = _simulated(interface_version=1, cover_travel_s=0.05)
    ctx = _context(device, version=1)
    state = _run_checks(ctx)

    assert ctx.recorder.results.errors == []
    assert ctx.recorder.results.issues == []
    assert state.cover_moving_ok is False
    assert state.cover_is_async is True


def test_initially_open_cover_closes_first() -> None:
    device = _ScriptedCoverCalibrator(cover=CoverStatus.OPEN)
    ctx = _context(device)
    _run_checks(ctx)
    assert device.calls == ["close", "halt", "open"]
    assert ctx.recorder.results.total == 0


def test_unknown_cover_is_closed_before_the_sequence() -> None:
    device = _ScriptedCoverCalibrator(cover=CoverStatus.UNKNOWN)
    ctx = _context(device)
    _run_checks(ctx)
    assert device.calls == ["close", "open", "close", "halt"]
    assert ctx.recorder.results.total == 0


def test_cover_left_open_from_unknown_abandons_cover_tests() -> None:
    class _Jammed(_ScriptedCoverCalibrator):
        def close_cover(self) -> None:
            self.calls.append("close")
            self.cover_script = [(CoverStatus.OPEN, False)]

    device = _Jammed(cover=CoverStatus.UNKNOWN)
    ctx = _context(device)
    _run_checks(ctx)

    assert device.calls == ["close"]
    issues = ctx.recorder.results.issues
    assert [finding.key for finding in issues] == ["CloseCover", "CoverTests"]
    assert issues[1].message.endswith("CoverState is Open.")
    assert ctx.recorder.results.errors == []


def test_moving_cover_skips_cover_tests() -> None:
    ctx = _context(_simulated(cover_state="moving"))
    _run_checks(ctx)
    keys = [finding.key for finding in ctx.recorder.results.issues]
    assert keys == ["CoverTests"]
    assert ctx.recorder.results.errors == []


def test_flag_and_state_disagreement_is_one_issue() -> None:
    device = _ScriptedCoverCalibrator()
    ctx = _context(device)
    tester = CoverCalibratorTester()
    state = tester.new_state()
    tester.check_properties(ctx, state)

    original_open = device.open_cover

    def _open_with_stale_state() -> None:
        original_open()
        # CoverMoving is already False but CoverState still reports Moving once.
        device.cover_script = [(CoverStatus.MOVING, False), (CoverStatus.OPEN, False)]

    device.open_cover = _open_with_stale_state  # type: ignore[method-assign]
    tester.check_methods(ctx, state)

    issues = ctx.recorder.results.issues
    assert len(issues) == 1
    assert issues[0].key == "OpenCover"
    assert "CoverMoving is False" in issues[0].message
    assert ctx.recorder.results.errors == []
    assert device.calls == ["open", "close", "halt"]


def test_stuck_moving_flag_is_reported_after_the_poll_limit() -> None:
    class _StuckFlag(_ScriptedCoverCalibrator):
        def open_cover(self) -> None:
            self.calls.append("open")
            # The cover arrives but CoverMoving never drops.
            self.cover_script = [(CoverStatus.MOVING, True), (CoverStatus.OPEN, True)]

    device = _StuckFlag()
    ctx = _context(device, poll_limit=5)
    tester = CoverCalibratorTester()
    state = tester.new_state()
    tester.check_properties(ctx, state)
    tester._open_cover(ctx, state)

    issues = ctx.recorder.results.issues
    assert [finding.key for finding in issues] == ["OpenCover", "OpenCover"]
    assert issues[0].message.startswith("CoverMoving is True but CoverState is Open.")
    assert "still in progress" in issues[1].message
    assert ctx.recorder.results.errors == []
    assert state.cover_is_async is True


def test_small_brightness_range_tests_every_level() -> None:
    device = _ScriptedCoverCalibrator(cover=CoverStatus.NOT_PRESENT, calibrator=CalibratorStatus.OFF, max_brightness=3)
    ctx = _context(device)
    _run_checks(ctx)

    assert device.on_levels == [-1, 0, 1, 2, 3, 4]
    assert ctx.recorder.results.errors == []
    assert ctx.recorder.results.issues == []


def test_accepting_brightness_above_maximum_is_an_error() -> None:
    device = _ScriptedCoverCalibrator(cover=CoverStatus.NOT_PRESENT, calibrator=CalibratorStatus.OFF, max_brightness=3)
    device.accept_out_of_range = True
    ctx = _context(device)
    _run_checks(ctx)

    errors = ctx.recorder.results.errors
    assert len(errors) == 1
    assert errors[0].key == "CalibratorOn"
    assert "CalibratorOn(4)" in errors[0].message
    assert ctx.recorder.results.issues == []


def test_accepting_negative_brightness_is_an_issue() -> None:
    device = _ScriptedCoverCalibrator(cover=CoverStatus.NOT_PRESENT, calibrator=CalibratorStatus.OFF, max_brightness=3)
    original_on = device.calibrator_on

    def _on(brightness: int) -> None:
        if brightness < 0:
            device.on_levels.append(brightness)
            return
        original_on(brightness)

    device.calibrator_on = _on  # type: ignore[method-assign]
    ctx = _context(device)
    _run_checks(ctx)

    assert [finding.key for finding in ctx.recorder.results.issues] == ["CalibratorOn"]
    assert "CalibratorOn(-1)" in ctx.recorder.results.issues[0].message
    assert ctx.recorder.results.errors == []


def test_wrong_fault_for_out_of_range_brightness_is_an_issue() -> None:
    device = _ScriptedCoverCalibrator(cover=CoverStatus.NOT_PRESENT, calibrator=CalibratorStatus.OFF, max_brightness=3)
    original_on = device.calibrator_on

    def _on(brightness: int) -> None:
        if brightness > 3:
            raise DeviceFault(FaultKind.OTHER, "driver crashed", member="CalibratorOn")
        original_on(brightness)

    device.calibrator_on = _on  # type: ignore[method-assign]
    ctx = _context(device)
    _run_checks(ctx)

    assert [finding.key for finding in ctx.recorder.results.issues] == ["CalibratorOn"]
    assert ctx.recorder.results.errors == []


def test_absent_capabilities_expect_not_implemented_faults() -> None:
    device = _simulated(cover_present=False, calibrator_present=False)
    ctx = _context(device)
    _run_checks(ctx)

    assert ctx.recorder.results.errors == []
    assert [finding.key for finding in ctx.recorder.results.issues] == ["DeviceCapabilities"]


def test_absent_cover_that_moves_is_an_error() -> None:
    device = _ScriptedCoverCalibrator(cover=CoverStatus.NOT_PRESENT)
    device._cover_absent = lambda member: None  # type: ignore[method-assign]
    device.halt_fault = None
    ctx = _context(device)
    tester = CoverCalibratorTester()
    state = tester.new_state()
    tester.check_properties(ctx, state)
    tester.check_methods(ctx, state)

    error_keys = [finding.key for finding in ctx.recorder.results.errors]
    assert error_keys == ["OpenCover", "CloseCover", "HaltCover"]


def test_synchronous_halt_faults_are_judged_as_optional() -> None:
    # A halt failure on a synchronous cover is only an issue, never an error.
    device = _ScriptedCoverCalibrator()
    device.halt_fault = DeviceFault(FaultKind.OTHER, "halt not possible", member="HaltCover")
    ctx = _context(device)
    _run_checks(ctx)

    assert ctx.recorder.results.errors == []
    assert [finding.key for finding in ctx.recorder.results.issues] == ["HaltCover"]


def test_synchronous_halt_success_is_an_issue() -> None:
    device = _ScriptedCoverCalibrator()
    device.halt_fault = None
    ctx = _context(device)
    _run_checks(ctx)
    assert [finding.key for finding in ctx.recorder.results.issues] == ["HaltCover"]


def test_unreadable_state_is_mandatory_error_and_skips_dependants() -> None:
    class _BrokenCover(_ScriptedCoverCalibrator):
        @property
        def cover_state(self) -> CoverStatus:
            raise DeviceFault(FaultKind.OTHER, "encoder fault", member="CoverState")

    device = _BrokenCover()
    ctx = _context(device)
    _run_checks(ctx)

    assert [finding.key for finding in ctx.recorder.results.errors] == ["CoverState"]
    assert "CoverTests" in [finding.key for finding in ctx.recorder.results.issues]
    assert device.calls == []


def test_out_of_range_properties_are_issues() -> None:
    device = _ScriptedCoverCalibrator(cover=CoverStatus.NOT_PRESENT, calibrator=CalibratorStatus.OFF, max_brightness=0)
    ctx = _context(device)
    tester = CoverCalibratorTester()
    state = tester.new_state()
    tester.check_properties(ctx, state)

    keys = [finding.key for finding in ctx.recorder.results.issues]
    assert keys == ["MaxBrightness", "Brightness"]
    assert ctx.recorder.results.errors == []
    assert state.max_brightness_ok is False


def test_not_ready_calibrator_skips_calibrator_tests() -> None:
    device = _ScriptedCoverCalibrator(cover=CoverStatus.NOT_PRESENT, calibrator=CalibratorStatus.NOT_READY)
    ctx = _context(device)
    tester = CoverCalibratorTester()
    state = tester.new_state()
    state.states_read = True
    state.cover_state = CoverStatus.NOT_PRESENT
    state.cover_state_ok = state.cover_moving_ok = True
    state.calibrator_state_ok = state.calibrator_changing_ok = True
    tester.check_methods(ctx, state)

    assert "CalibratorTests" in [finding.key for finding in ctx.recorder.results.issues]
    assert device.on_levels == []


def test_performance_check_is_advisory() -> None:
    ctx = _context(_simulated(), performance_pass_rate=1e12)
    tester = CoverCalibratorTester()
    tester.check_performance(ctx, tester.new_state())
    assert ctx.recorder.results.total == 0

    class _Failing(_ScriptedCoverCalibrator):
        @property
        def cover_state(self) -> CoverStatus:
            raise DeviceFault(FaultKind.OTHER, "timeout", member="CoverState")

    failing_ctx = _context(_Failing())
    tester.check_performance(failing_ctx, tester.new_state())
    assert failing_ctx.recorder.results.total == 0


def test_post_run_check_returns_device_to_rest() -> None:
    device = _simulated(cover_state="open", cover_travel_s=0.03, calibrator_warmup_s=0.03)
    device.calibrator_on(5)
    ctx = _context(device)
    tester = CoverCalibratorTester()
    state = tester.new_state()
    tester.check_properties(ctx, state)
    tester.post_run_check(ctx, state)

    assert device.cover_state is CoverStatus.CLOSED
    assert device.calibrator_state is CalibratorStatus.OFF
    assert ctx.recorder.results.total == 0


def test_post_run_faults_are_issues_only() -> None:
    class _Stuck(_ScriptedCoverCalibrator):
        def close_cover(self) -> None:
            raise DeviceFault(FaultKind.OTHER, "motor jammed", member="CloseCover")

    device = _Stuck(calibrator=CalibratorStatus.OFF)
    ctx = _context(device)
    tester = CoverCalibratorTester()
    state = tester.new_state()
    tester.check_properties(ctx, state)
    tester.post_run_check(ctx, state)

    assert ctx.recorder.results.errors == []
    assert [finding.key for finding in ctx.recorder.results.issues] == ["CloseCover"]


def test_post_run_check_reports_wrong_final_state() -> None:
    class _Sticky(_ScriptedCoverCalibrator):
        def close_cover(self) -> None:
            self.calls.append("close")
            self.cover_script = [(CoverStatus.OPEN, False)]

    device = _Sticky(cover=CoverStatus.OPEN, calibrator=CalibratorStatus.OFF)
    ctx = _context(device)
    tester = CoverCalibratorTester()
    state = tester.new_state()
    tester.check_properties(ctx, state)
    tester.post_run_check(ctx, state)

    issues = ctx.recorder.results.issues
    assert [finding.key for finding in issues] == ["CloseCover"]
    assert issues[0].message == "Final state is Open instead of Closed"
    assert ctx.recorder.results.errors == []


def test_cancelled_post_run_check_reports_nothing(caplog) -> None:
    device = _ScriptedCoverCalibrator(cover=CoverStatus.OPEN, calibrator=CalibratorStatus.READY)
    ctx = _context(device)
    tester = CoverCalibratorTester()
    state = tester.new_state()
    tester.check_properties(ctx, state)
    ctx.cancel.cancel()

    with caplog.at_level(logging.DEBUG, logger="devconform.results"):
        tester.post_run_check(ctx, state)

    assert device.calls == ["close"]
    assert ctx.recorder.results.total == 0
    assert not any("OK" in message for message in caplog.messages)


def test_cancellation_stops_method_checks() -> None:
    device = _ScriptedCoverCalibrator(calibrator=CalibratorStatus.OFF)
    ctx = _context(device)
    tester = CoverCalibratorTester()
    state = tester.new_state()
    tester.check_properties(ctx, state)
    ctx.cancel.cancel()
    tester.check_methods(ctx, state)
    assert device.calls == []
    assert device.on_levels == []
