"""Conformance checks for cover/calibrator devices."""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from ..classifier import Requirement, is_invalid_value
from ..config import AppConfig
from ..hardware.device_manager import LATEST_COVER_CALIBRATOR_INTERFACE, CalibratorStatus, CoverStatus
from ..hardware.faults import MemberType
from ..timing import TimingBudget, measure, transition_budget, wait_for
from . import register_tester
from .base import DeviceFactory, TestContext, TesterFlags

logger = logging.getLogger(__name__)

MAX_INT32 = 2**31 - 1


@dataclass(slots=True)
class CoverCalibratorState:
    """Observations carried between the stages of one session."""

    cover_state: CoverStatus = CoverStatus.UNKNOWN
    calibrator_state: CalibratorStatus = CalibratorStatus.UNKNOWN
    states_read: bool = False
    cover_state_ok: bool = False
    calibrator_state_ok: bool = False
    cover_moving_ok: bool = False
    calibrator_changing_ok: bool = False
    max_brightness: int = 0
    max_brightness_ok: bool = False
    brightness_ok: bool = False
    cover_is_async: bool = False
    cover_async_s: float = 0.0
    calibrator_is_async: bool = False

    @property
    def cover_present(self) -> bool:
        return self.cover_state is not CoverStatus.NOT_PRESENT

    @property
    def calibrator_present(self) -> bool:
        return self.calibrator_state is not CalibratorStatus.NOT_PRESENT


@dataclass(slots=True)
class TransitionOutcome:
    completed: bool = False
    asynchronous: bool = False
    duration_s: float = 0.0


class TransitionProbe:
    """Answer "is it still transitioning?" from the changing flag and the state.

    On the current interface the flag is authoritative; a disagreement with the
    state is reported once per probe. Legacy interfaces only have the state.
    """

    def __init__(
        self,
        ctx: TestContext,
        member: str,
        read_state: Callable[[], Any],
        transitional: Any,
        read_flag: Optional[Callable[[], bool]] = None,
        *,
        state_name: str,
        flag_name: str = "",
    ) -> None:
        self._ctx = ctx
        self._member = member
        self._read_state = read_state
        self._transitional = transitional
        self._read_flag = read_flag if ctx.current_interface else None
        self._state_name = state_name
        self._flag_name = flag_name
        self.disagreements = 0
        self.last_state: Any = None

    def read_state(self) -> Any:
        self.last_state = self._read_state()
        return self.last_state

    def moving(self) -> bool:
        """Poll-loop check: the flag alone where available, else the state."""

        if self._read_flag is None:
            return self.read_state() == self._transitional
        return bool(self._read_flag())

    def __call__(self) -> bool:
        state = self._read_state()
        self.last_state = state
        by_state = state == self._transitional
        if self._read_flag is None:
            return by_state
        flag = bool(self._read_flag())
        if flag != by_state:
            if self.disagreements == 0:
                self._ctx.recorder.issue(
                    self._member,
                    f"{self._flag_name} is {flag} but {self._state_name} is {_state_label(state)}. "
                    f"Using {self._flag_name} to decide whether the operation is still in progress.",
                )
            self.disagreements += 1
        return flag


def _state_label(state: Any) -> str:
    name = getattr(state, "name", None)
    return name.title().replace("_", "") if name else str(state)


def brightness_test_levels(max_brightness: int) -> List[int]:
    """Brightness values requested during the CalibratorOn test, below- and above-range included."""

    levels = [-1, 0]
    if max_brightness <= 4:
        levels.extend(range(1, max_brightness + 1))
    else:
        span = max_brightness + 1
        levels.extend(
            [
                int(math.ceil(span / 4 - 1)),
                int(math.floor(span / 2 - 1)),
                int(math.floor(span * 3 / 4 - 1)),
                max_brightness,
            ]
        )
    if max_brightness < MAX_INT32:
        levels.append(max_brightness + 1)
    return levels


@register_tester("covercalibrator")
class CoverCalibratorTester:
    """Checks for the cover (open/close/halt) and calibrator (on/off) state machines."""

    capability = "covercalibrator"
    min_interface = 1
    max_interface = LATEST_COVER_CALIBRATOR_INTERFACE

    def __init__(self) -> None:
        self.flags = TesterFlags(
            has_properties=True,
            has_methods=True,
            has_performance_check=True,
            has_post_run_check=True,
        )

    # Lifecycle hooks

    def create_device(self, config: AppConfig, factory: DeviceFactory) -> Any:
        logger.info("Creating %s device using transport '%s'", self.capability, config.device.transport)
        return factory(config)

    def validate_interface(self, device: Any) -> int:
        version = int(device.interface_version)
        if not self.min_interface <= version <= self.max_interface:
            raise ValueError(
                f"Interface version {version} is not supported, expected {self.min_interface} to {self.max_interface}"
            )
        return version

    def new_state(self) -> CoverCalibratorState:
        return CoverCalibratorState()

    def pre_connect_checks(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        return None

    def read_can_properties(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        return None

    def pre_run_check(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        return None

    def dispose(self, device: Any) -> None:
        close = getattr(device, "close", None)
        if callable(close):
            close()

    # Properties

    def check_properties(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        recorder = ctx.recorder

        self._read_states(ctx, state)
        if ctx.cancelled:
            return

        if state.calibrator_state_ok:
            absent = not state.calibrator_present
            self._check_max_brightness(ctx, state, absent)
            if ctx.cancelled:
                return
            self._check_brightness(ctx, state, absent)
        else:
            recorder.issue("MaxBrightness", "Test skipped because CalibratorState could not be read.")
            recorder.issue("Brightness", "Test skipped because CalibratorState could not be read.")

        if state.cover_state_ok and state.calibrator_state_ok and not state.cover_present and not state.calibrator_present:
            recorder.issue(
                "DeviceCapabilities",
                "Both CoverState and CalibratorState are 'NotPresent' - this device has no testable capability.",
            )

    def _read_states(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        recorder = ctx.recorder
        device = ctx.device
        state.states_read = True

        try:
            state.calibrator_state = recorder.timed("CalibratorState", TimingBudget.FAST, lambda: device.calibrator_state)
            state.calibrator_state_ok = True
            recorder.ok("CalibratorState", _state_label(state.calibrator_state))
        except Exception as exc:
            state.calibrator_state_ok = False
            recorder.handle_fault("CalibratorState", MemberType.PROPERTY, Requirement.MANDATORY, exc)
        if ctx.cancelled:
            return

        try:
            state.cover_state = recorder.timed("CoverState", TimingBudget.FAST, lambda: device.cover_state)
            state.cover_state_ok = True
            recorder.ok("CoverState", _state_label(state.cover_state))
        except Exception as exc:
            state.cover_state_ok = False
            recorder.handle_fault("CoverState", MemberType.PROPERTY, Requirement.MANDATORY, exc)
        if ctx.cancelled or not ctx.current_interface:
            return

        try:
            changing = recorder.timed("CalibratorChanging", TimingBudget.FAST, lambda: device.calibrator_changing)
            state.calibrator_changing_ok = True
            recorder.ok("CalibratorChanging", str(bool(changing)))
        except Exception as exc:
            state.calibrator_changing_ok = False
            recorder.handle_fault("CalibratorChanging", MemberType.PROPERTY, Requirement.MANDATORY, exc)
        if ctx.cancelled:
            return

        try:
            moving = recorder.timed("CoverMoving", TimingBudget.FAST, lambda: device.cover_moving)
            state.cover_moving_ok = True
            recorder.ok("CoverMoving", str(bool(moving)))
        except Exception as exc:
            state.cover_moving_ok = False
            recorder.handle_fault("CoverMoving", MemberType.PROPERTY, Requirement.MANDATORY, exc)

    def _check_max_brightness(self, ctx: TestContext, state: CoverCalibratorState, absent: bool) -> None:
        recorder = ctx.recorder
        state.max_brightness_ok = False
        try:
            value = recorder.timed("MaxBrightness", TimingBudget.FAST, lambda: ctx.device.max_brightness)
        except Exception as exc:
            requirement = Requirement.MUST_NOT_BE_IMPLEMENTED if absent else Requirement.MUST_BE_IMPLEMENTED
            recorder.handle_fault("MaxBrightness", MemberType.PROPERTY, requirement, exc, "CalibratorStatus is 'NotPresent'" if absent else "")
            return
        if absent:
            recorder.error(
                "MaxBrightness",
                "CalibratorStatus is 'NotPresent' but MaxBrightness did not throw a PropertyNotImplemented error.",
            )
            return
        if value >= 1:
            state.max_brightness = int(value)
            state.max_brightness_ok = True
            recorder.ok("MaxBrightness", str(value))
        else:
            recorder.issue("MaxBrightness", f"The returned MaxBrightness value {value} is invalid, it must be >= 1")

    def _check_brightness(self, ctx: TestContext, state: CoverCalibratorState, absent: bool) -> None:
        recorder = ctx.recorder
        state.brightness_ok = False
        if not absent and not state.max_brightness_ok:
            recorder.issue("Brightness", "Test skipped because MaxBrightness returned an invalid value or could not be read.")
            return
        try:
            value = recorder.timed("Brightness", TimingBudget.FAST, lambda: ctx.device.brightness)
        except Exception as exc:
            requirement = Requirement.MUST_NOT_BE_IMPLEMENTED if absent else Requirement.MUST_BE_IMPLEMENTED
            recorder.handle_fault("Brightness", MemberType.PROPERTY, requirement, exc, "CalibratorStatus is 'NotPresent'" if absent else "")
            return
        if absent:
            recorder.error(
                "Brightness",
                "CalibratorStatus is 'NotPresent' but Brightness did not throw a PropertyNotImplemented error.",
            )
            return
        if 0 <= value <= state.max_brightness:
            state.brightness_ok = True
            recorder.ok("Brightness", str(value))
        else:
            recorder.issue(
                "Brightness",
                f"The returned Brightness {value} is outside the range 0 to {state.max_brightness} (MaxBrightness)",
            )

    # Methods

    def check_methods(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        if not state.states_read:
            self._read_states(ctx, state)
        if ctx.cancelled:
            return
        self._check_cover_methods(ctx, state)
        if ctx.cancelled:
            return
        self._check_calibrator_methods(ctx, state)

    def _cover_probe(self, ctx: TestContext, member: str) -> TransitionProbe:
        device = ctx.device
        return TransitionProbe(
            ctx,
            member,
            lambda: device.cover_state,
            CoverStatus.MOVING,
            lambda: device.cover_moving,
            state_name="CoverState",
            flag_name="CoverMoving",
        )

    def _calibrator_probe(self, ctx: TestContext, member: str) -> TransitionProbe:
        device = ctx.device
        return TransitionProbe(
            ctx,
            member,
            lambda: device.calibrator_state,
            CalibratorStatus.NOT_READY,
            lambda: device.calibrator_changing,
            state_name="CalibratorState",
            flag_name="CalibratorChanging",
        )

    def _check_cover_methods(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        recorder = ctx.recorder
        if not state.cover_state_ok or (ctx.current_interface and not state.cover_moving_ok):
            recorder.issue("CoverTests", "Cover tests skipped because CoverState or CoverMoving could not be read.")
            return
        try:
            state.cover_state = ctx.device.cover_state
        except Exception as exc:
            recorder.issue("CoverTests", f"Cover tests skipped because CoverState could not be read: {exc}")
            return

        current = state.cover_state
        if current in (CoverStatus.NOT_PRESENT, CoverStatus.CLOSED):
            steps = (self._open_cover, self._close_cover, self._halt_cover)
        elif current is CoverStatus.OPEN:
            steps = (self._close_cover, self._halt_cover, self._open_cover)
        elif current is CoverStatus.UNKNOWN:
            self._close_cover(ctx, state)
            if ctx.cancelled:
                return
            try:
                state.cover_state = ctx.device.cover_state
            except Exception as exc:
                recorder.issue("CoverTests", f"Unable to read CoverState after closing the cover: {exc}")
                return
            if state.cover_state is not CoverStatus.CLOSED:
                recorder.issue(
                    "CoverTests",
                    f"Cover tests abandoned because the cover could not be closed from the Unknown state, "
                    f"CoverState is {_state_label(state.cover_state)}.",
                )
                return
            steps = (self._open_cover, self._close_cover, self._halt_cover)
        else:
            recorder.issue(
                "CoverTests",
                f"Cover tests skipped because the cover is in the {_state_label(current)} state.",
            )
            return

        for step in steps:
            if ctx.cancelled:
                return
            step(ctx, state)

    def _open_cover(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        self._cover_transition(ctx, state, "OpenCover", ctx.device.open_cover, CoverStatus.OPEN)

    def _close_cover(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        self._cover_transition(ctx, state, "CloseCover", ctx.device.close_cover, CoverStatus.CLOSED)

    def _cover_transition(
        self,
        ctx: TestContext,
        state: CoverCalibratorState,
        member: str,
        action: Callable[[], Any],
        target: CoverStatus,
    ) -> None:
        outcome = self._test_transition(
            ctx,
            member,
            action,
            target,
            self._cover_probe(ctx, member),
            absent=not state.cover_present,
            owner="CoverStatus",
        )
        if outcome.asynchronous:
            state.cover_is_async = True
            state.cover_async_s = max(state.cover_async_s, outcome.duration_s)

    def _test_transition(
        self,
        ctx: TestContext,
        member: str,
        action: Callable[[], Any],
        target: Any,
        probe: TransitionProbe,
        *,
        absent: bool,
        owner: str,
        label: str = "",
    ) -> TransitionOutcome:
        """Invoke a state-changing member and decide whether it completed synchronously or asynchronously."""

        recorder = ctx.recorder
        label = label or member
        budget = transition_budget(ctx.current_interface)
        outcome = TransitionOutcome()

        started = time.monotonic()
        try:
            _, elapsed = measure(action)
        except Exception as exc:
            if absent:
                recorder.handle_fault(member, MemberType.METHOD, Requirement.MUST_NOT_BE_IMPLEMENTED, exc, f"{owner} is 'NotPresent'")
            else:
                recorder.handle_fault(member, MemberType.METHOD, Requirement.MUST_BE_IMPLEMENTED, exc, label)
            return outcome
        recorder.report_timing(member, elapsed, budget)

        if absent:
            recorder.error(member, f"{owner} is 'NotPresent' but {label} did not throw a MethodNotImplemented error.")
            return outcome

        try:
            if probe():
                outcome.asynchronous = True
                cleared = ctx.wait_while(probe.moving)
                if ctx.cancelled:
                    return outcome
                outcome.duration_s = time.monotonic() - started
                # State and flag are read together so a stuck flag is reported.
                still_moving = probe()
                final = probe.last_state
                if not cleared:
                    waited = ctx.settings.poll_limit * ctx.settings.poll_interval_s
                    recorder.issue(member, f"{label} was still in progress after waiting {waited:.1f} seconds")
                if final == target:
                    outcome.completed = True
                    if cleared and not still_moving:
                        recorder.ok(member, f"{label} completed asynchronously in {outcome.duration_s:.1f} seconds")
                else:
                    recorder.issue(
                        member,
                        f"{label} was expected to end in the {_state_label(target)} state but it is {_state_label(final)}",
                    )
                return outcome

            final = probe.read_state()
            if final == target:
                outcome.completed = True
                recorder.ok(member, f"{label} completed synchronously in {elapsed:.1f} seconds")
            else:
                recorder.issue(
                    member,
                    f"{label} returned synchronously but the state is {_state_label(final)} instead of {_state_label(target)}",
                )
            if elapsed > budget.seconds:
                recorder.issue(
                    member,
                    f"{label} took {elapsed:.1f} seconds to complete, longer than the {budget.label} response time "
                    f"target of {budget.seconds:.1f} seconds.",
                )
                recorder.info(member, f"Consider implementing {member} asynchronously so that it returns promptly.")
        except Exception as exc:
            recorder.issue(member, f"Unable to read the device state after {label}: {exc}")
        return outcome

    def _halt_cover(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        recorder = ctx.recorder
        device = ctx.device
        member = "HaltCover"

        if not state.cover_present:
            try:
                recorder.timed(member, TimingBudget.STANDARD, device.halt_cover)
            except Exception as exc:
                recorder.handle_fault(member, MemberType.METHOD, Requirement.MUST_NOT_BE_IMPLEMENTED, exc, "CoverStatus is 'NotPresent'")
                return
            recorder.error(member, "CoverStatus is 'NotPresent' but HaltCover did not throw a MethodNotImplemented error.")
            return

        if not state.cover_is_async:
            # A synchronous cover has nothing to halt.
            try:
                recorder.timed(member, TimingBudget.STANDARD, device.halt_cover)
            except Exception as exc:
                recorder.handle_fault(member, MemberType.METHOD, Requirement.OPTIONAL, exc)
                return
            recorder.issue(
                member,
                "The cover moves synchronously but HaltCover did not throw a MethodNotImplemented error.",
            )
            return

        if state.cover_async_s <= 0:
            recorder.issue(member, "HaltCover test skipped because no asynchronous cover movement duration was measured.")
            return

        try:
            device.open_cover()
        except Exception as exc:
            recorder.handle_fault("OpenCover", MemberType.METHOD, Requirement.MUST_BE_IMPLEMENTED, exc, "Starting cover movement for the HaltCover test")
            return
        if not wait_for(state.cover_async_s / 2, ctx.cancel):
            return

        probe = self._cover_probe(ctx, member)
        try:
            if not probe():
                recorder.issue(member, "The cover should have been moving when HaltCover was called but was not. Test abandoned")
                return
        except Exception as exc:
            recorder.issue(member, f"Unable to read the cover state before HaltCover: {exc}")
            return

        try:
            recorder.timed(member, TimingBudget.STANDARD, device.halt_cover)
        except Exception as exc:
            recorder.handle_fault(member, MemberType.METHOD, Requirement.MUST_BE_IMPLEMENTED, exc)
            return

        try:
            still_moving = probe()
        except Exception as exc:
            recorder.issue(member, f"Unable to read the cover state after HaltCover: {exc}")
            return
        if still_moving:
            recorder.issue(member, "The cover is still moving after HaltCover returned.")
        else:
            recorder.ok(member, f"Cover halted, CoverState is {_state_label(probe.last_state)}")

    def _check_calibrator_methods(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        recorder = ctx.recorder
        if not state.calibrator_state_ok or (ctx.current_interface and not state.calibrator_changing_ok):
            recorder.issue(
                "CalibratorTests",
                "Calibrator tests skipped because CalibratorState or CalibratorChanging could not be read.",
            )
            return
        try:
            state.calibrator_state = ctx.device.calibrator_state
        except Exception as exc:
            recorder.issue("CalibratorTests", f"Calibrator tests skipped because CalibratorState could not be read: {exc}")
            return
        if state.calibrator_state is CalibratorStatus.NOT_READY:
            recorder.issue("CalibratorTests", "Calibrator tests skipped because the calibrator is not ready.")
            return

        if not state.calibrator_present:
            self._calibrator_on(ctx, state, 1)
            if not ctx.cancelled:
                self._calibrator_off(ctx, state)
            return

        if state.max_brightness_ok and state.brightness_ok:
            if state.max_brightness >= MAX_INT32:
                recorder.info("CalibratorOn", "Test of a brightness above MaxBrightness skipped because MaxBrightness is the largest possible value.")
            for level in brightness_test_levels(state.max_brightness):
                if ctx.cancelled:
                    return
                self._calibrator_on(ctx, state, level)
        else:
            recorder.issue(
                "CalibratorOn",
                "Tests skipped because MaxBrightness or Brightness returned an invalid value or could not be read.",
            )
        if ctx.cancelled:
            return
        self._calibrator_off(ctx, state)

    def _calibrator_on(self, ctx: TestContext, state: CoverCalibratorState, level: int) -> None:
        recorder = ctx.recorder
        device = ctx.device
        member = "CalibratorOn"
        label = f"CalibratorOn({level})"

        if state.calibrator_present and not 0 <= level <= state.max_brightness:
            try:
                device.calibrator_on(level)
            except Exception as exc:
                if is_invalid_value(exc):
                    recorder.ok(member, f"{label} - an InvalidValue error was generated as expected")
                else:
                    recorder.issue(member, f"{label} - an InvalidValue error was expected but a different error was returned: {exc}")
                return
            message = f"{label} - the out of range value was accepted without an InvalidValue error"
            if level > state.max_brightness:
                recorder.error(member, message)
            else:
                recorder.issue(member, message)
            return

        outcome = self._test_transition(
            ctx,
            member,
            lambda: device.calibrator_on(level),
            CalibratorStatus.READY,
            self._calibrator_probe(ctx, member),
            absent=not state.calibrator_present,
            owner="CalibratorStatus",
            label=label,
        )
        if outcome.asynchronous:
            state.calibrator_is_async = True
        if not outcome.completed:
            return
        try:
            brightness = device.brightness
        except Exception as exc:
            recorder.issue(member, f"{label} - unable to read Brightness: {exc}")
            return
        if brightness == level:
            recorder.ok(member, f"{label} - Brightness is {brightness} as requested")
        else:
            recorder.issue(member, f"{label} - Brightness is {brightness} but {level} was requested")

    def _calibrator_off(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        recorder = ctx.recorder
        device = ctx.device
        member = "CalibratorOff"
        outcome = self._test_transition(
            ctx,
            member,
            device.calibrator_off,
            CalibratorStatus.OFF,
            self._calibrator_probe(ctx, member),
            absent=not state.calibrator_present,
            owner="CalibratorStatus",
        )
        if outcome.asynchronous:
            state.calibrator_is_async = True
        if not outcome.completed:
            return
        try:
            brightness = device.brightness
        except Exception as exc:
            recorder.issue(member, f"Unable to read Brightness after CalibratorOff: {exc}")
            return
        if brightness == 0:
            recorder.ok(member, "Brightness is 0 after CalibratorOff")
        else:
            recorder.issue(member, f"Brightness is {brightness} after CalibratorOff, it should be 0")

    # Performance

    def check_performance(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        device = ctx.device
        for member, reader in (
            ("CoverState", lambda: device.cover_state),
            ("CalibratorState", lambda: device.calibrator_state),
        ):
            if ctx.cancelled:
                return
            self._measure_rate(ctx, member, reader)

    def _measure_rate(self, ctx: TestContext, member: str, reader: Callable[[], Any]) -> None:
        recorder = ctx.recorder
        window = ctx.settings.performance_window_s
        count = 0
        started = time.monotonic()
        last_check = started
        try:
            while True:
                reader()
                count += 1
                now = time.monotonic()
                if now - started >= window:
                    break
                if now - last_check >= 1.0:
                    last_check = now
                    if ctx.cancelled:
                        return
        except Exception as exc:
            recorder.info(member, f"Unable to complete the performance test: {exc}")
            return
        elapsed = time.monotonic() - started
        rate = count / elapsed if elapsed > 0 else float(count)
        if rate >= ctx.settings.performance_pass_rate:
            recorder.ok(member, f"Transaction rate: {rate:.1f} per second")
        else:
            recorder.info(member, f"Transaction rate: {rate:.1f} per second")

    # Post run

    def post_run_check(self, ctx: TestContext, state: CoverCalibratorState) -> None:
        device = ctx.device

        if state.cover_state_ok and state.cover_present:
            self._return_to_rest(ctx, "CloseCover", device.close_cover, self._cover_probe(ctx, "CloseCover"), CoverStatus.CLOSED)
        if ctx.cancelled:
            return

        if state.calibrator_state_ok and state.calibrator_present:
            self._return_to_rest(
                ctx, "CalibratorOff", device.calibrator_off, self._calibrator_probe(ctx, "CalibratorOff"), CalibratorStatus.OFF
            )

    def _return_to_rest(
        self,
        ctx: TestContext,
        member: str,
        action: Callable[[], Any],
        probe: TransitionProbe,
        target: Any,
    ) -> None:
        """Best effort: faults and wrong final states are Issues only."""

        recorder = ctx.recorder
        try:
            action()
            cleared = ctx.wait_while(probe.moving)
            if ctx.cancelled:
                return
            final = probe.read_state()
        except Exception as exc:
            recorder.issue(member, f"Unable to return the device to rest after testing: {exc}")
            return
        if not cleared:
            recorder.issue(member, f"{member} was still in progress at the end of the post-run wait.")
        if final == target:
            recorder.ok(member, f"Final state is {_state_label(final)}")
        else:
            recorder.issue(member, f"Final state is {_state_label(final)} instead of {_state_label(target)}")
