"""Shared lifecycle pieces for capability testers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from ..classifier import Requirement
from ..config import AppConfig, TestConfig
from ..constants import CONFIGURATION_KEY
from ..hardware.faults import MemberType
from ..results import FindingRecorder
from ..timing import CancellationToken, TimingBudget, wait_while

DeviceFactory = Callable[[AppConfig], Any]


@dataclass(slots=True)
class TesterFlags:
    """Optional stages a tester implements."""

    __test__ = False  # not a pytest class

    has_pre_connect_check: bool = False
    has_can_properties: bool = False
    has_pre_run_check: bool = False
    has_properties: bool = True
    has_methods: bool = True
    has_performance_check: bool = False
    has_post_run_check: bool = False


@dataclass(slots=True)
class TestContext:
    """Everything a stage needs from the running session."""

    __test__ = False  # not a pytest class

    device: Any
    recorder: FindingRecorder
    settings: TestConfig
    cancel: CancellationToken
    interface_version: int = 0

    @property
    def current_interface(self) -> bool:
        """True for interface revisions with Connect()/Connecting and changing flags."""

        return self.interface_version >= 2

    @property
    def cancelled(self) -> bool:
        return self.cancel.cancelled

    def wait_while(self, predicate: Callable[[], bool], *, max_polls: Optional[int] = None) -> bool:
        return wait_while(
            predicate,
            interval_s=self.settings.poll_interval_s,
            max_polls=max_polls or self.settings.poll_limit,
            cancel=self.cancel,
        )


class CapabilityTester(Protocol):
    """Hooks the session drives; state is created once and passed to every stage."""

    capability: str
    flags: TesterFlags

    def create_device(self, config: AppConfig, factory: DeviceFactory) -> Any:  # pragma: no cover - protocol signature
        ...

    def validate_interface(self, device: Any) -> int:  # pragma: no cover - protocol signature
        ...

    def new_state(self) -> Any:  # pragma: no cover - protocol signature
        ...

    def pre_connect_checks(self, ctx: TestContext, state: Any) -> None:  # pragma: no cover - protocol signature
        ...

    def read_can_properties(self, ctx: TestContext, state: Any) -> None:  # pragma: no cover - protocol signature
        ...

    def pre_run_check(self, ctx: TestContext, state: Any) -> None:  # pragma: no cover - protocol signature
        ...

    def check_properties(self, ctx: TestContext, state: Any) -> None:  # pragma: no cover - protocol signature
        ...

    def check_methods(self, ctx: TestContext, state: Any) -> None:  # pragma: no cover - protocol signature
        ...

    def check_performance(self, ctx: TestContext, state: Any) -> None:  # pragma: no cover - protocol signature
        ...

    def post_run_check(self, ctx: TestContext, state: Any) -> None:  # pragma: no cover - protocol signature
        ...

    def dispose(self, device: Any) -> None:  # pragma: no cover - protocol signature
        ...


def connect_device(ctx: TestContext) -> None:
    """Connect to the device, exercising Connect()/Connecting where the interface has them.

    Raises ``RuntimeError`` when the device accepts a connection change but
    does not report it back.
    """

    device = ctx.device
    recorder = ctx.recorder
    if ctx.current_interface:
        # Connecting must exist before it can be relied on below.
        connecting = device.connecting
        if connecting:
            recorder.info("Connect", "Ignoring this request because a Connect() or Disconnect() operation is already in progress.")
        else:
            device.connected = True
            if not device.connected:
                raise RuntimeError("Set Connected True - the device connected without error but Connected returned False.")
            recorder.ok("Connected", "Connected to device successfully using Connected = True")
            device.connected = False
            if device.connected:
                raise RuntimeError("Set Connected False - the device disconnected without error but Connected returned True.")
            recorder.ok("Connected", "Disconnected from device successfully using Connected = False")
            recorder.timed("Connect", TimingBudget.STANDARD, device.connect)
            _wait_connecting(ctx)
            if ctx.cancelled:
                return
    else:
        device.connected = True
    if not device.connected:
        raise RuntimeError("The device connected without error but Connected returned False.")
    if ctx.current_interface:
        recorder.ok("Connect", "Connected to device successfully using Connect()")
    else:
        recorder.ok("Connected", "Connected to device successfully using Connected = True")


def disconnect_device(ctx: TestContext) -> None:
    """Disconnect from the device and verify that Connected reads back False."""

    device = ctx.device
    if ctx.current_interface:
        if device.connecting:
            ctx.recorder.info("Disconnect", "Ignoring this request because a Connect() or Disconnect() operation is already in progress.")
        else:
            ctx.recorder.timed("Disconnect", TimingBudget.STANDARD, device.disconnect)
            # Releasing the device must finish even after a stop request.
            _wait_connecting(ctx, cancellable=False)
    else:
        device.connected = False
    if device.connected:
        raise RuntimeError("The device disconnected without error but Connected returned True.")
    ctx.recorder.ok("Disconnect", "Disconnected from device successfully")


def _wait_connecting(ctx: TestContext, *, cancellable: bool = True) -> None:
    interval = ctx.settings.poll_interval_s
    polls = max(int(ctx.settings.connect_timeout_s / interval), 1)
    cleared = wait_while(
        lambda: bool(ctx.device.connecting),
        interval_s=interval,
        max_polls=polls,
        cancel=ctx.cancel if cancellable else None,
    )
    if not cleared and not (cancellable and ctx.cancelled):
        raise TimeoutError(f"Connecting remained True for more than {ctx.settings.connect_timeout_s:.1f} seconds")


def _read_text_member(ctx: TestContext, member: str, attribute: str, empty_message: str) -> None:
    try:
        value = ctx.recorder.timed(member, TimingBudget.FAST, lambda: getattr(ctx.device, attribute))
    except Exception as exc:
        ctx.recorder.handle_fault(member, MemberType.PROPERTY, Requirement.MANDATORY, exc)
        return
    if not value:
        ctx.recorder.info(member, empty_message)
    else:
        ctx.recorder.ok(member, str(value))


def check_common_members(ctx: TestContext) -> None:
    """Read the members every device type must implement."""

    recorder = ctx.recorder
    device = ctx.device

    try:
        version = recorder.timed("InterfaceVersion", TimingBudget.FAST, lambda: device.interface_version)
        if version < 1:
            recorder.issue("InterfaceVersion", f"InterfaceVersion must be 1 or greater but driver returned: {version}")
        else:
            recorder.ok("InterfaceVersion", str(version))
    except Exception as exc:
        recorder.handle_fault("InterfaceVersion", MemberType.PROPERTY, Requirement.MANDATORY, exc)
    if ctx.cancelled:
        return

    try:
        connected = recorder.timed("Connected", TimingBudget.FAST, lambda: device.connected)
        recorder.ok("Connected", str(connected))
    except Exception as exc:
        recorder.issue("Connected", str(exc))
    if ctx.cancelled:
        return

    for member, attribute, empty in (
        ("Description", "description", "No description string"),
        ("DriverInfo", "driver_info", "No DriverInfo string"),
        ("DriverVersion", "driver_version", "No DriverVersion string"),
        ("Name", "name", "Name is empty"),
    ):
        _read_text_member(ctx, member, attribute, empty)
        if ctx.cancelled:
            return

    try:
        actions = recorder.timed("SupportedActions", TimingBudget.FAST, lambda: device.supported_actions)
        if actions:
            for action in actions:
                if not isinstance(action, str):
                    recorder.issue("SupportedActions", f"Actions must be strings, found {type(action).__name__}")
                else:
                    recorder.ok("SupportedActions", f"Found action: {action}")
        else:
            recorder.ok("SupportedActions", "Driver returned an empty action list")
    except Exception as exc:
        recorder.handle_fault("SupportedActions", MemberType.PROPERTY, Requirement.MANDATORY, exc)


def check_configuration(ctx: TestContext) -> None:
    """Flag check categories that were disabled for this run."""

    if not ctx.settings.test_properties:
        ctx.recorder.configuration_alert(CONFIGURATION_KEY, "Property tests were omitted due to Conform configuration.")
    if not ctx.settings.test_methods:
        ctx.recorder.configuration_alert(CONFIGURATION_KEY, "Method tests were omitted due to Conform configuration.")
