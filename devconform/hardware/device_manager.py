"""Device client layer for cover/calibrator drivers across multiple transports."""
from __future__ import annotations

import enum
import importlib
from typing import Any, Callable, Optional, Protocol

from ..config import DeviceConfig, SimulatorConfig
from .faults import DeviceFault, FaultKind, MemberType

LATEST_COVER_CALIBRATOR_INTERFACE = 2


class CoverStatus(enum.IntEnum):
    NOT_PRESENT = 0
    CLOSED = 1
    MOVING = 2
    OPEN = 3
    UNKNOWN = 4
    ERROR = 5


class CalibratorStatus(enum.IntEnum):
    NOT_PRESENT = 0
    OFF = 1
    NOT_READY = 2
    READY = 3
    UNKNOWN = 4
    ERROR = 5


class CoverCalibratorDevice(Protocol):
    """Members the engine needs from a cover/calibrator client."""

    connected: bool

    @property
    def connecting(self) -> bool:  # pragma: no cover - protocol signature
        ...

    def connect(self) -> None:  # pragma: no cover - protocol signature
        ...

    def disconnect(self) -> None:  # pragma: no cover - protocol signature
        ...

    @property
    def description(self) -> str:  # pragma: no cover - protocol signature
        ...

    @property
    def driver_info(self) -> str:  # pragma: no cover - protocol signature
        ...

    @property
    def driver_version(self) -> str:  # pragma: no cover - protocol signature
        ...

    @property
    def interface_version(self) -> int:  # pragma: no cover - protocol signature
        ...

    @property
    def name(self) -> str:  # pragma: no cover - protocol signature
        ...

    @property
    def supported_actions(self) -> list[str]:  # pragma: no cover - protocol signature
        ...

    @property
    def cover_state(self) -> CoverStatus:  # pragma: no cover - protocol signature
        ...

    @property
    def cover_moving(self) -> bool:  # pragma: no cover - protocol signature
        ...

    @property
    def calibrator_state(self) -> CalibratorStatus:  # pragma: no cover - protocol signature
        ...

    @property
    def calibrator_changing(self) -> bool:  # pragma: no cover - protocol signature
        ...

    @property
    def brightness(self) -> int:  # pragma: no cover - protocol signature
        ...

    @property
    def max_brightness(self) -> int:  # pragma: no cover - protocol signature
        ...

    def open_cover(self) -> None:  # pragma: no cover - protocol signature
        ...

    def close_cover(self) -> None:  # pragma: no cover - protocol signature
        ...

    def halt_cover(self) -> None:  # pragma: no cover - protocol signature
        ...

    def calibrator_on(self, brightness: int) -> None:  # pragma: no cover - protocol signature
        ...

    def calibrator_off(self) -> None:  # pragma: no cover - protocol signature
        ...

    def close(self) -> None:  # pragma: no cover - protocol signature
        ...


class MemberDispatchDevice:
    """Cover/calibrator client built on three primitives.

    Subclasses implement :meth:`_get`, :meth:`_put` and :meth:`close`; every
    device member is routed through them using its wire name.
    """

    def _get(self, member: str) -> Any:
        raise NotImplementedError

    def _put(self, member: str, **params: Any) -> Any:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def get_member(self, member: str) -> Any:
        """Read a member by its lower-case wire name."""

        return self._get(member)

    def put_member(self, member: str, **params: Any) -> Any:
        """Write a property or invoke a method by its lower-case wire name."""

        return self._put(member, **params)

    @property
    def connected(self) -> bool:
        return bool(self._get("connected"))

    @connected.setter
    def connected(self, value: bool) -> None:
        self._put("connected", Connected=bool(value))

    @property
    def connecting(self) -> bool:
        return bool(self._get("connecting"))

    def connect(self) -> None:
        self._put("connect")

    def disconnect(self) -> None:
        self._put("disconnect")

    @property
    def description(self) -> str:
        return self._get("description")

    @property
    def driver_info(self) -> str:
        return self._get("driverinfo")

    @property
    def driver_version(self) -> str:
        return self._get("driverversion")

    @property
    def interface_version(self) -> int:
        return int(self._get("interfaceversion"))

    @property
    def name(self) -> str:
        return self._get("name")

    @property
    def supported_actions(self) -> list[str]:
        return list(self._get("supportedactions") or [])

    @property
    def cover_state(self) -> CoverStatus:
        return _enum_value(CoverStatus, self._get("coverstate"), "coverstate")

    @property
    def cover_moving(self) -> bool:
        return bool(self._get("covermoving"))

    @property
    def calibrator_state(self) -> CalibratorStatus:
        return _enum_value(CalibratorStatus, self._get("calibratorstate"), "calibratorstate")

    @property
    def calibrator_changing(self) -> bool:
        return bool(self._get("calibratorchanging"))

    @property
    def brightness(self) -> int:
        return int(self._get("brightness"))

    @property
    def max_brightness(self) -> int:
        return int(self._get("maxbrightness"))

    def open_cover(self) -> None:
        self._put("opencover")

    def close_cover(self) -> None:
        self._put("closecover")

    def halt_cover(self) -> None:
        self._put("haltcover")

    def calibrator_on(self, brightness: int) -> None:
        self._put("calibratoron", Brightness=int(brightness))

    def calibrator_off(self) -> None:
        self._put("calibratoroff")

    def setup_dialog(self) -> None:
        self._put("setupdialog")

    def __enter__(self) -> "MemberDispatchDevice":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _enum_value(enum_type: Any, raw: Any, member: str) -> Any:
    try:
        return enum_type(int(raw))
    except (TypeError, ValueError) as exc:
        raise DeviceFault(FaultKind.OTHER, f"{member} returned an invalid value: {raw!r}", member=member) from exc


# Wire names that are properties; everything else is a method.
PROPERTY_MEMBERS = {
    "connected",
    "connecting",
    "description",
    "driverinfo",
    "driverversion",
    "interfaceversion",
    "name",
    "supportedactions",
    "coverstate",
    "covermoving",
    "calibratorstate",
    "calibratorchanging",
    "brightness",
    "maxbrightness",
}

# Wire name -> attribute name on an in-process driver object.
_LOCAL_ATTRIBUTES = {
    "driverinfo": "driver_info",
    "driverversion": "driver_version",
    "interfaceversion": "interface_version",
    "supportedactions": "supported_actions",
    "coverstate": "cover_state",
    "covermoving": "cover_moving",
    "calibratorstate": "calibrator_state",
    "calibratorchanging": "calibrator_changing",
    "maxbrightness": "max_brightness",
    "opencover": "open_cover",
    "closecover": "close_cover",
    "haltcover": "halt_cover",
    "calibratoron": "calibrator_on",
    "calibratoroff": "calibrator_off",
    "setupdialog": "setup_dialog",
}


def member_type_of(member: str) -> MemberType:
    return MemberType.PROPERTY if member in PROPERTY_MEMBERS else MemberType.METHOD


class LocalDriverAdapter(MemberDispatchDevice):
    """Wrap an in-process driver object and tag its exceptions as device faults."""

    def __init__(self, driver: Any) -> None:
        self._driver = driver

    @property
    def driver(self) -> Any:
        return self._driver

    def _get(self, member: str) -> Any:
        attribute = _LOCAL_ATTRIBUTES.get(member, member)
        try:
            return getattr(self._driver, attribute)
        except DeviceFault:
            raise
        except AttributeError as exc:
            raise DeviceFault.not_implemented(member, MemberType.PROPERTY, f"Driver has no member '{attribute}'") from exc
        except Exception as exc:
            raise _translate(exc, member) from exc

    def _put(self, member: str, **params: Any) -> Any:
        attribute = _LOCAL_ATTRIBUTES.get(member, member)
        try:
            if member in PROPERTY_MEMBERS:
                (value,) = params.values()
                setattr(self._driver, attribute, value)
                return None
            target = getattr(self._driver, attribute)
            return target(*params.values())
        except DeviceFault:
            raise
        except AttributeError as exc:
            raise DeviceFault.not_implemented(member, member_type_of(member), f"Driver has no member '{attribute}'") from exc
        except Exception as exc:
            raise _translate(exc, member) from exc

    def close(self) -> None:
        dispose = getattr(self._driver, "dispose", None) or getattr(self._driver, "close", None)
        if callable(dispose):
            dispose()


def _translate(exc: Exception, member: str) -> DeviceFault:
    if isinstance(exc, NotImplementedError):
        return DeviceFault.not_implemented(member, member_type_of(member), str(exc) or None)
    if isinstance(exc, ValueError):
        return DeviceFault.invalid_value(member, str(exc) or f"Invalid value for {member}")
    return DeviceFault(FaultKind.OTHER, f"{type(exc).__name__}: {exc}", member=member)


def load_plugin(target: str) -> Callable[[], Any]:
    """Resolve a ``module:attribute`` string to a driver factory."""

    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Plugin '{target}' must use the form 'package.module:Factory'")
    module = importlib.import_module(module_name)
    try:
        factory = getattr(module, attribute)
    except AttributeError as exc:
        raise ValueError(f"Module '{module_name}' has no attribute '{attribute}'") from exc
    if not callable(factory):
        raise ValueError(f"Plugin target '{target}' is not callable")
    return factory


SUPPORTED_TRANSPORTS = {"sim", "local", "alpaca"}


def create_device(
    config: DeviceConfig,
    simulator: Optional[SimulatorConfig] = None,
    *,
    opener: Optional[Callable[..., Any]] = None,
) -> MemberDispatchDevice:
    """Create a device client based on *config.transport*."""

    transport = (config.transport or "sim").lower()
    if transport == "sim":
        from .simulator import SimulatedCoverCalibrator

        return LocalDriverAdapter(SimulatedCoverCalibrator(simulator or SimulatorConfig()))
    if transport == "local":
        if not config.plugin:
            raise ValueError("The 'local' transport requires device.plugin ('module:Factory')")
        factory = load_plugin(config.plugin)
        return LocalDriverAdapter(factory())
    if transport == "alpaca":
        from .alpaca import AlpacaCoverCalibrator

        return AlpacaCoverCalibrator(config, opener=opener)
    raise ValueError(f"Unsupported transport '{config.transport}'")
