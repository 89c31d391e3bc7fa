"""Alpaca (HTTP/JSON) client for network cover/calibrator devices."""
from __future__ import annotations

import itertools
import json
import logging
import threading
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Callable, Dict, Optional

from ..config import DeviceConfig
from .device_manager import MemberDispatchDevice
from .faults import DeviceFault, FaultKind

logger = logging.getLogger(__name__)

ERROR_NOT_IMPLEMENTED = 0x400
ERROR_INVALID_VALUE = 0x401
API_VERSION = 1
DEVICE_TYPE = "covercalibrator"

Opener = Callable[..., Any]


class AlpacaCoverCalibrator(MemberDispatchDevice):
    """Talk to a cover/calibrator over the Alpaca REST protocol.

    Reads are ``GET`` requests with query parameters, writes and method calls
    are ``PUT`` requests with form-encoded bodies. Device error numbers in the
    JSON envelope are translated into :class:`DeviceFault` kinds.
    """

    def __init__(self, config: DeviceConfig, *, opener: Optional[Opener] = None) -> None:
        self._config = config
        self._opener = opener or urllib.request.urlopen
        self._transactions = itertools.count(1)
        self._lock = threading.Lock()
        self._base_url = (
            f"http://{config.host}:{config.port}/api/v{API_VERSION}/{DEVICE_TYPE}/{config.device_number}"
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def _next_transaction(self) -> int:
        with self._lock:
            return next(self._transactions)

    def _common_params(self) -> Dict[str, Any]:
        return {
            "ClientID": self._config.client_id,
            "ClientTransactionID": self._next_transaction(),
        }

    def _get(self, member: str) -> Any:
        query = urllib.parse.urlencode(self._common_params())
        request = urllib.request.Request(f"{self._base_url}/{member}?{query}", method="GET")
        return self._send(member, request)

    def _put(self, member: str, **params: Any) -> Any:
        payload = {**params, **self._common_params()}
        body = urllib.parse.urlencode({key: _form_value(value) for key, value in payload.items()}).encode("ascii")
        request = urllib.request.Request(
            f"{self._base_url}/{member}",
            data=body,
            method="PUT",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        return self._send(member, request)

    def _send(self, member: str, request: urllib.request.Request) -> Any:
        logger.debug("%s %s", request.get_method(), request.full_url)
        try:
            with self._opener(request, timeout=self._config.request_timeout_s) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", "replace").strip() if exc.fp else ""
            raise DeviceFault(
                FaultKind.INVALID_VALUE if exc.code == 400 else FaultKind.OTHER,
                f"HTTP {exc.code} from {member}: {detail or exc.reason}",
                member=member,
            ) from exc
        except (urllib.error.URLError, OSError) as exc:
            raise DeviceFault(FaultKind.OTHER, f"Unable to reach device for {member}: {exc}", member=member) from exc
        try:
            envelope = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DeviceFault(FaultKind.OTHER, f"Invalid JSON response from {member}", member=member) from exc
        return _unwrap(member, envelope)

    def close(self) -> None:
        # HTTP is connectionless; nothing to release.
        return None


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "True" if value else "False"
    return str(value)


def _unwrap(member: str, envelope: Dict[str, Any]) -> Any:
    number = int(envelope.get("ErrorNumber", 0) or 0)
    if number == 0:
        return envelope.get("Value")
    message = str(envelope.get("ErrorMessage") or f"Device error 0x{number:X}")
    if number == ERROR_NOT_IMPLEMENTED:
        # Alpaca does not distinguish property and method not-implemented errors.
        raise DeviceFault(FaultKind.NOT_IMPLEMENTED, message, member=member, error_number=number)
    if number == ERROR_INVALID_VALUE:
        raise DeviceFault(FaultKind.INVALID_VALUE, message, member=member, error_number=number)
    raise DeviceFault(FaultKind.OTHER, message, member=member, error_number=number)
