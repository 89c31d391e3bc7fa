"""Alpaca REST front-end that exposes a local cover/calibrator driver over HTTP.

Endpoints follow the Alpaca device API:

    GET  /api/v1/covercalibrator/<n>/<member>   - read a property
    PUT  /api/v1/covercalibrator/<n>/<member>   - write a property or call a method
    GET  /management/apiversions                - supported API versions

Every response is a JSON envelope with ``Value``, ``ClientTransactionID``,
``ServerTransactionID``, ``ErrorNumber`` and ``ErrorMessage``.
"""
from __future__ import annotations

import enum
import itertools
import logging
import threading
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request
from flask_cors import CORS

from ..hardware.alpaca import ERROR_INVALID_VALUE, ERROR_NOT_IMPLEMENTED
from ..hardware.device_manager import PROPERTY_MEMBERS, MemberDispatchDevice
from ..hardware.faults import DeviceFault, FaultKind

logger = logging.getLogger(__name__)

ERROR_UNSPECIFIED = 0x500

# Form parameter each writable member expects, and how to parse it.
_PUT_PARAMETERS = {
    "connected": ("Connected", "bool"),
    "calibratoron": ("Brightness", "int"),
}


def _error_number(fault: DeviceFault) -> int:
    if fault.kind is FaultKind.NOT_IMPLEMENTED:
        return ERROR_NOT_IMPLEMENTED
    if fault.kind is FaultKind.INVALID_VALUE:
        return ERROR_INVALID_VALUE
    return fault.error_number or ERROR_UNSPECIFIED


def _parse_parameter(member: str, raw: Optional[str], kind: str) -> Any:
    if raw is None:
        raise DeviceFault.invalid_value(member, f"Missing parameter for {member}")
    if kind == "bool":
        text = raw.strip().lower()
        if text not in {"true", "false"}:
            raise DeviceFault.invalid_value(member, f"'{raw}' is not a boolean value")
        return text == "true"
    try:
        return int(raw)
    except ValueError as exc:
        raise DeviceFault.invalid_value(member, f"'{raw}' is not an integer value") from exc


def _jsonable(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    return value


def create_app(device: MemberDispatchDevice, *, device_number: int = 0) -> Flask:
    """Build a Flask app serving *device* as cover/calibrator number *device_number*."""

    app = Flask(__name__)
    CORS(app)
    server_transactions = itertools.count(1)
    lock = threading.Lock()

    def _envelope(value: Any = None, error: Optional[DeviceFault] = None) -> Dict[str, Any]:
        client_txn = request.values.get("ClientTransactionID", "0")
        with lock:
            server_txn = next(server_transactions)
        payload: Dict[str, Any] = {
            "ClientTransactionID": int(client_txn) if client_txn.isdigit() else 0,
            "ServerTransactionID": server_txn,
            "ErrorNumber": 0,
            "ErrorMessage": "",
        }
        if error is None:
            payload["Value"] = _jsonable(value)
        else:
            payload["ErrorNumber"] = _error_number(error)
            payload["ErrorMessage"] = error.message
        return payload

    def _dispatch(member: str) -> Tuple[Any, int]:
        member = member.lower()
        try:
            if request.method == "GET":
                if member not in PROPERTY_MEMBERS:
                    return f"'{member}' is not a readable property", 400
                with lock:
                    value = device.get_member(member)
                return jsonify(_envelope(value)), 200

            params: Dict[str, Any] = {}
            if member in _PUT_PARAMETERS:
                name, kind = _PUT_PARAMETERS[member]
                form = {key.lower(): raw for key, raw in request.form.items()}
                params[name] = _parse_parameter(member, form.get(name.lower()), kind)
            elif member in PROPERTY_MEMBERS:
                return f"'{member}' is read-only", 400
            with lock:
                device.put_member(member, **params)
            return jsonify(_envelope()), 200
        except DeviceFault as fault:
            logger.debug("%s %s -> %r", request.method, member, fault)
            return jsonify(_envelope(error=fault)), 200

    @app.route(f"/api/v1/covercalibrator/{device_number}/<member>", methods=["GET", "PUT"])
    def device_member(member: str):
        return _dispatch(member)

    @app.route("/management/apiversions", methods=["GET"])
    def api_versions():
        return jsonify(_envelope([1]))

    return app
