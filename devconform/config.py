"""Configuration management for the device conformance engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import (
    PERFORMANCE_PASS_RATE,
    PERFORMANCE_WINDOW_S,
    POLL_INTERVAL_S,
    POLL_LIMIT,
)

COVER_STATE_NAMES = {"notpresent", "closed", "moving", "open", "unknown", "error"}


def _coerce_float(value: Any, default: float, *, minimum: float = 0.0) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if result < minimum:
        return minimum
    return result


@dataclass(slots=True)
class DeviceConfig:
    """Which device to test and how to reach it."""

    capability: str = "covercalibrator"
    transport: str = "sim"
    plugin: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 11111
    device_number: int = 0
    request_timeout_s: float = 5.0
    client_id: int = 1

    def __post_init__(self) -> None:
        self.capability = (self.capability or "covercalibrator").strip().lower()
        self.transport = (self.transport or "sim").strip().lower()
        if self.plugin is not None:
            self.plugin = self.plugin.strip() or None
        try:
            self.port = int(self.port)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"port must be an integer, got {self.port!r}") from exc
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        self.device_number = max(int(self.device_number), 0)
        self.request_timeout_s = _coerce_float(self.request_timeout_s, 5.0, minimum=0.1)
        self.client_id = max(int(self.client_id), 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "capability": self.capability,
            "transport": self.transport,
            "plugin": self.plugin,
            "host": self.host,
            "port": self.port,
            "device_number": self.device_number,
            "request_timeout_s": self.request_timeout_s,
            "client_id": self.client_id,
        }


@dataclass(slots=True)
class TestConfig:
    """Which check categories run and how long the engine may wait."""

    __test__ = False  # not a pytest class

    test_properties: bool = True
    test_methods: bool = True
    test_performance: bool = False
    cycles: int = 1
    report_good_timings: bool = False
    report_bad_timings: bool = False
    poll_interval_s: float = POLL_INTERVAL_S
    poll_limit: int = POLL_LIMIT
    connect_timeout_s: float = 30.0
    performance_window_s: float = PERFORMANCE_WINDOW_S
    performance_pass_rate: float = PERFORMANCE_PASS_RATE
    settle_delay_s: float = 1.0

    def __post_init__(self) -> None:
        try:
            cycles = int(self.cycles)
        except (TypeError, ValueError):
            cycles = 1
        self.cycles = max(cycles, 1)
        self.poll_interval_s = _coerce_float(self.poll_interval_s, POLL_INTERVAL_S)
        if self.poll_interval_s <= 0:
            raise ValueError("poll_interval_s must be greater than 0")
        try:
            limit = int(self.poll_limit)
        except (TypeError, ValueError):
            limit = POLL_LIMIT
        self.poll_limit = max(limit, 1)
        self.connect_timeout_s = _coerce_float(self.connect_timeout_s, 30.0)
        self.performance_window_s = _coerce_float(self.performance_window_s, PERFORMANCE_WINDOW_S)
        self.performance_pass_rate = _coerce_float(self.performance_pass_rate, PERFORMANCE_PASS_RATE)
        self.settle_delay_s = _coerce_float(self.settle_delay_s, 1.0)

    @property
    def reports_timings(self) -> bool:
        return self.report_good_timings or self.report_bad_timings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_properties": self.test_properties,
            "test_methods": self.test_methods,
            "test_performance": self.test_performance,
            "cycles": self.cycles,
            "report_good_timings": self.report_good_timings,
            "report_bad_timings": self.report_bad_timings,
            "poll_interval_s": self.poll_interval_s,
            "poll_limit": self.poll_limit,
            "connect_timeout_s": self.connect_timeout_s,
            "performance_window_s": self.performance_window_s,
            "performance_pass_rate": self.performance_pass_rate,
            "settle_delay_s": self.settle_delay_s,
        }


@dataclass(slots=True)
class ReportConfig:
    """Where the results file and optional text summary are written."""

    results_path: Optional[Path] = None
    log_directory: Path = Path("logs")
    summary_template: Optional[Path] = None
    summary_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if isinstance(self.results_path, str):
            self.results_path = Path(self.results_path) if self.results_path else None
        if isinstance(self.log_directory, str):
            self.log_directory = Path(self.log_directory or "logs")
        if isinstance(self.summary_template, str):
            self.summary_template = Path(self.summary_template) if self.summary_template else None
        if isinstance(self.summary_path, str):
            self.summary_path = Path(self.summary_path) if self.summary_path else None


@dataclass(slots=True)
class LoggingConfig:
    """Console and file logging options."""

    level: str = "INFO"
    log_file: Optional[Path] = None
    console: bool = True

    def __post_init__(self) -> None:
        self.level = (str(self.level) if self.level else "INFO").upper()
        if isinstance(self.log_file, str):
            self.log_file = Path(self.log_file) if self.log_file else None


@dataclass(slots=True)
class SimulatorConfig:
    """Behaviour of the in-memory cover/calibrator used for bench runs."""

    interface_version: int = 2
    cover_present: bool = True
    calibrator_present: bool = True
    cover_travel_s: float = 0.0
    calibrator_warmup_s: float = 0.0
    max_brightness: int = 100
    cover_state: str = "closed"
    supports_halt: Optional[bool] = None
    description: str = "Simulated cover calibrator"

    def __post_init__(self) -> None:
        self.interface_version = int(self.interface_version)
        self.cover_travel_s = _coerce_float(self.cover_travel_s, 0.0)
        self.calibrator_warmup_s = _coerce_float(self.calibrator_warmup_s, 0.0)
        self.max_brightness = int(self.max_brightness)
        candidate = (self.cover_state or "closed").replace("_", "").strip().lower()
        if candidate not in COVER_STATE_NAMES:
            allowed = ", ".join(sorted(COVER_STATE_NAMES))
            raise ValueError(f"cover_state must be one of {allowed}")
        self.cover_state = candidate


@dataclass(slots=True)
class AppConfig:
    """Top-level application configuration bundle."""

    device: DeviceConfig = field(default_factory=DeviceConfig)
    tests: TestConfig = field(default_factory=TestConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    simulator: SimulatorConfig = field(default_factory=SimulatorConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        """Create a configuration instance from a nested dictionary."""

        def _section(name: str, factory: Any) -> Any:
            data = payload.get(name, {}) if payload else {}
            if isinstance(data, dict):
                return factory(**data)
            raise TypeError(f"Expected mapping for section '{name}', got {type(data).__name__}")

        return cls(
            device=_section("device", DeviceConfig),
            tests=_section("tests", TestConfig),
            report=_section("report", ReportConfig),
            logging=_section("logging", LoggingConfig),
            simulator=_section("simulator", SimulatorConfig),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return a serialisable representation of the configuration."""

        def _asdict(obj: Any) -> Dict[str, Any]:
            return {field: getattr(obj, field) for field in obj.__dataclass_fields__}  # type: ignore[attr-defined]

        def _path(value: Optional[Path]) -> Optional[str]:
            return str(value) if value else None

        return {
            "device": self.device.to_dict(),
            "tests": self.tests.to_dict(),
            "report": {
                "results_path": _path(self.report.results_path),
                "log_directory": str(self.report.log_directory),
                "summary_template": _path(self.report.summary_template),
                "summary_path": _path(self.report.summary_path),
            },
            "logging": {**_asdict(self.logging), "log_file": _path(self.logging.log_file)},
            "simulator": _asdict(self.simulator),
        }


def load_config(path: Optional[Path]) -> AppConfig:
    """Load configuration from *path* if provided, otherwise return defaults."""

    if path is None:
        return AppConfig()
    resolved = path.expanduser()
    if not resolved.exists():
        return AppConfig()
    payload: Dict[str, Any]
    suffix = resolved.suffix.lower()
    if suffix in {".json", ".jsn"}:
        payload = _load_json(resolved)
    elif suffix in {".toml", ".tml"}:
        payload = _load_toml(resolved)
    elif suffix in {".yaml", ".yml"}:
        payload = _load_yaml(resolved)
    else:
        raise ValueError(f"Unsupported configuration format: {resolved.suffix}")
    return AppConfig.from_dict(payload)


def _load_json(path: Path) -> Dict[str, Any]:
    import json

    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _load_toml(path: Path) -> Dict[str, Any]:
    try:
        import tomllib  # Python >= 3.11
    except ModuleNotFoundError as exc:  # pragma: no cover - runtime guard
        raise RuntimeError("tomllib is required to parse TOML configuration files") from exc
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        import yaml  # type: ignore
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("PyYAML is required to parse YAML configuration files") from exc
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}
