"""Top-level package for the device driver conformance engine."""
from __future__ import annotations

from .config import AppConfig, TestConfig, load_config
from .results import ConformResults

__all__ = ["AppConfig", "ConformResults", "TestConfig", "load_config"]
