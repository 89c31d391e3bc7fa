"""HTTP front-ends for local drivers."""

from .alpaca_server import create_app

__all__ = ["create_app"]
