"""HTTP interface for the Kosakata service."""

from .server import create_app

__all__ = ["create_app"]
