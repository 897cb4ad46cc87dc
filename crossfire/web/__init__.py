"""HTTP surface: identity, throttling and the FastAPI application."""

from .api import create_app

__all__ = ["create_app"]
