"""Freezer orchestrator service package exposing the FastAPI application factory."""

from .main import create_app

__version__ = "0.1.0"

__all__ = ["create_app"]
