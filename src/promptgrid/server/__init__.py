# Copyright (c) Syntropy Systems
"""promptgrid HTTP server."""

from .app import create_app

__all__ = ["create_app"]
