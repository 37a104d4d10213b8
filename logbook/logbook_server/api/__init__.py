"""
API module for the logbook backup core.

This module provides the optional REST API over BackupService.

Invariants:
    - Destructive actions require explicit confirmation
    - Responses are JSON with stable error codes
"""

from .http_server import create_http_app, start_http_server

__all__ = [
    "create_http_app",
    "start_http_server",
]
