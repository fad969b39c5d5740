"""
Logging infrastructure for the application.

Centralized loguru configuration shared by the CLI and the server.
"""

from .setup import InterceptHandler, intercept_standard_logging, setup_logging

__all__ = [
    "InterceptHandler",
    "intercept_standard_logging",
    "setup_logging",
]
