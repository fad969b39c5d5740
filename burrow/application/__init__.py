"""
Application layer: component wiring and lifecycle.
"""

from .startup import ApplicationStartup, build_password_store, build_verifier

__all__ = [
    "ApplicationStartup",
    "build_password_store",
    "build_verifier",
]
