"""
Configuration models and loading.
"""

from .loader import ConfigLoader
from .models import (
    ApplicationConfig, AuthConfig, ForwardingConfig, LoggingConfig, ServerConfig, SessionConfig
)

__all__ = [
    "ConfigLoader",
    "ApplicationConfig",
    "AuthConfig",
    "ForwardingConfig",
    "LoggingConfig",
    "ServerConfig",
    "SessionConfig",
]
