"""
Password verification backends and the authentication component.
"""

from .authenticator import PasswordAuthenticator
from .local_store import AuthSettings, LocalPasswordStore
from .shadow import ShadowPasswordVerifier
from .system import FileResourceReader, PasswdAccountResolver, default_auth_context

__all__ = [
    "AuthSettings",
    "FileResourceReader",
    "LocalPasswordStore",
    "PasswdAccountResolver",
    "PasswordAuthenticator",
    "ShadowPasswordVerifier",
    "default_auth_context",
]
