"""
Authentication capability interfaces.

Verification code never touches the filesystem or the account database
directly; it goes through these capabilities so tests can substitute them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..domain.credentials import SystemAccount


class IResourceReader(ABC):
    """Reads a named resource (normally a file path) into memory."""

    @abstractmethod
    def read(self, name: str) -> bytearray:
        """
        Read the whole resource.

        Returns:
            A mutable buffer the caller may scrub after use.

        Raises:
            OSError: If the resource cannot be read.
        """
        pass


class IAccountResolver(ABC):
    """Resolves operating-system accounts by name."""

    @abstractmethod
    def lookup(self, username: str) -> Optional[SystemAccount]:
        """Return the account, or None if no such account exists."""
        pass


class IPasswordVerifier(ABC):
    """A password verification backend."""

    @abstractmethod
    def verify(self, username: str, password: str) -> bool:
        """
        Verify a password.

        Blocking and CPU bound; callers on the event loop must run it in
        a worker thread.
        """
        pass


@dataclass(frozen=True)
class AuthContext:
    """The two capabilities verification depends on."""
    resource_reader: IResourceReader
    account_resolver: IAccountResolver
