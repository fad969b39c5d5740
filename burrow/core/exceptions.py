"""
Exception hierarchy for the Burrow server.

Every error raised on purpose by Burrow derives from ``BurrowError`` so that
per-connection and per-channel code can isolate failures without catching
unrelated exceptions.
"""

from typing import Optional

from .domain.channels import RejectReason


class BurrowError(Exception):
    """Base class for all Burrow errors."""
    pass


class ConfigurationError(BurrowError):
    """Raised when configuration is missing or invalid."""
    pass


class CredentialStoreError(BurrowError):
    """Raised when the password store cannot be read, parsed or updated."""
    pass


class ResourceError(BurrowError):
    """Raised when an OS resource (pty, process, socket) cannot be provided."""
    pass


class StreamClosedError(BurrowError):
    """Raised when writing to a byte stream that has already been closed."""
    pass


class FileTransferError(BurrowError):
    """Raised when the file-transfer service ends abnormally."""

    def __init__(self, message: str, exit_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class ChannelOpenRejected(BurrowError):
    """
    Raised by the dispatcher to refuse a channel-open request.

    Args:
        reason: RFC 4254 open-failure reason code
        message: Human readable description sent to the client
    """

    def __init__(self, reason: RejectReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
