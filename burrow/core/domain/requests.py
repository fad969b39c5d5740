"""
Channel requests delivered to a session channel.

The transport decodes each request payload; the session state machine only
sees these typed values. ``want_reply`` mirrors the flag the client sent.
"""

from dataclasses import dataclass
from typing import ClassVar

from .channels import WindowSize


@dataclass(frozen=True)
class ChannelRequest:
    """Base class for all channel-level requests."""
    kind: ClassVar[str] = ""
    want_reply: bool = True

    @property
    def name(self) -> str:
        return self.kind


@dataclass(frozen=True)
class PtyRequest(ChannelRequest):
    """pty-req: allocate a pseudo-terminal."""
    kind: ClassVar[str] = "pty-req"
    term_type: str = "xterm"
    size: WindowSize = WindowSize(80, 24)


@dataclass(frozen=True)
class WindowChangeRequest(ChannelRequest):
    """window-change: the client terminal was resized."""
    kind: ClassVar[str] = "window-change"
    want_reply: bool = False
    size: WindowSize = WindowSize(80, 24)


@dataclass(frozen=True)
class ShellRequest(ChannelRequest):
    """shell: start the login shell."""
    kind: ClassVar[str] = "shell"
    payload: bytes = b""


@dataclass(frozen=True)
class ExecRequest(ChannelRequest):
    """exec: run a single command through the shell."""
    kind: ClassVar[str] = "exec"
    command: str = ""


@dataclass(frozen=True)
class SubsystemRequest(ChannelRequest):
    """subsystem: start a named subsystem such as sftp."""
    kind: ClassVar[str] = "subsystem"
    subsystem: str = ""


@dataclass(frozen=True)
class UnsupportedRequest(ChannelRequest):
    """Any request type the session does not implement."""
    request_type: str = ""

    @property
    def name(self) -> str:
        return self.request_type or "unknown"


ACTIVITY_REQUESTS = (ShellRequest, ExecRequest, SubsystemRequest)
