"""
Domain models describing connections, channels and channel-open requests.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional, Tuple


class ChannelKind(str, Enum):
    """Channel types understood by the dispatcher."""
    SESSION = "session"
    DIRECT_TCPIP = "direct-tcpip"


class RejectReason(IntEnum):
    """Channel open failure reason codes (RFC 4254, section 5.1)."""
    ADMINISTRATIVELY_PROHIBITED = 1
    CONNECT_FAILED = 2
    UNKNOWN_CHANNEL_TYPE = 3
    RESOURCE_SHORTAGE = 4


@dataclass(frozen=True)
class WindowSize:
    """Terminal dimensions in characters, with optional pixel dimensions."""
    cols: int
    rows: int
    pixel_width: int = 0
    pixel_height: int = 0

    @classmethod
    def from_tuple(cls, size: Tuple[int, ...]) -> 'WindowSize':
        """Build a size from a ``(width, height[, pixwidth, pixheight])`` tuple."""
        cols, rows = size[0], size[1]
        pixel_width = size[2] if len(size) > 2 else 0
        pixel_height = size[3] if len(size) > 3 else 0
        return cls(cols, rows, pixel_width, pixel_height)

    def clamped(self) -> 'WindowSize':
        """Return the size limited to what a kernel winsize can hold."""
        limit = 0xFFFF
        return WindowSize(
            min(self.cols, limit),
            min(self.rows, limit),
            min(self.pixel_width, limit),
            min(self.pixel_height, limit),
        )


@dataclass(frozen=True)
class DirectTcpIpTarget:
    """direct-tcpip channel-open data as specified in RFC 4254, section 7.2."""
    dest_host: str
    dest_port: int
    orig_host: str = ""
    orig_port: int = 0

    @property
    def destination(self) -> str:
        """Destination formatted as ``host:port``."""
        if ":" in self.dest_host:
            return f"[{self.dest_host}]:{self.dest_port}"
        return f"{self.dest_host}:{self.dest_port}"


@dataclass(frozen=True)
class ChannelOpen:
    """A channel-open event as delivered by the transport."""
    kind: str
    target: Optional[DirectTcpIpTarget] = None


@dataclass
class ConnectionInfo:
    """An authenticated transport connection."""
    username: str
    peer_host: str = ""
    peer_port: int = 0
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: float = field(default_factory=time.time)

    @property
    def peer(self) -> str:
        """Peer address formatted as ``host:port``."""
        return f"{self.peer_host}:{self.peer_port}"
