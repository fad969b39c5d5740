"""
Byte stream contract shared by channels, pseudo-terminals, pipes and sockets.
"""

from abc import ABC, abstractmethod


class IByteStream(ABC):
    """
    A duplex byte stream.

    ``read`` returns ``b""`` once the stream has reached end-of-stream or has
    been closed locally. ``close`` must be idempotent.
    """

    @abstractmethod
    async def read(self, max_bytes: int) -> bytes:
        """Read up to ``max_bytes`` bytes, ``b""`` on end-of-stream."""
        pass

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Write all of ``data``.

        Raises:
            StreamClosedError: If the stream has been closed.
            OSError: If the underlying resource failed.
        """
        pass

    @abstractmethod
    async def write_eof(self) -> None:
        """Signal that no more data will be written, keeping reads open."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close both directions. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """Whether ``close`` has been called."""
        pass
