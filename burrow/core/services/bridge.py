"""
Bidirectional byte-stream bridging with exactly-once teardown.

A bridge runs one copy loop per direction. Whichever loop finishes first
fires the shared shutdown signal; the bridge then closes both streams a
single time, no matter how many loops observed end-of-stream.
"""

import asyncio
from typing import List, Optional

from loguru import logger

from ..exceptions import StreamClosedError
from ..interfaces.streams import IByteStream

DEFAULT_CHUNK_SIZE = 32 * 1024


class ShutdownSignal:
    """
    Exactly-once shutdown broadcast.

    Any number of tasks may call ``trigger``; only the first call wins and
    records its reason. Waiters are released once.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._attempts = 0

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    @property
    def attempts(self) -> int:
        """Number of ``trigger`` calls, including those that lost the race."""
        return self._attempts

    def trigger(self, reason: str) -> bool:
        """
        Fire the signal.

        Returns:
            True for the call that fired it, False for every later call.
        """
        self._attempts += 1
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        return True

    async def wait(self) -> Optional[str]:
        """Wait until the signal fires and return its reason."""
        await self._event.wait()
        return self._reason


async def pump(source: IByteStream, sink: IByteStream, label: str,
               chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """
    Copy bytes from ``source`` to ``sink`` until end-of-stream or error.

    Args:
        source: Stream to read from
        sink: Stream to write to
        label: Direction name used in log messages
        chunk_size: Maximum bytes per read

    Returns:
        Number of bytes copied
    """
    copied = 0
    try:
        while True:
            data = await source.read(chunk_size)
            if not data:
                break
            await sink.write(data)
            copied += len(data)
    except (OSError, StreamClosedError) as e:
        logger.debug(f"Copy {label} stopped: {e}")
    return copied


class StreamBridge:
    """
    Bridges two byte streams in both directions.

    Args:
        left: First stream (normally the SSH channel)
        right: Second stream (pty master, socket...)
        name: Name used in log messages
    """

    def __init__(self, left: IByteStream, right: IByteStream, name: str = "bridge",
                 chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._left = left
        self._right = right
        self._name = name
        self._chunk_size = chunk_size
        self._shutdown = ShutdownSignal(name)
        self._teardowns = 0
        self._bytes = {"left_to_right": 0, "right_to_left": 0}

    @property
    def shutdown(self) -> ShutdownSignal:
        return self._shutdown

    @property
    def teardowns(self) -> int:
        """How many times the streams were closed; 1 after a completed run."""
        return self._teardowns

    @property
    def bytes_transferred(self) -> dict:
        return dict(self._bytes)

    async def run(self) -> Optional[str]:
        """
        Run both copy loops until one ends, then tear down once.

        Returns:
            The direction that finished first.
        """
        tasks: List[asyncio.Task] = [
            asyncio.ensure_future(self._copy(self._left, self._right, "left_to_right")),
            asyncio.ensure_future(self._copy(self._right, self._left, "right_to_left")),
        ]
        try:
            reason = await self._shutdown.wait()
        finally:
            await self._teardown()
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        return reason

    async def _copy(self, source: IByteStream, sink: IByteStream, direction: str) -> None:
        try:
            self._bytes[direction] = await pump(source, sink, f"{self._name}:{direction}",
                                                self._chunk_size)
        finally:
            self._shutdown.trigger(direction)

    async def _teardown(self) -> None:
        self._teardowns += 1
        logger.debug(f"Tearing down {self._name} ({self._shutdown.reason})")
        for stream in (self._left, self._right):
            try:
                await stream.close()
            except (OSError, StreamClosedError) as e:
                logger.debug(f"Error closing stream on {self._name}: {e}")
