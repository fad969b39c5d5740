"""
Asynchronous byte streams over raw file descriptors.

Used for pseudo-terminal masters and child-process pipes. Descriptors are
switched to non-blocking mode and driven through the event loop's reader and
writer callbacks.
"""

import asyncio
import errno
import os
from typing import Optional, Set

from ...core.exceptions import StreamClosedError
from ...core.interfaces.streams import IByteStream


def set_nonblocking(fd: int) -> None:
    """Set file descriptor to non-blocking mode."""
    os.set_blocking(fd, False)


class FdStream(IByteStream):
    """
    A byte stream over one or two file descriptors.

    The stream owns its descriptors and closes them. When ``write_fd`` is
    omitted the read descriptor is used in both directions (pty master).
    A read that fails with ``EIO`` is end-of-stream: that is how a pty
    master reports that every subordinate descriptor has been closed.

    Args:
        read_fd: Descriptor to read from
        write_fd: Descriptor to write to, if different
        name: Name used in error messages
    """

    def __init__(self, read_fd: int, write_fd: Optional[int] = None, name: str = "fd") -> None:
        self._read_fd: Optional[int] = read_fd
        self._write_fd: Optional[int] = read_fd if write_fd is None else write_fd
        self._shared = write_fd is None or write_fd == read_fd
        self._name = name
        self._closed = False
        self._waiters: Set[asyncio.Future] = set()

        set_nonblocking(read_fd)
        if not self._shared:
            set_nonblocking(self._write_fd)  # type: ignore[arg-type]

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def read(self, max_bytes: int) -> bytes:
        while True:
            if self._closed or self._read_fd is None:
                return b""
            try:
                return os.read(self._read_fd, max_bytes)
            except BlockingIOError:
                await self._wait(self._read_fd, writable=False)
            except OSError as e:
                if e.errno == errno.EIO:
                    return b""
                raise

    async def write(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            if self._closed or self._write_fd is None:
                raise StreamClosedError(f"{self._name} is closed for writing")
            try:
                written = os.write(self._write_fd, view)
            except BlockingIOError:
                await self._wait(self._write_fd, writable=True)
                continue
            view = view[written:]

    async def write_eof(self) -> None:
        """Close the write side. A shared descriptor stays open for reading."""
        if self._shared or self._write_fd is None:
            return
        fd, self._write_fd = self._write_fd, None
        asyncio.get_running_loop().remove_writer(fd)
        os.close(fd)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        for waiter in list(self._waiters):
            if not waiter.done():
                waiter.set_result(None)

        fds = {self._read_fd, self._write_fd} - {None}
        self._read_fd = None
        self._write_fd = None

        loop = asyncio.get_running_loop()
        for fd in fds:
            loop.remove_reader(fd)
            loop.remove_writer(fd)
            os.close(fd)  # type: ignore[arg-type]

    async def _wait(self, fd: int, writable: bool) -> None:
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()

        def wake() -> None:
            if not waiter.done():
                waiter.set_result(None)

        if writable:
            loop.add_writer(fd, wake)
        else:
            loop.add_reader(fd, wake)
        self._waiters.add(waiter)
        try:
            await waiter
        finally:
            self._waiters.discard(waiter)
            # close() already unregistered the descriptor
            if not self._closed:
                if writable:
                    loop.remove_writer(fd)
                else:
                    loop.remove_reader(fd)
