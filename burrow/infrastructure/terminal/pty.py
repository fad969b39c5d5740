"""
Pseudo-terminal allocation and window sizing.
"""

import fcntl
import os
import struct
import termios
from typing import Optional

from loguru import logger

from ...core.domain.channels import WindowSize
from ...core.exceptions import ResourceError
from ...core.interfaces.session import ITerminal, ITerminalFactory
from ...core.interfaces.streams import IByteStream
from .fdstream import FdStream

WINSIZE_FORMAT = "HHHH"


def set_window_size(fd: int, size: WindowSize) -> None:
    """Set terminal window size."""
    size = size.clamped()
    winsize = struct.pack(WINSIZE_FORMAT, size.rows, size.cols, size.pixel_width, size.pixel_height)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def get_window_size(fd: int) -> WindowSize:
    """Read the window size the kernel holds for a terminal."""
    packed = fcntl.ioctl(fd, termios.TIOCGWINSZ, struct.pack(WINSIZE_FORMAT, 0, 0, 0, 0))
    rows, cols, pixel_width, pixel_height = struct.unpack(WINSIZE_FORMAT, packed)
    return WindowSize(cols, rows, pixel_width, pixel_height)


class PseudoTerminal(ITerminal):
    """
    A master/subordinate pty pair.

    The subordinate end is handed to the shell and then released by the
    server; the master end stays open until ``close``.
    """

    def __init__(self, master_fd: int, subordinate_fd: int, term_type: str, size: WindowSize) -> None:
        self._master_fd = master_fd
        self._subordinate_fd: Optional[int] = subordinate_fd
        self._term_type = term_type
        self._size = size
        self._closed = False

    @property
    def term_type(self) -> str:
        return self._term_type

    @property
    def size(self) -> WindowSize:
        return self._size

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def master_fd(self) -> int:
        return self._master_fd

    @property
    def subordinate_fd(self) -> Optional[int]:
        """The subordinate descriptor, None once released."""
        return self._subordinate_fd

    def resize(self, size: WindowSize) -> None:
        if self._closed:
            return
        set_window_size(self._master_fd, size)
        self._size = size.clamped()

    def current_size(self) -> WindowSize:
        return get_window_size(self._master_fd)

    def open_stream(self) -> IByteStream:
        if self._closed:
            raise ResourceError("pseudo-terminal is closed")
        return FdStream(os.dup(self._master_fd), name="pty master")

    def release_subordinate(self) -> None:
        """Close the server's copy of the subordinate end."""
        if self._subordinate_fd is None:
            return
        fd, self._subordinate_fd = self._subordinate_fd, None
        os.close(fd)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.release_subordinate()
        try:
            os.close(self._master_fd)
        except OSError as e:
            logger.debug(f"Error closing pty master: {e}")


class PtyFactory(ITerminalFactory):
    """Allocates pseudo-terminals with ``os.openpty``."""

    def open(self, term_type: str, size: WindowSize) -> ITerminal:
        try:
            master_fd, subordinate_fd = os.openpty()
        except OSError as e:
            raise ResourceError(f"cannot allocate pty: {e}")

        terminal = PseudoTerminal(master_fd, subordinate_fd, term_type, size)
        try:
            terminal.resize(size)
        except OSError as e:
            terminal.close()
            raise ResourceError(f"cannot set pty size: {e}")
        return terminal
