"""
Interfaces for the OS resources a channel is wired to.

The session and tunnel handlers depend only on these contracts; the
infrastructure layer provides the POSIX implementations.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple

from ..domain.channels import DirectTcpIpTarget, WindowSize
from .streams import IByteStream


class ITerminal(ABC):
    """An allocated pseudo-terminal pair."""

    @property
    @abstractmethod
    def term_type(self) -> str:
        pass

    @property
    @abstractmethod
    def size(self) -> WindowSize:
        pass

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        pass

    @abstractmethod
    def resize(self, size: WindowSize) -> None:
        """Apply a new window size to the terminal."""
        pass

    @abstractmethod
    def open_stream(self) -> IByteStream:
        """Return a byte stream over the controlling (master) end."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close both ends. Runs only once."""
        pass


class ITerminalFactory(ABC):
    """Allocates pseudo-terminals."""

    @abstractmethod
    def open(self, term_type: str, size: WindowSize) -> ITerminal:
        """
        Allocate a new pseudo-terminal.

        Raises:
            ResourceError: If no pty could be allocated.
        """
        pass


class IChildProcess(ABC):
    """A spawned child process."""

    @property
    @abstractmethod
    def pid(self) -> int:
        pass

    @property
    @abstractmethod
    def returncode(self) -> Optional[int]:
        pass

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the process to exit and reap it."""
        pass

    @abstractmethod
    def terminate(self) -> None:
        """Ask the process to exit."""
        pass


class IProcessLauncher(ABC):
    """Spawns shells and commands for session channels."""

    @abstractmethod
    def spawn_shell(self, terminal: ITerminal) -> IChildProcess:
        """Start the login shell with ``terminal`` as its controlling tty."""
        pass

    @abstractmethod
    def spawn_command(self, command: str) -> Tuple[IChildProcess, IByteStream]:
        """
        Run ``command`` through the shell without a terminal.

        Returns:
            The child and a stream whose reads yield its merged
            stdout/stderr and whose writes feed its stdin.
        """
        pass

    @abstractmethod
    def spawn_program(self, argv: Sequence[str],
                      merge_stderr: bool = True) -> Tuple[IChildProcess, IByteStream]:
        """
        Run ``argv`` directly, wired like ``spawn_command``.

        With ``merge_stderr`` false the child's stderr is discarded.
        """
        pass


class IFileTransferService(ABC):
    """A file-transfer service speaking its protocol over a raw byte stream."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Subsystem name the service answers to."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    async def serve(self, stream: IByteStream) -> None:
        """
        Serve one session until the client disconnects.

        Raises:
            FileTransferError: If the service ends abnormally.
        """
        pass


class IDialer(ABC):
    """Opens outbound TCP connections for tunnels."""

    @abstractmethod
    async def dial(self, host: str, port: int) -> IByteStream:
        """
        Connect to ``host:port``.

        Raises:
            OSError: If the connection cannot be established.
            asyncio.TimeoutError: If the dial timed out.
        """
        pass


class IForwardPolicy(ABC):
    """Decides whether a client may tunnel to a destination."""

    @abstractmethod
    def permits(self, username: str, target: DirectTcpIpTarget) -> bool:
        pass
