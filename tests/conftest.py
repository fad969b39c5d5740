"""
Shared fixtures and in-memory fakes for the Burrow test suite.
"""

import asyncio
from typing import Callable, List, Optional, Sequence, Tuple

import pytest

from burrow.core.domain.channels import WindowSize
from burrow.core.exceptions import FileTransferError, ResourceError, StreamClosedError
from burrow.core.interfaces.session import (
    IChildProcess, IDialer, IFileTransferService, IProcessLauncher, ITerminal, ITerminalFactory
)
from burrow.core.interfaces.streams import IByteStream


class MemoryStream(IByteStream):
    """In-memory duplex stream: tests feed inbound bytes and inspect what was written."""

    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self.written = bytearray()
        self.eof_written = False
        self.close_calls = 0
        self._inbound: "asyncio.Queue[bytes]" = asyncio.Queue()
        self._pending = b""
        self._eof = False
        self._closed = False
        self._data_written = asyncio.Event()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def feed(self, data: bytes) -> None:
        self._inbound.put_nowait(data)

    def feed_eof(self) -> None:
        self._inbound.put_nowait(b"")

    async def read(self, max_bytes: int) -> bytes:
        if self._closed or self._eof:
            return b""
        if not self._pending:
            chunk = await self._inbound.get()
            if not chunk:
                self._eof = True
                return b""
            self._pending = chunk
        data, self._pending = self._pending[:max_bytes], self._pending[max_bytes:]
        return data

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise StreamClosedError(f"{self.name} is closed")
        self.written.extend(data)
        self._data_written.set()

    async def write_eof(self) -> None:
        self.eof_written = True

    async def close(self) -> None:
        self.close_calls += 1
        if self._closed:
            return
        self._closed = True
        self._inbound.put_nowait(b"")

    async def wait_written(self, expected: bytes, timeout: float = 2.0) -> None:
        """Wait until ``expected`` appears in the written bytes."""
        async def _wait() -> None:
            while expected not in self.written:
                self._data_written.clear()
                await self._data_written.wait()
        await asyncio.wait_for(_wait(), timeout)


class FakeTerminal(ITerminal):
    def __init__(self, term_type: str, size: WindowSize) -> None:
        self._term_type = term_type
        self._size = size
        self.resizes: List[WindowSize] = []
        self.close_calls = 0
        self.master = MemoryStream("master")

    @property
    def term_type(self) -> str:
        return self._term_type

    @property
    def size(self) -> WindowSize:
        return self._size

    @property
    def is_closed(self) -> bool:
        return self.close_calls > 0

    def resize(self, size: WindowSize) -> None:
        self.resizes.append(size)
        self._size = size

    def open_stream(self) -> IByteStream:
        return self.master

    def close(self) -> None:
        self.close_calls += 1


class FakeTerminalFactory(ITerminalFactory):
    def __init__(self) -> None:
        self.opened: List[FakeTerminal] = []
        self.fail = False

    def open(self, term_type: str, size: WindowSize) -> ITerminal:
        if self.fail:
            raise ResourceError("no ptys left")
        terminal = FakeTerminal(term_type, size)
        self.opened.append(terminal)
        return terminal


class FakeProcess(IChildProcess):
    _next_pid = 1000

    def __init__(self) -> None:
        FakeProcess._next_pid += 1
        self._pid = FakeProcess._next_pid
        self._returncode: Optional[int] = None
        self._exited = asyncio.Event()
        self.terminated = False
        self.wait_calls = 0

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def returncode(self) -> Optional[int]:
        return self._returncode

    def exit(self, code: int = 0) -> None:
        if self._returncode is None:
            self._returncode = code
            self._exited.set()

    async def wait(self) -> int:
        self.wait_calls += 1
        await self._exited.wait()
        assert self._returncode is not None
        return self._returncode

    def terminate(self) -> None:
        self.terminated = True
        self.exit(-15)


class FakeLauncher(IProcessLauncher):
    def __init__(self) -> None:
        self.shells: List[Tuple[ITerminal, FakeProcess]] = []
        self.commands: List[Tuple[str, FakeProcess, MemoryStream]] = []
        self.programs: List[Tuple[Sequence[str], FakeProcess, MemoryStream]] = []
        self.fail = False

    def spawn_shell(self, terminal: ITerminal) -> IChildProcess:
        if self.fail:
            raise ResourceError("fork failed")
        process = FakeProcess()
        self.shells.append((terminal, process))
        return process

    def spawn_command(self, command: str) -> Tuple[IChildProcess, IByteStream]:
        if self.fail:
            raise ResourceError("fork failed")
        process, stream = FakeProcess(), MemoryStream("process")
        self.commands.append((command, process, stream))
        return process, stream

    def spawn_program(self, argv: Sequence[str],
                      merge_stderr: bool = True) -> Tuple[IChildProcess, IByteStream]:
        if self.fail:
            raise ResourceError("fork failed")
        process, stream = FakeProcess(), MemoryStream("program")
        self.programs.append((argv, process, stream))
        return process, stream


class FakeFileTransferService(IFileTransferService):
    """Echoes everything it receives until end-of-stream."""

    def __init__(self, name: str = "sftp", available: bool = True,
                 error: Optional[str] = None) -> None:
        self._name = name
        self.available = available
        self.error = error
        self.served: List[IByteStream] = []

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return self.available

    async def serve(self, stream: IByteStream) -> None:
        self.served.append(stream)
        while True:
            data = await stream.read(1024)
            if not data:
                break
            await stream.write(data)
        if self.error:
            raise FileTransferError(self.error, 1)


class FakeDialer(IDialer):
    def __init__(self, error: Optional[BaseException] = None) -> None:
        self.error = error
        self.dials: List[Tuple[str, int]] = []
        self.streams: List[MemoryStream] = []

    async def dial(self, host: str, port: int) -> IByteStream:
        self.dials.append((host, port))
        if self.error is not None:
            raise self.error
        stream = MemoryStream(f"{host}:{port}")
        self.streams.append(stream)
        return stream


@pytest.fixture
def memory_stream() -> Callable[..., MemoryStream]:
    """Factory for in-memory streams."""
    return MemoryStream


@pytest.fixture
def terminal_factory() -> FakeTerminalFactory:
    return FakeTerminalFactory()


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def sftp_service() -> FakeFileTransferService:
    return FakeFileTransferService()


@pytest.fixture
def dialer() -> FakeDialer:
    return FakeDialer()

