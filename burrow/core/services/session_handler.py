"""
Session channel state machine.

A session channel starts idle, may allocate a pseudo-terminal, and is then
claimed by exactly one activity (shell, exec or subsystem). The activity
owns the channel stream until it ends, after which the channel is torn down
a single time.

    IDLE -> PTY_ALLOCATED -> ACTIVE(SHELL | EXEC | SUBSYSTEM) -> CLOSED
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Type

from loguru import logger

from ..domain.channels import WindowSize
from ..domain.requests import (
    ChannelRequest, ExecRequest, PtyRequest, ShellRequest, SubsystemRequest,
    UnsupportedRequest, WindowChangeRequest
)
from ..exceptions import FileTransferError, ResourceError, StreamClosedError
from ..interfaces.session import (
    IChildProcess, IFileTransferService, IProcessLauncher, ITerminal, ITerminalFactory
)
from ..interfaces.streams import IByteStream
from .bridge import ShutdownSignal, StreamBridge, pump

DEFAULT_TERM_TYPE = "xterm"
DEFAULT_WINDOW_SIZE = WindowSize(80, 24)


class SessionState(str, Enum):
    """Lifecycle states of a session channel."""
    IDLE = "idle"
    PTY_ALLOCATED = "pty_allocated"
    ACTIVE = "active"
    CLOSED = "closed"


class ActivityKind(str, Enum):
    """The long-lived activity that claimed the channel."""
    SHELL = "shell"
    EXEC = "exec"
    SUBSYSTEM = "subsystem"


class SessionHandler:
    """
    Interprets the requests of one session channel.

    ``handle_request`` returns the reply to send: True for success, False
    for failure, or None when no reply must be sent (window-change).

    Args:
        channel_id: Identifier used in log messages
        terminals: Pseudo-terminal factory
        launcher: Process launcher for shells and commands
        subsystems: File-transfer services keyed by subsystem name
        default_term: Terminal type for an implicitly allocated pty
        default_size: Window size for an implicitly allocated pty
    """

    def __init__(self,
                 channel_id: str,
                 terminals: ITerminalFactory,
                 launcher: IProcessLauncher,
                 subsystems: Optional[Mapping[str, IFileTransferService]] = None,
                 default_term: str = DEFAULT_TERM_TYPE,
                 default_size: WindowSize = DEFAULT_WINDOW_SIZE) -> None:
        self._channel_id = channel_id
        self._terminals = terminals
        self._launcher = launcher
        self._subsystems: Dict[str, IFileTransferService] = dict(subsystems or {})
        self._default_term = default_term
        self._default_size = default_size

        self._state = SessionState.IDLE
        self._activity: Optional[ActivityKind] = None
        self._stream: Optional[IByteStream] = None
        self._terminal: Optional[ITerminal] = None
        self._process: Optional[IChildProcess] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = ShutdownSignal(f"session:{channel_id}")

        self._handlers: Dict[Type[ChannelRequest], Callable[[Any], Optional[bool]]] = {
            PtyRequest: self._handle_pty_request,
            WindowChangeRequest: self._handle_window_change,
            ShellRequest: self._handle_shell,
            ExecRequest: self._handle_exec,
            SubsystemRequest: self._handle_subsystem,
        }

    @property
    def channel_id(self) -> str:
        return self._channel_id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def activity(self) -> Optional[ActivityKind]:
        return self._activity

    @property
    def terminal(self) -> Optional[ITerminal]:
        return self._terminal

    @property
    def process(self) -> Optional[IChildProcess]:
        return self._process

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set

    def attach(self, stream: IByteStream) -> None:
        """Bind the channel byte stream once the channel has been accepted."""
        if self._stream is not None:
            raise RuntimeError(f"Channel {self._channel_id} already has a stream")
        self._stream = stream

    def handle_request(self, request: ChannelRequest) -> Optional[bool]:
        """
        Apply one channel request to the state machine.

        Args:
            request: Decoded channel request

        Returns:
            True/False for the reply to send, None when no reply is expected
        """
        handler = self._handlers.get(type(request), self._handle_unsupported)
        try:
            result = handler(request)
        except (ResourceError, OSError) as e:
            logger.error(f"{request.name} request on channel {self._channel_id} failed: {e}")
            result = False

        if result is False:
            logger.info(f"Declining {request.name} request on channel {self._channel_id}")
        return result

    def close(self) -> None:
        """Called when the transport reports the channel closed."""
        if self._closed.is_set:
            return
        if self._activity is None:
            asyncio.ensure_future(self._teardown("channel closed"))
        elif self._activity is ActivityKind.EXEC and self._process is not None \
                and self._process.returncode is None:
            logger.debug(f"Channel {self._channel_id} closed, terminating pid {self._process.pid}")
            self._process.terminate()

    async def wait_closed(self) -> None:
        """Wait until the channel has been torn down and its activity finished."""
        await self._closed.wait()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # Request handlers

    def _handle_pty_request(self, request: PtyRequest) -> bool:
        if self._state is SessionState.CLOSED:
            return False
        if self._terminal is None:
            if self._state is SessionState.ACTIVE:
                return False
            self._terminal = self._terminals.open(request.term_type, request.size)
            self._state = SessionState.PTY_ALLOCATED
            logger.debug(f"Allocated pty {request.term_type} {request.size.cols}x{request.size.rows} "
                         f"for channel {self._channel_id}")
        else:
            self._terminal.resize(request.size)
        return True

    def _handle_window_change(self, request: WindowChangeRequest) -> None:
        if self._terminal is None or self._terminal.is_closed:
            return None
        try:
            self._terminal.resize(request.size)
        except OSError as e:
            logger.debug(f"Resize on channel {self._channel_id} failed: {e}")
        return None

    def _handle_shell(self, request: ShellRequest) -> bool:
        if not self._can_start(ActivityKind.SHELL) or request.payload:
            return False

        implicit = self._terminal is None
        if self._terminal is None:
            self._terminal = self._terminals.open(self._default_term, self._default_size)
        try:
            self._process = self._launcher.spawn_shell(self._terminal)
        except (ResourceError, OSError):
            if implicit:
                self._terminal.close()
                self._terminal = None
            raise

        logger.info(f"Started shell pid {self._process.pid} on channel {self._channel_id}")
        self._start_activity(ActivityKind.SHELL, self._run_shell)
        return True

    def _handle_exec(self, request: ExecRequest) -> bool:
        if not self._can_start(ActivityKind.EXEC) or not request.command:
            return False

        process, process_stream = self._launcher.spawn_command(request.command)
        self._process = process
        logger.info(f"Started command pid {process.pid} on channel {self._channel_id}")
        self._start_activity(ActivityKind.EXEC, lambda: self._run_exec(process, process_stream))
        return True

    def _handle_subsystem(self, request: SubsystemRequest) -> bool:
        if not self._can_start(ActivityKind.SUBSYSTEM):
            return False

        service = self._subsystems.get(request.subsystem)
        if service is None or not service.is_available():
            logger.warning(f"Unsupported subsystem {request.subsystem!r} on channel {self._channel_id}")
            return False

        logger.info(f"Starting {service.name} subsystem on channel {self._channel_id}")
        self._start_activity(ActivityKind.SUBSYSTEM, lambda: self._run_subsystem(service))
        return True

    def _handle_unsupported(self, request: ChannelRequest) -> bool:
        return False

    # Activities

    def _can_start(self, kind: ActivityKind) -> bool:
        if self._stream is None or self._state is SessionState.CLOSED:
            return False
        if self._activity is not None:
            logger.warning(f"Channel {self._channel_id} is already running {self._activity.value}, "
                           f"refusing {kind.value}")
            return False
        return True

    def _start_activity(self, kind: ActivityKind,
                        factory: Callable[[], Awaitable[None]]) -> None:
        self._activity = kind
        self._state = SessionState.ACTIVE
        self._task = asyncio.ensure_future(factory())
        self._task.add_done_callback(self._on_activity_done)

    def _on_activity_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"{self._activity.value if self._activity else 'activity'} on channel "
                         f"{self._channel_id} failed: {exc}")
            asyncio.ensure_future(self._teardown("activity failed"))

    async def _run_shell(self) -> None:
        assert self._stream is not None and self._terminal is not None
        bridge = StreamBridge(self._stream, self._terminal.open_stream(),
                              name=f"shell:{self._channel_id}")
        reason = await bridge.run()
        logger.info(f"Shell on channel {self._channel_id} ended ({reason})")
        await self._teardown("shell ended")
        await self._reap()

    async def _run_exec(self, process: IChildProcess, process_stream: IByteStream) -> None:
        assert self._stream is not None
        feeder = asyncio.ensure_future(self._feed_stdin(process_stream))
        try:
            await pump(process_stream, self._stream, f"exec:{self._channel_id}:output")
            await self._reap()
        finally:
            if not feeder.done():
                feeder.cancel()
            await asyncio.gather(feeder, return_exceptions=True)
            await process_stream.close()
            await self._teardown("command exited")

    async def _feed_stdin(self, process_stream: IByteStream) -> None:
        assert self._stream is not None
        await pump(self._stream, process_stream, f"exec:{self._channel_id}:input")
        try:
            await process_stream.write_eof()
        except (OSError, StreamClosedError):
            pass

    async def _run_subsystem(self, service: IFileTransferService) -> None:
        assert self._stream is not None
        try:
            await service.serve(self._stream)
            logger.info(f"{service.name} client on channel {self._channel_id} exited session")
        except FileTransferError as e:
            logger.error(f"{service.name} server on channel {self._channel_id} completed with error: {e}")
        finally:
            await self._teardown("subsystem ended")

    async def _reap(self) -> None:
        if self._process is None:
            return
        returncode = await self._process.wait()
        logger.debug(f"Reaped pid {self._process.pid} on channel {self._channel_id} "
                     f"with status {returncode}")

    async def _teardown(self, reason: str) -> None:
        if not self._closed.trigger(reason):
            return
        self._state = SessionState.CLOSED
        if self._stream is not None:
            try:
                await self._stream.close()
            except (OSError, StreamClosedError) as e:
                logger.debug(f"Error closing channel {self._channel_id}: {e}")
        if self._terminal is not None:
            self._terminal.close()
        logger.info(f"Session channel {self._channel_id} closed ({reason})")
