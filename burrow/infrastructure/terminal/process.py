"""
Child processes for shell and exec sessions.
"""

import asyncio
import fcntl
import os
import signal
import subprocess
import termios
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from ...core.exceptions import ResourceError
from ...core.interfaces.session import IChildProcess, IProcessLauncher, ITerminal
from ...core.interfaces.streams import IByteStream
from .fdstream import FdStream
from .pty import PseudoTerminal


def _acquire_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is already the pty subordinate
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class ChildProcess(IChildProcess):
    """A spawned process that leads its own session."""

    def __init__(self, popen: subprocess.Popen) -> None:
        self._popen = popen

    @property
    def pid(self) -> int:
        return self._popen.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._popen.returncode

    async def wait(self) -> int:
        return await asyncio.to_thread(self._popen.wait)

    def terminate(self) -> None:
        """Send SIGTERM to the process group the child leads."""
        if self._popen.returncode is not None:
            return
        try:
            os.killpg(self._popen.pid, signal.SIGTERM)
        except (ProcessLookupError, PermissionError):
            pass


class ProcessLauncher(IProcessLauncher):
    """
    Spawns shells on pseudo-terminals and commands on pipes.

    Every child is started in a new session so job-control signals reach
    the right process group.

    Args:
        shell: Shell used for interactive sessions and ``-c`` commands
        env: Base environment for children (defaults to the server's)
    """

    def __init__(self, shell: str, env: Optional[Mapping[str, str]] = None) -> None:
        self._shell = shell
        self._env: Dict[str, str] = dict(os.environ if env is None else env)

    @property
    def shell(self) -> str:
        return self._shell

    def spawn_shell(self, terminal: ITerminal) -> IChildProcess:
        if not isinstance(terminal, PseudoTerminal) or terminal.subordinate_fd is None:
            raise ResourceError("terminal has no subordinate end to attach a shell to")

        env = dict(self._env)
        env["TERM"] = terminal.term_type
        subordinate = terminal.subordinate_fd
        try:
            popen = subprocess.Popen(
                [self._shell],
                stdin=subordinate,
                stdout=subordinate,
                stderr=subordinate,
                env=env,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
            )
        except OSError as e:
            raise ResourceError(f"cannot start shell {self._shell}: {e}")

        # The master only sees EOF once no subordinate descriptor is left open
        terminal.release_subordinate()
        return ChildProcess(popen)

    def spawn_command(self, command: str) -> Tuple[IChildProcess, IByteStream]:
        return self.spawn_program([self._shell, "-c", command])

    def spawn_program(self, argv: Sequence[str],
                      merge_stderr: bool = True) -> Tuple[IChildProcess, IByteStream]:
        stdin_read, stdin_write = os.pipe()
        stdout_read, stdout_write = os.pipe()
        try:
            popen = subprocess.Popen(
                list(argv),
                stdin=stdin_read,
                stdout=stdout_write,
                stderr=stdout_write if merge_stderr else subprocess.DEVNULL,
                env=self._env,
                start_new_session=True,
            )
        except OSError as e:
            for fd in (stdin_read, stdin_write, stdout_read, stdout_write):
                os.close(fd)
            raise ResourceError(f"cannot start {argv[0]}: {e}")

        for fd in (stdin_read, stdout_write):
            os.close(fd)

        logger.debug(f"Spawned pid {popen.pid}: {_describe(argv)}")
        return ChildProcess(popen), FdStream(stdout_read, stdin_write, name=f"pid {popen.pid}")


def _describe(argv: Sequence[str]) -> str:
    parts: List[str] = [str(a) for a in argv]
    text = " ".join(parts)
    return text if len(text) <= 120 else text[:117] + "..."
