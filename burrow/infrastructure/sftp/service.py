"""
SFTP subsystem backed by the OpenSSH ``sftp-server`` program.

Burrow never parses SFTP itself: the channel's byte stream is connected to
the server program's stdin and stdout until the client ends the session.
"""

import asyncio
import os
import shutil
from typing import Optional, Sequence

from loguru import logger

from ...core.exceptions import FileTransferError, ResourceError
from ...core.interfaces.session import IFileTransferService, IProcessLauncher
from ...core.interfaces.streams import IByteStream
from ...core.services.bridge import pump

SFTP_SERVER_CANDIDATES = (
    "/usr/lib/openssh/sftp-server",
    "/usr/libexec/openssh/sftp-server",
    "/usr/lib/ssh/sftp-server",
    "/usr/libexec/sftp-server",
)


def find_sftp_server(configured: Optional[str] = None,
                     candidates: Sequence[str] = SFTP_SERVER_CANDIDATES) -> Optional[str]:
    """
    Locate an executable ``sftp-server``.

    A configured path is used as is (or not at all); otherwise the usual
    install locations and ``PATH`` are searched.
    """
    if configured:
        return configured if os.access(configured, os.X_OK) else None

    for path in candidates:
        if os.access(path, os.X_OK):
            return path
    return shutil.which("sftp-server")


class SftpSubprocessService(IFileTransferService):
    """
    Serves SFTP sessions by running one ``sftp-server`` per channel.

    Args:
        launcher: Used to start the server program
        server_path: Explicit program location, searched for when omitted
        subsystem: Subsystem name clients request
    """

    def __init__(self, launcher: IProcessLauncher, server_path: Optional[str] = None,
                 subsystem: str = "sftp") -> None:
        self._launcher = launcher
        self._subsystem = subsystem
        self._server_path = find_sftp_server(server_path)
        if self._server_path is None:
            logger.error(f"No sftp-server program found, the {subsystem} subsystem is unavailable")

    @property
    def name(self) -> str:
        return self._subsystem

    @property
    def server_path(self) -> Optional[str]:
        return self._server_path

    def is_available(self) -> bool:
        return self._server_path is not None

    async def serve(self, stream: IByteStream) -> None:
        if self._server_path is None:
            raise FileTransferError("sftp-server is not available")

        try:
            process, server = self._launcher.spawn_program([self._server_path], merge_stderr=False)
        except ResourceError as e:
            raise FileTransferError(f"sftp server init error: {e}")

        label = f"sftp:{process.pid}"
        feeder = asyncio.ensure_future(self._feed(stream, server, label))
        try:
            await pump(server, stream, f"{label}:output")
            returncode = await process.wait()
        finally:
            if not feeder.done():
                feeder.cancel()
            await asyncio.gather(feeder, return_exceptions=True)
            if process.returncode is None:
                process.terminate()
                await process.wait()
            await server.close()

        if returncode != 0:
            raise FileTransferError(f"sftp-server exited with status {returncode}", returncode)

    async def _feed(self, stream: IByteStream, server: IByteStream, label: str) -> None:
        await pump(stream, server, f"{label}:input")
        try:
            await server.write_eof()
        except OSError as e:
            logger.debug(f"Error closing {label} input: {e}")
