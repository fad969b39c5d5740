"""
SSH connection acceptor built on asyncssh.

``SSHAcceptor`` owns the listening socket. Each accepted connection gets a
``BurrowSSHServer`` that authenticates the client through the password
authenticator and then routes every channel-open event to a per-connection
``ChannelDispatcher``.
"""

import asyncio
import time
from typing import Any, Callable, Dict, Optional, Set

import asyncssh
from loguru import logger

from ...core.domain.channels import ChannelKind, ChannelOpen, ConnectionInfo, DirectTcpIpTarget, RejectReason
from ...core.exceptions import ChannelOpenRejected
from ...core.interfaces.lifecycle import IComponent
from ...core.services.dispatcher import ChannelDispatcher
from ...core.services.session_handler import SessionHandler
from ...core.services.tunnel_handler import TunnelHandler
from ..auth.authenticator import PasswordAuthenticator
from ..config.models import ServerConfig
from .host_keys import load_host_key
from .sessions import SSHSessionAdapter, SSHTunnelAdapter

DispatcherFactory = Callable[[ConnectionInfo], ChannelDispatcher]

DIRECT_STREAMLOCAL = "direct-streamlocal@openssh.com"


class BurrowSSHServer(asyncssh.SSHServer):
    """Per-connection asyncssh server object."""

    def __init__(self, acceptor: 'SSHAcceptor') -> None:
        self._acceptor = acceptor
        self._conn: Optional[Any] = None
        self._peer_host = ""
        self._peer_port = 0
        self._username = ""
        self._info: Optional[ConnectionInfo] = None
        self._dispatcher: Optional[ChannelDispatcher] = None

    @property
    def peer(self) -> str:
        return f"{self._peer_host}:{self._peer_port}"

    @property
    def dispatcher(self) -> Optional[ChannelDispatcher]:
        return self._dispatcher

    def connection_made(self, conn: Any) -> None:
        self._conn = conn
        peername = conn.get_extra_info('peername')
        if peername:
            self._peer_host, self._peer_port = peername[0], peername[1]
        self._acceptor._connection_opened(self)
        logger.debug(f"Connection from {self.peer}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if self._dispatcher is not None:
            self._dispatcher.close()
            logger.info(f"Connection {self._info.connection_id if self._info else ''} from "
                        f"{self.peer} closed")
        else:
            self._acceptor._handshake_failed(self, exc)
        self._acceptor._connection_closed(self)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()

    # Authentication

    def begin_auth(self, username: str) -> bool:
        self._username = username
        return True

    def password_auth_supported(self) -> bool:
        return True

    async def validate_password(self, username: str, password: str) -> bool:
        return await self._acceptor.authenticator.authenticate(username, password, self.peer)

    def auth_completed(self) -> None:
        self._info = ConnectionInfo(username=self._username,
                                    peer_host=self._peer_host,
                                    peer_port=self._peer_port)
        self._dispatcher = self._acceptor.dispatcher_factory(self._info)
        self._acceptor._authenticated(self)
        logger.info(f"User {self._username} logged in from {self.peer} "
                    f"(connection {self._info.connection_id})")

    # Channel opens

    def session_requested(self) -> Any:
        return self._open_session()

    def connection_requested(self, dest_host: str, dest_port: int,
                             orig_host: str, orig_port: int) -> Any:
        target = DirectTcpIpTarget(dest_host, dest_port, orig_host, orig_port)
        return self._open_tunnel(target)

    def unix_connection_requested(self, dest_path: str) -> Any:
        return self._dispatch(ChannelOpen(kind=DIRECT_STREAMLOCAL))

    # Connection-level requests

    def server_requested(self, listen_host: str, listen_port: int) -> bool:
        logger.info(f"Refusing tcpip-forward {listen_host}:{listen_port} from {self.peer}")
        return False

    def unix_server_requested(self, listen_path: str) -> bool:
        logger.info(f"Refusing streamlocal-forward {listen_path} from {self.peer}")
        return False

    async def _open_session(self) -> SSHSessionAdapter:
        handler = await self._dispatch(ChannelOpen(kind=ChannelKind.SESSION.value))
        assert isinstance(handler, SessionHandler)
        return SSHSessionAdapter(handler)

    async def _open_tunnel(self, target: DirectTcpIpTarget) -> SSHTunnelAdapter:
        handler = await self._dispatch(ChannelOpen(kind=ChannelKind.DIRECT_TCPIP.value, target=target))
        assert isinstance(handler, TunnelHandler)
        return SSHTunnelAdapter(handler)

    async def _dispatch(self, request: ChannelOpen) -> Any:
        if self._dispatcher is None:
            raise asyncssh.ChannelOpenError(int(RejectReason.ADMINISTRATIVELY_PROHIBITED),
                                            "not authenticated")
        try:
            return await self._dispatcher.dispatch(request)
        except ChannelOpenRejected as e:
            raise asyncssh.ChannelOpenError(int(e.reason), e.message)


class SSHAcceptor(IComponent):
    """
    Listens for SSH connections.

    A failed handshake or login only closes that connection; it is logged
    and counted and the acceptor keeps accepting.

    Args:
        config: Listener configuration
        authenticator: Password authentication component
        dispatcher_factory: Builds the channel dispatcher of a new connection
    """

    def __init__(self, config: ServerConfig, authenticator: PasswordAuthenticator,
                 dispatcher_factory: DispatcherFactory) -> None:
        self._config = config
        self._authenticator = authenticator
        self._dispatcher_factory = dispatcher_factory
        self._server: Optional[Any] = None
        self._connections: Set[BurrowSSHServer] = set()
        self._started_at: Optional[float] = None
        self._metrics = {
            'connections_accepted': 0,
            'connections_authenticated': 0,
            'handshake_failures': 0,
        }

    @property
    def name(self) -> str:
        return "SSHAcceptor"

    @property
    def authenticator(self) -> PasswordAuthenticator:
        return self._authenticator

    @property
    def dispatcher_factory(self) -> DispatcherFactory:
        return self._dispatcher_factory

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> Optional[int]:
        """The bound port, useful when configured with port 0."""
        if self._server is None:
            return None
        return int(self._server.get_port())

    @property
    def connections(self) -> Set[BurrowSSHServer]:
        return set(self._connections)

    def get_metrics(self) -> Dict[str, Any]:
        return dict(self._metrics, connections_active=len(self._connections))

    async def start(self) -> None:
        if self._server is not None:
            return

        host_key = load_host_key(self._config.host_key_path, self._config.generate_host_key)

        self._server = await asyncssh.create_server(
            lambda: BurrowSSHServer(self),
            self._config.host,
            self._config.port,
            server_host_keys=[host_key],
            server_version=self._config.server_version,
            login_timeout=self._config.login_timeout,
            encoding=None,
            line_editor=False,
            agent_forwarding=False,
            x11_forwarding=False,
        )
        self._started_at = time.time()
        logger.info(f"Listening for SSH connections on {self._config.host}:{self.port}")

    async def stop(self) -> None:
        if self._server is None:
            return

        server, self._server = self._server, None
        server.close()
        for connection in list(self._connections):
            connection.close()
        await server.wait_closed()
        # Let connection_lost callbacks run before returning
        await asyncio.sleep(0)
        logger.info("SSH acceptor stopped")

    async def check_health(self) -> Dict[str, Any]:
        return {
            'healthy': self._server is not None,
            'status': 'running' if self._server is not None else 'stopped',
            'details': {
                'address': f"{self._config.host}:{self.port}",
                'uptime': time.time() - self._started_at if self._started_at else 0,
                **self.get_metrics(),
            }
        }

    # Callbacks from BurrowSSHServer

    def _connection_opened(self, connection: BurrowSSHServer) -> None:
        self._connections.add(connection)
        self._metrics['connections_accepted'] += 1

    def _connection_closed(self, connection: BurrowSSHServer) -> None:
        self._connections.discard(connection)

    def _authenticated(self, connection: BurrowSSHServer) -> None:
        self._metrics['connections_authenticated'] += 1

    def _handshake_failed(self, connection: BurrowSSHServer, exc: Optional[Exception]) -> None:
        self._metrics['handshake_failures'] += 1
        logger.warning(f"Connection from {connection.peer} closed before authentication"
                       f"{f': {exc}' if exc else ''}")
