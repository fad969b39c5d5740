"""
Application startup and wiring.

This module builds every component from the application configuration,
wires the per-connection dispatcher factory, and manages the ordered
startup and shutdown of the long-lived components.
"""

from typing import Dict, List, Optional

from loguru import logger

from ..core.domain.channels import ConnectionInfo, WindowSize
from ..core.interfaces.auth import AuthContext, IPasswordVerifier
from ..core.interfaces.lifecycle import IComponent
from ..core.interfaces.session import IFileTransferService, IProcessLauncher, ITerminalFactory
from ..core.services.dispatcher import ChannelDispatcher
from ..core.services.session_handler import SessionHandler
from ..core.services.tunnel_handler import TunnelOpener
from ..infrastructure.auth import (
    AuthSettings, LocalPasswordStore, PasswordAuthenticator, ShadowPasswordVerifier,
    default_auth_context
)
from ..infrastructure.config.models import ApplicationConfig
from ..infrastructure.net import PatternForwardPolicy, TcpDialer
from ..infrastructure.sftp import SftpSubprocessService
from ..infrastructure.ssh import SSHAcceptor
from ..infrastructure.terminal import ProcessLauncher, PtyFactory


def build_password_store(config: ApplicationConfig,
                         context: Optional[AuthContext] = None) -> LocalPasswordStore:
    """Create the local password store described by ``config``."""
    settings = AuthSettings(
        bcrypt_rounds=config.auth.bcrypt_rounds,
        require_system_account=config.auth.require_system_account,
    )
    return LocalPasswordStore(config.auth.password_file, context or default_auth_context(), settings)


def build_verifier(config: ApplicationConfig,
                   context: Optional[AuthContext] = None) -> IPasswordVerifier:
    """Create the verification backend selected by ``auth.backend``."""
    context = context or default_auth_context()
    if config.auth.backend == "system":
        return ShadowPasswordVerifier(context, config.auth.shadow_file)
    return build_password_store(config, context)


class ApplicationStartup:
    """
    Builds and runs the server.

    Args:
        config: Validated application configuration
        auth_context: Capabilities for password verification
    """

    def __init__(self, config: ApplicationConfig, auth_context: Optional[AuthContext] = None) -> None:
        self._config = config
        self._auth_context = auth_context or default_auth_context()
        self._started_components: List[IComponent] = []

        self._terminals: Optional[ITerminalFactory] = None
        self._launcher: Optional[IProcessLauncher] = None
        self._subsystems: Dict[str, IFileTransferService] = {}
        self._tunnel_opener: Optional[TunnelOpener] = None
        self._authenticator: Optional[PasswordAuthenticator] = None
        self._acceptor: Optional[SSHAcceptor] = None

    @property
    def config(self) -> ApplicationConfig:
        return self._config

    @property
    def acceptor(self) -> Optional[SSHAcceptor]:
        return self._acceptor

    @property
    def authenticator(self) -> Optional[PasswordAuthenticator]:
        return self._authenticator

    def configure_services(self) -> None:
        """Create every component from configuration."""
        if self._acceptor is not None:
            return

        logger.info("Configuring application services...")
        config = self._config

        verifier = build_verifier(config, self._auth_context)
        if isinstance(verifier, LocalPasswordStore):
            verifier.initialize()
        self._authenticator = PasswordAuthenticator(verifier, config.auth.backend)

        self._terminals = PtyFactory()
        self._launcher = ProcessLauncher(config.session.resolve_shell())

        if config.session.sftp_enabled:
            sftp = SftpSubprocessService(self._launcher, config.session.sftp_server_path,
                                         config.session.sftp_subsystem)
            self._subsystems[sftp.name] = sftp

        if config.forwarding.enabled:
            policy = PatternForwardPolicy(True, config.forwarding.allowed_destinations)
            self._tunnel_opener = TunnelOpener(TcpDialer(config.forwarding.dial_timeout), policy)

        self._acceptor = SSHAcceptor(config.server, self._authenticator, self.create_dispatcher)

        logger.info("Service configuration completed")

    def create_dispatcher(self, connection: ConnectionInfo) -> ChannelDispatcher:
        """Dispatcher factory handed to the acceptor, one per connection."""
        return ChannelDispatcher(connection, self.create_session_handler, self._tunnel_opener)

    def create_session_handler(self, channel_id: str) -> SessionHandler:
        assert self._terminals is not None and self._launcher is not None
        session = self._config.session
        return SessionHandler(
            channel_id,
            self._terminals,
            self._launcher,
            self._subsystems,
            default_term=session.default_term,
            default_size=WindowSize(session.default_cols, session.default_rows),
        )

    async def start_application(self) -> None:
        """Start all components in order, rolling back on failure."""
        self.configure_services()
        assert self._authenticator is not None and self._acceptor is not None

        logger.info("Starting application components...")
        for component in (self._authenticator, self._acceptor):
            try:
                logger.debug(f"Starting component: {component.name}")
                await component.start()
                self._started_components.append(component)
                logger.info(f"Started component: {component.name}")
            except Exception as e:
                logger.error(f"Failed to start component {component.name}: {e}")
                await self.stop_application()
                raise

        logger.info("Application startup completed successfully")

    async def stop_application(self) -> None:
        """Stop started components in reverse order."""
        if not self._started_components:
            return

        logger.info("Stopping application components...")
        for component in reversed(self._started_components):
            try:
                await component.stop()
                logger.info(f"Stopped component: {component.name}")
            except Exception as e:
                logger.error(f"Error stopping component {component.name}: {e}")

        self._started_components.clear()
        logger.info("Application shutdown completed")
