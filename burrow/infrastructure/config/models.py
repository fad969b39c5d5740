"""
Configuration models and data structures.

This module defines the configuration models used throughout the server,
providing type safety and validation for configuration values.
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


AUTH_BACKENDS = ("local", "system")


@dataclass
class ServerConfig:
    """SSH listener configuration."""
    host: str = "0.0.0.0"
    port: int = 2222
    host_key_path: str = "ssh_host_key"
    generate_host_key: bool = True
    login_timeout: float = 120.0
    server_version: str = "Burrow_0.1"


@dataclass
class AuthConfig:
    """
    Password authentication configuration.

    ``backend`` is ``local`` (the bcrypt password store at ``password_file``)
    or ``system`` (the host shadow database). The system backend understands
    sha512-crypt, sha256-crypt, md5-crypt and bcrypt hashes only; accounts
    hashed with yescrypt (``$y$``), the default on current Debian, Ubuntu and
    Fedora, cannot log in through it.
    """
    backend: str = "local"
    password_file: str = "burrow.passwd"
    require_system_account: bool = False
    bcrypt_rounds: int = 12
    shadow_file: Optional[str] = None


@dataclass
class SessionConfig:
    """Session channel configuration."""
    shell: Optional[str] = None
    default_term: str = "xterm"
    default_cols: int = 80
    default_rows: int = 24
    sftp_enabled: bool = True
    sftp_subsystem: str = "sftp"
    sftp_server_path: Optional[str] = None

    def resolve_shell(self) -> str:
        """Configured shell, else ``$SHELL``, else ``sh``."""
        return self.shell or os.environ.get("SHELL") or "sh"


@dataclass
class ForwardingConfig:
    """direct-tcpip forwarding configuration."""
    enabled: bool = True
    allowed_destinations: List[str] = field(default_factory=list)
    dial_timeout: float = 10.0


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_directory: str = "logs"
    max_file_size: str = "10 MB"
    backup_count: int = 5
    console_enabled: bool = True
    file_enabled: bool = True


@dataclass
class ApplicationConfig:
    """Main application configuration."""

    name: str = "Burrow"
    version: str = "0.1.0"
    debug: bool = False
    environment: str = "production"

    server: ServerConfig = field(default_factory=ServerConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    forwarding: ForwardingConfig = field(default_factory=ForwardingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_file_path: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate_ports()
        self._validate_auth()
        self._validate_session()
        self._validate_timeouts()

    def _validate_ports(self) -> None:
        if not (0 <= self.server.port <= 65535):
            raise ValueError(f"SSH port must be between 0 and 65535, got {self.server.port}")

    def _validate_auth(self) -> None:
        if self.auth.backend not in AUTH_BACKENDS:
            raise ValueError(
                f"Auth backend must be one of {', '.join(AUTH_BACKENDS)}, got {self.auth.backend}")
        if not (4 <= self.auth.bcrypt_rounds <= 31):
            raise ValueError(f"bcrypt rounds must be between 4 and 31, got {self.auth.bcrypt_rounds}")
        if not self.auth.password_file:
            raise ValueError("Password file path must not be empty")

    def _validate_session(self) -> None:
        if self.session.default_cols <= 0 or self.session.default_rows <= 0:
            raise ValueError(
                f"Default terminal size must be positive, got "
                f"{self.session.default_cols}x{self.session.default_rows}")

    def _validate_timeouts(self) -> None:
        timeouts = [
            ("Login timeout", self.server.login_timeout),
            ("Dial timeout", self.forwarding.dial_timeout),
        ]

        for name, timeout in timeouts:
            if timeout <= 0:
                raise ValueError(f"{name} must be positive, got {timeout}")

    def ensure_directories(self) -> None:
        """Create the directories the configured paths live in."""
        paths = [
            Path(self.auth.password_file).parent,
            Path(self.server.host_key_path).parent,
        ]
        if self.logging.file_enabled:
            paths.append(Path(self.logging.log_directory))

        for path in paths:
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ValueError(f"Cannot create directory {path}: {e}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApplicationConfig':
        """Create configuration from dictionary."""
        return cls(
            name=data.get('name', 'Burrow'),
            version=data.get('version', '0.1.0'),
            debug=data.get('debug', False),
            environment=data.get('environment', 'production'),
            server=ServerConfig(**data.get('server', {})),
            auth=AuthConfig(**data.get('auth', {})),
            session=SessionConfig(**data.get('session', {})),
            forwarding=ForwardingConfig(**data.get('forwarding', {})),
            logging=LoggingConfig(**data.get('logging', {})),
            config_file_path=data.get('config_file_path'),
        )
