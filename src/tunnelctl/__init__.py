"""tunnelctl - create, run and delete cloudflared tunnels with their DNS records."""

from .common.exceptions import (
    BinaryNotFoundError,
    ConfigExistsError,
    ConfigNotFoundError,
    ConfigStoreError,
    ConfigurationError,
    DNSError,
    LifecycleError,
    NoIdentifierReturnedError,
    ProcessError,
    ProviderError,
    ServiceError,
    TunnelCtlError,
    ValidationError,
    ValidationErrorKind,
)
from .common.logging import get_logger, setup_logging
from .common.process import CommandResult, CommandRunner
from .common.utils import validate_name, validate_port, validate_subdomain
from .dns import DNSRecordManager
from .lifecycle import (
    CreateResult,
    CreateState,
    DeleteResult,
    DeleteState,
    TunnelLifecycle,
)
from .models import IngressRule, Tunnel, TunnelConfig
from .provider import ProviderTunnel, TunnelProvider, extract_tunnel_id
from .service import ServiceRegistrar
from .settings import Settings, load_settings
from .store import LocalConfigStore

__version__ = "0.1.0"


__all__ = [
    # Lifecycle
    "TunnelLifecycle",
    "CreateResult",
    "CreateState",
    "DeleteResult",
    "DeleteState",
    # Components
    "TunnelProvider",
    "ProviderTunnel",
    "extract_tunnel_id",
    "DNSRecordManager",
    "LocalConfigStore",
    "ServiceRegistrar",
    "CommandRunner",
    "CommandResult",
    # Models and settings
    "Tunnel",
    "TunnelConfig",
    "IngressRule",
    "Settings",
    "load_settings",
    # Exceptions
    "TunnelCtlError",
    "ValidationError",
    "ValidationErrorKind",
    "ConfigurationError",
    "ProcessError",
    "ProviderError",
    "BinaryNotFoundError",
    "NoIdentifierReturnedError",
    "DNSError",
    "ConfigStoreError",
    "ConfigNotFoundError",
    "ConfigExistsError",
    "ServiceError",
    "LifecycleError",
    # Utilities
    "get_logger",
    "setup_logging",
    "validate_name",
    "validate_port",
    "validate_subdomain",
]
