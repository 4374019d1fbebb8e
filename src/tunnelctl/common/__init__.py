"""Common utilities and shared functionality."""

from .exceptions import (
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
from .logging import get_logger, setup_logging
from .process import CommandResult, CommandRunner
from .utils import (
    MAX_PORT,
    MIN_PORT,
    mask_sensitive_data,
    sanitize_log_data,
    validate_name,
    validate_port,
    validate_subdomain,
)

__all__ = [
    # Process execution
    "CommandRunner",
    "CommandResult",
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
    # Logging
    "get_logger",
    "setup_logging",
    # Utils
    "validate_name",
    "validate_port",
    "validate_subdomain",
    "mask_sensitive_data",
    "sanitize_log_data",
    "MIN_PORT",
    "MAX_PORT",
]
