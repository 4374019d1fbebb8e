"""Custom exceptions for tunnelctl."""

from enum import Enum
from typing import Any


class TunnelCtlError(Exception):
    """Base exception for all tunnelctl errors."""

    pass


class ValidationErrorKind(str, Enum):
    """Which identifier failed validation."""

    INVALID_NAME = "invalid_name"
    INVALID_PORT = "invalid_port"
    INVALID_SUBDOMAIN = "invalid_subdomain"


class ValidationError(TunnelCtlError):
    """Raised when a tunnel name, port or subdomain is malformed."""

    def __init__(self, kind: ValidationErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class ConfigurationError(TunnelCtlError):
    """Raised when required settings are missing or invalid."""

    pass


class ProcessError(TunnelCtlError):
    """Raised when an external process cannot be launched."""

    pass


class ProviderError(TunnelCtlError):
    """Raised when the tunnel daemon reports a failure.

    The captured diagnostic text is kept verbatim on ``output``.
    """

    def __init__(self, message: str, output: str = "", returncode: int | None = None):
        super().__init__(message)
        self.output = output
        self.returncode = returncode

    def __str__(self) -> str:
        message = super().__str__()
        if self.output:
            return f"{message}\n{self.output.rstrip()}"
        return message


class BinaryNotFoundError(ProviderError):
    """Raised when the tunnel daemon binary is not found or not executable."""

    pass


class NoIdentifierReturnedError(ProviderError):
    """Raised when tunnel creation output carries no tunnel identifier."""

    pass


class DNSError(TunnelCtlError):
    """Raised when a DNS API lookup or deletion fails."""

    def __init__(self, message: str, errors: list[Any] | None = None):
        super().__init__(message)
        self.errors = errors or []


class ConfigStoreError(TunnelCtlError):
    """Raised when a local tunnel configuration cannot be written, read or removed."""

    pass


class ConfigNotFoundError(ConfigStoreError):
    """Raised when no local configuration exists for a tunnel."""

    pass


class ConfigExistsError(ConfigStoreError):
    """Raised when creating a tunnel whose configuration already exists."""

    pass


class ServiceError(TunnelCtlError):
    """Raised when the host service manager rejects an operation."""

    pass


class LifecycleError(TunnelCtlError):
    """Raised when a create or delete stops part way.

    ``reached`` lists the lifecycle states completed before the failure.
    """

    def __init__(self, message: str, reached: list[Any]):
        super().__init__(message)
        self.reached = list(reached)
