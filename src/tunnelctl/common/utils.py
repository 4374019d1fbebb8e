"""Identifier validation and log-safety helpers."""

import re
from typing import Any

from .exceptions import ValidationError, ValidationErrorKind

# Port range constants
MIN_PORT = 1
MAX_PORT = 65535

# No leading hyphen, so names never parse as cloudflared flags
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9-]*$")


def _validate_identifier(
    value: Any, kind: ValidationErrorKind, field_name: str
) -> str:
    if not isinstance(value, str) or not IDENTIFIER_PATTERN.fullmatch(value):
        raise ValidationError(
            kind,
            f"{field_name} '{value}' is invalid: "
            "only letters, digits and hyphens are allowed, not starting with a hyphen",
        )
    return value


def validate_name(value: Any) -> str:
    """Validate a tunnel name.

    Args:
        value: Candidate tunnel name

    Returns:
        The name, unchanged

    Raises:
        ValidationError: With kind INVALID_NAME if the name is empty or
            contains characters outside [A-Za-z0-9-] or starts with a hyphen
    """
    return _validate_identifier(value, ValidationErrorKind.INVALID_NAME, "Tunnel name")


def validate_subdomain(value: Any) -> str:
    """Validate a subdomain label.

    Raises:
        ValidationError: With kind INVALID_SUBDOMAIN on bad input
    """
    return _validate_identifier(
        value, ValidationErrorKind.INVALID_SUBDOMAIN, "Subdomain"
    )


def validate_port(value: Any) -> int:
    """Validate a local port given as an int or a decimal string.

    Args:
        value: Port number or its string form (as read from the command line)

    Returns:
        The port as an int

    Raises:
        ValidationError: With kind INVALID_PORT if the value is not an
            integer or lies outside 1-65535
    """
    port: int | None = None
    if isinstance(value, bool):
        port = None
    elif isinstance(value, int):
        port = value
    elif isinstance(value, str) and re.fullmatch(r"[+-]?\d+", value.strip()):
        port = int(value.strip())

    if port is None:
        raise ValidationError(
            ValidationErrorKind.INVALID_PORT, f"Port '{value}' is not a number"
        )
    if not (MIN_PORT <= port <= MAX_PORT):
        raise ValidationError(
            ValidationErrorKind.INVALID_PORT,
            f"Port must be between {MIN_PORT} and {MAX_PORT}, got {port}",
        )
    return port


def mask_sensitive_data(
    value: str | None, mask_char: str = "*", show_chars: int = 4
) -> str:
    """Mask a secret for logging, keeping the last few characters.

    Args:
        value: Secret to mask (API key, token)
        mask_char: Character to use for masking
        show_chars: Number of characters to show at the end

    Returns:
        Masked string safe for logging
    """
    if not value:
        return "<None>"

    if len(value) <= show_chars:
        return mask_char * len(value)

    masked_length = len(value) - show_chars
    return mask_char * masked_length + value[-show_chars:]


def sanitize_log_data(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with credential-looking fields masked."""
    sensitive_fields = {
        "token",
        "password",
        "secret",
        "key",
        "auth",
    }

    sanitized = {}
    for key, value in data.items():
        if any(sensitive_field in key.lower() for sensitive_field in sensitive_fields):
            sanitized[key] = mask_sensitive_data(str(value) if value else None)
        else:
            sanitized[key] = value

    return sanitized
