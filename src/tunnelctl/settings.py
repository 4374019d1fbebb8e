"""Settings for tunnelctl.

Values come from (highest priority first) environment variables
(``TUNNELCTL_*``), the ``[tunnelctl]`` table of a TOML config file, a
``.env`` file, and the defaults below.
"""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .common.exceptions import ConfigurationError

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "tunnelctl" / "config.toml"


class Settings(BaseSettings):
    """Configuration threaded through every tunnelctl component."""

    model_config = SettingsConfigDict(
        env_prefix="TUNNELCTL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_domain: str = Field(
        default="",
        description="Domain that subdomains are created under, e.g. example.com",
    )

    # Cloudflare DNS API
    dns_zone_id: str = Field(default="", description="Zone holding base_domain")
    dns_email: str = Field(default="", description="Account email for X-Auth-Email")
    dns_api_key: SecretStr | None = Field(
        default=None, description="Global API key for X-Auth-Key"
    )
    dns_api_token: SecretStr | None = Field(
        default=None, description="Scoped API token, used instead of email + key"
    )
    dns_api_url: str = Field(
        default="https://api.cloudflare.com/client/v4",
        description="Cloudflare API base URL",
    )

    # cloudflared
    config_dir: Path = Field(
        default=Path.home() / ".cloudflared",
        description="Directory holding per-tunnel YAML and credential files",
    )
    binary_path: str | None = Field(
        default=None, description="cloudflared binary (searched in PATH if unset)"
    )
    origin_cert: str | None = Field(
        default=None, description="Origin certificate passed as --origincert"
    )

    # systemd
    unit_dir: Path = Field(
        default=Path("/etc/systemd/system"), description="Where unit files are written"
    )
    unit_prefix: str = Field(default="cloudflared-", description="Unit name prefix")
    systemctl_path: str | None = Field(
        default=None, description="systemctl binary (searched in PATH if unset)"
    )

    # Logging
    log_level: str = Field(default="WARNING", description="Log level")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")
    log_file: str | None = Field(default=None, description="Optional log file")

    @field_validator("base_domain")
    @classmethod
    def validate_base_domain(cls, v: str) -> str:
        """Normalize and check the base domain."""
        v = v.strip().strip(".").lower()
        if v:
            parts = v.split(".")
            if len(parts) < 2:
                raise ValueError("Base domain must contain at least one dot")
            for part in parts:
                if not part or not part.replace("-", "").isalnum():
                    raise ValueError(f"Invalid domain part: {part}")
        return v

    @field_validator("config_dir", "unit_dir")
    @classmethod
    def expand_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @property
    def dns_configured(self) -> bool:
        """True when the DNS API can be called."""
        has_credentials = self.dns_api_token is not None or (
            bool(self.dns_email) and self.dns_api_key is not None
        )
        return bool(self.dns_zone_id) and has_credentials

    def require_base_domain(self) -> str:
        """Return base_domain or raise if it is not set.

        Raises:
            ConfigurationError: If base_domain is empty
        """
        if not self.base_domain:
            raise ConfigurationError(
                "base_domain is not configured. Set TUNNELCTL_BASE_DOMAIN "
                f"or add it to {DEFAULT_CONFIG_PATH}"
            )
        return self.base_domain

    def hostname_for(self, subdomain: str) -> str:
        """Public hostname for ``subdomain`` under the base domain, lowercased."""
        return f"{subdomain.lower()}.{self.require_base_domain()}"


def load_settings(config_file: str | Path | None = None, **overrides: Any) -> Settings:
    """Load settings from a TOML file, with environment variable overrides.

    Args:
        config_file: TOML file to read; the default location is used if None
            and silently skipped if it does not exist
        **overrides: Values that take precedence over everything else

    Returns:
        Loaded settings

    Raises:
        ConfigurationError: If the file cannot be parsed or values are invalid
    """
    config_path = Path(config_file) if config_file else DEFAULT_CONFIG_PATH

    file_config: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(f"Cannot read {config_path}: {e}") from e
        file_config = data.get("tunnelctl", {})
    elif config_file is not None:
        raise ConfigurationError(f"Config file not found: {config_path}")

    # Init kwargs outrank env vars in pydantic-settings, so only pass file
    # values that the environment does not set.
    env_names = {name.upper() for name in os.environ}
    file_config = {
        key: value
        for key, value in file_config.items()
        if f"TUNNELCTL_{key.upper()}" not in env_names
    }
    file_config.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return Settings(**file_config)
    except ValueError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e

