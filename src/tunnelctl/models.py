"""Tunnel models.

``Tunnel`` is the entity the lifecycle works on. ``TunnelConfig`` is the
shape of the YAML artifact cloudflared reads for one tunnel.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .common.utils import IDENTIFIER_PATTERN

CATCH_ALL_SERVICE = "http_status:404"


class IngressRule(BaseModel):
    """One ingress rule; a rule without hostname matches everything."""

    model_config = ConfigDict(frozen=True, extra="allow")

    hostname: str | None = Field(default=None, description="Inbound hostname")
    service: str = Field(min_length=1, description="Target service URL")

    @property
    def is_catch_all(self) -> bool:
        return self.hostname is None


class TunnelConfig(BaseModel):
    """Persisted per-tunnel cloudflared configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    tunnel: str = Field(min_length=1, description="Remote tunnel identifier")
    credentials_file: str = Field(
        alias="credentials-file", description="Credentials JSON written on create"
    )
    ingress: list[IngressRule] = Field(min_length=1)

    @field_validator("ingress")
    @classmethod
    def validate_ingress(cls, v: list[IngressRule]) -> list[IngressRule]:
        """The last rule must be the catch-all."""
        if not v[-1].is_catch_all:
            raise ValueError("The last ingress rule must not have a hostname")
        return v

    @classmethod
    def for_tunnel(
        cls, remote_id: str, credentials_file: str | Path, hostname: str, port: int
    ) -> "TunnelConfig":
        """Build the standard single-hostname configuration.

        Args:
            remote_id: Identifier returned by the provider on create
            credentials_file: Path of the credentials JSON for remote_id
            hostname: Public hostname routed to the local service
            port: Local port the service listens on

        Returns:
            Configuration with a hostname rule and a trailing 404 catch-all
        """
        return cls(
            tunnel=remote_id,
            credentials_file=str(credentials_file),
            ingress=[
                IngressRule(hostname=hostname, service=f"http://localhost:{port}"),
                IngressRule(service=CATCH_ALL_SERVICE),
            ],
        )

    @property
    def hostname(self) -> str | None:
        """Hostname of the first routed rule, if any."""
        for rule in self.ingress:
            if rule.hostname:
                return rule.hostname
        return None

    @property
    def service(self) -> str | None:
        for rule in self.ingress:
            if rule.hostname:
                return rule.service
        return None

    @property
    def port(self) -> int | None:
        """Local port parsed from the routed service URL."""
        service = self.service
        if not service:
            return None
        _, _, tail = service.rpartition(":")
        port = tail.split("/", 1)[0]
        return int(port) if port.isdigit() else None

    def to_document(self) -> dict[str, Any]:
        """Plain dict in cloudflared's key spelling, ready for YAML."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Tunnel(BaseModel):
    """A named tunnel as known to this host."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(pattern=IDENTIFIER_PATTERN.pattern)
    remote_id: str = Field(min_length=1, description="Identifier assigned by provider")
    port: int = Field(ge=1, le=65535, description="Local port forwarded to")
    subdomain: str = Field(pattern=IDENTIFIER_PATTERN.pattern)
    hostname: str = Field(min_length=1, description="Public hostname")
    config_path: Path = Field(description="Local configuration artifact")
    service_installed: bool = Field(default=False)

    def with_service(self, installed: bool) -> "Tunnel":
        """Return a copy with ``service_installed`` updated."""
        return self.model_copy(update={"service_installed": installed})
