"""Client for the cloudflared tunnel daemon's command-line control surface."""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .common.exceptions import NoIdentifierReturnedError, ProviderError
from .common.logging import get_logger
from .common.process import CommandResult, CommandRunner

logger = get_logger(__name__)

UUID_PATTERN = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)


def extract_tunnel_id(output: str) -> str | None:
    """Return the first UUID-shaped token in ``output``, or None."""
    match = UUID_PATTERN.search(output)
    return match.group(0) if match else None


@dataclass(frozen=True)
class ProviderTunnel:
    """Result of registering a tunnel with the provider."""

    remote_id: str
    raw_output: str


class TunnelProvider:
    """Typed wrapper over ``cloudflared tunnel`` subcommands.

    Every failing invocation raises ProviderError carrying the daemon's
    own output, so callers can show it verbatim.
    """

    def __init__(
        self,
        runner: CommandRunner,
        config_dir: Path,
        origin_cert: str | None = None,
    ):
        self.runner = runner
        self.config_dir = Path(config_dir)
        self.origin_cert = origin_cert

    def _tunnel_args(self, *args: str) -> list[str]:
        base = ["tunnel"]
        if self.origin_cert:
            base.extend(["--origincert", self.origin_cert])
        return [*base, *args]

    def _check(self, result: CommandResult, action: str) -> CommandResult:
        if not result.ok:
            logger.error(
                "Provider command failed",
                action=action,
                returncode=result.returncode,
            )
            raise ProviderError(
                f"cloudflared failed to {action} (exit code {result.returncode})",
                output=result.output,
                returncode=result.returncode,
            )
        return result

    def credentials_path(self, remote_id: str) -> Path:
        """Credentials file cloudflared writes for ``remote_id``."""
        return self.config_dir / f"{remote_id}.json"

    def create(self, name: str) -> ProviderTunnel:
        """Register a named tunnel with the provider.

        Returns:
            The provider-assigned identifier and the raw command output

        Raises:
            ProviderError: If the command fails
            NoIdentifierReturnedError: If the output holds no tunnel id,
                even when the command exited with 0
        """
        logger.info("Creating tunnel", name=name)
        result = self._check(
            self.runner.run(*self._tunnel_args("create", name)),
            f"create tunnel '{name}'",
        )

        remote_id = extract_tunnel_id(result.output)
        if remote_id is None:
            raise NoIdentifierReturnedError(
                f"cloudflared created tunnel '{name}' but returned no tunnel id",
                output=result.output,
                returncode=result.returncode,
            )

        logger.info("Tunnel registered", name=name, remote_id=remote_id)
        return ProviderTunnel(remote_id=remote_id, raw_output=result.output)

    def route_dns(self, name: str, hostname: str) -> None:
        """Point ``hostname`` at the tunnel with a provider-managed DNS record."""
        logger.info("Routing DNS", name=name, hostname=hostname)
        self._check(
            self.runner.run(*self._tunnel_args("route", "dns", name, hostname)),
            f"route {hostname} to tunnel '{name}'",
        )

    def cleanup(self, name: str) -> None:
        """Drop stale connections the provider still holds for the tunnel."""
        self._check(
            self.runner.run(*self._tunnel_args("cleanup", name)),
            f"clean up connections of tunnel '{name}'",
        )

    def delete(self, name: str) -> bool:
        """Delete the tunnel, after a best-effort connection cleanup.

        Returns:
            True if the connection cleanup succeeded, False if it failed
            and the delete went ahead anyway

        Raises:
            ProviderError: If the delete itself fails
        """
        cleaned = True
        try:
            self.cleanup(name)
        except ProviderError as e:
            cleaned = False
            logger.warning(
                "Connection cleanup failed, deleting anyway", name=name, error=str(e)
            )

        logger.info("Deleting tunnel", name=name)
        self._check(
            self.runner.run(*self._tunnel_args("delete", name)),
            f"delete tunnel '{name}'",
        )
        return cleaned

    def list_tunnels(self) -> list[dict[str, Any]]:
        """Return the provider's tunnel records as decoded from JSON."""
        result = self._check(
            self.runner.run(*self._tunnel_args("list", "--output", "json")),
            "list tunnels",
        )
        if not result.stdout.strip():
            return []
        try:
            records = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ProviderError(
                "cloudflared returned an unreadable tunnel list", output=result.output
            ) from e
        return list(records or [])

    def info(self, name: str) -> str:
        result = self._check(
            self.runner.run(*self._tunnel_args("info", name)),
            f"show tunnel '{name}'",
        )
        return result.output

    def run(self, config_path: Path, name: str) -> int:
        """Run the tunnel in the foreground until it exits."""
        logger.info("Running tunnel", name=name, config_path=str(config_path))
        return self.runner.stream(
            *self._tunnel_args("--config", str(config_path), "run", name)
        )

    def tail(self, name: str) -> int:
        """Stream the tunnel's logs; returns when cloudflared exits."""
        return self.runner.stream("tail", name)

    def update(self) -> int:
        return self.runner.stream("update")
