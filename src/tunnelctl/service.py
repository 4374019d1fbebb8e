"""Registration of tunnels as systemd services."""

from pathlib import Path

from .common.exceptions import ProcessError, ServiceError
from .common.logging import get_logger
from .common.process import CommandResult, CommandRunner

logger = get_logger(__name__)

UNIT_TEMPLATE = """[Unit]
Description=cloudflared tunnel {name}
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
ExecStart={binary} --no-autoupdate --config {config_path} tunnel run {name}
Restart=on-failure
RestartSec=5
StandardOutput=journal
StandardError=journal

[Install]
WantedBy=multi-user.target
"""


class ServiceRegistrar:
    """Installs and removes one systemd unit per tunnel.

    Writing to the unit directory and calling systemctl normally needs
    root; failures surface as ServiceError.
    """

    def __init__(
        self,
        systemctl: CommandRunner,
        binary_path: str,
        unit_dir: Path = Path("/etc/systemd/system"),
        unit_prefix: str = "cloudflared-",
    ):
        self.systemctl = systemctl
        self.binary_path = binary_path
        self.unit_dir = Path(unit_dir)
        self.unit_prefix = unit_prefix

    def unit_name(self, name: str) -> str:
        return f"{self.unit_prefix}{name}.service"

    def unit_path(self, name: str) -> Path:
        return self.unit_dir / self.unit_name(name)

    def is_installed(self, name: str) -> bool:
        return self.unit_path(name).is_file()

    def render_unit(self, name: str, config_path: Path) -> str:
        return UNIT_TEMPLATE.format(
            name=name, binary=self.binary_path, config_path=config_path
        )

    def manual_start_command(self, name: str, config_path: Path) -> str:
        """Command an operator can run when no service could be installed."""
        return f"{self.binary_path} tunnel --config {config_path} run {name}"

    def _run(self, *args: str) -> CommandResult:
        try:
            return self.systemctl.run(*args)
        except ProcessError as e:
            raise ServiceError(str(e)) from e

    def _systemctl(self, *args: str) -> None:
        result = self._run(*args)
        if not result.ok:
            raise ServiceError(
                f"systemctl {' '.join(args)} failed (exit code {result.returncode}): "
                f"{result.output.strip()}"
            )

    def install(self, name: str, config_path: Path) -> None:
        """Write the unit, enable it across reboots and start it now.

        Raises:
            ServiceError: If the unit cannot be written or systemctl fails
        """
        unit_path = self.unit_path(name)
        try:
            unit_path.write_text(self.render_unit(name, config_path), encoding="utf-8")
        except OSError as e:
            raise ServiceError(f"Failed to write unit file {unit_path}: {e}") from e

        unit = self.unit_name(name)
        self._systemctl("daemon-reload")
        self._systemctl("enable", unit)
        self._systemctl("start", unit)
        logger.info("Service installed and started", unit=unit)

    def remove(self, name: str) -> bool:
        """Stop, disable and delete the tunnel's unit.

        Safe to call repeatedly; does nothing when no unit file exists.

        Returns:
            True if a unit was removed, False if there was none

        Raises:
            ServiceError: If the service cannot be stopped or the unit file
                cannot be deleted
        """
        unit_path = self.unit_path(name)
        if not unit_path.exists():
            logger.debug("No service unit to remove", unit=self.unit_name(name))
            return False

        unit = self.unit_name(name)
        self._systemctl("stop", unit)

        disabled = self._run("disable", unit)
        if not disabled.ok:
            logger.warning(
                "Failed to disable service", unit=unit, output=disabled.output.strip()
            )

        try:
            unit_path.unlink(missing_ok=True)
        except OSError as e:
            raise ServiceError(f"Failed to remove unit file {unit_path}: {e}") from e

        self._systemctl("daemon-reload")
        logger.info("Service removed", unit=unit)
        return True
