"""Local storage of per-tunnel cloudflared configuration files."""

from pathlib import Path

import yaml
from pydantic import ValidationError as ModelValidationError

from .common.exceptions import ConfigNotFoundError, ConfigStoreError
from .common.logging import get_logger
from .models import TunnelConfig

logger = get_logger(__name__)


class LocalConfigStore:
    """Keeps one YAML file per tunnel at ``<config_dir>/<name>.yml``."""

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)

    def path_for(self, name: str) -> Path:
        return self.config_dir / f"{name}.yml"

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def write(self, name: str, config: TunnelConfig) -> Path:
        """Write the configuration and confirm it landed on disk.

        Args:
            name: Tunnel name, which determines the file path
            config: Configuration to serialize

        Returns:
            Path of the written file

        Raises:
            ConfigStoreError: If writing fails or the file is missing afterwards
        """
        path = self.path_for(name)
        document = yaml.safe_dump(
            config.to_document(), default_flow_style=False, sort_keys=False
        )
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(document, encoding="utf-8")
        except OSError as e:
            raise ConfigStoreError(f"Failed to write {path}: {e}") from e

        if not path.is_file():
            raise ConfigStoreError(f"Configuration file missing after write: {path}")

        logger.info("Configuration written", name=name, path=str(path))
        return path

    def read(self, name: str) -> TunnelConfig:
        """Load the configuration for ``name``.

        Raises:
            ConfigNotFoundError: If no file exists for the tunnel
            ConfigStoreError: If the file cannot be read or parsed
        """
        path = self.path_for(name)
        if not path.is_file():
            raise ConfigNotFoundError(f"No configuration for tunnel '{name}' at {path}")

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigStoreError(f"Failed to read {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigStoreError(f"Malformed configuration in {path}")
        try:
            return TunnelConfig.model_validate(data)
        except ModelValidationError as e:
            raise ConfigStoreError(f"Malformed configuration in {path}: {e}") from e

    @staticmethod
    def extract_subdomain(
        config: TunnelConfig, base_domain: str | None = None
    ) -> str | None:
        """Recover the subdomain from the persisted hostname.

        The ``.<base_domain>`` suffix is stripped when it matches; otherwise
        the first DNS label is taken.

        Returns:
            Subdomain, or None if the configuration routes no hostname
        """
        hostname = config.hostname
        if not hostname:
            return None
        if base_domain:
            suffix = f".{base_domain}"
            if hostname.endswith(suffix) and len(hostname) > len(suffix):
                return hostname[: -len(suffix)]
        return hostname.split(".", 1)[0]

    def remove(self, name: str) -> bool:
        """Delete the configuration file.

        Returns:
            True if a file was removed, False if there was none

        Raises:
            ConfigStoreError: If the file exists but cannot be removed
        """
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("No configuration to remove", name=name, path=str(path))
            return False
        except OSError as e:
            raise ConfigStoreError(f"Failed to remove {path}: {e}") from e

        logger.info("Configuration removed", name=name, path=str(path))
        return True
