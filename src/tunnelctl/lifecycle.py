"""Tunnel lifecycle coordination.

``create`` and ``delete`` run their steps in a fixed order. Every step of
``create`` depends on the one before it, and a failure stops the operation
where it is: nothing is rolled back, and ``delete`` is the recovery path.
On ``delete`` only the provider deletion is a hard stop; DNS and local
cleanup after it are best-effort and end up as warnings on the result.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .common.exceptions import (
    ConfigExistsError,
    ConfigNotFoundError,
    ConfigStoreError,
    DNSError,
    LifecycleError,
    ProviderError,
    ServiceError,
    TunnelCtlError,
)
from .common.logging import get_logger
from .common.utils import validate_name, validate_port, validate_subdomain
from .dns import DNSRecordManager
from .models import Tunnel, TunnelConfig
from .provider import TunnelProvider
from .service import ServiceRegistrar
from .settings import Settings
from .store import LocalConfigStore

logger = get_logger(__name__)


class CreateState(str, Enum):
    """Steps of ``create``, in order."""

    VALIDATED = "validated"
    PROVIDER_REGISTERED = "provider_registered"
    CONFIG_WRITTEN = "config_written"
    DNS_ROUTED = "dns_routed"
    SERVICE_INSTALLED = "service_installed"
    MANUAL_START_PENDING = "manual_start_pending"


class DeleteState(str, Enum):
    """Steps of ``delete``, in order."""

    VALIDATED = "validated"
    SERVICE_STOPPED = "service_stopped"
    CONNECTIONS_CLEANED = "connections_cleaned"
    PROVIDER_DELETED = "provider_deleted"
    DNS_RECORD_RESOLVED = "dns_record_resolved"
    DNS_RECORD_DELETED = "dns_record_deleted"
    LOCAL_CONFIG_REMOVED = "local_config_removed"


@dataclass
class CreateResult:
    tunnel: Tunnel
    states: list[CreateState]
    manual_start_command: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def state(self) -> CreateState:
        return self.states[-1]


@dataclass
class DeleteResult:
    name: str
    states: list[DeleteState]
    hostname: str | None = None
    warnings: list[str] = field(default_factory=list)

    def reached(self, state: DeleteState) -> bool:
        return state in self.states


class TunnelLifecycle:
    """Coordinates provider, local config, DNS and service for one tunnel."""

    def __init__(
        self,
        settings: Settings,
        provider: TunnelProvider,
        store: LocalConfigStore,
        dns: DNSRecordManager | None = None,
        registrar: ServiceRegistrar | None = None,
    ):
        """Initialize TunnelLifecycle.

        Args:
            settings: Supplies the base domain
            provider: cloudflared client
            store: Local configuration store
            dns: DNS API client; DNS cleanup on delete is skipped without it
            registrar: systemd registrar; services are unavailable without it
        """
        self.settings = settings
        self.provider = provider
        self.store = store
        self.dns = dns
        self.registrar = registrar

    def create(
        self,
        name: str,
        port: int | str,
        subdomain: str,
        service: bool = False,
        overwrite: bool = False,
    ) -> CreateResult:
        """Create a tunnel end to end.

        Steps: validate, register with the provider, write the local
        configuration, route DNS, then optionally install a service.

        Args:
            name: Tunnel name
            port: Local port, as an int or the string typed by the user
            subdomain: Label placed in front of the base domain
            service: Install and start a systemd service afterwards
            overwrite: Replace an existing local configuration for ``name``

        Returns:
            The created tunnel and the states reached

        Raises:
            ValidationError: Before anything else happens, on bad input
            ConfigurationError: If no base domain is configured
            ConfigExistsError: If a configuration exists and overwrite is False
            LifecycleError: If a step after validation fails; the cause is
                chained and ``reached`` lists the completed states
        """
        name = validate_name(name)
        port = validate_port(port)
        subdomain = validate_subdomain(subdomain)
        hostname = self.settings.hostname_for(subdomain)
        states = [CreateState.VALIDATED]

        if not overwrite and self.store.exists(name):
            raise ConfigExistsError(
                f"Tunnel '{name}' already has a configuration at "
                f"{self.store.path_for(name)}; delete it first or pass overwrite"
            )

        log = logger.bind(name=name, hostname=hostname, port=port)
        log.info("Creating tunnel")

        try:
            registered = self.provider.create(name)
        except ProviderError as e:
            raise self._abort("create", name, states, e) from e
        states.append(CreateState.PROVIDER_REGISTERED)

        config = TunnelConfig.for_tunnel(
            remote_id=registered.remote_id,
            credentials_file=self.provider.credentials_path(registered.remote_id),
            hostname=hostname,
            port=port,
        )
        try:
            config_path = self.store.write(name, config)
        except ConfigStoreError as e:
            raise self._abort("create", name, states, e) from e
        states.append(CreateState.CONFIG_WRITTEN)

        try:
            self.provider.route_dns(name, hostname)
        except ProviderError as e:
            raise self._abort("create", name, states, e) from e
        states.append(CreateState.DNS_ROUTED)

        tunnel = Tunnel(
            name=name,
            remote_id=registered.remote_id,
            port=port,
            subdomain=subdomain,
            hostname=hostname,
            config_path=config_path,
        )
        result = CreateResult(tunnel=tunnel, states=states)

        if service:
            self._install_service(result)

        log.info("Tunnel created", remote_id=tunnel.remote_id, state=result.state.value)
        return result

    def _install_service(self, result: CreateResult) -> None:
        tunnel = result.tunnel
        try:
            if self.registrar is None:
                raise ServiceError("No service manager is available on this host")
            self.registrar.install(tunnel.name, tunnel.config_path)
        except ServiceError as e:
            logger.warning(
                "Service install failed, tunnel must be started manually",
                name=tunnel.name,
                error=str(e),
            )
            result.warnings.append(f"Service not installed: {e}")
            result.manual_start_command = self._manual_start_command(tunnel)
            result.states.append(CreateState.MANUAL_START_PENDING)
            return

        result.tunnel = tunnel.with_service(True)
        result.states.append(CreateState.SERVICE_INSTALLED)

    def _manual_start_command(self, tunnel: Tunnel) -> str:
        if self.registrar is not None:
            return self.registrar.manual_start_command(tunnel.name, tunnel.config_path)
        return f"tunnelctl start {tunnel.name}"

    def delete(self, name: str) -> DeleteResult:
        """Delete a tunnel and clean up everything created for it.

        Steps: stop and remove the service if one exists, clean up stale
        connections (best-effort), delete at the provider, remove the DNS
        record, remove the local configuration. A missing local
        configuration is treated as already clean.

        Returns:
            States reached and the warnings raised by best-effort steps

        Raises:
            ValidationError: On a malformed name
            LifecycleError: If the service cannot be removed or the
                provider refuses the deletion
        """
        name = validate_name(name)
        result = DeleteResult(name=name, states=[DeleteState.VALIDATED])
        log = logger.bind(name=name)
        log.info("Deleting tunnel")

        config = self._read_for_delete(name, result)
        if config is not None:
            result.hostname = config.hostname

        if self.registrar is not None:
            try:
                if self.registrar.remove(name):
                    result.states.append(DeleteState.SERVICE_STOPPED)
            except ServiceError as e:
                raise self._abort("delete", name, result.states, e) from e

        try:
            cleaned = self.provider.delete(name)
        except ProviderError as e:
            raise self._abort("delete", name, result.states, e) from e
        if cleaned:
            result.states.append(DeleteState.CONNECTIONS_CLEANED)
        else:
            self._warn(result, "Stale connections were not cleaned up before delete")
        result.states.append(DeleteState.PROVIDER_DELETED)

        self._delete_dns_record(result)

        try:
            if self.store.remove(name):
                result.states.append(DeleteState.LOCAL_CONFIG_REMOVED)
        except ConfigStoreError as e:
            self._warn(result, "Local configuration not removed", e)

        log.info("Tunnel deleted", warnings=len(result.warnings))
        return result

    def _read_for_delete(self, name: str, result: DeleteResult) -> TunnelConfig | None:
        try:
            return self.store.read(name)
        except ConfigNotFoundError:
            logger.info("No local configuration, skipping DNS cleanup", name=name)
            return None
        except ConfigStoreError as e:
            self._warn(result, "Local configuration unreadable, skipping DNS cleanup", e)
            return None

    def _delete_dns_record(self, result: DeleteResult) -> None:
        hostname = result.hostname
        if hostname is None:
            return
        if self.dns is None:
            self._warn(
                result,
                f"DNS API not configured, record for {hostname} left in place",
            )
            return

        try:
            record_id = self.dns.find_record_id(hostname)
        except DNSError as e:
            self._warn(result, f"DNS lookup for {hostname} failed", e)
            return
        result.states.append(DeleteState.DNS_RECORD_RESOLVED)

        if record_id is None:
            logger.info("No DNS record to delete", hostname=hostname)
            return

        try:
            self.dns.delete_record(record_id)
        except DNSError as e:
            self._warn(result, f"DNS record {record_id} for {hostname} not deleted", e)
            return
        result.states.append(DeleteState.DNS_RECORD_DELETED)

    @staticmethod
    def _warn(
        result: DeleteResult, message: str, error: Exception | None = None
    ) -> None:
        text = f"{message}: {error}" if error is not None else message
        logger.warning(message, name=result.name, error=str(error) if error else None)
        result.warnings.append(text)

    @staticmethod
    def _abort(
        operation: str, name: str, states: list[Any], error: TunnelCtlError
    ) -> LifecycleError:
        last = states[-1].value if states else "none"
        logger.error(
            f"Tunnel {operation} aborted",
            name=name,
            last_state=last,
            error=str(error),
        )
        message = f"{operation.capitalize()} of tunnel '{name}' failed after '{last}': {error}"
        if operation == "create" and len(states) > 1:
            message += f"\nRun 'tunnelctl delete {name}' to clean up."
        return LifecycleError(message, reached=states)

    def describe(self, name: str) -> Tunnel:
        """Rebuild the Tunnel entity from its local configuration.

        Raises:
            ConfigNotFoundError: If the tunnel has no local configuration
            ConfigStoreError: If the configuration routes no hostname
        """
        name = validate_name(name)
        config = self.store.read(name)
        hostname = config.hostname
        subdomain = self.store.extract_subdomain(config, self.settings.base_domain)
        port = config.port
        if hostname is None or subdomain is None or port is None:
            raise ConfigStoreError(
                f"Configuration of tunnel '{name}' does not route a local port"
            )
        return Tunnel(
            name=name,
            remote_id=config.tunnel,
            port=port,
            subdomain=subdomain,
            hostname=hostname,
            config_path=self.store.path_for(name),
            service_installed=(
                self.registrar is not None and self.registrar.is_installed(name)
            ),
        )

    def start(self, name: str) -> int:
        """Run the tunnel in the foreground from its stored configuration.

        Raises:
            ConfigNotFoundError: If the tunnel has no local configuration
        """
        name = validate_name(name)
        config_path: Path = self.store.path_for(name)
        if not self.store.exists(name):
            raise ConfigNotFoundError(
                f"No configuration for tunnel '{name}' at {config_path}"
            )
        return self.provider.run(config_path, name)

    def list_tunnels(self) -> list[dict[str, Any]]:
        return self.provider.list_tunnels()

    def info(self, name: str) -> str:
        return self.provider.info(validate_name(name))

    def tail(self, name: str) -> int:
        return self.provider.tail(validate_name(name))

    def update(self) -> int:
        return self.provider.update()
