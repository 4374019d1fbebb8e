"""Tests for the tunnel lifecycle coordinator."""

from unittest.mock import Mock

import httpx
import pytest

from tunnelctl.common.exceptions import (
    ConfigExistsError,
    ConfigNotFoundError,
    ConfigStoreError,
    ConfigurationError,
    DNSError,
    LifecycleError,
    NoIdentifierReturnedError,
    ProviderError,
    ServiceError,
    ValidationError,
    ValidationErrorKind,
)
from tunnelctl.dns import DNSRecordManager
from tunnelctl.lifecycle import CreateState, DeleteState, TunnelLifecycle
from tunnelctl.provider import ProviderTunnel, TunnelProvider
from tunnelctl.service import ServiceRegistrar
from tunnelctl.settings import Settings
from tunnelctl.store import LocalConfigStore

TUNNEL_ID = "6ff42ae2-765d-4adf-8112-31c55c1551ef"


def api_envelope(result) -> httpx.Response:
    return httpx.Response(
        200, json={"success": True, "errors": [], "messages": [], "result": result}
    )


def dns_manager(settings, handler) -> DNSRecordManager:
    client = httpx.Client(
        base_url=settings.dns_api_url, transport=httpx.MockTransport(handler)
    )
    return DNSRecordManager(settings, client=client)


@pytest.fixture
def provider(settings):
    provider = Mock(spec=TunnelProvider)
    provider.create.return_value = ProviderTunnel(
        remote_id=TUNNEL_ID, raw_output=f"Created tunnel app1 with id {TUNNEL_ID}"
    )
    provider.credentials_path.side_effect = (
        lambda remote_id: settings.config_dir / f"{remote_id}.json"
    )
    provider.run.return_value = 0
    provider.delete.return_value = True
    return provider


@pytest.fixture
def store(settings):
    return LocalConfigStore(settings.config_dir)


@pytest.fixture
def dns():
    dns = Mock(spec=DNSRecordManager)
    dns.find_record_id.return_value = "rec-1"
    return dns


@pytest.fixture
def registrar():
    registrar = Mock(spec=ServiceRegistrar)
    registrar.remove.return_value = False
    registrar.is_installed.return_value = False
    registrar.manual_start_command.return_value = (
        "cloudflared tunnel --config /cfg/app1.yml run app1"
    )
    return registrar


@pytest.fixture
def lifecycle(settings, provider, store, dns, registrar):
    return TunnelLifecycle(settings, provider, store, dns=dns, registrar=registrar)


def assert_untouched(provider, dns, registrar, store):
    provider.create.assert_not_called()
    provider.delete.assert_not_called()
    provider.route_dns.assert_not_called()
    dns.find_record_id.assert_not_called()
    registrar.install.assert_not_called()
    registrar.remove.assert_not_called()
    assert not store.config_dir.exists()


class TestCreateValidation:
    """Bad input is rejected before any side effect."""

    @pytest.mark.parametrize(
        "name,port,subdomain,kind",
        [
            ("bad name", 3000, "sub1", ValidationErrorKind.INVALID_NAME),
            ("app_1", 3000, "sub1", ValidationErrorKind.INVALID_NAME),
            ("app1", 0, "sub1", ValidationErrorKind.INVALID_PORT),
            ("app1", 65536, "sub1", ValidationErrorKind.INVALID_PORT),
            ("app1", "http", "sub1", ValidationErrorKind.INVALID_PORT),
            ("app1", 3000, "sub.1", ValidationErrorKind.INVALID_SUBDOMAIN),
            ("app1", 3000, "", ValidationErrorKind.INVALID_SUBDOMAIN),
        ],
    )
    def test_rejects_before_side_effects(
        self, lifecycle, provider, dns, registrar, store, name, port, subdomain, kind
    ):
        with pytest.raises(ValidationError) as exc:
            lifecycle.create(name, port, subdomain, service=True)

        assert exc.value.kind == kind
        assert_untouched(provider, dns, registrar, store)

    def test_requires_base_domain(self, provider, store, tmp_path):
        settings = Settings(_env_file=None, config_dir=tmp_path / "cloudflared")
        lifecycle = TunnelLifecycle(settings, provider, store)

        with pytest.raises(ConfigurationError):
            lifecycle.create("app1", 3000, "sub1")
        provider.create.assert_not_called()

    def test_refuses_to_overwrite_existing_config(self, lifecycle, provider, store):
        lifecycle.create("app1", 3000, "sub1")
        provider.reset_mock(return_value=False, side_effect=False)

        with pytest.raises(ConfigExistsError, match="already has a configuration"):
            lifecycle.create("app1", 4000, "sub2")
        provider.create.assert_not_called()
        assert store.read("app1").port == 3000

    def test_overwrite_replaces_config(self, lifecycle, store):
        lifecycle.create("app1", 3000, "sub1")
        lifecycle.create("app1", 4000, "sub2", overwrite=True)

        assert store.read("app1").hostname == "sub2.example.com"


class TestCreate:
    """The create sequence."""

    def test_create_then_read(self, lifecycle, provider, store):
        result = lifecycle.create("app1", 3000, "sub1")

        config = store.read("app1")
        assert config.tunnel == TUNNEL_ID
        assert config.ingress[0].hostname == "sub1.example.com"
        assert config.ingress[0].service == "http://localhost:3000"
        assert config.ingress[-1].hostname is None
        assert config.ingress[-1].service == "http_status:404"
        assert config.credentials_file.endswith(f"{TUNNEL_ID}.json")

        assert result.state == CreateState.DNS_ROUTED
        assert result.states == [
            CreateState.VALIDATED,
            CreateState.PROVIDER_REGISTERED,
            CreateState.CONFIG_WRITTEN,
            CreateState.DNS_ROUTED,
        ]
        tunnel = result.tunnel
        assert tunnel.remote_id == TUNNEL_ID
        assert tunnel.hostname == "sub1.example.com"
        assert tunnel.subdomain == "sub1"
        assert tunnel.port == 3000
        assert tunnel.config_path == store.path_for("app1")
        assert tunnel.service_installed is False
        provider.route_dns.assert_called_once_with("app1", "sub1.example.com")

    def test_port_from_command_line_string(self, lifecycle):
        assert lifecycle.create("app1", "8080", "sub1").tunnel.port == 8080

    def test_provider_failure_leaves_nothing(self, lifecycle, provider, store):
        provider.create.side_effect = ProviderError("cloudflared failed", output="boom")

        with pytest.raises(LifecycleError, match="boom") as exc:
            lifecycle.create("app1", 3000, "sub1")

        assert exc.value.reached == [CreateState.VALIDATED]
        assert isinstance(exc.value.__cause__, ProviderError)
        assert not store.exists("app1")
        provider.route_dns.assert_not_called()

    def test_missing_identifier_aborts(self, lifecycle, provider, store):
        provider.create.side_effect = NoIdentifierReturnedError(
            "no tunnel id", output="Created tunnel app1", returncode=0
        )

        with pytest.raises(LifecycleError) as exc:
            lifecycle.create("app1", 3000, "sub1")

        assert isinstance(exc.value.__cause__, NoIdentifierReturnedError)
        assert not store.exists("app1")

    def test_config_write_failure_aborts_before_dns(self, settings, provider, dns):
        store = Mock(spec=LocalConfigStore)
        store.exists.return_value = False
        store.write.side_effect = ConfigStoreError("disk full")
        lifecycle = TunnelLifecycle(settings, provider, store, dns=dns)

        with pytest.raises(LifecycleError, match="disk full") as exc:
            lifecycle.create("app1", 3000, "sub1")

        assert exc.value.reached == [
            CreateState.VALIDATED,
            CreateState.PROVIDER_REGISTERED,
        ]
        assert "tunnelctl delete app1" in str(exc.value)
        provider.route_dns.assert_not_called()

    def test_dns_route_failure_keeps_partial_state(self, lifecycle, provider, store):
        """No rollback: provider registration and config stay for delete."""
        provider.route_dns.side_effect = ProviderError("route failed", output="exists")

        with pytest.raises(LifecycleError) as exc:
            lifecycle.create("app1", 3000, "sub1", service=True)

        assert exc.value.reached[-1] == CreateState.CONFIG_WRITTEN
        assert store.exists("app1")
        provider.delete.assert_not_called()
        lifecycle.registrar.install.assert_not_called()


class TestCreateWithService:
    """Optional service install after create."""

    def test_service_installed(self, lifecycle, registrar, store):
        result = lifecycle.create("app1", 3000, "sub1", service=True)

        registrar.install.assert_called_once_with("app1", store.path_for("app1"))
        assert result.state == CreateState.SERVICE_INSTALLED
        assert result.tunnel.service_installed is True
        assert result.manual_start_command is None

    def test_service_failure_degrades_to_manual_start(self, lifecycle, registrar, store):
        registrar.install.side_effect = ServiceError("Access denied")

        result = lifecycle.create("app1", 3000, "sub1", service=True)

        assert result.state == CreateState.MANUAL_START_PENDING
        assert result.tunnel.service_installed is False
        assert result.manual_start_command == (
            "cloudflared tunnel --config /cfg/app1.yml run app1"
        )
        assert any("Access denied" in warning for warning in result.warnings)
        assert store.exists("app1")

    def test_no_service_manager(self, settings, provider, store):
        lifecycle = TunnelLifecycle(settings, provider, store)

        result = lifecycle.create("app1", 3000, "sub1", service=True)

        assert result.state == CreateState.MANUAL_START_PENDING
        assert result.manual_start_command == "tunnelctl start app1"

    def test_service_not_requested(self, lifecycle, registrar):
        lifecycle.create("app1", 3000, "sub1")
        registrar.install.assert_not_called()


class TestDelete:
    """The delete sequence."""

    def test_delete_after_create(self, lifecycle, provider, dns, store):
        lifecycle.create("app1", 3000, "sub1")

        result = lifecycle.delete("app1")

        provider.delete.assert_called_once_with("app1")
        dns.find_record_id.assert_called_once_with("sub1.example.com")
        dns.delete_record.assert_called_once_with("rec-1")
        assert not store.exists("app1")
        assert result.hostname == "sub1.example.com"
        assert result.warnings == []
        assert result.states == [
            DeleteState.VALIDATED,
            DeleteState.CONNECTIONS_CLEANED,
            DeleteState.PROVIDER_DELETED,
            DeleteState.DNS_RECORD_RESOLVED,
            DeleteState.DNS_RECORD_DELETED,
            DeleteState.LOCAL_CONFIG_REMOVED,
        ]

    def test_delete_without_dns_record(self, lifecycle, dns, store):
        lifecycle.create("app1", 3000, "sub1")
        dns.find_record_id.return_value = None

        result = lifecycle.delete("app1")

        dns.find_record_id.assert_called_once_with("sub1.example.com")
        dns.delete_record.assert_not_called()
        assert result.reached(DeleteState.DNS_RECORD_RESOLVED)
        assert not result.reached(DeleteState.DNS_RECORD_DELETED)
        assert not store.exists("app1")

    def test_delete_without_local_config(self, lifecycle, provider, dns, registrar):
        """Nothing local and no service: still deletes at the provider."""
        result = lifecycle.delete("app1")

        registrar.remove.assert_called_once_with("app1")
        provider.delete.assert_called_once_with("app1")
        dns.find_record_id.assert_not_called()
        assert result.hostname is None
        assert result.states == [
            DeleteState.VALIDATED,
            DeleteState.CONNECTIONS_CLEANED,
            DeleteState.PROVIDER_DELETED,
        ]

    def test_delete_stops_service_first(self, lifecycle, provider, registrar):
        order = Mock()
        registrar.remove.side_effect = lambda name: order.remove(name) or True
        provider.delete.side_effect = lambda name: order.delete(name)

        result = lifecycle.delete("app1")

        assert [c[0] for c in order.mock_calls] == ["remove", "delete"]
        assert result.reached(DeleteState.SERVICE_STOPPED)

    def test_service_failure_aborts_before_provider(self, lifecycle, provider, registrar):
        registrar.remove.side_effect = ServiceError("systemctl stop failed")

        with pytest.raises(LifecycleError, match="systemctl stop failed") as exc:
            lifecycle.delete("app1")

        assert exc.value.reached == [DeleteState.VALIDATED]
        provider.delete.assert_not_called()

    def test_provider_failure_is_hard_stop(self, lifecycle, provider, dns, store):
        lifecycle.create("app1", 3000, "sub1")
        provider.delete.side_effect = ProviderError("delete failed", output="active")

        with pytest.raises(LifecycleError, match="active"):
            lifecycle.delete("app1")

        dns.find_record_id.assert_not_called()
        assert store.exists("app1")

    def test_dns_lookup_failure_is_warning(self, lifecycle, dns, store):
        lifecycle.create("app1", 3000, "sub1")
        dns.find_record_id.side_effect = DNSError("Authentication error")

        result = lifecycle.delete("app1")

        dns.delete_record.assert_not_called()
        assert not store.exists("app1")
        assert len(result.warnings) == 1
        assert "Authentication error" in result.warnings[0]

    def test_dns_delete_failure_is_warning(self, lifecycle, dns, store):
        lifecycle.create("app1", 3000, "sub1")
        dns.delete_record.side_effect = DNSError("Record not found")

        result = lifecycle.delete("app1")

        dns.delete_record.assert_called_once_with("rec-1")
        assert result.reached(DeleteState.LOCAL_CONFIG_REMOVED)
        assert not result.reached(DeleteState.DNS_RECORD_DELETED)
        assert "Record not found" in result.warnings[0]

    def test_cleanup_failure_is_warning(self, lifecycle, provider):
        provider.delete.return_value = False

        result = lifecycle.delete("app1")

        assert not result.reached(DeleteState.CONNECTIONS_CLEANED)
        assert result.reached(DeleteState.PROVIDER_DELETED)
        assert "Stale connections" in result.warnings[0]

    def test_mixed_case_subdomain_record_deleted(self, settings, provider, store):
        """The API stores names lowercased; the record is still found."""
        deleted = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "DELETE":
                deleted.append(request.url.path.rsplit("/", 1)[-1])
                return api_envelope({"id": "rec-1"})
            name = request.url.params["name"]
            return api_envelope([{"id": "rec-1", "name": name.lower()}])

        dns = dns_manager(settings, handler)
        lifecycle = TunnelLifecycle(settings, provider, store, dns=dns)
        lifecycle.create("app1", 3000, "App1")

        result = lifecycle.delete("app1")

        assert result.hostname == "app1.example.com"
        assert result.reached(DeleteState.DNS_RECORD_DELETED)
        assert deleted == ["rec-1"]
        assert result.warnings == []

    def test_malformed_record_list_is_warning(self, settings, provider, store):
        dns = dns_manager(
            settings, lambda request: api_envelope([{"name": "sub1.example.com"}])
        )
        lifecycle = TunnelLifecycle(settings, provider, store, dns=dns)
        lifecycle.create("app1", 3000, "sub1")

        result = lifecycle.delete("app1")

        assert not result.reached(DeleteState.DNS_RECORD_RESOLVED)
        assert result.reached(DeleteState.LOCAL_CONFIG_REMOVED)
        assert not store.exists("app1")
        assert "malformed record list" in result.warnings[0]

    def test_dns_not_configured_is_warning(self, settings, provider, store):
        lifecycle = TunnelLifecycle(settings, provider, store)
        lifecycle.create("app1", 3000, "sub1")

        result = lifecycle.delete("app1")

        assert "DNS API not configured" in result.warnings[0]
        assert not store.exists("app1")

    def test_unreadable_config_is_warning(self, lifecycle, provider, dns, store):
        store.config_dir.mkdir(parents=True)
        store.path_for("app1").write_text("tunnel: [broken\n")

        result = lifecycle.delete("app1")

        provider.delete.assert_called_once_with("app1")
        dns.find_record_id.assert_not_called()
        assert "unreadable" in result.warnings[0]
        assert not store.exists("app1")

    def test_config_remove_failure_is_warning(self, settings, provider, dns):
        store = Mock(spec=LocalConfigStore)
        store.read.side_effect = ConfigNotFoundError("none")
        store.remove.side_effect = ConfigStoreError("read-only file system")
        lifecycle = TunnelLifecycle(settings, provider, store, dns=dns)

        result = lifecycle.delete("app1")

        assert "read-only file system" in result.warnings[0]
        assert result.states[-1] == DeleteState.PROVIDER_DELETED

    def test_delete_uses_persisted_hostname(self, lifecycle, dns, settings):
        """DNS cleanup follows the stored hostname, not the current base domain."""
        lifecycle.create("app1", 3000, "sub1")
        lifecycle.settings = settings.model_copy(update={"base_domain": "moved.org"})

        lifecycle.delete("app1")

        dns.find_record_id.assert_called_once_with("sub1.example.com")

    def test_delete_rejects_bad_name(self, lifecycle, provider, dns, registrar, store):
        with pytest.raises(ValidationError):
            lifecycle.delete("../etc")
        assert_untouched(provider, dns, registrar, store)


class TestOtherOperations:
    """start, describe and pass-through commands."""

    def test_start_runs_stored_config(self, lifecycle, provider, store):
        lifecycle.create("app1", 3000, "sub1")

        assert lifecycle.start("app1") == 0
        provider.run.assert_called_once_with(store.path_for("app1"), "app1")

    def test_start_without_config(self, lifecycle, provider):
        with pytest.raises(ConfigNotFoundError):
            lifecycle.start("app1")
        provider.run.assert_not_called()

    def test_describe(self, lifecycle, registrar):
        lifecycle.create("app1", 3000, "sub1")
        registrar.is_installed.return_value = True

        tunnel = lifecycle.describe("app1")

        assert tunnel.remote_id == TUNNEL_ID
        assert tunnel.subdomain == "sub1"
        assert tunnel.port == 3000
        assert tunnel.service_installed is True

    def test_pass_through(self, lifecycle, provider):
        provider.list_tunnels.return_value = [{"name": "app1"}]
        provider.info.return_value = "details"
        provider.tail.return_value = 0
        provider.update.return_value = 0

        assert lifecycle.list_tunnels() == [{"name": "app1"}]
        assert lifecycle.info("app1") == "details"
        assert lifecycle.tail("app1") == 0
        assert lifecycle.update() == 0
        provider.info.assert_called_once_with("app1")
        provider.tail.assert_called_once_with("app1")

    def test_info_validates_name(self, lifecycle, provider):
        with pytest.raises(ValidationError):
            lifecycle.info("a b")
        provider.info.assert_not_called()
