"""tunnelctl command-line interface."""

import functools
import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import click

from . import __version__
from .common.exceptions import BinaryNotFoundError, ConfigurationError, TunnelCtlError
from .common.logging import get_logger, setup_logging
from .common.process import CommandRunner
from .common.utils import (
    sanitize_log_data,
    validate_name,
    validate_port,
    validate_subdomain,
)
from .dns import DNSRecordManager
from .lifecycle import CreateState, DeleteState, TunnelLifecycle
from .provider import TunnelProvider
from .service import ServiceRegistrar
from .settings import Settings, load_settings
from .store import LocalConfigStore

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def build_lifecycle(settings: Settings, with_dns: bool = False) -> TunnelLifecycle:
    """Wire the lifecycle coordinator from settings.

    Args:
        settings: Loaded settings
        with_dns: Also build the DNS client (only ``delete`` needs it)

    Raises:
        BinaryNotFoundError: If cloudflared cannot be found
    """
    runner = CommandRunner("cloudflared", settings.binary_path)
    provider = TunnelProvider(runner, settings.config_dir, settings.origin_cert)
    store = LocalConfigStore(settings.config_dir)

    registrar: ServiceRegistrar | None = None
    try:
        systemctl = CommandRunner("systemctl", settings.systemctl_path)
    except BinaryNotFoundError:
        logger.debug("systemctl not found, services unavailable")
    else:
        registrar = ServiceRegistrar(
            systemctl, runner.binary_path, settings.unit_dir, settings.unit_prefix
        )

    dns: DNSRecordManager | None = None
    if with_dns and settings.dns_configured:
        dns = DNSRecordManager(settings)

    return TunnelLifecycle(settings, provider, store, dns=dns, registrar=registrar)


def _fail(message: str) -> NoReturn:
    click.echo(click.style("Error: ", fg="red", bold=True) + message, err=True)
    sys.exit(1)


def _warn(message: str) -> None:
    click.echo(click.style("Warning: ", fg="yellow", bold=True) + message, err=True)


def handle_errors(func: F) -> F:
    """Turn tunnelctl errors into a red message and exit code 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except TunnelCtlError as e:
            _fail(str(e))

    return wrapper  # type: ignore[return-value]


@click.group()
@click.version_option(version=__version__, prog_name="tunnelctl")
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to config file (default: ~/.config/tunnelctl/config.toml)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level (overrides config)",
)
@click.option("--json-logs", is_flag=True, default=False, help="Emit JSON log lines")
@click.pass_context
def cli(
    ctx: click.Context, config_file: Path | None, log_level: str | None, json_logs: bool
) -> None:
    """Create, run and delete cloudflared tunnels.

    Settings are read from (in priority order) TUNNELCTL_* environment
    variables, the [tunnelctl] table of the config file, and a .env file.
    """
    try:
        settings = load_settings(
            config_file, log_level=log_level, json_logs=json_logs or None
        )
        setup_logging(
            level=settings.log_level,
            json_format=settings.json_logs,
            log_file=settings.log_file,
        )
    except ConfigurationError as e:
        _fail(str(e))

    logger.debug(
        "Settings loaded",
        **sanitize_log_data(settings.model_dump(mode="json", exclude_none=True)),
    )
    ctx.obj = settings


@cli.command()
@click.argument("name")
@click.argument("port")
@click.argument("subdomain")
@click.option("--service", is_flag=True, help="Install and start a systemd service")
@click.option("--force", is_flag=True, help="Overwrite an existing local configuration")
@click.pass_obj
@handle_errors
def create(
    settings: Settings, name: str, port: str, subdomain: str, service: bool, force: bool
) -> None:
    """Create tunnel NAME routing SUBDOMAIN.<base domain> to local PORT."""
    validate_name(name)
    validate_port(port)
    validate_subdomain(subdomain)
    lifecycle = build_lifecycle(settings)
    result = lifecycle.create(name, port, subdomain, service=service, overwrite=force)
    tunnel = result.tunnel

    click.echo(click.style(f"Tunnel '{tunnel.name}' created", fg="green", bold=True))
    click.echo(f"  ID: {tunnel.remote_id}")
    click.echo(f"  Hostname: https://{tunnel.hostname}")
    click.echo(f"  Target: http://localhost:{tunnel.port}")
    click.echo(f"  Config: {tunnel.config_path}")

    for warning in result.warnings:
        _warn(warning)

    if result.state == CreateState.SERVICE_INSTALLED:
        click.echo(f"  Service: {settings.unit_prefix}{tunnel.name}.service (running)")
    elif result.state == CreateState.MANUAL_START_PENDING:
        click.echo("\nStart it manually with:")
        click.echo(f"  {result.manual_start_command}")
    else:
        click.echo(f"\nRun it with: tunnelctl start {tunnel.name}")


@cli.command()
@click.argument("name")
@click.pass_obj
@handle_errors
def start(settings: Settings, name: str) -> None:
    """Run tunnel NAME in the foreground from its stored configuration."""
    validate_name(name)
    lifecycle = build_lifecycle(settings)
    sys.exit(lifecycle.start(name))


@cli.command("list")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON records")
@click.pass_obj
@handle_errors
def list_command(settings: Settings, as_json: bool) -> None:
    """List tunnels known to the provider."""
    records = build_lifecycle(settings).list_tunnels()

    if as_json:
        click.echo(json.dumps(records, indent=2))
        return

    if not records:
        click.echo(click.style("No tunnels found.", fg="yellow"))
        return

    click.echo(f"{'NAME':<24} {'ID':<38} {'CREATED':<28} CONNECTIONS")
    for record in records:
        connections = record.get("connections") or []
        click.echo(
            f"{record.get('name', ''):<24} {record.get('id', ''):<38} "
            f"{record.get('created_at', ''):<28} {len(connections)}"
        )


@cli.command()
@click.argument("name")
@click.pass_obj
@handle_errors
def delete(settings: Settings, name: str) -> None:
    """Delete tunnel NAME with its service, DNS record and local config."""
    validate_name(name)
    lifecycle = build_lifecycle(settings, with_dns=True)
    try:
        result = lifecycle.delete(name)
    finally:
        if lifecycle.dns is not None:
            lifecycle.dns.close()

    for warning in result.warnings:
        _warn(warning)

    click.echo(click.style(f"Tunnel '{result.name}' deleted", fg="green", bold=True))
    if result.reached(DeleteState.SERVICE_STOPPED):
        click.echo("  Service: removed")
    if result.reached(DeleteState.DNS_RECORD_DELETED):
        click.echo(f"  DNS record: {result.hostname} removed")
    elif result.reached(DeleteState.DNS_RECORD_RESOLVED):
        click.echo(f"  DNS record: none found for {result.hostname}")
    if result.reached(DeleteState.LOCAL_CONFIG_REMOVED):
        click.echo("  Config: removed")


@cli.command()
@click.argument("name")
@click.pass_obj
@handle_errors
def info(settings: Settings, name: str) -> None:
    """Show provider details for tunnel NAME."""
    validate_name(name)
    click.echo(build_lifecycle(settings).info(name).rstrip())


@cli.command()
@click.argument("name")
@click.pass_obj
@handle_errors
def tail(settings: Settings, name: str) -> None:
    """Stream logs of tunnel NAME until interrupted."""
    validate_name(name)
    lifecycle = build_lifecycle(settings)
    try:
        code = lifecycle.tail(name)
    except KeyboardInterrupt:
        sys.exit(130)
    sys.exit(code)


@cli.command()
@click.pass_obj
@handle_errors
def update(settings: Settings) -> None:
    """Update the cloudflared binary."""
    sys.exit(build_lifecycle(settings).update())


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"tunnelctl v{__version__}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
