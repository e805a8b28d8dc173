"""CLI commands for rctl-exporter."""

from pathlib import Path

import click

from rctl_exporter.config import Config
from rctl_exporter.errors import AccountingDisabledError, ConfigError, RctlError


def _load_config(config_path: Path | None) -> Config:
    try:
        return Config.load(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


def _parse_listen_address(value: str) -> tuple[str, int]:
    """Split ``host:port`` (``:9166`` binds every interface)."""
    host, sep, port = value.rpartition(":")
    if not sep or not port.isdigit():
        raise click.BadParameter(f"expected host:port, got {value!r}")
    return host.strip("[]"), int(port)


def _fail(e: RctlError) -> None:
    """Report an engine error and exit 1."""
    from rctl_exporter import logging as rlog

    if isinstance(e, AccountingDisabledError):
        rlog.accounting_disabled()
    click.echo(f"Error: {e}", err=True)
    raise SystemExit(1)


config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Config file (default ~/.config/rctl-exporter/config.toml)",
)


@click.group()
@click.version_option(package_name="rctl-exporter")
def main() -> None:
    """Prometheus exporter for FreeBSD rctl resource accounting."""
    pass


@main.command()
@config_option
@click.option(
    "--web.listen-address",
    "listen_address",
    default=None,
    help="Address to listen on for web interface and telemetry (default :9166)",
)
@click.option(
    "--web.telemetry-path",
    "telemetry_path",
    default=None,
    help="Path under which to expose metrics (default /metrics)",
)
@click.option(
    "--filter",
    "-f",
    "filter_expr",
    default=None,
    help="Comma-separated subject:pattern rules, e.g. 'process:^java,user:yo$'",
)
@click.option("--max-matches", type=int, default=None, help="Per-rule cap on matched entities")
def serve(
    config_path: Path | None,
    listen_address: str | None,
    telemetry_path: str | None,
    filter_expr: str | None,
    max_matches: int | None,
) -> None:
    """Run the metrics exporter."""
    import asyncio

    from rctl_exporter.exporter import run_exporter

    config = _load_config(config_path)
    if listen_address is not None:
        config.web.listen_address, config.web.listen_port = _parse_listen_address(listen_address)
    if telemetry_path is not None:
        config.web.telemetry_path = telemetry_path
    if filter_expr is not None:
        config.collect.filter = filter_expr
    if max_matches is not None:
        config.collect.max_matches = max_matches

    try:
        config.validate()
        asyncio.run(run_exporter(config))
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    except OSError as e:
        web = config.web
        raise click.ClickException(
            f"cannot listen on {web.listen_address}:{web.listen_port}: {e}"
        ) from e


@main.command()
@click.argument("rule")
@click.option("--parse", "parse_output", is_flag=True, help="Print parsed fields instead of raw")
@click.option("--buffer-size", type=int, default=None, help="Kernel output buffer size in bytes")
@config_option
def query(rule: str, parse_output: bool, buffer_size: int | None, config_path: Path | None) -> None:
    """Query accounting for one RULE, e.g. 'user:1001:' or 'jail:www:'."""
    from rctl_exporter import logging as rlog
    from rctl_exporter.racct import KernelAccountingQuery, check_subject
    from rctl_exporter.resource import RESOURCE_FIELDS, parse_resource

    config = _load_config(config_path)
    rlog.configure(config, log_to_file=False)
    try:
        subject = check_subject(rule)
        kernel = KernelAccountingQuery(buffer_size or config.collect.buffer_size)
        raw = kernel.get_racct(rule, rlog.get_structlog())
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    except RctlError as e:
        _fail(e)
        return

    if not parse_output:
        click.echo(raw)
        return

    resource = parse_resource(subject, raw)
    for key in RESOURCE_FIELDS:
        click.echo(f"{key}={getattr(resource, key)}")


@main.command("list")
@config_option
@click.option("--filter", "-f", "filter_expr", default=None, help="Override the configured filter")
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table")
def list_cmd(config_path: Path | None, filter_expr: str | None, fmt: str) -> None:
    """Refresh once and print the matched entities."""
    import json

    from rctl_exporter import logging as rlog
    from rctl_exporter.manager import ResourceManager

    config = _load_config(config_path)
    if filter_expr is not None:
        config.collect.filter = filter_expr
    rlog.configure(config, log_to_file=False)

    try:
        manager = ResourceManager.from_config(config, rlog.get_structlog())
        resources = manager.refresh()
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    except RctlError as e:
        _fail(e)
        return

    if fmt == "json":
        click.echo(json.dumps([r.to_dict() for r in resources], indent=2))
        return

    if not resources:
        click.echo("No matching entities.")
        return

    click.echo(
        f"{'Subject':10}  {'ID':>8}  {'Name':30}  {'CPU(s)':>8}  {'%CPU':>5}  {'Memory':>12}"
    )
    click.echo("-" * 82)
    for r in resources:
        click.echo(
            f"{r.resource_type.value:10}  {r.resource_id:>8}  {r.name[:30]:30}  "
            f"{r.cputime:>8}  {r.pcpu:>5}  {r.memoryuse:>12}"
        )


@main.command()
def status() -> None:
    """Check whether kernel resource accounting is enabled."""
    from rctl_exporter.sysctl import racct_enabled

    enabled = racct_enabled()
    if enabled is None:
        click.echo("RACCT: unsupported (kern.racct.enable not found)")
        raise SystemExit(1)
    if not enabled:
        click.echo("RACCT: disabled (set kern.racct.enable=1 in /boot/loader.conf and reboot)")
        raise SystemExit(1)
    click.echo("RACCT: enabled")


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
@config_option
def config_show(config_path: Path | None) -> None:
    """Display current configuration."""
    cfg = _load_config(config_path)
    path = config_path or cfg.config_path

    click.echo(f"Config file: {path}")
    click.echo(f"Exists: {path.exists()}")
    click.echo()
    click.echo("[web]")
    click.echo(f"  listen_address = {cfg.web.listen_address!r}")
    click.echo(f"  listen_port = {cfg.web.listen_port}")
    click.echo(f"  telemetry_path = {cfg.web.telemetry_path}")
    click.echo()
    click.echo("[collect]")
    click.echo(f"  filter = {cfg.collect.filter}")
    click.echo(f"  max_matches = {cfg.collect.max_matches}")
    click.echo(f"  buffer_size = {cfg.collect.buffer_size}")
    click.echo()
    click.echo("[sources]")
    click.echo(f"  passwd_path = {cfg.sources.passwd_path}")
    click.echo(f"  login_conf_path = {cfg.sources.login_conf_path}")
    click.echo()
    click.echo("[logging]")
    click.echo(f"  level = {cfg.logging.level}")


@config.command("edit")
def config_edit() -> None:
    """Open config file in editor."""
    import os
    import subprocess

    from rctl_exporter import logging as rlog

    cfg = _load_config(None)

    # Create config if it doesn't exist
    if not cfg.config_path.exists():
        cfg.save()
        rlog.config_created(str(cfg.config_path))

    editor = os.environ.get("EDITOR", "vi")
    subprocess.run([editor, str(cfg.config_path)])


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    cfg = Config()
    cfg.save()
    click.echo(f"Config reset to defaults at {cfg.config_path}")
