"""Console output and structured logging for rctl-exporter.

Two channels:

- Rich console lines for the operator (startup banner, listen address,
  RACCT remediation hints). Printed to stderr with a short timestamp.
- structlog events (``refresh_complete``, ``racct_queried``, ...) routed
  through the stdlib root logger to a console renderer and, for the
  long-running exporter, a rotating JSON Lines file.

The engine modules never call configure(); they receive a bound logger.
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console

from rctl_exporter.errors import DISABLED_HINT

if TYPE_CHECKING:
    from rctl_exporter.config import Config

_console = Console(highlight=False, stderr=True)


# ─────────────────────────────────────────────────────────────────────────────
# Console
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Markers shown between the level tag and the message."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    WAIT = "⏳"
    SIGNAL = "⚡"


_TAGS = {
    "info": "[blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


def log(level: str, msg: str, icon: str = "") -> None:
    """Print one operator-facing line.

    Args:
        level: "info", "warn" or "error"
        msg: Text, Rich markup allowed
        icon: Optional Icon marker
    """
    tag = _TAGS.get(level, f"[{level}]")
    parts = [f"[dim]{datetime.now():%H:%M:%S}[/]", tag]
    if icon:
        parts.append(icon)
    parts.append(msg)
    _console.print(" ".join(parts))


def info(msg: str, icon: str = "") -> None:
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    log("error", msg, icon)


def version_info(name: str, version: str) -> None:
    info(f"[bold cyan]{name}[/] {version}")


def filter_summary(rules: list[str], max_matches: int) -> None:
    """Show the active filter rules and the per-rule cap."""
    cap = f"max {max_matches}/rule" if max_matches else "no cap"
    info(f"Filter: [cyan]{', '.join(rules)}[/] [dim]({cap})[/]")


def exporter_started(address: str, port: int, path: str) -> None:
    host = address or "*"
    info(f"Listening on [cyan]{host}:{port}{path}[/]", Icon.OK)


def exporter_stopping() -> None:
    info("Shutting down HTTP server", Icon.WAIT)


def exporter_stopped() -> None:
    info("Exporter stopped", Icon.OK)


def signal_received(name: str) -> None:
    info(f"Caught [bold]{name}[/]", Icon.SIGNAL)


def accounting_disabled() -> None:
    """Remediation hint for kern.racct.enable=0."""
    error(f"{DISABLED_HINT} [dim](/boot/loader.conf, then reboot)[/]", Icon.FAIL)


def accounting_unsupported() -> None:
    warn("kern.racct.enable not found; kernel lacks RACCT support or this isn't FreeBSD")


def config_created(path: str) -> None:
    info(f"Wrote default config to [cyan]{path}[/]")


# ─────────────────────────────────────────────────────────────────────────────
# Structlog
# ─────────────────────────────────────────────────────────────────────────────

# Applied to records from plain stdlib loggers (wsgiref, asyncio) so they
# render like structlog events.
_FOREIGN_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=False),
    structlog.processors.format_exc_info,
]


def _json_file_handler(config: Config, level: int) -> logging.Handler:
    """Rotating JSON Lines file under the state directory."""
    config.state_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        config.log_path,
        maxBytes=config.logging.log_max_bytes,
        backupCount=config.logging.log_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=_FOREIGN_CHAIN,
        )
    )
    return handler


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(),
            ],
            foreign_pre_chain=_FOREIGN_CHAIN,
        )
    )
    return handler


def configure(config: Config, *, log_to_file: bool = True) -> None:
    """Route structlog through the stdlib root logger.

    Replaces any handlers already on the root logger, so calling it twice
    doesn't duplicate output.

    Args:
        config: Supplies the level, log path and rotation settings
        log_to_file: Add the JSON Lines file handler (off for one-shot commands)
    """
    level = logging.getLevelName(config.logging.level.upper())

    handlers = [_console_handler(level)]
    if log_to_file:
        handlers.append(_json_file_handler(config, level))

    root = logging.getLogger()
    root.handlers[:] = handlers
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=False),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_structlog(**initial_values) -> structlog.stdlib.BoundLogger:
    """Logger to hand to ResourceManager and the collector."""
    return structlog.get_logger("rctl_exporter", **initial_values)
