"""Configuration system for rctl-exporter."""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

import tomlkit

from rctl_exporter.errors import ConfigError
from rctl_exporter.racct import MIN_BUFFER_SIZE

LOG_LEVELS = ("debug", "info", "warning", "error")


@dataclass
class WebConfig:
    """HTTP endpoint configuration."""

    listen_address: str = ""  # Empty = all interfaces
    listen_port: int = 9166
    telemetry_path: str = "/metrics"


@dataclass
class CollectConfig:
    """What to collect and how.

    filter is a comma-separated list of subject:pattern rules, e.g.
    "process:^java.*,user:yo$,loginclass:daemon". Prefer narrow process
    patterns: every matched process costs one kernel query per scrape.
    """

    filter: str = "process:.*"
    max_matches: int = 0  # Per-rule cap on matched candidates (0 = unlimited)
    buffer_size: int = MIN_BUFFER_SIZE  # rctl_get_racct(2) output buffer, bytes


@dataclass
class SourcesConfig:
    """Files backing the user and loginclass enumerators."""

    passwd_path: str = "/etc/passwd"
    login_conf_path: str = "/etc/login.conf"


@dataclass
class LoggingConfig:
    """Log output configuration."""

    level: str = "info"
    # exporter.log rotation
    log_max_bytes: int = 5 * 1024 * 1024
    log_backup_count: int = 3


def _section_table(section: object) -> tomlkit.items.Table:
    """One flat config section as a TOML table, in field order."""
    table = tomlkit.table()
    for key, value in asdict(section).items():  # type: ignore[call-overload]
        table.add(key, value)
    return table


@dataclass
class Config:
    """All exporter settings, one dataclass per TOML section."""

    web: WebConfig = field(default_factory=WebConfig)
    collect: CollectConfig = field(default_factory=CollectConfig)
    sources: SourcesConfig = field(default_factory=SourcesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """~/.config/rctl-exporter"""
        return Path.home() / ".config" / "rctl-exporter"

    @property
    def config_path(self) -> Path:
        """The TOML file load() and save() default to."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "rctl-exporter"

    @property
    def log_path(self) -> Path:
        """Exporter log path (JSON Lines)."""
        return self.state_dir / "exporter.log"

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigError: First invalid value found.
        """
        if not 0 <= self.web.listen_port <= 65535:
            raise ConfigError(f"listen_port must be 0-65535, got {self.web.listen_port}")
        if not self.web.telemetry_path.startswith("/"):
            raise ConfigError(
                f"telemetry_path must start with '/', got {self.web.telemetry_path!r}"
            )
        if self.collect.max_matches < 0:
            raise ConfigError(f"max_matches must be >= 0, got {self.collect.max_matches}")
        if self.collect.buffer_size < MIN_BUFFER_SIZE:
            raise ConfigError(
                f"buffer_size must be >= {MIN_BUFFER_SIZE}, got {self.collect.buffer_size}"
            )
        if self.logging.level not in LOG_LEVELS:
            raise ConfigError(
                f"Invalid logging level: {self.logging.level!r}. Must be one of {LOG_LEVELS}"
            )

    def save(self, path: Path | None = None) -> None:
        """Write every section to ``path`` (default: config_path)."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ["web", "collect", "sources", "logging"]:
            doc.add(name, _section_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Read ``path`` (default: config_path).

        A missing file or key falls back to the dataclass default, so
        Config() and Config.load() agree when nothing is configured.

        Raises:
            ConfigError: Unparseable file or invalid values.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f).unwrap()
        except tomlkit.exceptions.TOMLKitError as e:
            raise ConfigError(f"Failed to parse config file {path}: {e}") from e

        config = cls(
            web=_load_section(WebConfig, data.get("web", {})),
            collect=_load_section(CollectConfig, data.get("collect", {})),
            sources=_load_section(SourcesConfig, data.get("sources", {})),
            logging=_load_section(LoggingConfig, data.get("logging", {})),
        )
        config.validate()
        return config


def _load_section(section_cls: type, data: dict):
    """Build a section dataclass from TOML data, using its defaults for missing keys."""
    defaults = section_cls()
    values = {}
    for f in fields(section_cls):
        default = getattr(defaults, f.name)
        value = data.get(f.name, default)
        if type(value) is not type(default):
            raise ConfigError(
                f"{section_cls.__name__}.{f.name} must be {type(default).__name__}, "
                f"got {value!r}"
            )
        values[f.name] = value
    return section_cls(**values)
