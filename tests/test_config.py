"""Tests for configuration system."""

import pytest

from rctl_exporter.config import (
    CollectConfig,
    Config,
    LoggingConfig,
    SourcesConfig,
    WebConfig,
)
from rctl_exporter.errors import ConfigError


def test_web_config_defaults():
    """WebConfig listens on every interface at :9166/metrics."""
    config = WebConfig()
    assert config.listen_address == ""
    assert config.listen_port == 9166
    assert config.telemetry_path == "/metrics"


def test_collect_config_defaults():
    """CollectConfig matches every process with no cap."""
    config = CollectConfig()
    assert config.filter == "process:.*"
    assert config.max_matches == 0
    assert config.buffer_size == 1024


def test_sources_config_defaults():
    """SourcesConfig points at the system databases."""
    config = SourcesConfig()
    assert config.passwd_path == "/etc/passwd"
    assert config.login_conf_path == "/etc/login.conf"


def test_logging_config_defaults():
    """LoggingConfig logs at info with rotation."""
    config = LoggingConfig()
    assert config.level == "info"
    assert config.log_max_bytes == 5 * 1024 * 1024
    assert config.log_backup_count == 3


def test_config_paths():
    """Config provides correct paths."""
    config = Config()
    assert "rctl-exporter" in str(config.config_dir)
    assert config.config_path.name == "config.toml"
    assert "rctl-exporter" in str(config.state_dir)
    assert config.log_path.name == "exporter.log"


def test_config_save_creates_file(tmp_path):
    """Config.save() creates config file."""
    config_path = tmp_path / "sub" / "config.toml"
    Config().save(config_path)
    assert config_path.exists()


def test_config_save_preserves_values(tmp_path):
    """Config.save() writes correct TOML values."""
    config_path = tmp_path / "config.toml"
    config = Config()
    config.web.listen_port = 9200
    config.collect.filter = "jail:.*,user:yo$"
    config.save(config_path)

    content = config_path.read_text()
    assert "[web]" in content
    assert "listen_port = 9200" in content
    assert 'filter = "jail:.*,user:yo$"' in content
    assert "[sources]" in content


def test_config_round_trip(tmp_path):
    """A saved config loads back equal."""
    config_path = tmp_path / "config.toml"
    config = Config()
    config.collect.max_matches = 50
    config.logging.level = "debug"
    config.save(config_path)

    assert Config.load(config_path) == config


def test_config_load_reads_values(tmp_path):
    """Config.load() reads values from file, keeping defaults for the rest."""
    config_path = tmp_path / "config.toml"
    config_path.write_text("""
[web]
listen_address = "127.0.0.1"

[collect]
filter = "process:^java.*,loginclass:daemon"
max_matches = 100
""")

    config = Config.load(config_path)
    assert config.web.listen_address == "127.0.0.1"
    assert config.web.listen_port == 9166  # Default preserved
    assert config.collect.filter == "process:^java.*,loginclass:daemon"
    assert config.collect.max_matches == 100
    assert config.logging.level == "info"


def test_config_load_missing_file_returns_defaults(tmp_path):
    """Config.load() returns defaults when file doesn't exist."""
    config = Config.load(tmp_path / "nonexistent.toml")
    assert config == Config()


def test_config_load_invalid_toml(tmp_path):
    """Unparseable TOML is a ConfigError."""
    config_path = tmp_path / "config.toml"
    config_path.write_text("[web\nlisten_port = ")
    with pytest.raises(ConfigError, match="Failed to parse"):
        Config.load(config_path)


def test_config_load_wrong_type(tmp_path):
    """A value of the wrong type is a ConfigError."""
    config_path = tmp_path / "config.toml"
    config_path.write_text('[web]\nlisten_port = "9166"\n')
    with pytest.raises(ConfigError, match="listen_port"):
        Config.load(config_path)


@pytest.mark.parametrize(
    "section,field,value",
    [
        ("web", "listen_port", 70000),
        ("web", "telemetry_path", "metrics"),
        ("collect", "max_matches", -1),
        ("collect", "buffer_size", 64),
        ("logging", "level", "verbose"),
    ],
)
def test_validate_rejects(section, field, value):
    """validate() rejects out-of-range values."""
    config = Config()
    setattr(getattr(config, section), field, value)
    with pytest.raises(ConfigError, match=field):
        config.validate()


def test_load_validates(tmp_path):
    """Config.load() validates what it read."""
    config_path = tmp_path / "config.toml"
    config_path.write_text("[logging]\nlevel = \"loud\"\n")
    with pytest.raises(ConfigError, match="logging level"):
        Config.load(config_path)
