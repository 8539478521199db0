"""Test server configuration loading."""

import pytest

from artifact_cache.config import AppConfig, load_app_config
from artifact_cache.errors import ConfigError


class TestAppConfig:
    """Test the configuration model."""

    def test_defaults(self):
        """Test defaults match a plain `serve` invocation."""
        config = AppConfig()
        assert config.host == "0.0.0.0"
        assert config.port == 15151
        assert config.store is None
        assert config.log_json is False
        assert config.read_only is False
        assert config.write_only is False

    def test_store_from_string(self):
        """Test the store accepts the selection string form."""
        config = AppConfig(store="files:/srv/cache,nolock")
        assert config.store.kind == "files"
        assert config.store.path == "/srv/cache"
        assert config.store.opts == {"nolock": ""}

    def test_store_from_mapping(self):
        """Test the store accepts the structured form."""
        config = AppConfig(store={"kind": "archives", "path": "/srv/archives"})
        assert config.store.kind == "archives"
        assert config.store.opts == {}

    def test_read_only_and_write_only_exclusive(self):
        """Test that disabling both directions is refused."""
        with pytest.raises(ConfigError, match="read-only and write-only"):
            AppConfig(read_only=True, write_only=True)

    @pytest.mark.parametrize("port", [-1, 65536])
    def test_port_range(self, port):
        """Test out-of-range ports are rejected."""
        with pytest.raises(ValueError):
            AppConfig(port=port)


class TestLoadAppConfig:
    """Test merging defaults, config file and overrides."""

    def test_no_file(self):
        """Test defaults are used without a config file."""
        config = load_app_config()
        assert config.port == 15151

    def test_yaml_file(self, tmp_path):
        """Test values are read from YAML."""
        conf = tmp_path / "cache.yaml"
        conf.write_text("host: 127.0.0.1\nport: 8080\nstore: files:/srv/cache\nread_only: true\n")

        config = load_app_config(conf)
        assert config.host == "127.0.0.1"
        assert config.port == 8080
        assert config.store.path == "/srv/cache"
        assert config.read_only is True

    def test_json_file(self, tmp_path):
        """Test JSON is accepted as a YAML subset."""
        conf = tmp_path / "cache.json"
        conf.write_text('{"port": 9000, "log_json": true}')

        config = load_app_config(conf)
        assert config.port == 9000
        assert config.log_json is True

    def test_empty_file(self, tmp_path):
        """Test an empty file means defaults."""
        conf = tmp_path / "cache.yaml"
        conf.write_text("")

        assert load_app_config(conf).port == 15151

    def test_overrides_beat_file(self, tmp_path):
        """Test command-line values take precedence."""
        conf = tmp_path / "cache.yaml"
        conf.write_text("port: 8080\nhost: 127.0.0.1\n")

        config = load_app_config(conf, port=9090, host=None)
        assert config.port == 9090
        assert config.host == "127.0.0.1"

    def test_missing_file(self, tmp_path):
        """Test an unreadable config file is reported."""
        with pytest.raises(ConfigError, match="Failed to read config"):
            load_app_config(tmp_path / "missing.yaml")

    def test_malformed_file(self, tmp_path):
        """Test invalid YAML is reported."""
        conf = tmp_path / "cache.yaml"
        conf.write_text("port: [unclosed\n")

        with pytest.raises(ConfigError, match="Failed to parse config"):
            load_app_config(conf)

    def test_non_mapping_file(self, tmp_path):
        """Test a top-level list is refused."""
        conf = tmp_path / "cache.yaml"
        conf.write_text("- port\n- 8080\n")

        with pytest.raises(ConfigError, match="must be a mapping"):
            load_app_config(conf)

    def test_invalid_value(self, tmp_path):
        """Test type errors become ConfigError."""
        conf = tmp_path / "cache.yaml"
        conf.write_text("port: not-a-port\n")

        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_app_config(conf)

    def test_invalid_store_in_file(self, tmp_path):
        """Test a malformed store selection is a configuration error."""
        conf = tmp_path / "cache.yaml"
        conf.write_text("store: ':nowhere'\n")

        with pytest.raises(ConfigError, match="kind"):
            load_app_config(conf)

    def test_exclusive_flags_across_sources(self, tmp_path):
        """Test the access-mode check applies after merging."""
        conf = tmp_path / "cache.yaml"
        conf.write_text("read_only: true\n")

        with pytest.raises(ConfigError, match="read-only and write-only"):
            load_app_config(conf, write_only=True)
