"""
Tests for Configuration System.

This test suite covers:
1. Schema validation (type mismatch, constraint violation)
2. TOML generation from schema (with comments)
3. Runtime read/write with auto-flush
4. Partial sections and invalid files
5. The [musicplug] settings section
"""

import tempfile
from pathlib import Path

import pytest

import musicplug.config
from musicplug import settings
from musicplug.config.runtime import ConfigProxy, ConfigProxyError
from musicplug.config.schema import (
    ConfigField,
    SchemaError,
    ValidationError,
    fill_defaults,
    generate_default_config,
    validate_config,
)
from musicplug.config.toml_handler import (
    TOMLError,
    generate_toml_from_schema,
    read_toml,
    write_toml,
)


@pytest.fixture
def isolated_config(tmp_path):
    """Point the config API at a temporary file with no declared schemas."""
    original_file = musicplug.config._config_file
    original_schemas = dict(musicplug.config._schemas)
    musicplug.config._schemas.clear()
    musicplug.config.set_config_file(tmp_path / "musicplug.toml")
    try:
        yield tmp_path / "musicplug.toml"
    finally:
        musicplug.config._config_file = original_file
        musicplug.config._schemas.clear()
        musicplug.config._schemas.update(original_schemas)


class TestSchemaValidation:
    """Test schema field validation."""

    def test_field_default_type_mismatch(self):
        """ConfigField should reject default value that doesn't match type."""
        with pytest.raises(SchemaError, match="does not match type"):
            ConfigField(int, "not an int", "Bad default")

    def test_float_field_accepts_int(self):
        """TOML integers are valid values for float fields."""
        field = ConfigField(float, 30.0, "Timeout", min=1.0)
        field.validate(30)
        field.validate(2.5)

    def test_int_field_rejects_bool(self):
        field = ConfigField(int, 1, "Count")
        with pytest.raises(ValidationError, match="Expected type"):
            field.validate(True)

    def test_numeric_bounds(self):
        field = ConfigField(float, 30.0, "Timeout", min=1.0, max=300.0)
        field.validate(1.0)
        field.validate(300.0)

        with pytest.raises(ValidationError, match="less than minimum"):
            field.validate(0.5)
        with pytest.raises(ValidationError, match="greater than maximum"):
            field.validate(301)

    def test_string_length_bounds(self):
        field = ConfigField(str, "data/plugins", "Directory", min=1)
        with pytest.raises(ValidationError, match="less than minimum"):
            field.validate("")

    def test_choices(self):
        field = ConfigField(str, "play-album", "Mode", choices=["play-album", "play-single"])
        field.validate("play-single")
        with pytest.raises(ValidationError, match="not in allowed choices"):
            field.validate("shuffle")

    def test_choices_default_must_be_in_choices(self):
        with pytest.raises(SchemaError, match="not in choices"):
            ConfigField(str, "shuffle", "Mode", choices=["play-album", "play-single"])

    def test_min_max_rejected_for_bool(self):
        with pytest.raises(SchemaError, match="min/max constraints"):
            ConfigField(bool, False, "Flag", min=0)

    def test_validate_config_missing_and_unknown(self):
        schema = {"a": ConfigField(int, 1), "b": ConfigField(str, "x")}

        with pytest.raises(ValidationError, match="Missing required field: b"):
            validate_config({"a": 1}, schema)
        with pytest.raises(ValidationError, match="Unknown configuration field"):
            validate_config({"a": 1, "b": "x", "c": 3}, schema)

    def test_fill_defaults_keeps_given_values(self):
        schema = {"a": ConfigField(int, 1), "b": ConfigField(str, "x")}
        assert fill_defaults({"a": 5}, schema) == {"a": 5, "b": "x"}

    def test_default_lists_are_not_shared(self):
        """Each generated config gets its own copy of list defaults."""
        schema = {"urls": ConfigField(list, [], "Subscriptions")}
        first = generate_default_config(schema)
        first["urls"].append("https://example.com/a.json")
        assert generate_default_config(schema)["urls"] == []


class TestTOMLHandler:
    """Test TOML file I/O operations."""

    def test_toml_read_write_roundtrip(self):
        """TOML read/write should preserve data."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_file = Path(tmpdir) / "meta.toml"
            data = {"source-a": {"order": 0}, "source-b": {"order": 1}}

            write_toml(config_file, data)

            assert read_toml(config_file) == data
            # no temporary siblings are left behind
            assert [p.name for p in Path(tmpdir).iterdir()] == ["meta.toml"]

    def test_toml_write_creates_parent_dirs(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_file = Path(tmpdir) / "nested" / "dir" / "meta.toml"
            write_toml(config_file, {"x": {"order": 3}})
            assert read_toml(config_file) == {"x": {"order": 3}}

    def test_read_invalid_toml(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_file = Path(tmpdir) / "broken.toml"
            config_file.write_text("[unclosed\n", encoding="utf-8")

            with pytest.raises(TOMLError, match="Failed to parse"):
                read_toml(config_file)

    def test_read_missing_toml(self):
        with pytest.raises(TOMLError, match="not found"):
            read_toml(Path("/nonexistent/dir/missing.toml"))

    def test_toml_generate_from_schema(self):
        """TOML generation should include comments from schema."""
        schema = {
            "fetch_timeout": ConfigField(float, 30.0, "Download timeout", min=1.0, max=300.0),
            "mode": ConfigField(str, "a", "Play mode", choices=["a", "b"]),
        }
        toml_str = generate_toml_from_schema(
            "musicplug", schema, {"fetch_timeout": 30.0, "mode": "a"}
        )

        assert "[musicplug]" in toml_str
        assert "Download timeout" in toml_str
        assert "min: 1.0" in toml_str
        assert "choices:" in toml_str
        assert "fetch_timeout = 30.0" in toml_str
        assert 'mode = "a"' in toml_str


class TestRuntimeAccess:
    """Test ConfigProxy runtime access."""

    def test_config_proxy_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            schema = {"field1": ConfigField(int, 42), "field2": ConfigField(str, "hello")}
            proxy = ConfigProxy("musicplug", schema, Path(tmpdir) / "test.toml")

            assert proxy.field1 == 42
            assert proxy.field2 == "hello"
            assert proxy.as_dict() == {"field1": 42, "field2": "hello"}

    def test_config_proxy_write_flushes(self):
        """Writes are validated and flushed without touching other sections."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_file = Path(tmpdir) / "test.toml"
            write_toml(config_file, {"other": {"keep": True}})

            schema = {"field1": ConfigField(int, 42, min=0, max=100)}
            proxy = ConfigProxy("musicplug", schema, config_file)
            proxy.field1 = 50

            data = read_toml(config_file)
            assert data["musicplug"]["field1"] == 50
            assert data["other"] == {"keep": True}

            with pytest.raises(ValidationError, match="greater than maximum"):
                proxy.field1 = 150
            assert proxy.field1 == 50

    def test_config_proxy_unknown_field(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proxy = ConfigProxy(
                "musicplug", {"field1": ConfigField(int, 42)}, Path(tmpdir) / "t.toml"
            )

            with pytest.raises(AttributeError, match="not found in schema"):
                _ = proxy.unknown_field
            with pytest.raises(AttributeError, match="not found in schema"):
                proxy.unknown_field = 123

    def test_partial_section_filled_with_defaults(self):
        """Fields missing from the file fall back to their defaults."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_file = Path(tmpdir) / "test.toml"
            write_toml(config_file, {"musicplug": {"field1": 7}})

            schema = {"field1": ConfigField(int, 42), "field2": ConfigField(str, "hello")}
            proxy = ConfigProxy("musicplug", schema, config_file)

            assert proxy.field1 == 7
            assert proxy.field2 == "hello"

    def test_invalid_section_raises(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_file = Path(tmpdir) / "test.toml"
            write_toml(config_file, {"musicplug": {"field1": "seven"}})

            with pytest.raises(ConfigProxyError, match="Invalid \\[musicplug\\] section"):
                ConfigProxy("musicplug", {"field1": ConfigField(int, 42)}, config_file)


class TestConfigAPI:
    """Test public configuration API."""

    def test_declare_and_get(self, isolated_config):
        musicplug.config.declare("demo", {"field1": musicplug.config.field(int, 42)})

        cfg = musicplug.config.get("demo")
        cfg.field1 = 100

        assert read_toml(isolated_config)["demo"]["field1"] == 100

    def test_declare_duplicate_raises_error(self, isolated_config):
        musicplug.config.declare("demo", {"field1": musicplug.config.field(int, 42)})
        with pytest.raises(musicplug.config.ConfigError, match="already declared"):
            musicplug.config.declare("demo", {"field1": musicplug.config.field(int, 1)})

    def test_get_undeclared_raises_error(self, isolated_config):
        with pytest.raises(musicplug.config.ConfigError, match="not declared"):
            musicplug.config.get("missing")

    def test_write_default_config(self, isolated_config):
        musicplug.config.declare(
            "demo", {"timeout": musicplug.config.field(float, 5.0, "Timeout")}
        )

        path = musicplug.config.write_default_config("demo")

        assert path == isolated_config
        assert read_toml(path) == {"demo": {"timeout": 5.0}}
        assert "# Timeout" in path.read_text(encoding="utf-8")


class TestSettings:
    """Test the [musicplug] settings section."""

    def test_defaults(self, isolated_config):
        cfg = settings.get_settings()

        assert cfg.plugins_dir == "data/plugins"
        assert cfg.meta_file == "data/plugin-meta.toml"
        assert cfg.subscribe_urls == []
        assert cfg.fetch_timeout == 30.0
        assert cfg.trace_log is False
        assert cfg.error_log is True
        assert cfg.click_music_in_album == settings.PLAY_ALBUM

    def test_settings_from_file(self, isolated_config):
        write_toml(
            isolated_config,
            {
                "musicplug": {
                    "subscribe_urls": ["https://example.com/plugins.json"],
                    "click_music_in_album": "play-single",
                }
            },
        )

        cfg = settings.get_settings()

        assert cfg.subscribe_urls == ["https://example.com/plugins.json"]
        assert cfg.click_music_in_album == settings.PLAY_SINGLE
        assert cfg.plugins_dir == "data/plugins"

    def test_invalid_play_mode_rejected(self, isolated_config):
        cfg = settings.get_settings()
        with pytest.raises(ValidationError, match="not in allowed choices"):
            cfg.click_music_in_album = "shuffle"
