"""
musicplug configuration - typed TOML settings.

Sections are declared once with a schema and then read and written through
a ConfigProxy that validates and flushes every change:

    from musicplug import config

    config.declare("musicplug", {
        "fetch_timeout": config.field(float, 30.0, "HTTP timeout", min=1.0),
    })

    cfg = config.get("musicplug")
    cfg.fetch_timeout          # read
    cfg.fetch_timeout = 10.0   # validated, written to config/musicplug.toml
"""

from pathlib import Path
from typing import Any

from musicplug.config.runtime import ConfigProxy
from musicplug.config.schema import ConfigField, generate_default_config
from musicplug.config.toml_handler import generate_toml_from_schema, write_text_atomic

# section name -> schema
_schemas: dict[str, dict[str, ConfigField]] = {}

_config_file = Path("config/musicplug.toml")


class ConfigError(Exception):
    """Raised on misuse of the section registry."""

    pass


def field(
    type_: type,
    default: Any,
    description: str = "",
    min: Any = None,
    max: Any = None,
    choices: list[Any] | None = None,
) -> ConfigField:
    """Shorthand for ConfigField, e.g. `field(float, 30.0, "Timeout", min=1.0)`."""
    return ConfigField(type_, default, description, min=min, max=max, choices=choices)


def _schema_for(section: str) -> dict[str, ConfigField]:
    schema = _schemas.get(section)
    if schema is None:
        raise ConfigError(
            f"Schema for section '{section}' not declared. Call declare() first."
        )
    return schema


def declare(section: str, schema: dict[str, ConfigField]) -> None:
    """
    Register the schema of a section.

    Raises:
        ConfigError: If the section was declared before
    """
    if section in _schemas:
        raise ConfigError(f"Schema for section '{section}' already declared")
    _schemas[section] = schema


def is_declared(section: str) -> bool:
    return section in _schemas


def get(section: str) -> ConfigProxy:
    """
    Proxy for a declared section, backed by the current config file.

    Raises:
        ConfigError: If the section was never declared
    """
    return ConfigProxy(section, _schema_for(section), _config_file)


def set_config_file(path: Path) -> None:
    """Use another TOML file for every later get()."""
    global _config_file
    _config_file = Path(path)


def get_config_file() -> Path:
    return _config_file


def write_default_config(section: str, path: Path | None = None) -> Path:
    """
    Write a commented file holding the defaults of one section.

    Raises:
        ConfigError: If the section was never declared
    """
    schema = _schema_for(section)
    target = Path(path) if path is not None else _config_file
    text = generate_toml_from_schema(section, schema, generate_default_config(schema))
    write_text_atomic(target, text)
    return target


__all__ = [
    "field",
    "declare",
    "is_declared",
    "get",
    "set_config_file",
    "get_config_file",
    "write_default_config",
    "ConfigError",
]
