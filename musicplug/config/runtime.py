"""
Live settings access.

ConfigProxy exposes one TOML section as attributes. Reads come from an
in-memory copy; every write is checked against the schema and written back
to the file at once, leaving the file's other sections as they were.
"""

import threading
from pathlib import Path
from typing import Any

from musicplug.config.schema import (
    ConfigField,
    ValidationError,
    fill_defaults,
    generate_default_config,
    validate_config,
)
from musicplug.config.toml_handler import TOMLError, read_toml, write_toml


class ConfigProxyError(Exception):
    """Raised when the backing config file cannot be loaded or flushed."""

    pass


class ConfigProxy:
    """
    Attribute view of one config section.

    Example:
        cfg = ConfigProxy("musicplug", schema, Path("config/musicplug.toml"))
        cfg.plugins_dir            # read
        cfg.trace_log = True       # validated, then flushed to disk
    """

    def __init__(self, section: str, schema: dict[str, ConfigField], config_file: Path):
        # plain attribute writes are routed through the validating __setattr__
        for name, value in (
            ("_section", section),
            ("_schema", schema),
            ("_config_file", Path(config_file)),
            ("_lock", threading.Lock()),
            ("_values", generate_default_config(schema)),
        ):
            object.__setattr__(self, name, value)

        self._read_section()

    def _read_section(self) -> None:
        if not self._config_file.exists():
            return
        try:
            document = read_toml(self._config_file)
        except TOMLError as e:
            raise ConfigProxyError(f"Failed to load config: {e}") from e

        raw = document.get(self._section)
        if raw is None:
            return

        values = fill_defaults(raw, self._schema)
        try:
            validate_config(values, self._schema)
        except ValidationError as e:
            raise ConfigProxyError(
                f"Invalid [{self._section}] section in {self._config_file}: {e}"
            ) from e
        object.__setattr__(self, "_values", values)

    def _field(self, name: str) -> ConfigField:
        try:
            return self._schema[name]
        except KeyError:
            raise AttributeError(
                f"Configuration field '{name}' not found in schema for {self._section}"
            ) from None

    def __getattr__(self, name: str) -> Any:
        # only reached for names that are not real attributes
        if name.startswith("_"):
            raise AttributeError(name)
        self._field(name)
        return self._values[name]

    def __setattr__(self, name: str, value: Any) -> None:
        """
        Validate and store a field, then flush the section.

        Raises:
            AttributeError: If the schema has no such field
            ValidationError: If the value does not satisfy the field
            ConfigProxyError: If the file cannot be written
        """
        if name.startswith("_"):
            object.__setattr__(self, name, value)
            return

        self._field(name).validate(value)
        with self._lock:
            self._values[name] = value
            self._flush()

    def as_dict(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def _flush(self) -> None:
        try:
            document = read_toml(self._config_file) if self._config_file.exists() else {}
            document[self._section] = dict(self._values)
            write_toml(self._config_file, document)
        except TOMLError as e:
            raise ConfigProxyError(f"Failed to flush config to file: {e}") from e

    def __repr__(self) -> str:
        return f"ConfigProxy([{self._section}] {self._values})"
