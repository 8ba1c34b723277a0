"""
TOML persistence.

Settings and plugin metadata both live in TOML files:
- reads go through tomllib
- writes are rendered by tomlkit and land atomically (temp file + rename)
- default config files are generated from a schema, with comments
"""

import os
import tempfile
import tomllib
from pathlib import Path
from typing import Any

import tomlkit


class TOMLError(Exception):
    """Raised when a TOML file cannot be read, parsed or written."""

    pass


def read_toml(file_path: Path) -> dict[str, Any]:
    """
    Parse a TOML file into plain dicts.

    Raises:
        TOMLError: If the file is missing, unreadable or malformed
    """
    try:
        with open(file_path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise TOMLError(f"TOML file not found: {file_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise TOMLError(f"Failed to parse TOML file {file_path}: {e}") from e
    except OSError as e:
        raise TOMLError(f"Failed to read TOML file {file_path}: {e}") from e


def write_text_atomic(file_path: Path, text: str) -> None:
    """
    Replace `file_path` with `text` in one step.

    The text is written to a hidden sibling first and then renamed over the
    target, so readers see the old content or the new, never a mix.

    Raises:
        OSError: If the file cannot be written
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, file_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_toml(file_path: Path, data: dict[str, Any]) -> None:
    """
    Render `data` with tomlkit and replace the file atomically.

    Raises:
        TOMLError: If the data cannot be rendered or the file cannot be written
    """
    try:
        write_text_atomic(file_path, tomlkit.dumps(data))
    except (OSError, TypeError, ValueError) as e:
        raise TOMLError(f"Failed to write TOML file {file_path}: {e}") from e


def _constraint_comment(field: Any) -> str | None:
    parts = []
    if field.min is not None:
        parts.append(f"min: {field.min}")
    if field.max is not None:
        parts.append(f"max: {field.max}")
    if field.choices is not None:
        parts.append(f"choices: {field.choices}")
    return f"Constraints: {', '.join(parts)}" if parts else None


def generate_toml_from_schema(
    section: str, schema: dict[str, Any], config_data: dict[str, Any]
) -> str:
    """
    Render one section as a commented TOML document.

    Each field is preceded by its description and constraints as comments.

    Args:
        section: Table name
        schema: Field name -> ConfigField
        config_data: Field name -> value; missing fields use the default
    """
    table = tomlkit.table()
    for name, field in schema.items():
        if field.description:
            table.add(tomlkit.comment(field.description))
        constraints = _constraint_comment(field)
        if constraints:
            table.add(tomlkit.comment(constraints))
        table.add(name, config_data.get(name, field.default))
        table.add(tomlkit.nl())

    doc = tomlkit.document()
    doc.add(tomlkit.comment(f"Configuration for {section}"))
    doc.add(tomlkit.nl())
    doc.add(section, table)
    return tomlkit.dumps(doc)
