"""
Settings schema.

A section schema maps field names to ConfigField definitions. Values read
from TOML are checked against them before the player uses them.

Key features:
- Typed fields with numeric bounds, length bounds and fixed choices
- Whole-section validation that rejects unknown keys
- Defaults for sections written by older versions
"""

from dataclasses import dataclass
from typing import Any


class SchemaError(Exception):
    """Raised when a field definition itself is inconsistent."""

    pass


class ValidationError(SchemaError):
    """Raised when a value does not satisfy its field."""

    pass


# Types for which min/max make sense; str and list are bounded by length
_BOUNDED_TYPES = (int, float, str, list)


def _matches_type(value: Any, type_: type) -> bool:
    # TOML writes whole floats like "30" as integers
    if type_ is float and isinstance(value, int) and not isinstance(value, bool):
        return True
    if type_ is int and isinstance(value, bool):
        return False
    return isinstance(value, type_)


def _type_name(type_: type) -> str:
    return type_.__name__


@dataclass
class ConfigField:
    """
    One setting.

    Attributes:
        type_: Python type stored in the TOML file
        default: Value used when the file does not set the field
        description: Written as a comment into generated config files
        min: Lower bound (value for numbers, length for str/list)
        max: Upper bound (value for numbers, length for str/list)
        choices: Closed set of allowed values
    """

    type_: type
    default: Any
    description: str = ""
    min: Any = None
    max: Any = None
    choices: list[Any] | None = None

    def __post_init__(self):
        if not _matches_type(self.default, self.type_):
            raise SchemaError(
                f"Default value {self.default!r} does not match type {_type_name(self.type_)}"
            )
        bounded = self.min is not None or self.max is not None
        if bounded and self.type_ not in _BOUNDED_TYPES:
            raise SchemaError(
                f"min/max constraints need a number, str or list field, not {_type_name(self.type_)}"
            )
        if self.choices is not None:
            self._check_choices()

    def _check_choices(self) -> None:
        if not isinstance(self.choices, list):
            raise SchemaError("choices must be a list")
        wrong = [c for c in self.choices if not _matches_type(c, self.type_)]
        if wrong:
            raise SchemaError(f"Choice {wrong[0]!r} does not match type {_type_name(self.type_)}")
        if self.default not in self.choices:
            raise SchemaError(f"Default value {self.default!r} not in choices {self.choices}")

    def validate(self, value: Any) -> None:
        """
        Check one value.

        Raises:
            ValidationError: On a wrong type, a value outside choices, or a bound violation
        """
        if not _matches_type(value, self.type_):
            raise ValidationError(
                f"Expected type {_type_name(self.type_)}, got {type(value).__name__}"
            )
        if self.choices is not None and value not in self.choices:
            raise ValidationError(f"Value {value!r} not in allowed choices {self.choices}")

        if self.type_ is str:
            self._check_bounds("String length", len(value))
        elif self.type_ is list:
            self._check_bounds("List length", len(value))
        elif self.type_ in (int, float):
            self._check_bounds("Value", value)

    def _check_bounds(self, label: str, measure: Any) -> None:
        if self.min is not None and measure < self.min:
            raise ValidationError(f"{label} {measure} is less than minimum {self.min}")
        if self.max is not None and measure > self.max:
            raise ValidationError(f"{label} {measure} is greater than maximum {self.max}")


def validate_config(section: dict[str, Any], schema: dict[str, ConfigField]) -> None:
    """
    Check a whole section. Every schema field must be present.

    Raises:
        ValidationError: Naming the first offending field
    """
    unknown = [key for key in section if key not in schema]
    if unknown:
        raise ValidationError(f"Unknown configuration field: {unknown[0]}")

    for name, field in schema.items():
        if name not in section:
            raise ValidationError(f"Missing required field: {name}")
        try:
            field.validate(section[name])
        except ValidationError as e:
            raise ValidationError(f"Field '{name}': {e}") from e


def fill_defaults(section: dict[str, Any], schema: dict[str, ConfigField]) -> dict[str, Any]:
    """Copy of `section` with unset fields taken from their defaults."""
    return {**generate_default_config(schema), **section}


def generate_default_config(schema: dict[str, ConfigField]) -> dict[str, Any]:
    """Section holding every default; list defaults are copied."""
    defaults = {}
    for name, field in schema.items():
        value = field.default
        defaults[name] = list(value) if isinstance(value, list) else value
    return defaults
