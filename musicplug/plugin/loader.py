"""
Plugin Loader.

This module turns raw plugin source text into a classified LoadResult.

Key features:
- Evaluation inside the Sandbox
- Extraction of the declared name, version, source URL and capabilities
- Host-version compatibility check
- Failures are classified and returned, never raised
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from musicplug.log import trace
from musicplug.plugin.identity import compute_hash
from musicplug.plugin.sandbox import Sandbox
from musicplug.plugin.version import VersionError, parse_version_range

# Capability name -> value returned when a plugin does not implement it
CAPABILITIES: Mapping[str, Any] = MappingProxyType(
    {
        "search": None,
        "get_media_source": None,
        "get_music_info": None,
        "get_lyric": None,
        "get_album_info": None,
        "get_music_sheet_info": None,
        "get_artist_works": None,
        "import_music_item": None,
        "import_music_sheet": (),
        "get_top_lists": (),
        "get_top_list_detail": None,
    }
)


class PluginStateCode(Enum):
    """Why a plugin is (or is not) enabled."""

    OK = "ok"
    VERSION_NOT_MATCH = "version-not-match"
    CANNOT_PARSE = "cannot-parse"


@dataclass(frozen=True)
class PluginInstance:
    """
    The capability set a plugin exposes.

    Attributes:
        name: Declared plugin name
        version: Declared plugin version, if any
        src_url: Where updates are fetched from; None means not updatable
        app_version: Declared host-version range, if any
        author: Declared author
        description: Declared description
        capabilities: Capability name -> callable, only for those present
    """

    name: str
    version: str | None = None
    src_url: str | None = None
    app_version: str | None = None
    author: str = ""
    description: str = ""
    capabilities: Mapping[str, Callable[..., Any]] = field(
        default_factory=lambda: MappingProxyType({}), compare=False
    )

    def has(self, capability: str) -> bool:
        return capability in self.capabilities


@dataclass(frozen=True)
class LoadResult:
    """Outcome of loading one plugin source."""

    hash: str
    state_code: PluginStateCode
    instance: PluginInstance | None
    source_url: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state_code is PluginStateCode.OK


def _optional_str(namespace: dict[str, Any], key: str) -> str | None:
    value = namespace.get(key)
    if value is None:
        return None
    if not isinstance(value, (str, int, float)):
        raise TypeError(f"'{key}' must be a string, got {type(value).__name__}")
    return str(value)


def extract_instance(namespace: dict[str, Any]) -> PluginInstance:
    """
    Build the capability set from an evaluated plugin namespace.

    Raises:
        ValueError: If `name` is missing or empty
        TypeError: If a metadata field has the wrong type
    """
    name = namespace.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Plugin does not declare a 'name'")

    capabilities = {
        cap: namespace[cap]
        for cap in CAPABILITIES
        if callable(namespace.get(cap))
    }
    return PluginInstance(
        name=name.strip(),
        version=_optional_str(namespace, "version"),
        src_url=_optional_str(namespace, "src_url"),
        app_version=_optional_str(namespace, "app_version"),
        author=_optional_str(namespace, "author") or "",
        description=_optional_str(namespace, "description") or "",
        capabilities=MappingProxyType(capabilities),
    )


def load(
    raw_source: str,
    source_url: str | None,
    sandbox: Sandbox,
) -> LoadResult:
    """
    Evaluate plugin source and classify the outcome.

    Args:
        raw_source: Plugin source text
        source_url: Where the text came from (for messages only)
        sandbox: Sandbox carrying the running host version

    Returns:
        LoadResult; state_code tells success from CANNOT_PARSE/VERSION_NOT_MATCH
    """
    plugin_hash = compute_hash(raw_source)
    label = source_url or "<plugin>"

    try:
        namespace = sandbox.evaluate(raw_source, filename=label)
        instance = extract_instance(namespace)
        app_range = parse_version_range(instance.app_version) if instance.app_version else None
    except VersionError as e:
        trace("plugin declares an invalid app_version", f"{label}: {e}", "error")
        return LoadResult(
            plugin_hash, PluginStateCode.CANNOT_PARSE, None, source_url, f"Invalid app_version: {e}"
        )
    except Exception as e:
        trace("plugin cannot be parsed", f"{label}: {e!r}", "error")
        return LoadResult(
            plugin_hash,
            PluginStateCode.CANNOT_PARSE,
            None,
            source_url,
            f"{type(e).__name__}: {e}",
        )

    if app_range is not None and not app_range.matches(sandbox.app_version):
        message = (
            f"Plugin {instance.name} requires app version {app_range}, "
            f"running {sandbox.app_version}"
        )
        trace("plugin version not match", message)
        return LoadResult(
            plugin_hash, PluginStateCode.VERSION_NOT_MATCH, instance, source_url, message
        )

    return LoadResult(plugin_hash, PluginStateCode.OK, instance, source_url)
