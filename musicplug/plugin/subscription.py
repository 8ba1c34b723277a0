"""
Subscription manifests.

A subscription manifest lists plugin install URLs:

    {"plugins": [{"version": "0.1.0", "url": "https://example.com/a.py"}]}

Entries without a usable `url` are dropped; the rest keep manifest order.
"""

import json
from dataclasses import dataclass
from typing import Any

from musicplug.plugin.errors import SubscriptionError


@dataclass(frozen=True)
class SubscriptionEntry:
    url: str
    version: str | None = None


def _load(json_text: str) -> list[Any]:
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise SubscriptionError(f"Failed to parse subscription manifest: {e}") from e

    if not isinstance(data, dict):
        raise SubscriptionError("Subscription manifest must be a JSON object")

    plugins = data.get("plugins")
    if plugins is None:
        return []
    if not isinstance(plugins, list):
        raise SubscriptionError("'plugins' field must be a list")
    return plugins


def parse_manifest_entries(json_text: str) -> list[SubscriptionEntry]:
    """
    Parse a manifest into entries.

    Raises:
        SubscriptionError: If the text is not a manifest object
    """
    entries = []
    for raw in _load(json_text):
        if not isinstance(raw, dict):
            continue
        url = raw.get("url")
        if not isinstance(url, str) or not url.strip():
            continue
        version = raw.get("version")
        entries.append(
            SubscriptionEntry(url.strip(), None if version is None else str(version))
        )
    return entries


def parse_manifest(json_text: str) -> list[str]:
    """Install URLs of a manifest, in manifest order."""
    return [entry.url for entry in parse_manifest_entries(json_text)]
