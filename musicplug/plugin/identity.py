"""
Plugin identity and install-action resolution.

A plugin is identified by the SHA-256 of its source text. Its name is the key
for user preferences, so a new hash under a known name is an update.
"""

import hashlib
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from musicplug.plugin.registry import Plugin


class InstallAction(Enum):
    INSTALL = "install"
    UPDATE = "update"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class Resolution:
    """
    Attributes:
        action: What committing the candidate would do
        existing: The installed plugin that is replaced or matched, if any
    """

    action: InstallAction
    existing: "Plugin | None" = None


def compute_hash(source: str) -> str:
    return hashlib.sha256(source.encode("utf-8")).hexdigest()


def resolve(
    candidate_hash: str,
    candidate_name: str,
    plugins: Iterable["Plugin"],
    force_replace: "Plugin | None" = None,
) -> Resolution:
    """
    Decide how a loaded candidate relates to the installed plugins.

    Args:
        candidate_hash: Hash of the candidate source
        candidate_name: Name the candidate declares
        plugins: Current registry snapshot
        force_replace: Plugin being updated; any new content replaces it

    Returns:
        UNCHANGED when the hash is already installed, UPDATE when the name
        (or force_replace) matches an installed plugin, INSTALL otherwise
    """
    plugins = list(plugins)

    for plugin in plugins:
        if plugin.hash == candidate_hash:
            return Resolution(InstallAction.UNCHANGED, plugin)

    if force_replace is not None:
        for plugin in plugins:
            if plugin.hash == force_replace.hash:
                return Resolution(InstallAction.UPDATE, plugin)

    for plugin in plugins:
        if plugin.name == candidate_name:
            return Resolution(InstallAction.UPDATE, plugin)

    return Resolution(InstallAction.INSTALL)
