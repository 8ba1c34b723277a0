"""
Plugin metadata store.

Per-plugin user preferences (currently `order`) live in a TOML document keyed
by plugin name:

    [my-source]
    order = 0

The document is never edited in place. Every change builds the next full
document from a deep copy, writes it atomically, then swaps the in-memory
reference, so readers only ever see a complete document.
"""

import copy
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from musicplug.config.toml_handler import TOMLError, read_toml, write_toml
from musicplug.log import error_log

MetaDocument = dict[str, dict[str, Any]]


def _normalize(data: dict[str, Any]) -> MetaDocument:
    doc: MetaDocument = {}
    for name, entry in data.items():
        if not isinstance(entry, dict):
            continue
        clean = dict(entry)
        order = clean.get("order")
        if order is not None and (isinstance(order, bool) or not isinstance(order, int)):
            clean.pop("order")
        doc[str(name)] = clean
    return doc


def _freeze(doc: MetaDocument) -> Mapping[str, Mapping[str, Any]]:
    return MappingProxyType({name: MappingProxyType(dict(entry)) for name, entry in doc.items()})


class PluginMetaStore:
    """Name-keyed, copy-on-write plugin metadata."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._doc: MetaDocument = {}
        self._view = _freeze(self._doc)

    def load(self) -> None:
        """Read the document from disk; a missing or corrupt file yields {}."""
        if not self.path.exists():
            self._swap({})
            return
        try:
            self._swap(_normalize(read_toml(self.path)))
        except TOMLError as e:
            error_log("plugin meta unreadable, starting empty", e)
            self._swap({})

    def get_all(self) -> Mapping[str, Mapping[str, Any]]:
        return self._view

    def get(self, name: str) -> Mapping[str, Any] | None:
        return self._view.get(name)

    def get_order(self, name: str) -> int | None:
        entry = self._view.get(name)
        return None if entry is None else entry.get("order")

    def produce(self, recipe: Callable[[MetaDocument], None]) -> MetaDocument:
        """Return the next document: a deep copy of the current one with recipe applied."""
        draft = copy.deepcopy(self._doc)
        recipe(draft)
        return draft

    def with_orders(self, names: Iterable[str]) -> MetaDocument:
        """Next document with `order` set to each name's index."""
        names = list(names)

        def recipe(draft: MetaDocument) -> None:
            for index, name in enumerate(names):
                draft.setdefault(name, {})["order"] = index

        return self.produce(recipe)

    def with_appended(self, name: str) -> MetaDocument:
        """Next document giving `name` the order after every known one, unless it has one."""

        def recipe(draft: MetaDocument) -> None:
            entry = draft.setdefault(name, {})
            if entry.get("order") is not None:
                return
            orders = [e["order"] for e in draft.values() if e.get("order") is not None]
            entry["order"] = max(orders, default=-1) + 1

        return self.produce(recipe)

    def replace(self, document: MetaDocument) -> None:
        """
        Persist `document` and make it current.

        Raises:
            TOMLError: If the document cannot be written; the current one stays
        """
        document = _normalize(document)
        write_toml(self.path, document)
        self._swap(document)

    def clear(self) -> None:
        self.replace({})

    def _swap(self, document: MetaDocument) -> None:
        self._doc = document
        self._view = _freeze(document)
