"""
Plugin Registry.

This module holds the authoritative, ordered collection of installed plugins.

Key features:
- Immutable Plugin records, replaced as a whole tuple on every commit
- Ordering from persisted PluginMeta (explicit order first, then discovery order)
- Observer notification with the sorted snapshot after each commit
"""

import warnings
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from musicplug.plugin.loader import LoadResult, PluginInstance, PluginStateCode
from musicplug.plugin.meta import MetaDocument, PluginMetaStore
from musicplug.plugin.methods import PluginMethods


class PluginState(Enum):
    """Coarse plugin status."""

    ENABLED = "enabled"
    ERROR = "error"


@dataclass(frozen=True)
class Plugin:
    """
    An installed plugin.

    Attributes:
        hash: SHA-256 of the plugin source, unique in the registry
        name: Declared name, key of the plugin's metadata
        instance: Capability set produced by the loader
        state_code: Why the plugin is or is not enabled
        path: Installed source file, if persisted
        error: Load error message for plugins in the ERROR state
        methods: Dispatch wrapper around instance
    """

    hash: str
    name: str
    instance: PluginInstance
    state_code: PluginStateCode = PluginStateCode.OK
    path: Path | None = None
    error: str | None = None
    methods: PluginMethods = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "methods", PluginMethods(self.instance))

    @property
    def state(self) -> PluginState:
        if self.state_code is PluginStateCode.OK:
            return PluginState.ENABLED
        return PluginState.ERROR

    @property
    def enabled(self) -> bool:
        return self.state is PluginState.ENABLED

    @property
    def version(self) -> str | None:
        return self.instance.version

    @classmethod
    def from_load_result(
        cls, result: LoadResult, path: Path | None = None, fallback_name: str = ""
    ) -> "Plugin":
        instance = result.instance or PluginInstance(name=fallback_name or result.hash[:12])
        return cls(
            hash=result.hash,
            name=instance.name,
            instance=instance,
            state_code=result.state_code,
            path=path,
            error=result.error,
        )


Observer = Callable[[tuple[Plugin, ...]], None]


class PluginRegistry:
    """
    Ordered, observable collection of installed plugins.

    Reads are lock-free snapshots; the single writer (the manager) replaces
    the whole tuple and, when ordering changes, the whole metadata document.
    """

    def __init__(self, meta: PluginMetaStore):
        self._meta = meta
        self._plugins: tuple[Plugin, ...] = ()
        self._observers: list[Observer] = []

        self._meta.load()

    @property
    def meta(self) -> PluginMetaStore:
        return self._meta

    @property
    def plugins(self) -> tuple[Plugin, ...]:
        """Plugins in discovery/install order."""
        return self._plugins

    def __len__(self) -> int:
        return len(self._plugins)

    def __iter__(self):
        return iter(self._plugins)

    def get_by_hash(self, plugin_hash: str) -> Plugin | None:
        for plugin in self._plugins:
            if plugin.hash == plugin_hash:
                return plugin
        return None

    def get_by_name(self, name: str) -> Plugin | None:
        for plugin in self._plugins:
            if plugin.name == name:
                return plugin
        return None

    def restore(self, plugins: Iterable[Plugin]) -> None:
        """Set the startup contents discovered on disk."""
        self._replace(plugins)

    def commit(
        self, plugins: Iterable[Plugin], meta_document: MetaDocument | None = None
    ) -> None:
        """
        Replace the registry contents, and the metadata document if given.

        Metadata is persisted first; if that write fails nothing changes.

        Raises:
            TOMLError: If the metadata document cannot be written
        """
        plugins = tuple(plugins)
        if meta_document is not None:
            self._meta.replace(meta_document)
        self._replace(plugins)

    def sorted_plugins(self) -> tuple[Plugin, ...]:
        """
        Plugins ordered by persisted `order`.

        Plugins without an order come after those with one and keep their
        relative discovery order.
        """
        meta = self._meta

        def key(item: tuple[int, Plugin]) -> tuple[int, int, int]:
            index, plugin = item
            order = meta.get_order(plugin.name)
            if order is None:
                return (1, 0, index)
            return (0, order, index)

        return tuple(plugin for _, plugin in sorted(enumerate(self._plugins), key=key))

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _replace(self, plugins: Iterable[Plugin]) -> None:
        self._plugins = tuple(plugins)
        self._notify()

    def _notify(self) -> None:
        snapshot = self.sorted_plugins()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception as e:
                warnings.warn(
                    f"Plugin registry observer failed: {e}",
                    RuntimeWarning,
                    stacklevel=2,
                )
