"""
Plugin Manager.

This module provides the public plugin API of the music player.

Key features:
- Install from local files, URLs and subscription manifests
- Content-hash identity: re-installing identical source is a no-op
- Update from the plugin's declared source URL
- Uninstall (single/all) and user ordering
- Partial-failure-aware batch installs
- Capability dispatch in registry order
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar
from urllib.parse import urljoin

from musicplug import __version__
from musicplug.config.toml_handler import TOMLError, write_text_atomic
from musicplug.log import error_log, trace
from musicplug.media import MusicItem, SearchResult
from musicplug.plugin.errors import (
    AggregateInstallError,
    CannotParseError,
    CapabilityError,
    FetchError,
    PluginError,
    PluginNotFoundError,
    PluginNotUpdatableError,
    SubscriptionError,
    VersionNotMatchError,
)
from musicplug.plugin.fetcher import (
    SourceFetcher,
    add_cache_buster,
    is_remote,
    strip_fragment,
)
from musicplug.plugin.identity import InstallAction, resolve
from musicplug.plugin.loader import LoadResult, PluginStateCode, load
from musicplug.plugin.meta import MetaDocument, PluginMetaStore
from musicplug.plugin.registry import Observer, Plugin, PluginRegistry
from musicplug.plugin.sandbox import HostHttp, Sandbox
from musicplug.plugin.subscription import parse_manifest

PLUGIN_SUFFIX = ".py"
MANIFEST_SUFFIX = ".json"

T = TypeVar("T")


@dataclass(frozen=True)
class InstallResult:
    """
    Attributes:
        action: INSTALL, UPDATE or UNCHANGED
        plugin: The plugin now in the registry for this source
        locator: Where the source was fetched from
    """

    action: InstallAction
    plugin: Plugin
    locator: str | None = None


@dataclass(frozen=True)
class BatchInstallResult:
    results: tuple[InstallResult, ...]

    def count(self, action: InstallAction) -> int:
        return sum(1 for r in self.results if r.action is action)


class PluginManager:
    """
    Plugin lifecycle manager.

    All registry mutations run under one asyncio lock and resolve their
    install action against the latest snapshot, so concurrent installs of
    the same source converge on one entry.
    """

    def __init__(
        self,
        plugins_dir: Path,
        meta_file: Path,
        app_version: str = __version__,
        fetcher: SourceFetcher | None = None,
        sandbox: Sandbox | None = None,
        subscribe_urls: Sequence[str] = (),
        fetch_timeout: float = 30.0,
    ):
        """
        Initialize PluginManager.

        Args:
            plugins_dir: Directory holding installed plugin sources
            meta_file: TOML file holding per-plugin metadata
            app_version: Host version checked against plugin `app_version`
            fetcher: Source fetcher (defaults to an httpx-backed one)
            sandbox: Evaluation sandbox (defaults to one exposing HostHttp)
            subscribe_urls: Manifests synced by sync_subscriptions()
            fetch_timeout: Timeout for the default fetcher and host http
        """
        self.plugins_dir = Path(plugins_dir)
        self.app_version = app_version
        self.subscribe_urls = list(subscribe_urls)
        self._fetcher = fetcher or SourceFetcher(timeout=fetch_timeout)
        self._sandbox = sandbox or Sandbox(app_version, HostHttp(timeout=fetch_timeout))
        self.registry = PluginRegistry(PluginMetaStore(meta_file))
        self._lock = asyncio.Lock()

        self.plugins_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "PluginManager":
        """Build a manager from the `[musicplug]` settings proxy."""
        return cls(
            plugins_dir=Path(settings.plugins_dir),
            meta_file=Path(settings.meta_file),
            subscribe_urls=settings.subscribe_urls,
            fetch_timeout=settings.fetch_timeout,
            **kwargs,
        )

    async def __aenter__(self) -> "PluginManager":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._fetcher.aclose()
        await self._sandbox.http.aclose()

    # ------------------------------------------------------------------
    # Startup

    async def setup(self) -> None:
        """
        Restore installed plugins from plugins_dir.

        Files that fail to load stay listed in the ERROR state; files whose
        hash was already seen are skipped.
        """
        files = sorted(
            self.plugins_dir.glob(f"*{PLUGIN_SUFFIX}"),
            key=lambda p: (p.stat().st_mtime, p.name),
        )
        plugins: list[Plugin] = []
        seen: set[str] = set()

        for path in files:
            try:
                text = await self._fetcher.fetch(str(path))
            except FetchError as e:
                error_log("installed plugin unreadable", e)
                continue
            result = load(text, str(path), self._sandbox)
            if result.hash in seen:
                continue
            seen.add(result.hash)
            plugins.append(Plugin.from_load_result(result, path, fallback_name=path.stem))

        self.registry.restore(plugins)
        trace("plugins restored", f"{len(plugins)} from {self.plugins_dir}")

    # ------------------------------------------------------------------
    # Queries

    @property
    def plugins(self) -> tuple[Plugin, ...]:
        return self.registry.plugins

    def sorted_plugins(self) -> tuple[Plugin, ...]:
        """Plugins in user order; also the priority order for capabilities."""
        return self.registry.sorted_plugins()

    def get_by_hash(self, plugin_hash: str) -> Plugin | None:
        return self.registry.get_by_hash(plugin_hash)

    def get_by_name(self, name: str) -> Plugin | None:
        return self.registry.get_by_name(name)

    def get_by_media(self, music_item: MusicItem) -> Plugin | None:
        return self.registry.get_by_name(music_item.platform)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        return self.registry.subscribe(observer)

    # ------------------------------------------------------------------
    # Install pipeline

    async def _install_from_locator(
        self, locator: str, force_replace: Plugin | None = None
    ) -> InstallResult:
        text = await self._fetcher.fetch(locator)
        result = load(text, strip_fragment(locator), self._sandbox)
        self._raise_for_state(result)
        return await self._commit(text, result, locator, force_replace)

    @staticmethod
    def _raise_for_state(result: LoadResult) -> None:
        source = result.source_url or "plugin"
        if result.state_code is PluginStateCode.CANNOT_PARSE:
            raise CannotParseError(f"Cannot parse plugin {source}: {result.error}", result)
        if result.state_code is PluginStateCode.VERSION_NOT_MATCH:
            raise VersionNotMatchError(result.error or f"Version not match: {source}", result)

    def _meta_for_update(self, old: Plugin, new: Plugin) -> MetaDocument:
        meta = self.registry.meta
        old_order = meta.get_order(old.name)
        if old.name != new.name and old_order is not None and meta.get_order(new.name) is None:

            def carry(draft: MetaDocument) -> None:
                draft.setdefault(new.name, {})["order"] = old_order

            return meta.produce(carry)
        return meta.with_appended(new.name)

    async def _commit(
        self,
        text: str,
        result: LoadResult,
        locator: str | None,
        force_replace: Plugin | None = None,
    ) -> InstallResult:
        if result.instance is None:
            raise CannotParseError(
                f"Cannot parse plugin {result.source_url or 'plugin'}: {result.error}", result
            )

        async with self._lock:
            current = self.registry.plugins
            resolution = resolve(result.hash, result.instance.name, current, force_replace)

            if resolution.action is InstallAction.UNCHANGED:
                trace("plugin unchanged", f"{resolution.existing.name} ({result.hash[:12]})")
                return InstallResult(InstallAction.UNCHANGED, resolution.existing, locator)

            path = self.plugins_dir / f"{result.hash}{PLUGIN_SUFFIX}"
            try:
                await asyncio.to_thread(write_text_atomic, path, text)
            except OSError as e:
                raise PluginError(f"Failed to save plugin source {path.name}: {e}") from e
            plugin = Plugin.from_load_result(result, path)

            old = resolution.existing
            if resolution.action is InstallAction.INSTALL:
                plugins = current + (plugin,)
                meta = self.registry.meta.with_appended(plugin.name)
            else:
                plugins = tuple(plugin if p.hash == old.hash else p for p in current)
                meta = self._meta_for_update(old, plugin)

            try:
                self.registry.commit(plugins, meta)
            except TOMLError as e:
                path.unlink(missing_ok=True)
                raise PluginError(f"Failed to save plugin metadata: {e}") from e

            if old is not None and old.path is not None and old.path != path:
                try:
                    await asyncio.to_thread(old.path.unlink, missing_ok=True)
                except OSError as e:
                    error_log("stale plugin source not removed", f"{old.path}: {e}")

        trace(f"plugin {resolution.action.value}", f"{plugin.name} {plugin.version or ''}".strip())
        return InstallResult(resolution.action, plugin, locator)

    async def install_plugin(self, locator: str) -> InstallResult:
        """
        Install a single plugin from a local file.

        Raises:
            FetchError: If the file cannot be read
            CannotParseError: If the source does not evaluate to a plugin
            VersionNotMatchError: If the plugin does not support this app version
        """
        return await self._install_from_locator(locator)

    async def install_plugin_from_url(self, url: str) -> InstallResult:
        """
        Install a single plugin from a URL; remote URLs get a cache-busting fragment.

        Raises:
            FetchError, CannotParseError, VersionNotMatchError
        """
        url = url.strip()
        locator = add_cache_buster(url) if is_remote(url) else url
        return await self._install_from_locator(locator)

    async def _run_batch(
        self,
        items: Iterable[T],
        install: Callable[[T], Awaitable[InstallResult]],
        describe: Callable[[T], str] = str,
    ) -> BatchInstallResult:
        async def attempt(item: T) -> InstallResult | PluginError:
            try:
                return await install(item)
            except PluginError as e:
                error_log("plugin install failed", f"{describe(item)}: {e}")
                return e

        outcomes = await asyncio.gather(*(attempt(item) for item in items))
        results = [o for o in outcomes if isinstance(o, InstallResult)]
        failures = [str(o) for o in outcomes if isinstance(o, PluginError)]
        if failures:
            raise AggregateInstallError(failures, results)
        return BatchInstallResult(tuple(results))

    async def install_plugins(self, locators: Iterable[str]) -> BatchInstallResult:
        """
        Install several local plugin files concurrently.

        Locators not ending in .py are ignored.

        Raises:
            AggregateInstallError: If any file failed; successes stay installed
        """
        valid = [loc for loc in locators if strip_fragment(loc).endswith(PLUGIN_SUFFIX)]
        return await self._run_batch(valid, self.install_plugin)

    async def _manifest_urls(self, locator: str) -> list[str]:
        target = add_cache_buster(locator) if is_remote(locator) else locator
        try:
            urls = parse_manifest(await self._fetcher.fetch(target))
        except (FetchError, SubscriptionError) as e:
            raise AggregateInstallError([str(e)]) from e
        if is_remote(locator):
            base = strip_fragment(locator)
            urls = [urljoin(base, url) for url in urls]
        return urls

    async def install_from_subscription(self, locator: str) -> BatchInstallResult:
        """
        Install every plugin behind a subscription URL or .json manifest.

        A locator not ending in .json is installed as a single URL. Members
        install concurrently; one failure never stops the others.

        Raises:
            AggregateInstallError: With every failure message and the successes
        """
        locator = locator.strip()
        if strip_fragment(locator).endswith(MANIFEST_SUFFIX):
            urls = await self._manifest_urls(locator)
        else:
            urls = [locator]
        trace("subscription install", f"{locator}: {len(urls)} plugin(s)")
        return await self._run_batch(urls, self.install_plugin_from_url)

    async def sync_subscriptions(self, urls: Sequence[str] | None = None) -> BatchInstallResult:
        """
        Install from every configured subscription.

        Raises:
            AggregateInstallError: If any subscription or member failed
        """
        urls = list(self.subscribe_urls if urls is None else urls)

        async def attempt(url: str) -> BatchInstallResult | AggregateInstallError:
            try:
                return await self.install_from_subscription(url)
            except AggregateInstallError as e:
                return e

        results: list[InstallResult] = []
        messages: list[str] = []
        for outcome in await asyncio.gather(*(attempt(u) for u in urls)):
            if isinstance(outcome, AggregateInstallError):
                results.extend(outcome.results)
                messages.extend(outcome.messages)
            else:
                results.extend(outcome.results)
        if messages:
            raise AggregateInstallError(messages, results)
        return BatchInstallResult(tuple(results))

    # ------------------------------------------------------------------
    # Update / uninstall / order

    async def update_plugin(self, plugin: Plugin) -> InstallResult:
        """
        Re-fetch a plugin from its declared src_url and replace it.

        Raises:
            PluginNotUpdatableError: If the plugin declares no src_url
            FetchError, CannotParseError, VersionNotMatchError
        """
        src_url = plugin.instance.src_url
        if not src_url:
            raise PluginNotUpdatableError(
                f"Plugin {plugin.name} declares no src_url and cannot be updated"
            )
        locator = add_cache_buster(src_url) if is_remote(src_url) else src_url
        return await self._install_from_locator(locator, force_replace=plugin)

    async def update_all_plugins(self) -> BatchInstallResult:
        """
        Update every plugin that declares a src_url.

        Raises:
            AggregateInstallError: If any update failed
        """
        candidates = [p for p in self.sorted_plugins() if p.instance.src_url]
        return await self._run_batch(candidates, self.update_plugin, lambda p: p.name)

    async def uninstall_plugin(self, plugin_hash: str) -> Plugin:
        """
        Remove the plugin with the given hash.

        Metadata is left alone so a later reinstall keeps its place.

        Raises:
            PluginNotFoundError: If no plugin has that hash
        """
        async with self._lock:
            plugin = self.registry.get_by_hash(plugin_hash)
            if plugin is None:
                raise PluginNotFoundError(f"No installed plugin with hash {plugin_hash}")

            if plugin.path is not None:
                try:
                    await asyncio.to_thread(plugin.path.unlink, missing_ok=True)
                except OSError as e:
                    raise PluginError(f"Failed to remove {plugin.path}: {e}") from e

            self.registry.commit(p for p in self.registry.plugins if p.hash != plugin_hash)

        trace("plugin uninstalled", plugin.name)
        return plugin

    async def uninstall_all_plugins(self) -> None:
        """Remove every plugin, its source file and all metadata."""
        async with self._lock:
            for plugin in self.registry.plugins:
                if plugin.path is not None:
                    await asyncio.to_thread(plugin.path.unlink, missing_ok=True)
            try:
                self.registry.commit((), {})
            except TOMLError as e:
                raise PluginError(f"Failed to clear plugin metadata: {e}") from e

        trace("all plugins uninstalled")

    async def reorder(self, plugins: Sequence[Plugin | str]) -> tuple[Plugin, ...]:
        """
        Persist a new user order.

        Args:
            plugins: Every installed plugin (or its hash) exactly once

        Returns:
            The sorted plugins after the change

        Raises:
            PluginError: If the sequence is not a permutation of the installed plugins
        """
        hashes = [p.hash if isinstance(p, Plugin) else str(p) for p in plugins]

        async with self._lock:
            current = self.registry.plugins
            if len(set(hashes)) != len(hashes) or set(hashes) != {p.hash for p in current}:
                raise PluginError("Reorder must list every installed plugin exactly once")

            by_hash = {p.hash: p for p in current}
            meta = self.registry.meta.with_orders(by_hash[h].name for h in hashes)
            try:
                self.registry.commit(current, meta)
            except TOMLError as e:
                raise PluginError(f"Failed to save plugin order: {e}") from e

        trace("plugins reordered", [by_hash[h].name for h in hashes])
        return self.sorted_plugins()

    # ------------------------------------------------------------------
    # Capability dispatch

    def _providers(self, capability: str) -> list[Plugin]:
        return [p for p in self.sorted_plugins() if p.enabled and p.methods.has(capability)]

    async def first_result(self, capability: str, *args: Any) -> Any:
        """
        First non-empty result of `capability`, trying plugins in user order.

        Raises:
            CapabilityError: If no plugin produced a result and at least one raised
        """
        errors: list[Exception] = []
        for plugin in self._providers(capability):
            try:
                result = await getattr(plugin.methods, capability)(*args)
            except Exception as e:
                error_log(f"{capability} failed in plugin {plugin.name}", e)
                errors.append(e)
                continue
            if result is not None and result != []:
                return result
        if errors:
            raise CapabilityError(capability, errors) from errors[0]
        return None

    async def import_music_item(self, text: str) -> MusicItem | None:
        return await self.first_result("import_music_item", text)

    async def import_music_sheet(self, text: str) -> list[MusicItem]:
        return await self.first_result("import_music_sheet", text) or []

    async def search(
        self, query: str, page: int = 1, media_type: str = "music"
    ) -> list[SearchResult]:
        """
        Search every enabled plugin concurrently, in user order.

        Raises:
            CapabilityError: If every searching plugin raised
        """
        providers = self._providers("search")

        async def attempt(plugin: Plugin) -> SearchResult | None | Exception:
            try:
                return await plugin.methods.search(query, page, media_type)
            except Exception as e:
                error_log(f"search failed in plugin {plugin.name}", e)
                return e

        outcomes = await asyncio.gather(*(attempt(p) for p in providers))
        errors = [o for o in outcomes if isinstance(o, Exception)]
        if providers and len(errors) == len(providers):
            raise CapabilityError("search", errors) from errors[0]
        return [o for o in outcomes if isinstance(o, SearchResult)]

    async def get_media_source(
        self, music_item: MusicItem, quality: str = "standard"
    ) -> dict[str, Any] | None:
        """
        Resolve a playable source through the plugin owning the item.

        Raises:
            PluginNotFoundError: If no enabled plugin owns the item's platform
        """
        plugin = self.get_by_media(music_item)
        if plugin is None or not plugin.enabled:
            raise PluginNotFoundError(f"No enabled plugin for platform {music_item.platform}")
        return await plugin.methods.get_media_source(music_item, quality)
