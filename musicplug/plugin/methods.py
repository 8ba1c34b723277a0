"""
Capability dispatch.

PluginMethods is the one place that knows how to call an optional capability:
absent capabilities return their empty default, present ones are awaited if
they are coroutines, and results are normalized into media records.
Exceptions raised by plugin code propagate unchanged to the caller.
"""

import inspect
from typing import Any

from musicplug.media import (
    MediaError,
    MusicItem,
    SearchResult,
    to_music_item,
    to_music_list,
)
from musicplug.plugin.loader import CAPABILITIES, PluginInstance


def _empty(capability: str) -> Any:
    default = CAPABILITIES[capability]
    return [] if isinstance(default, tuple) else default


def _as_plugin_arg(value: Any) -> Any:
    # plugins receive plain data, never host objects
    if isinstance(value, MusicItem):
        return value.to_dict()
    return value


class PluginMethods:
    """Dispatch wrapper around a PluginInstance."""

    def __init__(self, instance: PluginInstance):
        self._instance = instance

    @property
    def platform(self) -> str:
        return self._instance.name

    def has(self, capability: str) -> bool:
        return self._instance.has(capability)

    async def call(self, capability: str, *args: Any, **kwargs: Any) -> Any:
        """
        Call a capability if present.

        Raises:
            KeyError: If `capability` is not part of the capability interface
        """
        if capability not in CAPABILITIES:
            raise KeyError(f"Unknown capability: {capability}")
        fn = self._instance.capabilities.get(capability)
        if fn is None:
            return _empty(capability)

        result = fn(
            *(_as_plugin_arg(a) for a in args),
            **{k: _as_plugin_arg(v) for k, v in kwargs.items()},
        )
        if inspect.isawaitable(result):
            result = await result
        return _empty(capability) if result is None else result

    async def import_music_item(self, text: str) -> MusicItem | None:
        raw = await self.call("import_music_item", text)
        return None if raw is None else to_music_item(raw, self.platform)

    async def import_music_sheet(self, text: str) -> list[MusicItem]:
        return to_music_list(await self.call("import_music_sheet", text), self.platform)

    async def search(
        self, query: str, page: int = 1, media_type: str = "music"
    ) -> SearchResult | None:
        raw = await self.call("search", query, page, media_type)
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise MediaError(f"search returned {type(raw).__name__}, expected a mapping")
        data = raw.get("data") or []
        if media_type == "music":
            data = to_music_list(data, self.platform)
        return SearchResult(self.platform, bool(raw.get("is_end", True)), list(data))

    async def get_media_source(
        self, music_item: MusicItem, quality: str = "standard"
    ) -> dict[str, Any] | None:
        return await self.call("get_media_source", music_item, quality)

    async def get_music_info(self, music_item: MusicItem) -> dict[str, Any] | None:
        return await self.call("get_music_info", music_item)

    async def get_lyric(self, music_item: MusicItem) -> dict[str, Any] | None:
        return await self.call("get_lyric", music_item)

    async def get_album_info(self, album_item: dict[str, Any], page: int = 1) -> Any:
        return await self.call("get_album_info", album_item, page)

    async def get_music_sheet_info(self, sheet_item: dict[str, Any], page: int = 1) -> Any:
        return await self.call("get_music_sheet_info", sheet_item, page)

    async def get_artist_works(
        self, artist_item: dict[str, Any], page: int = 1, media_type: str = "music"
    ) -> Any:
        return await self.call("get_artist_works", artist_item, page, media_type)

    async def get_top_lists(self) -> list[Any]:
        return list(await self.call("get_top_lists"))

    async def get_top_list_detail(self, top_list_item: dict[str, Any]) -> Any:
        return await self.call("get_top_list_detail", top_list_item)
