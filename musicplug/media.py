"""
Media items and the playback queue contract.

Plugins hand back plain dicts; this module turns them into MusicItem records
and defines the two entry points the playback engine exposes.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

from musicplug.settings import PLAY_ALBUM, PLAY_SINGLE

_KNOWN_FIELDS = ("id", "title", "artist", "album", "artwork", "duration", "url")


class MediaError(Exception):
    """Raised when a plugin result cannot be read as a media item."""

    pass


@dataclass(frozen=True)
class MusicItem:
    """
    A single playable track as produced by a plugin.

    `platform` names the plugin that owns the item; media-source lookups are
    routed back to that plugin.
    """

    platform: str
    id: str
    title: str = ""
    artist: str = ""
    album: str = ""
    artwork: str | None = None
    duration: float | None = None
    url: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> tuple[str, str]:
        return (self.platform, self.id)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            platform=self.platform,
            id=self.id,
            title=self.title,
            artist=self.artist,
            album=self.album,
            artwork=self.artwork,
            duration=self.duration,
            url=self.url,
        )
        return data


@dataclass(frozen=True)
class SearchResult:
    plugin_name: str
    is_end: bool
    data: list[Any]


def to_music_item(raw: Any, platform: str) -> MusicItem:
    """
    Normalize a plugin result into a MusicItem.

    Raises:
        MediaError: If the result is neither a MusicItem nor a mapping with an id
    """
    if isinstance(raw, MusicItem):
        return raw
    if not isinstance(raw, dict):
        raise MediaError(f"Expected a mapping for a music item, got {type(raw).__name__}")
    if raw.get("id") in (None, ""):
        raise MediaError("Music item is missing an 'id'")

    duration = raw.get("duration")
    return MusicItem(
        platform=str(raw.get("platform") or platform),
        id=str(raw["id"]),
        title=str(raw.get("title") or ""),
        artist=str(raw.get("artist") or ""),
        album=str(raw.get("album") or ""),
        artwork=raw.get("artwork"),
        duration=float(duration) if isinstance(duration, (int, float)) else None,
        url=raw.get("url"),
        extra={k: v for k, v in raw.items() if k not in _KNOWN_FIELDS and k != "platform"},
    )


def to_music_list(raw: Any, platform: str) -> list[MusicItem]:
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise MediaError(f"Expected a list of music items, got {type(raw).__name__}")
    return [to_music_item(item, platform) for item in raw]


def filter_music(query: str, music_list: list[MusicItem]) -> list[MusicItem]:
    """Substring search over "<title> <artist> <album> <platform>"."""
    if not query:
        return music_list
    return [
        item
        for item in music_list
        if query in f"{item.title} {item.artist} {item.album} {item.platform}"
    ]


class MusicQueue(Protocol):
    """Entry points of the playback engine."""

    def play(self, music_item: MusicItem) -> Any: ...

    def play_with_replace_queue(
        self, music_item: MusicItem, music_list: list[MusicItem]
    ) -> Any: ...


def play_from_list(
    queue: MusicQueue,
    music_item: MusicItem,
    music_list: list[MusicItem] | None,
    mode: str = PLAY_ALBUM,
) -> Any:
    """
    Start playback of a track picked from a list.

    "play-single" enqueues just the track; "play-album" replaces the queue with
    the whole list (or the track alone when no list is known).
    """
    if mode == PLAY_SINGLE:
        return queue.play(music_item)
    if mode != PLAY_ALBUM:
        raise ValueError(f"Unknown play mode: {mode}")
    return queue.play_with_replace_queue(music_item, list(music_list or [music_item]))
