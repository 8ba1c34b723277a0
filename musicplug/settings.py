"""
musicplug settings section.

Declares the `[musicplug]` table of the config file and hands out its proxy.
"""

from musicplug import config
from musicplug.config.runtime import ConfigProxy

SECTION = "musicplug"

PLAY_ALBUM = "play-album"
PLAY_SINGLE = "play-single"

SCHEMA = {
    "plugins_dir": config.field(
        str, "data/plugins", "Directory holding installed plugin sources", min=1
    ),
    "meta_file": config.field(
        str, "data/plugin-meta.toml", "Per-plugin ordering metadata", min=1
    ),
    "log_dir": config.field(str, "data/logs", "Directory for trace and error logs"),
    "subscribe_urls": config.field(
        list, [], "Subscription manifests synced by `mpm -Sy`"
    ),
    "fetch_timeout": config.field(
        float, 30.0, "Timeout in seconds for plugin downloads", min=1.0, max=300.0
    ),
    "trace_log": config.field(bool, False, "Record operation traces to trace-log.log"),
    "error_log": config.field(bool, True, "Record errors to error-log-<date>.log"),
    "dev_log": config.field(bool, False, "Forward plugin developer logs"),
    "click_music_in_album": config.field(
        str,
        PLAY_ALBUM,
        "What a click on a track inside an album or list does",
        choices=[PLAY_ALBUM, PLAY_SINGLE],
    ),
}


def ensure_declared() -> None:
    if not config.is_declared(SECTION):
        config.declare(SECTION, SCHEMA)


def get_settings() -> ConfigProxy:
    """Return the proxy for the `[musicplug]` section."""
    ensure_declared()
    return config.get(SECTION)
