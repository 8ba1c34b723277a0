"""
Plugin error taxonomy.

Every error raised by the plugin subsystem derives from PluginError so the
caller can report it without knowing which stage failed.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from musicplug.plugin.loader import LoadResult


class PluginError(Exception):
    """Base exception for plugin-related errors."""

    pass


class FetchError(PluginError):
    """Raised when plugin source cannot be retrieved or is empty."""

    def __init__(self, message: str, locator: str | None = None):
        super().__init__(message)
        self.locator = locator


class SandboxViolation(PluginError):
    """Raised when plugin code reaches outside the approved host surface."""

    pass


class LoadError(PluginError):
    """Raised when plugin source loads but cannot be enabled."""

    def __init__(self, message: str, result: "LoadResult"):
        super().__init__(message)
        self.result = result


class CannotParseError(LoadError):
    """Plugin evaluation failed or the result lacks a name."""

    pass


class VersionNotMatchError(LoadError):
    """Plugin declares an app version range that excludes this host."""

    pass


class SubscriptionError(PluginError):
    """Raised when a subscription manifest is malformed."""

    pass


class PluginNotFoundError(PluginError):
    """Raised when no installed plugin matches a hash or name."""

    pass


class PluginNotUpdatableError(PluginError):
    """Raised when updating a plugin that declares no source URL."""

    pass


class CapabilityError(PluginError):
    """Raised when every plugin providing a capability failed."""

    def __init__(self, capability: str, errors: list[Exception]):
        super().__init__(
            f"All providers of {capability} failed: "
            + "; ".join(str(e) for e in errors)
        )
        self.capability = capability
        self.errors = errors


class AggregateInstallError(PluginError):
    """
    Raised by batch operations when at least one member failed.

    Attributes:
        messages: One message per failed member, in submission order
        results: Results of the members that succeeded
    """

    def __init__(self, messages: list[str], results: list[Any] | None = None):
        super().__init__("\n".join(messages))
        self.messages = messages
        self.results = results or []
