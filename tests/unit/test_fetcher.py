"""
Tests for source fetching and subscription manifests.
"""

import json

import httpx
import pytest

from musicplug.plugin.errors import FetchError, SubscriptionError
from musicplug.plugin.fetcher import (
    SourceFetcher,
    add_cache_buster,
    is_remote,
    local_path,
    strip_fragment,
)
from musicplug.plugin.subscription import (
    SubscriptionEntry,
    parse_manifest,
    parse_manifest_entries,
)


def mock_fetcher(routes: dict[str, httpx.Response], seen: list | None = None) -> SourceFetcher:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request.url)
        return routes.get(strip_fragment(str(request.url)), httpx.Response(404))

    return SourceFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestLocators:
    """Test locator helpers."""

    def test_cache_buster_unique_and_increasing(self):
        urls = [add_cache_buster("https://example.com/a.py") for _ in range(50)]
        tokens = [int(u.split("#", 1)[1]) for u in urls]

        assert len(set(urls)) == 50
        assert tokens == sorted(tokens)

    def test_cache_buster_keeps_existing_fragment(self):
        assert add_cache_buster("https://example.com/a.py#v1") == "https://example.com/a.py#v1"

    def test_strip_fragment(self):
        assert strip_fragment("https://example.com/a.py#123") == "https://example.com/a.py"
        assert strip_fragment("plugins/a.py") == "plugins/a.py"

    def test_is_remote(self):
        assert is_remote("https://example.com/a.py")
        assert is_remote("http://example.com/a.py")
        assert not is_remote("/tmp/a.py")
        assert not is_remote("file:///tmp/a.py")

    def test_local_path(self, tmp_path):
        assert local_path(f"file://{tmp_path}/a.py") == tmp_path / "a.py"
        assert local_path("plugins/a.py").name == "a.py"


class TestSourceFetcher:
    """Test fetching plugin source text."""

    @pytest.mark.asyncio
    async def test_fetch_remote(self):
        seen = []
        fetcher = mock_fetcher(
            {"https://example.com/a.py": httpx.Response(200, text="name = 'a'\n")}, seen
        )

        text = await fetcher.fetch("https://example.com/a.py#1700000000000")
        await fetcher.aclose()

        assert text == "name = 'a'\n"
        assert seen[0].path == "/a.py"

    @pytest.mark.asyncio
    async def test_fetch_http_error(self):
        fetcher = mock_fetcher({})

        with pytest.raises(FetchError, match="HTTP 404") as exc_info:
            await fetcher.fetch("https://example.com/missing.py")
        assert exc_info.value.locator == "https://example.com/missing.py"

    @pytest.mark.asyncio
    async def test_fetch_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        fetcher = SourceFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        with pytest.raises(FetchError, match="Failed to fetch"):
            await fetcher.fetch("https://example.com/a.py")

    @pytest.mark.asyncio
    async def test_fetch_empty_remote(self):
        fetcher = mock_fetcher({"https://example.com/a.py": httpx.Response(200, text="  \n")})

        with pytest.raises(FetchError, match="empty"):
            await fetcher.fetch("https://example.com/a.py")

    @pytest.mark.asyncio
    async def test_fetch_local(self, tmp_path):
        path = tmp_path / "a.py"
        path.write_text("name = 'a'\n", encoding="utf-8")

        fetcher = SourceFetcher()
        assert await fetcher.fetch(str(path)) == "name = 'a'\n"
        assert await fetcher.fetch(f"file://{path}") == "name = 'a'\n"

    @pytest.mark.asyncio
    async def test_fetch_local_missing(self, tmp_path):
        with pytest.raises(FetchError, match="not found"):
            await SourceFetcher().fetch(str(tmp_path / "missing.py"))

    @pytest.mark.asyncio
    async def test_fetch_local_empty(self, tmp_path):
        path = tmp_path / "empty.py"
        path.write_text("", encoding="utf-8")

        with pytest.raises(FetchError, match="empty"):
            await SourceFetcher().fetch(str(path))


class TestSubscriptionManifest:
    """Test manifest parsing."""

    def test_parse_manifest(self):
        text = json.dumps(
            {
                "plugins": [
                    {"version": "0.1.0", "url": "https://a/x.py"},
                    {"url": "https://a/y.py"},
                ]
            }
        )

        assert parse_manifest(text) == ["https://a/x.py", "https://a/y.py"]
        assert parse_manifest_entries(text)[0] == SubscriptionEntry("https://a/x.py", "0.1.0")

    def test_entries_without_url_dropped(self):
        text = json.dumps(
            {"plugins": [{"version": "1"}, {"url": ""}, "https://a/z.py", {"url": " https://a/ok.py "}]}
        )

        assert parse_manifest(text) == ["https://a/ok.py"]

    def test_missing_plugins_key(self):
        assert parse_manifest("{}") == []

    @pytest.mark.parametrize(
        "text, message",
        [
            ("not json", "Failed to parse"),
            ("[1, 2]", "must be a JSON object"),
            ('{"plugins": "x"}', "must be a list"),
        ],
    )
    def test_invalid_manifest(self, text, message):
        with pytest.raises(SubscriptionError, match=message):
            parse_manifest(text)
