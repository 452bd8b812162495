"""Unit tests for core/catalog.py.

HTTP is served by an httpx MockTransport.
"""

import json
from datetime import datetime, timezone

import httpx
import pytest
from appshelf.core.catalog import (
    CachePolicy,
    CatalogFetchError,
    CatalogFetchErrorKind,
    fetch_catalog,
    localize_catalog,
    parse_catalog,
)
from appshelf.core.inventory import arrange_items
from appshelf.models.catalog import CaskPackage, CatalogSnapshot

URL = "https://catalog.example.com/apps.json"


class TestParseCatalog:
    """Tests for parse_catalog()."""

    def test_parse_catalog(self, catalog_document, catalog_entry) -> None:
        data = catalog_document(
            catalog_entry("app.Foo", "Foo"),
            catalog_entry("app.Bar", "Bar", cask={"token": "bar"}),
            sourceURL="https://mirror.example.com/apps.json",
        )

        snapshot = parse_catalog(data)

        assert snapshot.name == "Test Catalog"
        assert snapshot.source_url == "https://mirror.example.com/apps.json"
        assert [p.identifier for p in snapshot.packages] == ["app.Foo", "app.Bar"]
        assert isinstance(snapshot.packages[1], CaskPackage)

    def test_source_url_fallback(self, catalog_document) -> None:
        snapshot = parse_catalog(catalog_document(), source_url=URL)
        assert snapshot.source_url == URL
        assert snapshot.packages == ()

    def test_invalid_entries_are_skipped(self, catalog_document, catalog_entry) -> None:
        """One bad entry does not sink the catalog."""
        broken = catalog_entry("app.Broken", "Broken")
        del broken["name"]

        snapshot = parse_catalog(catalog_document(catalog_entry(), broken, "garbage"))

        assert [p.identifier for p in snapshot.packages] == ["app.Foo"]

    @pytest.mark.parametrize(
        "field,value",
        [
            ("version", 2),
            ("name", ["Foo"]),
            ("sha256", 123),
            ("downloadCount", "many"),
            ("starCount", -1),
            ("size", 1.5),
        ],
    )
    def test_mistyped_entries_are_skipped(self, catalog_document, catalog_entry, field, value) -> None:
        """A wrongly typed field drops that entry and leaves its neighbours usable."""
        bad = catalog_entry("app.Bad", "Bad")
        bad[field] = value

        snapshot = parse_catalog(catalog_document(bad, catalog_entry("app.Bar", "Bar", "1.0")))

        assert [p.identifier for p in snapshot.packages] == ["app.Bar"]
        assert [item.identifier for item in arrange_items(snapshot, {})] == ["app.Bar"]

    def test_numeric_string_counts(self, catalog_document, catalog_entry) -> None:
        snapshot = parse_catalog(catalog_document(catalog_entry(downloadCount="42", starCount=None)))

        assert snapshot.packages[0].download_count == 42
        assert snapshot.packages[0].star_count == 0

    @pytest.mark.parametrize("data", [b"", b"   \n"])
    def test_empty(self, data: bytes) -> None:
        with pytest.raises(CatalogFetchError) as exc_info:
            parse_catalog(data)
        assert exc_info.value.kind == CatalogFetchErrorKind.EMPTY

    @pytest.mark.parametrize("data", [b"{not json", b"[1, 2]", b'{"apps": 3}'])
    def test_malformed(self, data: bytes) -> None:
        with pytest.raises(CatalogFetchError) as exc_info:
            parse_catalog(data)
        assert exc_info.value.kind == CatalogFetchErrorKind.PARSE


class TestLocalizeCatalog:
    """Tests for localize_catalog()."""

    def test_localize(self, catalog_document, catalog_entry) -> None:
        snapshot = parse_catalog(catalog_document(
            catalog_entry(subtitle="Hello", localizations={"fr": {"subtitle": "Bonjour"}}),
            catalog_entry("app.Bar", "Bar", subtitle="Bye", localizations={"fr": "oops"}),
        ))

        localized = localize_catalog(snapshot, "fr_FR")

        assert localized.packages[0].subtitle == "Bonjour"
        # malformed localization keeps the default text
        assert localized.packages[1].subtitle == "Bye"


class TestFetchCatalog:
    """Tests for fetch_catalog()."""

    @pytest.mark.asyncio
    async def test_fetch(self, mock_client, http_routes, catalog_document, catalog_entry) -> None:
        data = catalog_document(catalog_entry())
        http_routes[URL] = lambda request: httpx.Response(
            200,
            content=data,
            headers={"ETag": '"v1"', "Last-Modified": "Wed, 01 May 2024 12:00:00 GMT"},
        )

        snapshot = await fetch_catalog(URL, client=mock_client)

        assert [p.identifier for p in snapshot.packages] == ["app.Foo"]
        assert snapshot.source_url == URL
        assert snapshot.etag == '"v1"'
        assert snapshot.last_modified == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_fetch_localized(self, mock_client, http_routes, catalog_document, catalog_entry) -> None:
        data = catalog_document(catalog_entry(localizations={"de": {"name": "Fu"}}))
        http_routes[URL] = lambda request: httpx.Response(200, content=data)

        snapshot = await fetch_catalog(URL, locale="de", client=mock_client)

        assert snapshot.packages[0].name == "Fu"

    @pytest.mark.asyncio
    async def test_conditional_request_not_modified(
        self, mock_client, http_routes, catalog_document, catalog_entry
    ) -> None:
        """A 304 returns the previous snapshot unchanged."""
        seen_headers = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_headers.append(request.headers)
            if request.headers.get("if-none-match") == '"v1"':
                return httpx.Response(304)
            return httpx.Response(200, content=catalog_document(catalog_entry()), headers={"ETag": '"v1"'})

        http_routes[URL] = handler

        first = await fetch_catalog(URL, client=mock_client)
        second = await fetch_catalog(URL, previous=first, client=mock_client)

        assert second is first
        assert "if-none-match" not in seen_headers[0]
        assert seen_headers[1]["if-none-match"] == '"v1"'

    @pytest.mark.asyncio
    async def test_reload_ignores_cache(self, mock_client, http_routes, catalog_document, catalog_entry) -> None:
        """A forced reload sends no validators."""
        seen_headers = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_headers.append(request.headers)
            return httpx.Response(200, content=catalog_document(catalog_entry()), headers={"ETag": '"v2"'})

        http_routes[URL] = handler
        previous = CatalogSnapshot(packages=(), etag='"v1"')

        snapshot = await fetch_catalog(
            URL, CachePolicy.RELOAD_IGNORING_CACHE, previous=previous, client=mock_client
        )

        assert snapshot.etag == '"v2"'
        assert "if-none-match" not in seen_headers[0]
        assert seen_headers[0]["cache-control"] == "no-cache"

    @pytest.mark.asyncio
    async def test_http_error(self, mock_client) -> None:
        """Non-200 responses are network errors."""
        with pytest.raises(CatalogFetchError) as exc_info:
            await fetch_catalog(URL, client=mock_client)
        assert exc_info.value.kind == CatalogFetchErrorKind.NETWORK
        assert "404" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error(self, mock_client, http_routes) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        http_routes[URL] = handler

        with pytest.raises(CatalogFetchError) as exc_info:
            await fetch_catalog(URL, client=mock_client)
        assert exc_info.value.kind == CatalogFetchErrorKind.NETWORK
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_parse_error(self, mock_client, http_routes) -> None:
        http_routes[URL] = lambda request: httpx.Response(200, content=json.dumps([1]).encode())

        with pytest.raises(CatalogFetchError) as exc_info:
            await fetch_catalog(URL, client=mock_client)
        assert exc_info.value.kind == CatalogFetchErrorKind.PARSE
