"""Catalog client for fetching and parsing package catalogs."""

from dataclasses import replace
from email.utils import format_datetime, parsedate_to_datetime
from enum import Enum
import json
import logging
import time

import httpx

from appshelf.core.errors import AppShelfError
from appshelf.models.catalog import CatalogSnapshot, PackageRecord

logger = logging.getLogger(__name__)


class CatalogFetchErrorKind(str, Enum):
    NETWORK = "network"
    PARSE = "parse"
    EMPTY = "empty"


class CatalogFetchError(AppShelfError):
    """The catalog could not be fetched or parsed."""

    def __init__(self, kind: CatalogFetchErrorKind, message: str, *, cause: BaseException | None = None):
        super().__init__(message, cause=cause)
        self.kind = kind


class CachePolicy(str, Enum):
    """How the fetch interacts with HTTP caching."""

    USE_PROTOCOL = "use-protocol"  # conditional request against the previous snapshot
    RELOAD_IGNORING_CACHE = "reload-ignoring-cache"  # forced refresh


def parse_catalog(data: bytes | str, source_url: str | None = None) -> CatalogSnapshot:
    """Parse a catalog document.

    Entries missing required fields are skipped; optional fields default to None.
    """
    if not data or not data.strip():
        raise CatalogFetchError(CatalogFetchErrorKind.EMPTY, "Catalog is empty")

    try:
        document = json.loads(data)
    except ValueError as e:
        raise CatalogFetchError(CatalogFetchErrorKind.PARSE, "Catalog is not valid JSON", cause=e)

    if not isinstance(document, dict) or not isinstance(document.get("apps", []), list):
        raise CatalogFetchError(CatalogFetchErrorKind.PARSE, "Catalog has an unexpected structure")

    packages = []
    for entry in document.get("apps", []):
        try:
            packages.append(PackageRecord.from_api_response(entry))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("skipping invalid catalog entry %r: %s", _entry_label(entry), e)

    return CatalogSnapshot(
        packages=tuple(packages),
        name=document.get("name"),
        identifier=document.get("identifier"),
        source_url=document.get("sourceURL") or source_url,
        homepage=document.get("homepage"),
        description=document.get("localizedDescription"),
    )


def _entry_label(entry) -> str:
    if isinstance(entry, dict):
        return entry.get("bundleIdentifier") or entry.get("name") or "?"
    return "?"


def localize_catalog(snapshot: CatalogSnapshot, locale: str) -> CatalogSnapshot:
    """Localize text fields into ``locale``; bad localizations keep the default text."""
    language = locale.replace("_", "-")
    packages = []
    for package in snapshot.packages:
        try:
            packages.append(package.localized(language))
        except ValueError as e:
            logger.warning("falling back to default language for %s: %s", package.identifier, e)
            packages.append(package)
    return replace(snapshot, packages=tuple(packages))


def _request_headers(cache: CachePolicy, previous: CatalogSnapshot | None) -> dict[str, str]:
    headers = {"Accept": "application/json"}
    if cache == CachePolicy.RELOAD_IGNORING_CACHE:
        headers["Cache-Control"] = "no-cache"
        headers["Pragma"] = "no-cache"
    elif previous is not None:
        if previous.etag:
            headers["If-None-Match"] = previous.etag
        if previous.last_modified and previous.last_modified.tzinfo is not None:
            headers["If-Modified-Since"] = format_datetime(previous.last_modified, usegmt=True)
    return headers


async def fetch_catalog(
    url: str,
    cache: CachePolicy = CachePolicy.USE_PROTOCOL,
    *,
    locale: str | None = None,
    previous: CatalogSnapshot | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float = 60.0,
) -> CatalogSnapshot:
    """Fetch and parse the catalog at ``url``.

    Storing the result is the caller's responsibility.
    """
    if cache == CachePolicy.RELOAD_IGNORING_CACHE:
        previous = None
    headers = _request_headers(cache, previous)

    logger.debug("fetching catalog at %s (%s)", url, cache.value)
    start = time.monotonic()

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(follow_redirects=True, timeout=timeout)
    try:
        response = await client.get(url, headers=headers)
    except httpx.HTTPError as e:
        raise CatalogFetchError(CatalogFetchErrorKind.NETWORK, f"Failed to fetch catalog {url}", cause=e)
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code == 304 and previous is not None:
        logger.debug("catalog at %s not modified", url)
        return previous
    if response.status_code != 200:
        raise CatalogFetchError(
            CatalogFetchErrorKind.NETWORK,
            f"Failed to fetch catalog {url}: HTTP {response.status_code}",
        )

    snapshot = parse_catalog(response.content, source_url=url)
    logger.debug(
        "fetched catalog at %s: %d packages, %d bytes in %.2fs",
        url, len(snapshot.packages), len(response.content), time.monotonic() - start,
    )

    if locale:
        snapshot = localize_catalog(snapshot, locale)

    return replace(
        snapshot,
        last_modified=_last_modified(response),
        etag=response.headers.get("etag"),
    )


def _last_modified(response: httpx.Response):
    value = response.headers.get("last-modified")
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
