"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

import hashlib
import io
import json
import plistlib
import zipfile
from collections.abc import Callable, Iterator
from pathlib import Path

import httpx
import pytest
from appshelf.core.config import AppShelfConfig, set_config


@pytest.fixture
def config(tmp_path: Path) -> Iterator[AppShelfConfig]:
    """A config rooted in a temporary directory, installed as the global config."""
    base = tmp_path / "home"
    config = AppShelfConfig(
        base_dir=base,
        install_dir=tmp_path / "Applications" / "App Fair",
        cache_dir=base / "cache",
        trash_dir=base / "trash",
        settings_path=base / "config.yaml",
        catalog_url="https://catalog.example.com/apps.json",
        elevation_command=["false"],
    )
    config.ensure_dirs()
    set_config(config)
    yield config
    set_config(None)


def _info_plist(identifier: str, version: str | None) -> bytes:
    info = {"CFBundleIdentifier": identifier, "CFBundleName": "x"}
    if version is not None:
        info["CFBundleShortVersionString"] = version
    return plistlib.dumps(info)


@pytest.fixture
def make_bundle() -> Callable[..., Path]:
    """Factory that writes ``<folder>/<name>.app`` with an Info.plist."""

    def factory(folder: Path, name: str, identifier: str, version: str | None = "1.0") -> Path:
        bundle = folder / f"{name}.app"
        contents = bundle / "Contents"
        contents.mkdir(parents=True, exist_ok=True)
        (contents / "Info.plist").write_bytes(_info_plist(identifier, version))
        return bundle

    return factory


@pytest.fixture
def make_zip() -> Callable[..., bytes]:
    """Factory for an in-memory zip holding one bundle (or a custom set of entries)."""

    def factory(
        name: str = "Foo",
        identifier: str = "app.Foo",
        version: str = "2.0",
        *,
        extra_entries: dict[str, bytes] | None = None,
        bundle: bool = True,
    ) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            if bundle:
                zf.writestr(f"{name}.app/Contents/Info.plist", _info_plist(identifier, version))
                info = zipfile.ZipInfo(f"{name}.app/Contents/MacOS/{name}")
                info.external_attr = 0o755 << 16
                zf.writestr(info, b"#!/bin/sh\necho hello\n")
            for entry, data in (extra_entries or {}).items():
                zf.writestr(entry, data)
        return buffer.getvalue()

    return factory


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@pytest.fixture
def sha256() -> Callable[[bytes], str]:
    return sha256_hex


@pytest.fixture
def catalog_entry() -> Callable[..., dict]:
    """Factory for one catalog ``apps`` entry in wire format."""

    def factory(
        identifier: str = "app.Foo",
        name: str = "Foo",
        version: str = "2.0",
        *,
        sha256: str | None = None,
        url: str | None = None,
        **extra,
    ) -> dict:
        entry = {
            "bundleIdentifier": identifier,
            "name": name,
            "version": version,
            "downloadURL": url or f"https://downloads.example.com/{name}.zip",
            "versionDate": "2024-05-01T12:00:00Z",
        }
        if sha256 is not None:
            entry["sha256"] = sha256
        entry.update(extra)
        return entry

    return factory


@pytest.fixture
def catalog_document() -> Callable[..., bytes]:
    def factory(*entries: dict, **fields) -> bytes:
        document = {"name": "Test Catalog", "identifier": "test.catalog", "apps": list(entries)}
        document.update(fields)
        return json.dumps(document).encode()

    return factory


@pytest.fixture
def http_routes() -> dict[str, Callable[[httpx.Request], httpx.Response]]:
    """URL -> request handler for ``mock_client``."""
    return {}


@pytest.fixture
def mock_client(http_routes) -> httpx.AsyncClient:
    """An httpx client that answers from ``http_routes`` and 404s everything else."""

    def handler(request: httpx.Request) -> httpx.Response:
        route = http_routes.get(str(request.url))
        if route is None:
            return httpx.Response(404)
        return route(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
