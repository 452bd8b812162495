"""Unit tests for core/scanner.py."""

import plistlib
from pathlib import Path

import pytest
from appshelf.core.scanner import (
    BundleInfoError,
    install_path_for,
    list_bundles,
    read_bundle_info,
    scan_installed,
)
from appshelf.models.catalog import CatalogPackage


def _record(name: str) -> CatalogPackage:
    return CatalogPackage(identifier=f"app.{name}", name=name, download_url=f"https://x/{name}.zip")


class TestInstallPathFor:
    """Tests for install_path_for()."""

    def test_regular_package(self, tmp_path: Path) -> None:
        install_dir = tmp_path / "App Fair"
        assert install_path_for(_record("Foo"), install_dir) == install_dir / "Foo.app"

    def test_host_package_sits_beside_install_dir(self, tmp_path: Path) -> None:
        """The package named like the install directory lives in its parent."""
        install_dir = tmp_path / "App Fair"
        assert install_path_for(_record("App Fair"), install_dir) == tmp_path / "App Fair.app"


class TestReadBundleInfo:
    """Tests for read_bundle_info()."""

    def test_reads_identifier_and_version(self, tmp_path: Path, make_bundle) -> None:
        bundle = make_bundle(tmp_path, "Foo", "app.Foo", "1.2")

        record = read_bundle_info(bundle)

        assert record.identifier == "app.Foo"
        assert record.version == "1.2"
        assert record.path == bundle

    def test_falls_back_to_bundle_version(self, tmp_path: Path) -> None:
        bundle = tmp_path / "Foo.app"
        (bundle / "Contents").mkdir(parents=True)
        (bundle / "Contents" / "Info.plist").write_bytes(
            plistlib.dumps({"CFBundleIdentifier": "app.Foo", "CFBundleVersion": "77"})
        )

        assert read_bundle_info(bundle).version == "77"

    def test_missing_plist(self, tmp_path: Path) -> None:
        bundle = tmp_path / "Foo.app"
        bundle.mkdir()
        with pytest.raises(BundleInfoError):
            read_bundle_info(bundle)

    def test_corrupt_plist(self, tmp_path: Path) -> None:
        bundle = tmp_path / "Foo.app"
        (bundle / "Contents").mkdir(parents=True)
        (bundle / "Contents" / "Info.plist").write_bytes(b"\x00garbage")
        with pytest.raises(BundleInfoError):
            read_bundle_info(bundle)

    def test_missing_identifier(self, tmp_path: Path) -> None:
        bundle = tmp_path / "Foo.app"
        (bundle / "Contents").mkdir(parents=True)
        (bundle / "Contents" / "Info.plist").write_bytes(plistlib.dumps({"CFBundleVersion": "1"}))
        with pytest.raises(BundleInfoError):
            read_bundle_info(bundle)


class TestScanInstalled:
    """Tests for scan_installed()."""

    def test_scan(self, tmp_path: Path, make_bundle) -> None:
        install_dir = tmp_path / "apps"
        make_bundle(install_dir, "Foo", "app.Foo", "1.0")
        make_bundle(install_dir, "Bar", "app.Bar", "3.1")

        installed = scan_installed(install_dir)

        assert set(installed) == {"app.Foo", "app.Bar"}
        assert installed["app.Bar"].version == "3.1"

    def test_creates_missing_install_dir(self, tmp_path: Path) -> None:
        install_dir = tmp_path / "missing"
        assert scan_installed(install_dir) == {}
        assert install_dir.is_dir()

    def test_skips_hidden_and_foreign_entries(self, tmp_path: Path, make_bundle) -> None:
        """Hidden bundles, plain files and other suffixes are ignored."""
        install_dir = tmp_path / "apps"
        make_bundle(install_dir, "Foo", "app.Foo")
        make_bundle(install_dir, ".Hidden", "app.Hidden")
        (install_dir / "notes.app").write_text("not a directory")
        (install_dir / "Other.bundle").mkdir()

        assert list_bundles(install_dir) == [install_dir / "Foo.app"]
        assert set(scan_installed(install_dir)) == {"app.Foo"}

    def test_corrupt_bundle_is_skipped(self, tmp_path: Path, make_bundle) -> None:
        """One unreadable bundle does not hide the others."""
        install_dir = tmp_path / "apps"
        make_bundle(install_dir, "Foo", "app.Foo")
        (install_dir / "Broken.app" / "Contents").mkdir(parents=True)
        (install_dir / "Broken.app" / "Contents" / "Info.plist").write_text("nope")

        assert set(scan_installed(install_dir)) == {"app.Foo"}

    def test_scan_is_idempotent(self, tmp_path: Path, make_bundle) -> None:
        install_dir = tmp_path / "apps"
        make_bundle(install_dir, "Foo", "app.Foo")

        assert scan_installed(install_dir) == scan_installed(install_dir)

    def test_scan_reflects_removal(self, tmp_path: Path, make_bundle) -> None:
        """Each scan is a fresh map, never merged with the previous one."""
        install_dir = tmp_path / "apps"
        bundle = make_bundle(install_dir, "Foo", "app.Foo")
        first = scan_installed(install_dir)

        (bundle / "Contents" / "Info.plist").unlink()
        second = scan_installed(install_dir)

        assert "app.Foo" in first
        assert second == {}

    def test_extra_paths(self, tmp_path: Path, make_bundle) -> None:
        install_dir = tmp_path / "App Fair"
        host = make_bundle(tmp_path, "App Fair", "app.App-Fair", "1.0")

        installed = scan_installed(install_dir, extra_paths=[host, tmp_path / "Missing.app"])

        assert set(installed) == {"app.App-Fair"}
