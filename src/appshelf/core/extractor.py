"""Archive extraction and bundle validation."""

from pathlib import Path
import logging
import lzma
import shutil
import tarfile
import tempfile
import time
import zipfile
import zlib

from appshelf.core.errors import AppShelfError
from appshelf.models.catalog import PackageRecord

logger = logging.getLogger(__name__)

# Archive metadata folders that are not part of the payload
IGNORED_ENTRIES = {"__MACOSX", ".DS_Store"}


class ExtractionError(AppShelfError):
    """Error during extraction."""

    pass


class TooManyInstallFiles(ExtractionError):
    """The archive contains more than one top-level entry."""

    pass


class NoBundleContents(ExtractionError):
    """The archive does not contain a bundle."""

    pass


class WrongName(ExtractionError):
    """The bundle in the archive is not the one the catalog describes."""

    def __init__(self, actual: str, expected: str):
        super().__init__(f"Expected bundle named '{expected}' but the download contains '{actual}'")
        self.actual = actual
        self.expected = expected


def _extract_zip(archive_path: Path, dest_dir: Path) -> None:
    with zipfile.ZipFile(archive_path, "r") as zf:
        for member in zf.infolist():
            target = zf.extract(member, dest_dir)
            # zipfile drops unix permissions; restore them so executables stay executable
            mode = (member.external_attr >> 16) & 0o777
            if mode and not member.is_dir():
                Path(target).chmod(mode)


def extract_archive(archive_path: Path, dest_dir: Path | None = None) -> Path:
    """Extract an archive to a scratch directory.

    Returns the directory containing extracted files.
    """
    if dest_dir is None:
        dest_dir = Path(tempfile.mkdtemp(prefix="appshelf_"))
    else:
        dest_dir.mkdir(parents=True, exist_ok=True)

    name = archive_path.name.lower()
    start = time.monotonic()

    try:
        if name.endswith(".tar.gz") or name.endswith(".tgz"):
            with tarfile.open(archive_path, "r:gz") as tar:
                tar.extractall(dest_dir, filter="data")

        elif name.endswith(".tar.xz"):
            with tarfile.open(archive_path, "r:xz") as tar:
                tar.extractall(dest_dir, filter="data")

        elif name.endswith(".tar"):
            with tarfile.open(archive_path, "r:") as tar:
                tar.extractall(dest_dir, filter="data")

        elif zipfile.is_zipfile(archive_path):
            _extract_zip(archive_path, dest_dir)

        else:
            raise ExtractionError(f"Unsupported archive format: {archive_path.name}")

    # truncated compressed streams fail in the decompressor, not in tarfile
    except (tarfile.TarError, zipfile.BadZipFile, OSError, EOFError, zlib.error, lzma.LZMAError) as e:
        raise ExtractionError(f"Failed to extract {archive_path.name}", cause=e)

    logger.debug("extracted %s to %s in %.2fs", archive_path, dest_dir, time.monotonic() - start)
    return dest_dir


def locate_bundle(expanded_dir: Path, suffix: str = ".app") -> Path:
    """Find the single bundle at the top level of an extracted archive."""
    entries = [
        entry for entry in expanded_dir.iterdir()
        if entry.name not in IGNORED_ENTRIES
    ]
    if len(entries) != 1:
        raise TooManyInstallFiles(
            f"Expected exactly one item in the archive, found {len(entries)}"
        )

    bundle = entries[0]
    if not bundle.name.endswith(suffix) or not bundle.is_dir():
        raise NoBundleContents(f"The archive does not contain a {suffix} bundle")
    return bundle


def validate_bundle(bundle: Path, record: PackageRecord, suffix: str = ".app") -> None:
    """Check that the bundle name matches the catalog record's name."""
    bundle_name = bundle.name[: -len(suffix)] if suffix else bundle.name
    if bundle_name != record.name:
        raise WrongName(bundle_name, record.name)


def cleanup_temp_dir(temp_dir: Path) -> None:
    """Clean up a temporary directory."""
    if temp_dir.exists():
        shutil.rmtree(temp_dir, ignore_errors=True)
