"""Scanning the install directory for installed bundles."""

from pathlib import Path
import logging
import plistlib
import time

from appshelf.models.catalog import PackageRecord
from appshelf.models.installed import InstalledRecord

logger = logging.getLogger(__name__)

# Location of the metadata file inside a bundle
INFO_PLIST = Path("Contents") / "Info.plist"


class BundleInfoError(Exception):
    """A bundle's metadata file is missing or unusable."""

    pass


def install_path_for(record: PackageRecord, install_dir: Path, suffix: str = ".app") -> Path:
    """Where the bundle for ``record`` lives.

    Always ``<install_dir>/<name><suffix>``, except for the host application
    (whose name is the install directory's own name), which sits beside it.
    """
    folder = install_dir.parent if install_dir.name == record.name else install_dir
    return folder / (record.name + suffix)


def ensure_install_dir(install_dir: Path) -> bool:
    """Create the install directory if needed. Failures are logged, not raised."""
    if install_dir.is_dir():
        return True
    try:
        install_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("could not create install directory %s: %s", install_dir, e)
        return False
    return True


def read_bundle_info(bundle: Path) -> InstalledRecord:
    """Read the identifier and version from a bundle's Info.plist."""
    plist_path = bundle / INFO_PLIST
    try:
        with open(plist_path, "rb") as f:
            info = plistlib.load(f)
    except (OSError, plistlib.InvalidFileException, ValueError) as e:
        raise BundleInfoError(f"Cannot read {plist_path}: {e}")

    if not isinstance(info, dict):
        raise BundleInfoError(f"{plist_path} is not a dictionary")

    identifier = info.get("CFBundleIdentifier")
    if not isinstance(identifier, str) or not identifier:
        raise BundleInfoError(f"{plist_path} has no CFBundleIdentifier")

    version = info.get("CFBundleShortVersionString") or info.get("CFBundleVersion")
    return InstalledRecord(
        identifier=identifier,
        version=str(version) if version is not None else None,
        path=bundle,
    )


def list_bundles(install_dir: Path, suffix: str = ".app") -> list[Path]:
    """Immediate, non-hidden children of ``install_dir`` that look like bundles."""
    try:
        children = sorted(install_dir.iterdir())
    except OSError as e:
        logger.warning("could not list install directory %s: %s", install_dir, e)
        return []

    return [
        child
        for child in children
        if not child.name.startswith(".") and child.name.endswith(suffix) and child.is_dir()
    ]


def scan_installed(
    install_dir: Path,
    *,
    suffix: str = ".app",
    extra_paths: tuple[Path, ...] | list[Path] = (),
) -> dict[str, InstalledRecord]:
    """Scan the install directory and return a fresh identifier -> record map.

    The result always replaces any previous scan. Bundles whose metadata
    cannot be read are skipped so one corrupt bundle cannot hide the others.
    """
    start = time.monotonic()
    ensure_install_dir(install_dir)

    candidates = list_bundles(install_dir, suffix)
    for extra in extra_paths:
        if extra.is_dir() and extra not in candidates:
            candidates.append(extra)

    installed: dict[str, InstalledRecord] = {}
    for bundle in candidates:
        try:
            record = read_bundle_info(bundle)
        except BundleInfoError as e:
            logger.debug("skipping %s: %s", bundle, e)
            continue
        installed[record.identifier] = record

    logger.debug(
        "scanned %d bundles in %.3fs: %s",
        len(installed), time.monotonic() - start, sorted(installed),
    )
    return installed
