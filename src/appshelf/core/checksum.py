"""Checksum verification for downloaded files."""

import hashlib
import logging
from pathlib import Path

from appshelf.core.errors import AppShelfError

logger = logging.getLogger(__name__)


class ChecksumError(AppShelfError):
    """Checksum verification failed."""

    pass


class ChecksumMismatch(ChecksumError):
    """The downloaded content does not hash to the published value."""

    def __init__(self, expected: str, actual: str, name: str | None = None):
        label = f" for {name}" if name else ""
        super().__init__(
            f"Checksum mismatch{label}:\n"
            f"  Expected: {expected}\n"
            f"  Got:      {actual}"
        )
        self.expected = expected
        self.actual = actual


class ChecksumMissing(ChecksumError):
    """No checksum is published, so the download cannot be verified."""

    pass


class Sha256Hasher:
    """Incremental SHA-256 digest fed while streaming."""

    def __init__(self):
        self._sha256 = hashlib.sha256()
        self.bytes_hashed = 0

    def update(self, chunk: bytes) -> None:
        self._sha256.update(chunk)
        self.bytes_hashed += len(chunk)

    def hexdigest(self) -> str:
        return self._sha256.hexdigest()


def calculate_sha256(file_path: Path) -> str:
    """Calculate SHA256 hash of a file."""
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def verify_hash(
    expected: str | None,
    actual: str,
    *,
    allow_unverified: bool = False,
    name: str | None = None,
) -> bool:
    """Compare a computed hash with the published one.

    Returns True if verified, False if skipped because no hash was published
    and unverified installs are allowed.

    Raises ChecksumMismatch if the hashes differ and ChecksumMissing if no
    hash is published and unverified installs are not allowed.
    """
    if not expected:
        if not allow_unverified:
            raise ChecksumMissing(
                f"No SHA-256 checksum is published for {name or 'the download'}, "
                "so its authenticity cannot be verified"
            )
        logger.warning("installing %s without checksum verification", name or "download")
        return False

    if expected.strip().lower() != actual.strip().lower():
        raise ChecksumMismatch(expected, actual, name)

    logger.debug("verified sha256 %s for %s", actual, name or "download")
    return True
