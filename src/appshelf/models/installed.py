"""Installed package data model."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class InstalledRecord:
    """A package found on disk by a scan.

    The source of truth is the bundle's metadata file as read at scan time.
    """

    identifier: str
    version: str | None
    path: Path
    versions: tuple[str, ...] = ()  # every installed version (casks may keep several)

    @property
    def all_versions(self) -> tuple[str, ...]:
        if self.versions:
            return self.versions
        return (self.version,) if self.version else ()
