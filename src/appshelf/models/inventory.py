"""Inventory item model: a catalog record joined with its installed state."""

from dataclasses import dataclass

from appshelf.models.catalog import CaskPackage, PackageRecord
from appshelf.models.installed import InstalledRecord


@dataclass(frozen=True)
class InventoryItem:
    """The externally visible unit: one per identifier in a catalog snapshot."""

    record: PackageRecord
    installed: InstalledRecord | None = None
    update_available: bool = False

    @property
    def identifier(self) -> str:
        return self.record.identifier

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def version(self) -> str | None:
        return self.record.version

    @property
    def installed_version(self) -> str | None:
        return self.installed.version if self.installed else None

    @property
    def is_installed(self) -> bool:
        return self.installed is not None

    @property
    def is_cask(self) -> bool:
        return isinstance(self.record, CaskPackage)
