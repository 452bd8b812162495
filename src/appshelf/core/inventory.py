"""The inventory: catalog and installed set joined into queryable items.

``arrange_items`` is a pure function of a catalog snapshot and an installed
map. ``Inventory`` owns the two snapshot stores that feed it, keeps them
fresh (fetch, scan, watch) and republishes its default view whenever
either store changes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping
import asyncio
import logging

import httpx

from appshelf.core.catalog import CachePolicy, fetch_catalog
from appshelf.core.config import AppShelfConfig, get_config
from appshelf.core.homebrew import HomebrewManager
from appshelf.core.scanner import install_path_for, scan_installed
from appshelf.core.store import SnapshotStore
from appshelf.core.version import is_newer, version_key
from appshelf.core.watcher import STAGGERED_DELAYS, DirectoryWatcher
from appshelf.models.catalog import CaskPackage, CatalogSnapshot, PackageRecord, RiskLevel
from appshelf.models.installed import InstalledRecord
from appshelf.models.inventory import InventoryItem

logger = logging.getLogger(__name__)

# Queries shorter than this match everything
MINIMUM_SEARCH_LENGTH = 2

RECENT_INTERVAL = timedelta(days=30)

InstalledMap = Mapping[str, InstalledRecord]


class Section(str, Enum):
    """Which slice of the inventory to show."""

    ALL = "all"
    TOP = "top"
    RECENT = "recent"
    UPDATED = "updated"
    INSTALLED = "installed"
    CATEGORY = "category"

    @property
    def is_local(self) -> bool:
        """Sections about what is on disk ignore the risk filter."""
        return self in (Section.INSTALLED, Section.UPDATED)


@dataclass(frozen=True)
class InventoryFilter:
    section: Section = Section.ALL
    search_text: str = ""
    category: str | None = None
    include_prereleases: bool = False


def visible_records(
    packages: Iterable[PackageRecord], include_prereleases: bool = False
) -> list[PackageRecord]:
    """One record per identifier, sorted by identifier.

    Betas are only candidates when ``include_prereleases`` is set; among the
    candidates the highest version wins.
    """
    groups: dict[str, list[PackageRecord]] = {}
    for package in packages:
        if package.beta and not include_prereleases:
            continue
        groups.setdefault(package.identifier, []).append(package)

    chosen = []
    for identifier in sorted(groups):
        candidates = groups[identifier]
        chosen.append(max(candidates, key=lambda p: (version_key(p.version), _timestamp(p))))
    return chosen


def installed_key(record: PackageRecord) -> str:
    """The key a record's installed counterpart is stored under (casks use their token)."""
    if isinstance(record, CaskPackage):
        return record.token
    return record.identifier


def matches_search(record: PackageRecord, search_text: str) -> bool:
    """Case-insensitive substring match over identifier, name, subtitle, developer and description."""
    text = search_text.strip()
    if len(text) < MINIMUM_SEARCH_LENGTH:
        return True

    needle = text.casefold()
    for value in (
        record.identifier,
        record.name,
        record.subtitle,
        record.developer_name,
        record.description,
    ):
        if value and needle in value.casefold():
            return True
    return False


def matches_extension(record: PackageRecord, display_extensions: Iterable[str] | None) -> bool:
    """Only show bundles whose download is a format we can install."""
    if display_extensions is None or isinstance(record, CaskPackage):
        return True
    return record.download_extension in set(display_extensions)


def update_available(
    record: PackageRecord,
    installed: InstalledRecord | None,
    *,
    ignore_auto_updates: bool = True,
) -> bool:
    """Whether an installed package has a newer catalog version."""
    if installed is None or record.version is None:
        return False
    if isinstance(record, CaskPackage):
        if ignore_auto_updates and record.auto_updates:
            return False
        return record.version not in installed.all_versions
    return is_newer(record.version, installed.version)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def is_recent(record: PackageRecord, now: datetime, interval: timedelta = RECENT_INTERVAL) -> bool:
    if record.version_date is None:
        return False
    return _aware(record.version_date) > now - interval


def _timestamp(record: PackageRecord) -> float:
    if record.version_date is None:
        return float("-inf")
    return _aware(record.version_date).timestamp()


def _sort_key(section: Section):
    """Sort key for a section; ties always fall back to the identifier."""
    if section == Section.TOP:
        return lambda item: (-item.record.download_count, item.identifier)
    if section in (Section.RECENT, Section.UPDATED):
        return lambda item: (-_timestamp(item.record), item.identifier)
    if section == Section.INSTALLED:
        return lambda item: (item.name.casefold(), item.identifier)
    if section == Section.CATEGORY:
        return lambda item: (-item.record.star_count, -item.record.download_count, item.identifier)
    return lambda item: item.identifier


def _in_section(item: InventoryItem, filters: InventoryFilter, now: datetime) -> bool:
    section = filters.section
    if section == Section.UPDATED:
        return item.update_available
    if section == Section.INSTALLED:
        return item.is_installed
    if section == Section.RECENT:
        return is_recent(item.record, now)
    if section == Section.CATEGORY:
        return filters.category is None or filters.category in item.record.categories
    return True


def arrange_items(
    snapshot: CatalogSnapshot | None,
    installed: InstalledMap,
    filters: InventoryFilter | None = None,
    *,
    risk_filter: int = RiskLevel.RISKY,
    display_extensions: Iterable[str] | None = None,
    ignore_auto_updates: bool = True,
    now: datetime | None = None,
) -> list[InventoryItem]:
    """The items to show for ``filters``, in a deterministic order."""
    if snapshot is None:
        return []
    filters = filters or InventoryFilter()
    now = now or datetime.now(timezone.utc)

    include_prereleases = filters.include_prereleases or filters.section == Section.INSTALLED

    items = []
    for record in visible_records(snapshot.packages, include_prereleases):
        if not matches_extension(record, display_extensions):
            continue
        if not filters.section.is_local and record.risk_level > risk_filter:
            continue
        if not matches_search(record, filters.search_text):
            continue
        installed_record = installed.get(installed_key(record))
        item = InventoryItem(
            record=record,
            installed=installed_record,
            update_available=update_available(
                record, installed_record, ignore_auto_updates=ignore_auto_updates
            ),
        )
        if _in_section(item, filters, now):
            items.append(item)

    items.sort(key=_sort_key(filters.section))
    return items


class Inventory:
    """Owns the catalog and installed-set caches and answers queries over them."""

    def __init__(
        self,
        config: AppShelfConfig | None = None,
        *,
        homebrew: HomebrewManager | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or get_config()
        self.homebrew = homebrew
        self.client = client
        self.catalog: SnapshotStore[CatalogSnapshot | None] = SnapshotStore(None, "catalog")
        self.installed: SnapshotStore[InstalledMap] = SnapshotStore(MappingProxyType({}), "installed")
        self.view: SnapshotStore[tuple[InventoryItem, ...]] = SnapshotStore((), "view")
        self.errors: list[Exception] = []
        self.updates_in_progress = 0
        self._scan_lock = asyncio.Lock()
        self._watchers: list[DirectoryWatcher] = []

        self.catalog.subscribe(lambda _snapshot: self._recompute())
        self.installed.subscribe(lambda _installed: self._recompute())

    def _recompute(self) -> None:
        self.view.publish(tuple(self.items()))

    # Queries

    def items(self, filters: InventoryFilter | None = None) -> list[InventoryItem]:
        if filters is None:
            filters = InventoryFilter(include_prereleases=self.config.show_prereleases)
        return arrange_items(
            self.catalog.get(),
            self.installed.get(),
            filters,
            risk_filter=self.config.risk_filter,
            display_extensions=self.config.display_extensions,
            ignore_auto_updates=self.config.ignore_auto_updates,
        )

    def records(self, include_prereleases: bool | None = None) -> list[PackageRecord]:
        snapshot = self.catalog.get()
        if snapshot is None:
            return []
        if include_prereleases is None:
            include_prereleases = self.config.show_prereleases
        return visible_records(snapshot.packages, include_prereleases)

    def find(self, name: str, include_prereleases: bool | None = None) -> PackageRecord | None:
        """Look up a record by identifier, then by case-insensitive name."""
        records = self.records(include_prereleases)
        for record in records:
            if record.identifier == name:
                return record
        folded = name.casefold()
        for record in records:
            if record.name.casefold() == folded:
                return record
        return None

    def item(self, identifier: str) -> InventoryItem | None:
        """The joined item for ``identifier`` (or name), or None if the catalog lacks it."""
        record = self.find(identifier)
        if record is None:
            return None
        return InventoryItem(
            record=record,
            installed=self.installed_record(installed_key(record)),
            update_available=self.update_available(record),
        )

    def installed_record(self, identifier: str) -> InstalledRecord | None:
        return self.installed.get().get(identifier)

    def installed_version(self, identifier: str) -> str | None:
        record = self.installed_record(identifier)
        return record.version if record else None

    def installed_path(self, record: PackageRecord) -> Path | None:
        """The on-disk location of ``record``'s bundle, or None if absent."""
        if isinstance(record, CaskPackage):
            installed = self.installed_record(installed_key(record))
            return installed.path if installed else None
        path = install_path_for(record, self.config.install_dir, self.config.bundle_suffix)
        return path if path.is_dir() else None

    def update_available(self, record: PackageRecord) -> bool:
        return update_available(
            record,
            self.installed_record(installed_key(record)),
            ignore_auto_updates=self.config.ignore_auto_updates,
        )

    def update_count(self) -> int:
        return sum(1 for record in self.records() if self.update_available(record))

    def badge_count(self, section: Section) -> int | None:
        """Number of items for a sidebar section; None for sections without a count."""
        if section == Section.CATEGORY:
            return None
        if section == Section.INSTALLED:
            return len(self.installed.get())
        if section == Section.UPDATED:
            return self.update_count()
        return len(self.items(InventoryFilter(
            section=section, include_prereleases=self.config.show_prereleases
        )))

    # Refreshing

    async def fetch_catalog(self, reload_from_source: bool = False) -> CatalogSnapshot:
        """Fetch the catalog and publish it. Errors are recorded and re-raised."""
        cache = CachePolicy.RELOAD_IGNORING_CACHE if reload_from_source else CachePolicy.USE_PROTOCOL
        try:
            snapshot = await fetch_catalog(
                self.config.catalog_url,
                cache,
                locale=self.config.locale,
                previous=self.catalog.get(),
                client=self.client,
                timeout=self.config.timeout,
            )
        except Exception as e:
            self.errors.append(e)
            raise
        if snapshot is not self.catalog.get():
            self.catalog.publish(snapshot)
        return snapshot

    def _scan(self) -> dict[str, InstalledRecord]:
        installed = scan_installed(
            self.config.install_dir,
            suffix=self.config.bundle_suffix,
            extra_paths=[self.config.host_bundle_path],
        )
        if self.homebrew is not None:
            for token, record in self.homebrew.scan_caskroom().items():
                installed.setdefault(token, record)
        return installed

    async def rescan(self) -> InstalledMap:
        """Scan the install directory and replace the installed set."""
        async with self._scan_lock:
            installed = await asyncio.to_thread(self._scan)
            snapshot = MappingProxyType(installed)
            self.installed.publish(snapshot)
            return snapshot

    async def refresh_all(self, reload_from_source: bool = False) -> None:
        """Fetch the catalog and scan the install directory concurrently."""
        self.updates_in_progress += 1
        try:
            results = await asyncio.gather(
                self.fetch_catalog(reload_from_source),
                self.rescan(),
                return_exceptions=True,
            )
        finally:
            self.updates_in_progress -= 1

        for result in results:
            if isinstance(result, BaseException):
                raise result

    # Watching

    def watch(self, interval: float = 1.0) -> list[DirectoryWatcher]:
        """Re-scan whenever the install directory (or Caskroom) changes."""
        if self._watchers:
            return self._watchers
        self._watchers.append(DirectoryWatcher(self.config.install_dir, self.rescan, interval=interval))
        if self.homebrew is not None:
            self._watchers.append(DirectoryWatcher(
                self.homebrew.caskroom, self.rescan, interval=interval, delays=STAGGERED_DELAYS
            ))
        for watcher in self._watchers:
            watcher.start()
        return self._watchers

    async def unwatch(self) -> None:
        watchers, self._watchers = self._watchers, []
        for watcher in watchers:
            await watcher.stop()
