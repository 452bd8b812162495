"""Data models for appshelf."""

from appshelf.models.catalog import (
    CaskPackage,
    CatalogPackage,
    CatalogSnapshot,
    PackageRecord,
    Permission,
    RiskLevel,
)
from appshelf.models.installed import InstalledRecord
from appshelf.models.inventory import InventoryItem
from appshelf.models.operation import Activity, Operation, OperationCancelled, OperationState, Progress

__all__ = [
    "Activity",
    "CaskPackage",
    "CatalogPackage",
    "CatalogSnapshot",
    "InstalledRecord",
    "InventoryItem",
    "Operation",
    "OperationCancelled",
    "OperationState",
    "PackageRecord",
    "Permission",
    "Progress",
    "RiskLevel",
]
