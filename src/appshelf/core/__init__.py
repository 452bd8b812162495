"""Inventory engine: catalog, scanning, downloads and install orchestration."""
