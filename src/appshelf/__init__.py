"""appshelf - a package manager for directory-based application bundles."""

__version__ = "0.1.0"
