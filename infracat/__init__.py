"""Infrastructure Catalog launcher."""

__version__ = "0.3.0"
