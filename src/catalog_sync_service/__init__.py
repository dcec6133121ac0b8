"""Multi-tenant catalog sync and vector indexing service."""

__version__ = "0.1.0"
