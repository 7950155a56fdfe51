"""Trace pipeline configuration, relabeling and service-discovery span enrichment."""

__version__ = "0.1.0"
__all__ = ["config", "defaults", "promsd", "relabel"]