"""Article discovery and enrichment for monitored websites."""

__version__ = "1.0.0"
