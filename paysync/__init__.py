"""paysync: payment transaction aggregation and price enrichment service."""

__version__ = "0.1.0"
