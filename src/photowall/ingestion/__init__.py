"""Ingestion layer.

This package contains adapters that turn feed messages and snapshot reads
into normalized wall events.
"""

from photowall.ingestion.feed import build_event_from_feed

__all__ = ["build_event_from_feed"]
