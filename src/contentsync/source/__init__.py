"""Remote content API access."""

from contentsync.source.client import ContentSourceClient

__all__ = ["ContentSourceClient"]
