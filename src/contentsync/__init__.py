"""contentsync: pull, normalize, cache and bulk-ingest CMS content."""

__version__ = "0.1.0"
