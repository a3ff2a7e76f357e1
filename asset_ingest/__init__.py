"""Asset ingestion pipeline: versioned uploads into a write-once content store."""

__version__ = "1.0.0"
