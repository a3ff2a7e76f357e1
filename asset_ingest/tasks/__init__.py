"""Celery tasks."""

from asset_ingest.tasks.process_upload import process_upload  # noqa: F401

__all__ = ["process_upload"]
