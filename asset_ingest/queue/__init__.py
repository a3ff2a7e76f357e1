"""Upload job queues."""

from asset_ingest.queue.base import BaseJobQueue
from asset_ingest.queue.celery_queue import CeleryJobQueue
from asset_ingest.queue.memory import InMemoryJobQueue, Lease

__all__ = ["BaseJobQueue", "CeleryJobQueue", "InMemoryJobQueue", "Lease"]
