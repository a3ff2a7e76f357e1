"""Wiring of registry, store, queue and workers."""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from asset_ingest.config import Settings, settings as default_settings
from asset_ingest.database import create_session_factory
from asset_ingest.queue.base import BaseJobQueue
from asset_ingest.schemas.queue import RetryPolicy
from asset_ingest.services.file_validation import FileValidationService
from asset_ingest.services.registry import AssetRegistry
from asset_ingest.services.upload_processor import UploadProcessor
from asset_ingest.services.upload_service import UploadService
from asset_ingest.storage.base import BaseStorageDriver
from asset_ingest.storage.factory import get_storage_driver
from asset_ingest.worker import WorkerPool

logger = logging.getLogger(__name__)


class Pipeline:
    """Owns the collaborators of one ingestion process and their lifecycle.

    With the ``memory`` backend the pipeline also runs a ``WorkerPool``;
    with ``celery`` the workers are separate Celery processes and
    ``start``/``shutdown`` only manage local resources.

    Example:
        >>> with Pipeline.from_settings(queue_backend="memory") as pipeline:
        ...     job = pipeline.upload_service.create_upload_job(files, [sub_asset_id], "alice")
    """

    def __init__(
        self,
        registry: AssetRegistry,
        store: BaseStorageDriver,
        queue: BaseJobQueue,
        processor: UploadProcessor,
        worker_pool: Optional[WorkerPool] = None,
        validator: Optional[FileValidationService] = None,
    ):
        self.registry = registry
        self.store = store
        self.queue = queue
        self.processor = processor
        self.worker_pool = worker_pool
        self.validator = validator or FileValidationService()
        self._upload_service: Optional[UploadService] = None

    @classmethod
    def from_settings(
        cls,
        app_settings: Optional[Settings] = None,
        session_factory: Optional[sessionmaker] = None,
        queue_backend: Optional[str] = None,
    ) -> "Pipeline":
        """
        Build a pipeline from settings.

        Args:
            app_settings: Settings (defaults to global settings)
            session_factory: Pre-built session factory (tests pass SQLite)
            queue_backend: Overrides ``settings.queue_backend``

        Returns:
            Pipeline, not yet started

        Raises:
            ValueError: If the queue backend is unknown
        """
        app_settings = app_settings or default_settings
        backend = (queue_backend or app_settings.queue_backend).lower()

        registry = AssetRegistry(session_factory or create_session_factory(app_settings.database_url))
        store = get_storage_driver(app_settings)
        retry_policy = RetryPolicy(
            attempts=app_settings.job_max_attempts,
            backoff_delay=app_settings.job_backoff_seconds,
        )
        processor = UploadProcessor(
            registry,
            store,
            version_conflict_retries=app_settings.version_conflict_retries,
            version_conflict_backoff=app_settings.version_conflict_backoff_seconds,
        )

        worker_pool = None
        if backend == "memory":
            from asset_ingest.queue.memory import InMemoryJobQueue

            queue = InMemoryJobQueue(
                lease_timeout=app_settings.lease_timeout_seconds,
                default_retry_policy=retry_policy,
                on_failed=processor.fail_job,
            )
            worker_pool = WorkerPool(queue, processor, concurrency=app_settings.worker_concurrency)
        elif backend == "celery":
            import redis

            from asset_ingest.celery_app import celery_app
            from asset_ingest.queue.celery_queue import CeleryJobQueue

            queue = CeleryJobQueue(
                celery_app,
                redis.from_url(app_settings.redis_url, decode_responses=True),
                default_retry_policy=retry_policy,
            )
        else:
            raise ValueError(f"Unsupported queue backend: {backend}")

        return cls(
            registry,
            store,
            queue,
            processor,
            worker_pool=worker_pool,
            validator=FileValidationService(app_settings.max_file_size_bytes),
        )

    @property
    def upload_service(self) -> UploadService:
        if self._upload_service is None:
            self._upload_service = UploadService(self.registry, self.queue, validator=self.validator)
        return self._upload_service

    def start(self) -> None:
        """Start workers (memory backend)."""
        if self.worker_pool is not None:
            self.worker_pool.start()
        logger.info("Asset ingest pipeline started")

    def shutdown(self, timeout: float = 10.0) -> None:
        """Stop workers, close the queue and release database connections."""
        logger.info("Shutting down asset ingest pipeline...")
        self.queue.close()
        if self.worker_pool is not None:
            self.worker_pool.stop(timeout=timeout)
        self.registry.dispose()
        logger.info("Asset ingest pipeline stopped")

    def __enter__(self) -> "Pipeline":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
