"""Celery-backed job queue with Redis execution snapshots."""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from asset_ingest.queue.base import BaseJobQueue
from asset_ingest.schemas.queue import JobSnapshot, JobState, QueueStats, RetryPolicy
from asset_ingest.schemas.upload_job import UploadJobPayload

logger = logging.getLogger(__name__)

PROCESS_UPLOAD_TASK = "asset_ingest.tasks.process_upload.process_upload"


class CeleryJobQueue(BaseJobQueue):
    """Dispatch upload jobs to Celery workers.

    The Celery task id is the upload job id. A Redis key per job holds the
    queue-side snapshot; creating it with ``SET NX`` is what makes
    ``enqueue`` idempotent. Lease semantics come from the broker: tasks are
    acknowledged late and redelivered when a worker dies or the visibility
    timeout passes.
    """

    KEY_PREFIX = "asset_ingest:queue:job:"

    def __init__(
        self,
        celery_app,
        redis_client,
        default_retry_policy: Optional[RetryPolicy] = None,
        snapshot_ttl: timedelta = timedelta(days=7),
    ):
        super().__init__(default_retry_policy)
        self.celery_app = celery_app
        self.redis = redis_client
        self.snapshot_ttl = snapshot_ttl

    def _key(self, job_id: str) -> str:
        return f"{self.KEY_PREFIX}{job_id}"

    def enqueue(
        self,
        job_id: str,
        payload: UploadJobPayload,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> bool:
        policy = retry_policy or self.default_retry_policy
        snapshot = JobSnapshot(
            id=job_id,
            state=JobState.WAITING,
            max_attempts=policy.attempts,
            created_at=datetime.utcnow(),
        )

        if not self.redis.set(self._key(job_id), snapshot.model_dump_json(), nx=True, ex=self.snapshot_ttl):
            logger.warning(f"Upload job {job_id} already queued, ignoring duplicate")
            return False

        try:
            self.celery_app.send_task(
                PROCESS_UPLOAD_TASK,
                args=[payload.to_message()],
                kwargs={"retry_policy": policy.model_dump()},
                task_id=job_id,
            )
        except Exception as e:
            logger.error(f"Failed to queue upload job {job_id}: {e}")
            self.redis.delete(self._key(job_id))
            raise

        logger.info(f"Upload job {job_id} queued for processing")
        return True

    def get_status(self, job_id: str) -> Optional[JobSnapshot]:
        data = self.redis.get(self._key(job_id))
        if data is None:
            return None
        return JobSnapshot.model_validate_json(data)

    def stats(self) -> QueueStats:
        counts = QueueStats()
        for key in self.redis.scan_iter(match=f"{self.KEY_PREFIX}*"):
            data = self.redis.get(key)
            if data is None:
                continue
            state = JobSnapshot.model_validate_json(data).state
            setattr(counts, state, getattr(counts, state) + 1)
        return counts

    # ----- snapshot updates, called from the Celery task ---------------

    def _update(self, job_id: str, **changes: Any) -> None:
        snapshot = self.get_status(job_id)
        if snapshot is None:
            # Task delivered without going through enqueue (e.g. replayed by hand)
            snapshot = JobSnapshot(id=job_id, state=JobState.WAITING, created_at=datetime.utcnow())
        updated = snapshot.model_copy(update=changes)
        self.redis.set(self._key(job_id), updated.model_dump_json(), ex=self.snapshot_ttl)

    def mark_active(self, job_id: str, max_attempts: int) -> int:
        """Record a delivery; returns the attempt number."""
        snapshot = self.get_status(job_id)
        attempts = (snapshot.attempts if snapshot else 0) + 1
        self._update(
            job_id,
            state=JobState.ACTIVE,
            attempts=attempts,
            max_attempts=max_attempts,
            processed_at=datetime.utcnow(),
        )
        return attempts

    def mark_retry(self, job_id: str, error: str) -> None:
        self._update(job_id, state=JobState.DELAYED, last_error=error)

    def mark_completed(self, job_id: str) -> None:
        self._update(job_id, state=JobState.COMPLETED, finished_at=datetime.utcnow())

    def mark_failed(self, job_id: str, error: str) -> None:
        self._update(job_id, state=JobState.FAILED, last_error=error, finished_at=datetime.utcnow())
