"""Base job queue interface."""

from abc import ABC, abstractmethod
from typing import Optional

from asset_ingest.schemas.queue import JobSnapshot, QueueStats, RetryPolicy
from asset_ingest.schemas.upload_job import UploadJobPayload


class BaseJobQueue(ABC):
    """FIFO queue of upload jobs with bounded retries.

    Delivery is at-least-once, so consumers must tolerate seeing the same
    job id more than once.
    """

    def __init__(self, default_retry_policy: Optional[RetryPolicy] = None):
        self.default_retry_policy = default_retry_policy or RetryPolicy()

    @abstractmethod
    def enqueue(
        self,
        job_id: str,
        payload: UploadJobPayload,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> bool:
        """Accept a job.

        Args:
            job_id: Caller-chosen unique id
            payload: Job payload
            retry_policy: Attempts/backoff (defaults to ``default_retry_policy``)

        Returns:
            True if queued, False if the id was already known (nothing queued)
        """
        pass

    @abstractmethod
    def get_status(self, job_id: str) -> Optional[JobSnapshot]:
        """Queue's view of a job's execution, or None if unknown."""
        pass

    @abstractmethod
    def stats(self) -> QueueStats:
        """Count jobs per state."""
        pass

    def close(self) -> None:
        """Release resources and wake blocked consumers."""
        pass
