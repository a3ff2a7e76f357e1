"""Job queue schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class JobState:
    """Queue-side execution states (independent of the persisted job status)."""

    WAITING = "waiting"
    DELAYED = "delayed"  # Waiting for a retry backoff to elapse
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class RetryPolicy(BaseModel):
    """Bounded attempts with exponential backoff between them."""

    attempts: int = Field(3, ge=1, description="Total delivery attempts")
    backoff_delay: float = Field(2.0, ge=0, description="Base delay in seconds")

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-indexed)."""
        return self.backoff_delay * (2 ** (max(attempt, 1) - 1))


class JobSnapshot(BaseModel):
    """Queue's view of a job's execution."""

    id: str
    state: str
    attempts: int = 0
    max_attempts: int = 1
    last_error: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class QueueStats(BaseModel):
    """Job counts per queue state."""

    waiting: int = 0
    delayed: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
