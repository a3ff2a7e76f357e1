"""Pydantic schemas."""

from asset_ingest.schemas.queue import JobSnapshot, JobState, QueueStats, RetryPolicy
from asset_ingest.schemas.upload_job import (
    FileResult,
    JobStatus,
    UploadFilePayload,
    UploadJobPayload,
    UploadJobResponse,
    UploadMode,
)

__all__ = [
    "FileResult",
    "JobSnapshot",
    "JobState",
    "JobStatus",
    "QueueStats",
    "RetryPolicy",
    "UploadFilePayload",
    "UploadJobPayload",
    "UploadJobResponse",
    "UploadMode",
]
