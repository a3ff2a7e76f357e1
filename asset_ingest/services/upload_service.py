"""Upload job creation and polling."""

import logging
from typing import List, Optional

from asset_ingest.errors import AssetIngestError, JobNotFoundError, UploadValidationError
from asset_ingest.queue.base import BaseJobQueue
from asset_ingest.schemas.queue import JobSnapshot, QueueStats, RetryPolicy
from asset_ingest.schemas.upload_job import (
    JobStatus,
    UploadFilePayload,
    UploadJobPayload,
    UploadJobResponse,
    UploadMode,
)
from asset_ingest.services.file_validation import FileValidationService
from asset_ingest.services.registry import AssetRegistry

logger = logging.getLogger(__name__)


class UploadService:
    """Entry point used by the request layer to submit and poll uploads."""

    def __init__(
        self,
        registry: AssetRegistry,
        queue: BaseJobQueue,
        retry_policy: Optional[RetryPolicy] = None,
        validator: Optional[FileValidationService] = None,
    ):
        self.registry = registry
        self.queue = queue
        self.retry_policy = retry_policy or queue.default_retry_policy
        self.validator = validator or FileValidationService()

    def create_upload_job(
        self,
        files: List[UploadFilePayload],
        target_subasset_ids: List[str],
        user_id: str,
        mode: str = UploadMode.SINGLE,
    ) -> UploadJobResponse:
        """
        Validate an upload request, record it and queue it.

        Args:
            files: Uploaded files
            target_subasset_ids: Target sub-asset IDs (SINGLE mode uses the first)
            user_id: Uploading user
            mode: SINGLE or SEQUENCE

        Returns:
            UploadJobResponse in QUEUED state

        Raises:
            UploadValidationError: If targets or files are rejected
        """
        if mode not in UploadMode.ALL:
            raise UploadValidationError(f"Unsupported upload mode: {mode}")
        if not target_subasset_ids:
            raise UploadValidationError("At least one target sub-asset is required")
        if not files:
            raise UploadValidationError("At least one file is required")

        found = {s.id for s in self.registry.get_sub_assets(target_subasset_ids)}
        missing = [t for t in target_subasset_ids if t not in found]
        if missing:
            raise UploadValidationError(f"One or more target sub-assets not found: {missing}")

        checked = []
        for upload in files:
            mime_type = self.validator.validate_file(upload)
            checked.append(upload.model_copy(update={"mime_type": mime_type}))

        job = self.registry.create_job(
            mode=mode,
            created_by=user_id,
            details={
                "target_subasset_ids": list(target_subasset_ids),
                "file_count": len(checked),
                "files": [
                    {"name": f.original_name, "mime_type": f.mime_type, "size": len(f.content)}
                    for f in checked
                ],
            },
        )

        payload = UploadJobPayload(
            job_id=job.id,
            mode=mode,
            target_subasset_ids=list(target_subasset_ids),
            files=checked,
            user_id=user_id,
        )
        try:
            self.queue.enqueue(job.id, payload, self.retry_policy)
        except Exception as e:
            logger.error(f"Failed to queue upload job {job.id}: {e}")
            try:
                self.registry.update_job_status(
                    job.id, JobStatus.ERROR, error_message=f"Failed to queue job: {e}"
                )
            except AssetIngestError as update_error:
                logger.error(f"Failed to mark upload job {job.id} as failed: {update_error}")
            raise

        logger.info(f"Created upload job {job.id} ({len(checked)} files, mode={mode}) for user {user_id}")
        return UploadJobResponse.from_job(job)

    def get_upload_job(self, job_id: str) -> UploadJobResponse:
        """
        Get an upload job for polling.

        Raises:
            JobNotFoundError: If job not found
        """
        job = self.registry.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Upload job with ID {job_id} not found")
        return UploadJobResponse.from_job(job)

    def get_job_execution(self, job_id: str) -> Optional[JobSnapshot]:
        """Queue-side execution state (attempts, last error) of a job."""
        return self.queue.get_status(job_id)

    def get_queue_stats(self) -> QueueStats:
        return self.queue.stats()
