"""Upload processing: store each file and commit it as a new revision."""

import asyncio
import json
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from asset_ingest.errors import (
    AssetIngestError,
    InvalidJobStateError,
    JobNotFoundError,
    PathOccupied,
    RegistryTransactionError,
    TargetNotFound,
    VersionConflict,
)
from asset_ingest.models.asset_history import AssetHistory
from asset_ingest.schemas.upload_job import (
    FileResult,
    JobStatus,
    UploadFilePayload,
    UploadJobPayload,
)
from asset_ingest.services.path_resolver import extension_of, resolve_path
from asset_ingest.services.registry import AssetRegistry
from asset_ingest.storage.base import BaseStorageDriver, StoredFile

logger = logging.getLogger(__name__)


class UploadProcessor:
    """Run one upload job through QUEUED -> PROCESSING -> DONE | ERROR.

    The processor keeps no state between calls. It is safe to run the same
    job twice: files already committed by an earlier delivery are found by
    (job id, file index) and reused instead of producing new revisions.
    """

    def __init__(
        self,
        registry: AssetRegistry,
        store: BaseStorageDriver,
        version_conflict_retries: int = 10,
        version_conflict_backoff: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.registry = registry
        self.store = store
        self.version_conflict_retries = version_conflict_retries
        self.version_conflict_backoff = version_conflict_backoff
        self._sleep = sleep

    def process(self, payload: UploadJobPayload, attempt: int = 1, max_attempts: int = 1) -> Dict[str, Any]:
        """
        Process every file of an upload job, in order.

        Pipeline per file:
        1. Reuse the result if this (job, file index) was already committed
        2. Load the target sub-asset and compute the next version
        3. Resolve the storage path and store the bytes
        4. Append history + bump the version atomically (retry on conflict)

        The first failure aborts the remaining files. Retryable failures
        (storage I/O, registry unavailable) leave the job PROCESSING so the
        queue can deliver it again, unless this is the last attempt.

        Args:
            payload: Job payload from the queue
            attempt: Delivery attempt (1-indexed)
            max_attempts: Attempts allowed by the retry policy

        Returns:
            Final job details (targets, file metadata and per-file results)

        Raises:
            AssetIngestError: Whatever aborted the job, after it was recorded
        """
        job_id = payload.job_id
        logger.info(
            f"Processing upload job {job_id} with {len(payload.files)} files "
            f"(attempt {attempt}/{max_attempts})"
        )

        job = self.registry.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Upload job {job_id} not found")

        details = json.loads(job.details_json) if job.details_json else {}
        if job.status in JobStatus.TERMINAL:
            logger.info(f"Upload job {job_id} already {job.status}, nothing to do")
            return details

        # Safe to repeat on redelivery
        self.registry.update_job_status(job_id, JobStatus.PROCESSING)

        results = []
        current_file: Optional[UploadFilePayload] = None
        try:
            for index, upload in enumerate(payload.files):
                current_file = upload
                result = self._process_file(payload, index, upload)
                results.append(result.model_dump())
                logger.info(
                    f"Processed file {upload.original_name} for sub-asset {result.sub_asset_id} "
                    f"as version {result.version}"
                )
        except Exception as e:
            details["results"] = results
            retryable = isinstance(e, AssetIngestError) and e.retryable
            file_name = current_file.original_name if current_file else "?"
            message = f"Failed to process {file_name}: {e}"

            if retryable and attempt < max_attempts:
                logger.warning(f"Upload job {job_id} attempt {attempt} failed, will retry: {message}")
                self._record(job_id, JobStatus.PROCESSING, details=details)
            else:
                logger.exception(f"Upload job {job_id} failed: {message}")
                self._record(job_id, JobStatus.ERROR, details=details, error_message=message)
            raise

        details["results"] = results
        self.registry.update_job_status(
            job_id,
            JobStatus.DONE,
            details=details,
            completed_at=datetime.utcnow(),
        )
        logger.info(f"Upload job {job_id} completed successfully")
        return details

    def _record(self, job_id: str, status: str, **fields: Any) -> None:
        """Best-effort status write while another error is propagating."""
        try:
            self.registry.update_job_status(job_id, status, **fields)
        except AssetIngestError as update_error:
            logger.error(f"Failed to update upload job {job_id} to {status}: {update_error}")

    def _target_for(self, payload: UploadJobPayload, index: int) -> str:
        # SINGLE (and, for now, SEQUENCE) applies every file to the first target
        return payload.target_subasset_ids[0]

    def _process_file(self, payload: UploadJobPayload, index: int, upload: UploadFilePayload) -> FileResult:
        job_id = payload.job_id

        committed = self.registry.find_committed(job_id, index)
        if committed is not None:
            logger.info(f"File {upload.original_name} of job {job_id} already committed as version {committed.version}")
            return self._result(upload, committed)

        sub_asset_id = self._target_for(payload, index)
        change_note = upload.change_note or f"Uploaded via job {job_id}"
        ext = extension_of(upload.original_name)
        last_conflict: Optional[VersionConflict] = None

        for conflict_attempt in range(self.version_conflict_retries + 1):
            sub_asset = self.registry.get_sub_asset(sub_asset_id)
            if sub_asset is None:
                raise TargetNotFound(f"Sub-asset {sub_asset_id} not found")

            new_version = sub_asset.current_version + 1
            resolved_path = resolve_path(
                base=sub_asset.base_path,
                key=sub_asset.key,
                version=new_version,
                ext=ext,
                template=sub_asset.path_template,
            )

            try:
                # Held until the revision is committed or given up
                with self.store.revision_lock(resolved_path):
                    stored = self._store_revision(sub_asset_id, new_version, resolved_path, upload)
                    try:
                        self.registry.atomic_append_version(
                            sub_asset_id,
                            version=new_version,
                            change_note=change_note,
                            file_path=stored.path,
                            file_size=stored.size,
                            file_hash=stored.hash,
                            upload_job_id=job_id,
                            file_index=index,
                        )
                    except VersionConflict:
                        if stored.created:
                            self._discard_if_unreferenced(sub_asset_id, new_version, stored.path)
                        raise
                    except (RegistryTransactionError, TargetNotFound):
                        if stored.created:
                            self._discard(stored.path)
                        raise
            except VersionConflict as e:
                committed = self.registry.find_committed(job_id, index)
                if committed is not None:
                    # A concurrent delivery of this same job won the race
                    return self._result(upload, committed)

                last_conflict = e
                reason = "path occupied" if isinstance(e, PathOccupied) else "version taken"
                logger.info(
                    f"Version conflict on sub-asset {sub_asset_id} at version {new_version} ({reason}), "
                    f"retry {conflict_attempt + 1}/{self.version_conflict_retries}"
                )
                if conflict_attempt < self.version_conflict_retries:
                    self._sleep(self.version_conflict_backoff * (conflict_attempt + 1))
                continue

            return FileResult(
                file_name=upload.original_name,
                sub_asset_id=sub_asset_id,
                version=new_version,
                path=stored.path,
                size=stored.size,
                hash=stored.hash,
            )

        raise VersionConflict(
            f"Could not commit {upload.original_name} to sub-asset {sub_asset_id} "
            f"after {self.version_conflict_retries + 1} attempts: {last_conflict}"
        )

    def _store_revision(self, sub_asset_id: str, version: int, path: str, upload: UploadFilePayload) -> StoredFile:
        """Store under the revision lock, taking over a file no revision owns.

        Raises:
            PathOccupied: If a committed revision already holds other bytes at ``path``
        """
        try:
            return asyncio.run(self.store.store(upload.content, path, upload.mime_type))
        except PathOccupied:
            if self.registry.get_version(sub_asset_id, version) is not None:
                raise
            logger.warning(
                f"Replacing uncommitted file at {path} left by an interrupted upload "
                f"(sub-asset {sub_asset_id}, version {version})"
            )
            return asyncio.run(self.store.store(upload.content, path, upload.mime_type, replace=True))

    def fail_job(self, job_id: str, reason: str) -> bool:
        """Move a job to ERROR when the queue gave up on it without a worker settling it.

        Used for lease expiry on the last attempt and for redeliveries past
        the attempt limit. Jobs already DONE or ERROR are left alone.

        Returns:
            True if the job was moved to ERROR
        """
        try:
            self.registry.update_job_status(
                job_id,
                JobStatus.ERROR,
                error_message=reason,
                completed_at=datetime.utcnow(),
            )
        except (InvalidJobStateError, JobNotFoundError) as e:
            logger.info(f"Upload job {job_id} not failed by the queue: {e}")
            return False
        except AssetIngestError as e:
            logger.error(f"Failed to mark upload job {job_id} as failed: {e}")
            return False

        logger.error(f"Upload job {job_id} failed: {reason}")
        return True

    def _discard_if_unreferenced(self, sub_asset_id: str, version: int, path: str) -> None:
        """Remove a freshly written file unless the winning revision points at it."""
        winner = self.registry.get_version(sub_asset_id, version)
        if winner is None or winner.file_path != path:
            self._discard(path)

    def _discard(self, path: str) -> None:
        try:
            asyncio.run(self.store.delete(path))
            logger.info(f"Discarded uncommitted file {path}")
        except (FileNotFoundError, AssetIngestError) as e:
            logger.warning(f"Could not discard uncommitted file {path}: {e}")

    @staticmethod
    def _result(upload: UploadFilePayload, history: AssetHistory) -> FileResult:
        return FileResult(
            file_name=upload.original_name,
            sub_asset_id=history.sub_asset_id,
            version=history.version,
            path=history.file_path,
            size=history.file_size,
            hash=history.file_hash,
        )
