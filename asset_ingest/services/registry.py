"""Asset registry: durable sub-asset, history and upload job records."""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from asset_ingest.database import Base
from asset_ingest.errors import (
    InvalidJobStateError,
    JobNotFoundError,
    RegistryTransactionError,
    TargetNotFound,
    VersionConflict,
)
from asset_ingest.models.asset_history import AssetHistory
from asset_ingest.models.sub_asset import SubAsset
from asset_ingest.models.upload_job import UploadJob
from asset_ingest.schemas.upload_job import JobStatus

logger = logging.getLogger(__name__)


class AssetRegistry:
    """Transactional access to the asset tables.

    Every public method runs in its own short session. Rows are returned
    detached (the session factory is built with ``expire_on_commit=False``).
    SQLAlchemy failures other than the handled constraint violations surface
    as ``RegistryTransactionError``.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def init_schema(self) -> None:
        """Create missing tables (development and tests; production uses Alembic)."""
        Base.metadata.create_all(bind=self._session_factory.kw["bind"])

    def dispose(self) -> None:
        """Release pooled connections."""
        self._session_factory.kw["bind"].dispose()

    def _session(self) -> Session:
        return self._session_factory()

    # ----- sub-assets -------------------------------------------------

    def get_sub_asset(self, sub_asset_id: str) -> Optional[SubAsset]:
        """Load a sub-asset by ID, or None."""
        try:
            with self._session() as db:
                return db.get(SubAsset, sub_asset_id)
        except SQLAlchemyError as e:
            raise RegistryTransactionError(f"Failed to load sub-asset {sub_asset_id}: {e}") from e

    def get_sub_assets(self, sub_asset_ids: List[str]) -> List[SubAsset]:
        """Load every sub-asset in ``sub_asset_ids`` that exists."""
        try:
            with self._session() as db:
                return list(db.scalars(select(SubAsset).where(SubAsset.id.in_(sub_asset_ids))))
        except SQLAlchemyError as e:
            raise RegistryTransactionError(f"Failed to load sub-assets: {e}") from e

    def get_history(self, sub_asset_id: str) -> List[AssetHistory]:
        """Revisions of a sub-asset, oldest first."""
        try:
            with self._session() as db:
                return list(
                    db.scalars(
                        select(AssetHistory)
                        .where(AssetHistory.sub_asset_id == sub_asset_id)
                        .order_by(AssetHistory.version)
                    )
                )
        except SQLAlchemyError as e:
            raise RegistryTransactionError(f"Failed to load history for {sub_asset_id}: {e}") from e

    def get_version(self, sub_asset_id: str, version: int) -> Optional[AssetHistory]:
        """History row for one version of a sub-asset, or None."""
        try:
            with self._session() as db:
                return db.scalars(
                    select(AssetHistory).where(
                        AssetHistory.sub_asset_id == sub_asset_id,
                        AssetHistory.version == version,
                    )
                ).first()
        except SQLAlchemyError as e:
            raise RegistryTransactionError(f"Failed to load version {version} of {sub_asset_id}: {e}") from e

    def find_committed(self, upload_job_id: str, file_index: int) -> Optional[AssetHistory]:
        """History row already committed for a job's file, if any."""
        try:
            with self._session() as db:
                return db.scalars(
                    select(AssetHistory).where(
                        AssetHistory.upload_job_id == upload_job_id,
                        AssetHistory.file_index == file_index,
                    )
                ).first()
        except SQLAlchemyError as e:
            raise RegistryTransactionError(f"Failed to look up job {upload_job_id} file {file_index}: {e}") from e

    def atomic_append_version(
        self,
        sub_asset_id: str,
        version: int,
        change_note: Optional[str],
        file_path: str,
        file_size: int,
        file_hash: str,
        upload_job_id: Optional[str] = None,
        file_index: Optional[int] = None,
    ) -> int:
        """Bump ``current_version`` to ``version`` and append the history row.

        Compare-and-swap: the UPDATE only matches while ``current_version`` is
        still ``version - 1``, and the history insert commits in the same
        transaction. The unique (sub_asset_id, version) and (upload_job_id,
        file_index) constraints back the CAS up.

        Returns:
            The new current version

        Raises:
            TargetNotFound: If the sub-asset does not exist
            VersionConflict: If another revision committed first
            RegistryTransactionError: On any other database failure
        """
        try:
            with self._session() as db:
                result = db.execute(
                    update(SubAsset)
                    .where(SubAsset.id == sub_asset_id, SubAsset.current_version == version - 1)
                    .values(current_version=version, updated_at=datetime.utcnow())
                )
                if result.rowcount != 1:
                    db.rollback()
                    current = db.get(SubAsset, sub_asset_id)
                    if current is None:
                        raise TargetNotFound(f"Sub-asset {sub_asset_id} not found")
                    raise VersionConflict(
                        f"Sub-asset {sub_asset_id} is at version {current.current_version}, "
                        f"cannot commit version {version}"
                    )

                db.add(
                    AssetHistory(
                        sub_asset_id=sub_asset_id,
                        version=version,
                        change_note=change_note,
                        file_path=file_path,
                        file_size=file_size,
                        file_hash=file_hash,
                        upload_job_id=upload_job_id,
                        file_index=file_index,
                    )
                )
                db.commit()
        except IntegrityError as e:
            raise VersionConflict(f"Version {version} of sub-asset {sub_asset_id} already committed") from e
        except SQLAlchemyError as e:
            raise RegistryTransactionError(
                f"Failed to commit version {version} of sub-asset {sub_asset_id}: {e}"
            ) from e

        logger.info(f"Sub-asset {sub_asset_id} advanced to version {version} ({file_path})")
        return version

    # ----- upload jobs ------------------------------------------------

    def create_job(
        self,
        mode: str,
        created_by: str,
        details: Optional[Dict[str, Any]] = None,
        job_id: Optional[str] = None,
    ) -> UploadJob:
        """Create an upload job in QUEUED state."""
        job = UploadJob(
            status=JobStatus.QUEUED,
            mode=mode,
            created_by=created_by,
            details_json=json.dumps(details) if details is not None else None,
        )
        if job_id:
            job.id = job_id
        try:
            with self._session() as db:
                db.add(job)
                db.commit()
                db.refresh(job)
                return job
        except SQLAlchemyError as e:
            raise RegistryTransactionError(f"Failed to create upload job: {e}") from e

    def get_job(self, job_id: str) -> Optional[UploadJob]:
        """Load an upload job by ID, or None."""
        try:
            with self._session() as db:
                return db.get(UploadJob, job_id)
        except SQLAlchemyError as e:
            raise RegistryTransactionError(f"Failed to load upload job {job_id}: {e}") from e

    def update_job_status(
        self,
        job_id: str,
        status: str,
        details: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> None:
        """Move a job to ``status``; fields left as None are not touched.

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidJobStateError: If the job already reached DONE or ERROR
        """
        values: Dict[str, Any] = {"status": status, "updated_at": datetime.utcnow()}
        if details is not None:
            values["details_json"] = json.dumps(details)
        if error_message is not None:
            values["error_message"] = error_message
        if completed_at is not None:
            values["completed_at"] = completed_at

        try:
            with self._session() as db:
                result = db.execute(
                    update(UploadJob)
                    .where(UploadJob.id == job_id, UploadJob.status.notin_(JobStatus.TERMINAL))
                    .values(**values)
                )
                if result.rowcount != 1:
                    db.rollback()
                    job = db.get(UploadJob, job_id)
                    if job is None:
                        raise JobNotFoundError(f"Upload job {job_id} not found")
                    raise InvalidJobStateError(
                        f"Upload job {job_id} is already {job.status}, cannot move to {status}"
                    )
                db.commit()
        except SQLAlchemyError as e:
            raise RegistryTransactionError(f"Failed to update upload job {job_id}: {e}") from e

        logger.debug(f"Upload job {job_id} status -> {status}")
