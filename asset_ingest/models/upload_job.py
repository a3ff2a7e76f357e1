"""Upload job model."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from asset_ingest.database import Base


class UploadJob(Base):
    """Persisted record of one upload request."""

    __tablename__ = "upload_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    status = Column(String(50), nullable=False, default="QUEUED", index=True)
    # Status: QUEUED, PROCESSING, DONE, ERROR
    mode = Column(String(50), nullable=False, default="SINGLE")  # SINGLE or SEQUENCE
    created_by = Column(String(255), nullable=False)
    details_json = Column(Text, nullable=True)  # JSON with targets, file metadata and results
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<UploadJob(id={self.id}, status={self.status})>"
