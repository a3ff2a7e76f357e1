"""Upload job schemas."""

import base64
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class UploadMode:
    """Upload modes."""

    SINGLE = "SINGLE"  # Every file goes to the first target
    SEQUENCE = "SEQUENCE"  # Reserved for per-file targets; handled like SINGLE for now

    ALL = (SINGLE, SEQUENCE)


class JobStatus:
    """Persisted upload job status values."""

    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    ERROR = "ERROR"

    TERMINAL = (DONE, ERROR)


class UploadFilePayload(BaseModel):
    """One uploaded file as carried in the queue payload."""

    original_name: str
    content: bytes
    mime_type: str = "application/octet-stream"
    change_note: Optional[str] = None


class UploadJobPayload(BaseModel):
    """Work item handed from the upload service to the processor."""

    job_id: str
    mode: str = Field(default=UploadMode.SINGLE, pattern="^(SINGLE|SEQUENCE)$")
    target_subasset_ids: List[str] = Field(..., min_length=1)
    files: List[UploadFilePayload] = Field(default_factory=list)
    user_id: str

    def to_message(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict (file bytes as base64)."""
        message = self.model_dump(exclude={"files"})
        message["files"] = [
            {
                "original_name": f.original_name,
                "content_b64": base64.b64encode(f.content).decode("ascii"),
                "mime_type": f.mime_type,
                "change_note": f.change_note,
            }
            for f in self.files
        ]
        return message

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "UploadJobPayload":
        """Inverse of ``to_message``."""
        data = dict(message)
        data["files"] = [
            {
                "original_name": f["original_name"],
                "content": base64.b64decode(f["content_b64"]),
                "mime_type": f.get("mime_type") or "application/octet-stream",
                "change_note": f.get("change_note"),
            }
            for f in message.get("files", [])
        ]
        return cls.model_validate(data)


class FileResult(BaseModel):
    """Outcome of one committed file."""

    file_name: str
    sub_asset_id: str
    version: int
    path: str
    size: int
    hash: str


class UploadJobResponse(BaseModel):
    """Client-visible shape of an upload job."""

    id: str
    status: str
    mode: str
    created_at: datetime
    details: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job) -> "UploadJobResponse":
        """Build from an ``UploadJob`` row."""
        details = None
        if job.details_json:
            try:
                details = json.loads(job.details_json)
            except json.JSONDecodeError:
                details = None
        return cls(
            id=job.id,
            status=job.status,
            mode=job.mode,
            created_at=job.created_at,
            details=details,
            error_message=job.error_message,
            completed_at=job.completed_at,
        )
