"""Tests for upload job creation and polling."""

from unittest.mock import MagicMock

import pytest

from asset_ingest.errors import JobNotFoundError
from asset_ingest.queue.memory import InMemoryJobQueue
from asset_ingest.schemas.queue import RetryPolicy
from asset_ingest.schemas.upload_job import JobStatus
from asset_ingest.services.file_validation import FileValidationService, UploadValidationError
from asset_ingest.services.upload_service import UploadService
from factories import make_file, png_bytes


@pytest.fixture
def queue():
    return InMemoryJobQueue(default_retry_policy=RetryPolicy(attempts=2, backoff_delay=0))


@pytest.fixture
def service(registry, queue):
    return UploadService(registry, queue)


class TestCreateUploadJob:
    def test_creates_queued_job(self, service, queue, registry, sub_asset):
        response = service.create_upload_job([make_file("player.png")], [sub_asset.id], "alice")

        assert response.status == JobStatus.QUEUED
        assert response.mode == "SINGLE"
        assert response.details["target_subasset_ids"] == [sub_asset.id]
        assert response.details["file_count"] == 1
        assert response.details["files"][0]["mime_type"] == "image/png"
        assert registry.get_job(response.id).created_by == "alice"
        assert queue.stats().waiting == 1

        lease = queue.lease(timeout=0)
        assert lease.job_id == response.id
        assert lease.payload.files[0].original_name == "player.png"

    def test_unknown_target(self, service, sub_asset):
        with pytest.raises(UploadValidationError, match="not found"):
            service.create_upload_job([make_file()], [sub_asset.id, "missing"], "alice")

    def test_requires_files_and_targets(self, service, sub_asset):
        with pytest.raises(UploadValidationError):
            service.create_upload_job([], [sub_asset.id], "alice")
        with pytest.raises(UploadValidationError):
            service.create_upload_job([make_file()], [], "alice")

    def test_unknown_mode(self, service, sub_asset):
        with pytest.raises(UploadValidationError):
            service.create_upload_job([make_file()], [sub_asset.id], "alice", mode="BATCH")

    def test_enqueue_failure_marks_job_error(self, registry, sub_asset):
        queue = MagicMock()
        queue.default_retry_policy = RetryPolicy()
        queue.enqueue.side_effect = ConnectionError("broker down")
        service = UploadService(registry, queue)

        with pytest.raises(ConnectionError):
            service.create_upload_job([make_file()], [sub_asset.id], "alice")

        job_id = queue.enqueue.call_args[0][0]
        job = registry.get_job(job_id)
        assert job.status == JobStatus.ERROR
        assert "broker down" in job.error_message


class TestFileValidation:
    def test_accepts_png(self):
        assert FileValidationService().validate_file(make_file()) == "image/png"

    def test_detects_image_type_from_content(self):
        upload = make_file("player.png", mime_type="application/octet-stream")
        assert FileValidationService().validate_file(upload) == "image/png"

    def test_too_large(self):
        with pytest.raises(UploadValidationError, match="maximum size"):
            FileValidationService(max_file_size=100).validate_file(make_file(content=png_bytes(size=64)))

    def test_unsupported_type(self):
        with pytest.raises(UploadValidationError, match="unsupported MIME type"):
            FileValidationService().validate_file(make_file("notes.txt", b"hello " * 50, "text/plain"))

    def test_tiny_audio_is_corrupted(self):
        with pytest.raises(UploadValidationError, match="corrupted"):
            FileValidationService().validate_file(make_file("step.wav", b"RIFF", "audio/wav"))

    def test_broken_image_is_corrupted(self):
        content = png_bytes()[:-40]
        with pytest.raises(UploadValidationError, match="corrupted"):
            FileValidationService().validate_file(make_file("player.png", content, "image/png"))

    def test_small_binary_is_allowed(self):
        upload = make_file("mesh.fbx", b"\x00\x01", "application/octet-stream")
        assert FileValidationService().validate_file(upload) == "application/octet-stream"


class TestPolling:
    def test_get_upload_job(self, service, sub_asset):
        created = service.create_upload_job([make_file()], [sub_asset.id], "alice")
        assert service.get_upload_job(created.id).id == created.id

    def test_get_upload_job_missing(self, service):
        with pytest.raises(JobNotFoundError):
            service.get_upload_job("missing")

    def test_execution_and_stats(self, service, sub_asset):
        created = service.create_upload_job([make_file()], [sub_asset.id], "alice")
        assert service.get_job_execution(created.id).max_attempts == 2
        assert service.get_queue_stats().waiting == 1


def test_validation_error_is_part_of_error_taxonomy():
    from asset_ingest.errors import AssetIngestError

    assert issubclass(UploadValidationError, AssetIngestError)
    assert UploadValidationError.retryable is False
