"""Tests for the Celery upload task."""

from unittest.mock import MagicMock, patch

import pytest

from asset_ingest.errors import MissingParameter, StorageIOError
from asset_ingest.schemas.queue import RetryPolicy
from asset_ingest.schemas.upload_job import UploadJobPayload
from asset_ingest.tasks.process_upload import process_upload
from factories import make_file


@pytest.fixture
def pipeline():
    pipeline = MagicMock()
    pipeline.queue.default_retry_policy = RetryPolicy(attempts=3, backoff_delay=1.0)
    pipeline.queue.mark_active.return_value = 1
    return pipeline


@pytest.fixture
def message():
    payload = UploadJobPayload(job_id="job-1", target_subasset_ids=["sa-1"], files=[make_file()], user_id="tester")
    return payload.to_message()


def run_task(pipeline, message, **kwargs):
    with patch("asset_ingest.tasks.process_upload.get_pipeline", return_value=pipeline):
        return process_upload.run(message, **kwargs)


class TestProcessUploadTask:
    def test_success(self, pipeline, message):
        pipeline.processor.process.return_value = {"results": []}

        assert run_task(pipeline, message) == {"results": []}

        payload = pipeline.processor.process.call_args[0][0]
        assert payload.job_id == "job-1"
        assert pipeline.processor.process.call_args[1] == {"attempt": 1, "max_attempts": 3}
        pipeline.queue.mark_active.assert_called_once_with("job-1", 3)
        pipeline.queue.mark_completed.assert_called_once_with("job-1")

    def test_retry_policy_from_message(self, pipeline, message):
        run_task(pipeline, message, retry_policy={"attempts": 5, "backoff_delay": 0.5})
        assert pipeline.processor.process.call_args[1]["max_attempts"] == 5

    def test_non_retryable_error_fails(self, pipeline, message):
        pipeline.processor.process.side_effect = MissingParameter("no extension")

        with pytest.raises(MissingParameter):
            run_task(pipeline, message)

        pipeline.queue.mark_failed.assert_called_once_with("job-1", "no extension")
        pipeline.queue.mark_retry.assert_not_called()

    def test_retryable_error_schedules_retry(self, pipeline, message):
        pipeline.processor.process.side_effect = StorageIOError("disk unavailable")

        # Called directly, Task.retry re-raises the original exception
        with pytest.raises(StorageIOError):
            run_task(pipeline, message)

        pipeline.queue.mark_retry.assert_called_once_with("job-1", "disk unavailable")
        pipeline.queue.mark_failed.assert_not_called()

    def test_unexpected_error_fails_job(self, pipeline, message):
        pipeline.processor.process.side_effect = RuntimeError("soft time limit")

        with pytest.raises(RuntimeError):
            run_task(pipeline, message)

        pipeline.processor.fail_job.assert_called_once_with("job-1", "RuntimeError: soft time limit")
        pipeline.queue.mark_failed.assert_called_once_with("job-1", "RuntimeError: soft time limit")


class TestRedeliveryCounting:
    def test_broker_redelivery_counts_as_attempt(self, pipeline, message):
        # Two earlier deliveries died with their worker; Celery's retry count is still 0
        pipeline.queue.mark_active.return_value = 3

        run_task(pipeline, message)

        assert pipeline.processor.process.call_args[1] == {"attempt": 3, "max_attempts": 3}

    def test_redelivery_past_limit_fails_job(self, pipeline, message):
        pipeline.queue.mark_active.return_value = 4

        assert run_task(pipeline, message) is None

        pipeline.processor.process.assert_not_called()
        reason = pipeline.processor.fail_job.call_args[0][1]
        assert pipeline.processor.fail_job.call_args[0][0] == "job-1"
        assert "Attempts exhausted" in reason
        pipeline.queue.mark_failed.assert_called_once_with("job-1", reason)
