"""Tests for the Celery-backed job queue."""

from unittest.mock import MagicMock

import pytest

from asset_ingest.queue.celery_queue import PROCESS_UPLOAD_TASK, CeleryJobQueue
from asset_ingest.schemas.queue import JobState, RetryPolicy
from asset_ingest.schemas.upload_job import UploadJobPayload
from factories import make_file


class FakeRedis:
    """Just enough of redis.Redis for the snapshot keys."""

    def __init__(self):
        self.data = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    def get(self, key):
        return self.data.get(key)

    def delete(self, key):
        self.data.pop(key, None)

    def scan_iter(self, match=None):
        prefix = match.rstrip("*") if match else ""
        return [k for k in list(self.data) if k.startswith(prefix)]


def payload(job_id="job-1"):
    return UploadJobPayload(job_id=job_id, target_subasset_ids=["sa-1"], files=[make_file()], user_id="tester")


@pytest.fixture
def celery_app():
    return MagicMock()


@pytest.fixture
def queue(celery_app):
    return CeleryJobQueue(celery_app, FakeRedis(), default_retry_policy=RetryPolicy(attempts=4, backoff_delay=1.0))


class TestCeleryJobQueue:
    def test_enqueue_sends_task(self, queue, celery_app):
        assert queue.enqueue("job-1", payload()) is True

        celery_app.send_task.assert_called_once()
        args, kwargs = celery_app.send_task.call_args
        assert args[0] == PROCESS_UPLOAD_TASK
        assert kwargs["task_id"] == "job-1"
        assert kwargs["kwargs"]["retry_policy"] == {"attempts": 4, "backoff_delay": 1.0}
        assert UploadJobPayload.from_message(kwargs["args"][0]) == payload()

        status = queue.get_status("job-1")
        assert status.state == JobState.WAITING
        assert status.max_attempts == 4

    def test_duplicate_enqueue_is_ignored(self, queue, celery_app):
        queue.enqueue("job-1", payload())
        assert queue.enqueue("job-1", payload()) is False
        assert celery_app.send_task.call_count == 1

    def test_send_failure_releases_id(self, queue, celery_app):
        celery_app.send_task.side_effect = ConnectionError("broker down")

        with pytest.raises(ConnectionError):
            queue.enqueue("job-1", payload())
        assert queue.get_status("job-1") is None

    def test_lifecycle_updates(self, queue):
        queue.enqueue("job-1", payload())

        assert queue.mark_active("job-1", 4) == 1
        queue.mark_retry("job-1", "disk unavailable")
        assert queue.get_status("job-1").state == JobState.DELAYED
        assert queue.mark_active("job-1", 4) == 2
        queue.mark_completed("job-1")

        status = queue.get_status("job-1")
        assert status.state == JobState.COMPLETED
        assert status.attempts == 2
        assert status.last_error == "disk unavailable"

    def test_stats(self, queue):
        for job_id in ("a", "b", "c"):
            queue.enqueue(job_id, payload(job_id))
        queue.mark_active("a", 3)
        queue.mark_failed("b", "bad")

        stats = queue.stats()
        assert (stats.waiting, stats.active, stats.failed) == (1, 1, 1)
