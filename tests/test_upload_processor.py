"""Tests for the upload processor."""

import asyncio
import json
import threading

import pytest

from asset_ingest.errors import MissingParameter, StorageIOError, TargetNotFound, VersionConflict
from asset_ingest.schemas.upload_job import JobStatus
from asset_ingest.services.upload_processor import UploadProcessor
from asset_ingest.storage.local_driver import LocalStorageDriver
from factories import make_file, png_bytes


class FlakyStore(LocalStorageDriver):
    """Local store that fails with an I/O error on chosen calls (1-indexed)."""

    def __init__(self, config, fail_on_calls=()):
        super().__init__(config)
        self.fail_on_calls = set(fail_on_calls)
        self.calls = 0

    async def store(self, content, relative_path, mime_type="application/octet-stream", replace=False):
        self.calls += 1
        if self.calls in self.fail_on_calls:
            raise StorageIOError(f"disk unavailable for {relative_path}")
        return await super().store(content, relative_path, mime_type, replace=replace)


def job_details(registry, job_id):
    return json.loads(registry.get_job(job_id).details_json)


class TestProcess:
    """Happy path and state machine."""

    def test_single_file(self, registry, processor, store, sub_asset, create_job):
        content = png_bytes()
        payload = create_job([sub_asset.id], [make_file("player.png", content)])

        details = processor.process(payload)

        job = registry.get_job(payload.job_id)
        assert job.status == JobStatus.DONE
        assert job.completed_at is not None
        assert details["results"][0]["version"] == 1
        assert details["results"][0]["path"] == "assets/sprites/player/v1/player.png"
        assert asyncio.run(store.read("assets/sprites/player/v1/player.png")) == content
        assert registry.get_sub_asset(sub_asset.id).current_version == 1

    def test_files_get_consecutive_versions(self, registry, processor, sub_asset, create_job):
        files = [make_file(f"frame{i}.png", png_bytes(shade=i)) for i in range(3)]
        payload = create_job([sub_asset.id], files)

        details = processor.process(payload)

        assert [r["version"] for r in details["results"]] == [1, 2, 3]
        assert [h.version for h in registry.get_history(sub_asset.id)] == [1, 2, 3]

    def test_single_mode_uses_first_target(self, registry, processor, make_sub_asset, create_job):
        first = make_sub_asset(key="first")
        second = make_sub_asset(key="second")
        payload = create_job([first.id, second.id], [make_file("a.png")])

        processor.process(payload)

        assert registry.get_sub_asset(first.id).current_version == 1
        assert registry.get_sub_asset(second.id).current_version == 0

    def test_change_note_default(self, registry, processor, sub_asset, create_job):
        payload = create_job([sub_asset.id], [make_file("a.png"), make_file("b.png", png_bytes(shade=9), change_note="fix")])
        processor.process(payload)

        notes = [h.change_note for h in registry.get_history(sub_asset.id)]
        assert notes == [f"Uploaded via job {payload.job_id}", "fix"]

    def test_terminal_job_is_not_reprocessed(self, registry, processor, sub_asset, create_job):
        payload = create_job([sub_asset.id], [make_file("a.png")])
        processor.process(payload)
        processor.process(payload)

        assert len(registry.get_history(sub_asset.id)) == 1


class TestPartialFailure:
    """A failing file stops the job but keeps earlier commits."""

    def test_second_file_fails(self, registry, processor, store, sub_asset, create_job):
        files = [make_file("a.png"), make_file("noextension"), make_file("c.png", png_bytes(shade=3))]
        payload = create_job([sub_asset.id], files)

        with pytest.raises(MissingParameter):
            processor.process(payload)

        job = registry.get_job(payload.job_id)
        assert job.status == JobStatus.ERROR
        assert job.error_message.startswith("Failed to process noextension:")
        results = job_details(registry, payload.job_id)["results"]
        assert len(results) == 1
        assert results[0]["file_name"] == "a.png"

        # Third file never attempted
        assert registry.get_sub_asset(sub_asset.id).current_version == 1
        assert asyncio.run(store.exists("assets/sprites/player/v2/player.png")) is False

    def test_missing_target(self, registry, processor, create_job):
        payload = create_job(["no-such-sub-asset"], [make_file("a.png")])

        with pytest.raises(TargetNotFound):
            processor.process(payload)

        job = registry.get_job(payload.job_id)
        assert job.status == JobStatus.ERROR
        assert "not found" in job.error_message

class TestTargetDisappears:
    """The target sub-asset is removed while the job runs."""

    def test_second_file_target_not_found(self, registry, processor, store, sub_asset, create_job, monkeypatch):
        files = [make_file("a.png"), make_file("b.png", png_bytes(shade=1)), make_file("c.png", png_bytes(shade=2))]
        payload = create_job([sub_asset.id], files)

        real_get_sub_asset = registry.get_sub_asset
        lookups = {"n": 0}

        def get_sub_asset(sub_asset_id):
            lookups["n"] += 1
            # Gone by the time the second file looks it up
            return real_get_sub_asset(sub_asset_id) if lookups["n"] == 1 else None

        monkeypatch.setattr(registry, "get_sub_asset", get_sub_asset)

        with pytest.raises(TargetNotFound):
            processor.process(payload)

        job = registry.get_job(payload.job_id)
        assert job.status == JobStatus.ERROR
        assert job.error_message.startswith("Failed to process b.png:")
        results = job_details(registry, payload.job_id)["results"]
        assert [r["file_name"] for r in results] == ["a.png"]
        assert lookups["n"] == 2
        assert [h.version for h in registry.get_history(sub_asset.id)] == [1]
        assert asyncio.run(store.exists("assets/sprites/player/v2/player.png")) is False


class TestOrphanedFiles:
    """Files left by an upload that died between store and commit."""

    def test_orphan_is_replaced(self, registry, processor, store, sub_asset, create_job):
        path = "assets/sprites/player/v1/player.png"
        asyncio.run(store.store(b"left by a crashed upload" * 10, path))
        content = png_bytes(shade=4)
        payload = create_job([sub_asset.id], [make_file("player.png", content)])

        details = processor.process(payload)

        assert registry.get_job(payload.job_id).status == JobStatus.DONE
        assert details["results"][0]["version"] == 1
        assert registry.get_sub_asset(sub_asset.id).current_version == 1
        assert asyncio.run(store.read(path)) == content
        assert registry.get_version(sub_asset.id, 1).file_hash == details["results"][0]["hash"]

    def test_committed_file_is_never_replaced(self, registry, processor, store, sub_asset, create_job, monkeypatch):
        first = png_bytes(shade=1)
        processor.process(create_job([sub_asset.id], [make_file("player.png", first)]))

        real_get_sub_asset = registry.get_sub_asset

        def stale_sub_asset(sub_asset_id):
            # Stale read: the next upload keeps aiming at the committed v1 slot
            stale = real_get_sub_asset(sub_asset_id)
            stale.current_version = 0
            return stale

        monkeypatch.setattr(registry, "get_sub_asset", stale_sub_asset)
        payload = create_job([sub_asset.id], [make_file("player.png", png_bytes(shade=2))])

        with pytest.raises(VersionConflict, match="already holds different content"):
            processor.process(payload)

        assert asyncio.run(store.read("assets/sprites/player/v1/player.png")) == first
        assert registry.get_job(payload.job_id).status == JobStatus.ERROR


class TestFailJob:
    """Queue-side failures recorded on the job."""

    def test_fail_job_moves_processing_job_to_error(self, registry, processor, create_job, sub_asset):
        payload = create_job([sub_asset.id], [make_file()])
        registry.update_job_status(payload.job_id, JobStatus.PROCESSING)

        assert processor.fail_job(payload.job_id, "Lease expired on the last attempt") is True

        job = registry.get_job(payload.job_id)
        assert job.status == JobStatus.ERROR
        assert job.error_message == "Lease expired on the last attempt"
        assert job.completed_at is not None

    def test_fail_job_leaves_finished_job(self, registry, processor, create_job, sub_asset):
        payload = create_job([sub_asset.id], [make_file()])
        processor.process(payload)

        assert processor.fail_job(payload.job_id, "late") is False
        assert registry.get_job(payload.job_id).status == JobStatus.DONE

    def test_fail_job_unknown(self, processor):
        assert processor.fail_job("missing", "late") is False


class TestRetries:
    """Retryable errors and redelivery."""

    def test_retryable_error_keeps_job_processing(self, registry, sub_asset, create_job, tmp_path):
        store = FlakyStore({"base_path": str(tmp_path / "storage")}, fail_on_calls=[2])
        processor = UploadProcessor(registry, store, sleep=lambda _: None)
        payload = create_job([sub_asset.id], [make_file("a.png"), make_file("b.png", png_bytes(shade=1))])

        with pytest.raises(StorageIOError):
            processor.process(payload, attempt=1, max_attempts=3)

        job = registry.get_job(payload.job_id)
        assert job.status == JobStatus.PROCESSING
        assert job.error_message is None

    def test_retryable_error_on_last_attempt_fails_job(self, registry, sub_asset, create_job, tmp_path):
        store = FlakyStore({"base_path": str(tmp_path / "storage")}, fail_on_calls=[1])
        processor = UploadProcessor(registry, store, sleep=lambda _: None)
        payload = create_job([sub_asset.id], [make_file("a.png")])

        with pytest.raises(StorageIOError):
            processor.process(payload, attempt=3, max_attempts=3)

        assert registry.get_job(payload.job_id).status == JobStatus.ERROR

    def test_redelivery_does_not_duplicate_commits(self, registry, sub_asset, create_job, tmp_path):
        root = str(tmp_path / "storage")
        files = [make_file("a.png"), make_file("b.png", png_bytes(shade=1))]
        payload = create_job([sub_asset.id], files)

        flaky = UploadProcessor(registry, FlakyStore({"base_path": root}, fail_on_calls=[2]), sleep=lambda _: None)
        with pytest.raises(StorageIOError):
            flaky.process(payload, attempt=1, max_attempts=3)

        healthy = UploadProcessor(registry, LocalStorageDriver({"base_path": root}), sleep=lambda _: None)
        details = healthy.process(payload, attempt=2, max_attempts=3)

        assert [r["version"] for r in details["results"]] == [1, 2]
        history = registry.get_history(sub_asset.id)
        assert [(h.version, h.file_index) for h in history] == [(1, 0), (2, 1)]
        assert registry.get_job(payload.job_id).status == JobStatus.DONE


class TestConcurrency:
    """Concurrent jobs on one sub-asset."""

    def test_concurrent_jobs_get_unique_contiguous_versions(self, registry, store, sub_asset, create_job):
        processor = UploadProcessor(registry, store, version_conflict_retries=100, version_conflict_backoff=0.005)
        payloads = [
            create_job([sub_asset.id], [make_file(f"f{i}.png", png_bytes(shade=i))])
            for i in range(4)
        ]
        errors = []

        def run(payload):
            try:
                processor.process(payload)
            except Exception as e:  # collected for the assertion below
                errors.append(e)

        threads = [threading.Thread(target=run, args=(p,)) for p in payloads]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert errors == []
        history = registry.get_history(sub_asset.id)
        assert sorted(h.version for h in history) == [1, 2, 3, 4]
        assert registry.get_sub_asset(sub_asset.id).current_version == 4

        # Every committed revision still holds the bytes it was committed with
        for h in history:
            data = asyncio.run(store.read(h.file_path))
            assert len(data) == h.file_size
