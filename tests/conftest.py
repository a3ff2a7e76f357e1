"""Pytest configuration and fixtures."""

import pytest

from asset_ingest.database import create_session_factory
from asset_ingest.models import AssetGroup, Project, SubAsset
from asset_ingest.schemas.upload_job import UploadJobPayload
from asset_ingest.services.registry import AssetRegistry
from asset_ingest.services.upload_processor import UploadProcessor
from asset_ingest.storage.local_driver import LocalStorageDriver


@pytest.fixture
def session_factory(tmp_path):
    """Session factory on a file-backed SQLite database (shared across threads)."""
    factory = create_session_factory(f"sqlite:///{tmp_path / 'assets.db'}")
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def registry(session_factory):
    registry = AssetRegistry(session_factory)
    registry.init_schema()
    return registry


@pytest.fixture
def store(tmp_path):
    return LocalStorageDriver({"base_path": str(tmp_path / "storage")})


@pytest.fixture
def processor(registry, store):
    return UploadProcessor(registry, store, version_conflict_retries=3, sleep=lambda _: None)


@pytest.fixture
def make_sub_asset(session_factory, registry):
    """Create sub-assets in a fresh project/group."""
    counter = {"n": 0}

    def _make(key="player", base_path="assets/sprites", path_template=None, asset_type="sprite"):
        counter["n"] += 1
        with session_factory() as db:
            project = Project(name=f"Project {counter['n']}")
            db.add(project)
            db.flush()
            group = AssetGroup(project_id=project.id, key="characters", name="Characters")
            db.add(group)
            db.flush()
            sub_asset = SubAsset(
                group_id=group.id,
                key=key,
                type=asset_type,
                base_path=base_path,
                path_template=path_template,
            )
            db.add(sub_asset)
            db.commit()
            db.refresh(sub_asset)
            return sub_asset

    return _make


@pytest.fixture
def sub_asset(make_sub_asset):
    return make_sub_asset()


@pytest.fixture
def create_job(registry):
    """Create a QUEUED job record and return its payload."""

    def _create(sub_asset_ids, files, user_id="tester", mode="SINGLE"):
        job = registry.create_job(mode=mode, created_by=user_id, details={"file_count": len(files)})
        return UploadJobPayload(
            job_id=job.id,
            mode=mode,
            target_subasset_ids=list(sub_asset_ids),
            files=files,
            user_id=user_id,
        )

    return _create
