"""Tests for database seeding."""

from asset_ingest.db.seed import DEMO_PROJECT_NAME, seed_database
from asset_ingest.models import Project, SubAsset


def test_seed_database(session_factory, registry):
    with session_factory() as db:
        project = seed_database(db)
        assert project.name == DEMO_PROJECT_NAME

    with session_factory() as db:
        sub_assets = db.query(SubAsset).all()
        assert sorted(s.key for s in sub_assets) == ["footsteps", "player"]
        assert all(s.current_version == 0 for s in sub_assets)


def test_seed_is_idempotent(session_factory, registry):
    with session_factory() as db:
        first = seed_database(db)
    with session_factory() as db:
        second = seed_database(db)
        assert db.query(Project).count() == 1

    assert first.id == second.id
