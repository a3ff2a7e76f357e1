"""Database seeding script."""

from sqlalchemy.orm import Session

from asset_ingest.models.asset_group import AssetGroup
from asset_ingest.models.project import Project
from asset_ingest.models.sub_asset import SubAsset
from asset_ingest.services.path_resolver import DEFAULT_PATH_TEMPLATE

DEMO_PROJECT_NAME = "Demo Project"


def seed_database(db: Session) -> Project:
    """Seed database with a demo project, group and sub-assets.

    Returns the demo project (existing or newly created).
    """
    try:
        # Check if project already exists
        existing_project = db.query(Project).filter_by(name=DEMO_PROJECT_NAME).first()

        if existing_project:
            print("Database already seeded. Skipping.")
            return existing_project

        project = Project(
            name=DEMO_PROJECT_NAME,
            description="Sample project for local development",
        )
        db.add(project)
        db.flush()  # Get the project ID

        print(f"Created project: {project.name} (ID: {project.id})")

        group = AssetGroup(project_id=project.id, key="hero", name="Hero")
        db.add(group)
        db.flush()
        print(f"Created asset group: {group.name}")

        sub_assets = [
            SubAsset(
                group_id=group.id,
                key="player",
                type="sprite",
                base_path="assets/sprites",
                path_template=DEFAULT_PATH_TEMPLATE,
                rule_pack_key="sprites-default",
            ),
            SubAsset(
                group_id=group.id,
                key="footsteps",
                type="audio",
                base_path="assets/audio",
                path_template=DEFAULT_PATH_TEMPLATE,
            ),
        ]

        for sub_asset in sub_assets:
            db.add(sub_asset)
            print(f"Created sub-asset: {sub_asset.key} ({sub_asset.type}) at {sub_asset.base_path}")

        db.commit()
        print("\n✓ Database seeded successfully!")
        return project

    except Exception as e:
        db.rollback()
        print(f"Error seeding database: {e}")
        raise


if __name__ == "__main__":
    from asset_ingest.config import settings
    from asset_ingest.database import create_session_factory

    print("Starting database seeding...")
    session = create_session_factory(settings.database_url)()
    try:
        seed_database(session)
    finally:
        session.close()
