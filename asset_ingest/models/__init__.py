"""SQLAlchemy models."""

from asset_ingest.database import Base
from asset_ingest.models.project import Project
from asset_ingest.models.asset_group import AssetGroup
from asset_ingest.models.sub_asset import SubAsset
from asset_ingest.models.asset_history import AssetHistory
from asset_ingest.models.upload_job import UploadJob

__all__ = [
    "Base",
    "Project",
    "AssetGroup",
    "SubAsset",
    "AssetHistory",
    "UploadJob",
]
