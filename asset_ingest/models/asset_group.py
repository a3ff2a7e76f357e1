"""Asset group model."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from asset_ingest.database import Base


class AssetGroup(Base):
    """Logical group of sub-assets (e.g. a character or a sound bank)."""

    __tablename__ = "asset_groups"
    __table_args__ = (UniqueConstraint("project_id", "key", name="uq_asset_groups_project_key"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    project = relationship("Project", back_populates="groups")
    sub_assets = relationship("SubAsset", back_populates="group", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<AssetGroup(id={self.id}, key={self.key}, project_id={self.project_id})>"
