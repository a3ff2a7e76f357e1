"""Sub-asset model."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from asset_ingest.database import Base


class SubAsset(Base):
    """Versioned asset slot within a group.

    ``current_version`` always equals the highest ``AssetHistory.version`` of
    the slot. It only moves inside ``AssetRegistry.atomic_append_version``.
    """

    __tablename__ = "sub_assets"
    __table_args__ = (
        UniqueConstraint("group_id", "key", name="uq_sub_assets_group_key"),
        CheckConstraint("current_version >= 0", name="ck_sub_assets_current_version"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    group_id = Column(String(36), ForeignKey("asset_groups.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)  # sprite, audio, model, ...
    base_path = Column(String(500), nullable=False)
    path_template = Column(String(500), nullable=True)
    current_version = Column(Integer, nullable=False, default=0)
    rule_pack_key = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    group = relationship("AssetGroup", back_populates="sub_assets")
    history = relationship(
        "AssetHistory",
        back_populates="sub_asset",
        order_by="AssetHistory.version",
    )

    def __repr__(self):
        return f"<SubAsset(id={self.id}, key={self.key}, current_version={self.current_version})>"
