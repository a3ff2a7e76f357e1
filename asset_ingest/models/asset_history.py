"""Asset history model."""

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from asset_ingest.database import Base


class AssetHistory(Base):
    """Immutable record of one stored revision of a sub-asset."""

    __tablename__ = "asset_history"
    __table_args__ = (
        UniqueConstraint("sub_asset_id", "version", name="uq_asset_history_sub_asset_version"),
        UniqueConstraint("upload_job_id", "file_index", name="uq_asset_history_job_file"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sub_asset_id = Column(String(36), ForeignKey("sub_assets.id", ondelete="CASCADE"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    change_note = Column(Text, nullable=True)
    file_path = Column(String(1000), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    file_hash = Column(String(64), nullable=False)
    upload_job_id = Column(String(36), nullable=True, index=True)  # Redelivery idempotency key
    file_index = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    sub_asset = relationship("SubAsset", back_populates="history")

    def __repr__(self):
        return f"<AssetHistory(sub_asset_id={self.sub_asset_id}, version={self.version})>"
