import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from vaultshare.core.time import utcnow
from vaultshare.db.base_class import Base


class ShareLink(Base):
    __tablename__ = "share_link"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    token = Column(String(64), unique=True, index=True, nullable=False)
    file_id = Column(String(36), ForeignKey("file_record.id", ondelete="CASCADE"), nullable=False, index=True)

    recipient_email = Column(String(255), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    max_download = Column(Integer, nullable=False)
    download_count = Column(Integer, nullable=False, default=0)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    file = relationship("FileRecord", back_populates="shares")
