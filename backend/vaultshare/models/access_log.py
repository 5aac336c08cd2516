import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text

from vaultshare.core.time import utcnow
from vaultshare.db.base_class import Base


class AccessLog(Base):
    """Successful transfer of a file's bytes."""
    __tablename__ = "file_access_log"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    file_id = Column(String(36), ForeignKey("file_record.id", ondelete="CASCADE"), nullable=False, index=True)
    ip_address = Column(String(45), nullable=True)  # IPv4/IPv6
    user_agent = Column(Text, nullable=True)
    email = Column(String(255), nullable=True)
    accessed_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class FailedAccessLog(Base):
    """Denied access attempt with the reason it was refused."""
    __tablename__ = "failed_access_log"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    file_id = Column(String(36), ForeignKey("file_record.id", ondelete="CASCADE"), nullable=False, index=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    email = Column(String(255), nullable=True)
    reason = Column(String(64), nullable=False)
    accessed_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class FileDeletionFailureLog(Base):
    # No foreign key: the row must outlive a half-deleted file.
    __tablename__ = "file_deletion_failure_log"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    file_id = Column(String(36), nullable=False, index=True)
    file_name = Column(String(255), nullable=True)
    reason = Column(Text, nullable=False)
    failed_at = Column(DateTime, nullable=False, default=utcnow)
