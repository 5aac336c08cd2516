import enum
import uuid

from sqlalchemy import Column, BigInteger, DateTime, Enum, Integer, String
from sqlalchemy.orm import relationship

from vaultshare.core.time import utcnow
from vaultshare.db.base_class import Base


class Visibility(str, enum.Enum):
    PRIVATE = "private"
    PASSWORD_PROTECTED = "password_protected"
    PUBLIC = "public"


class FileRecord(Base):
    __tablename__ = "file_record"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(64), nullable=False, index=True)

    # Blob store reference
    storage_key = Column(String(255), nullable=False, unique=True)
    bucket = Column(String(512), nullable=True)

    original_name = Column(String(255), nullable=False)
    content_type = Column(String(255), nullable=False, default="application/octet-stream")
    size = Column(BigInteger, nullable=False, default=0)

    # Protection policy. password holds a salted hash and is set only
    # while visibility is password_protected.
    visibility = Column(
        Enum(Visibility, values_callable=lambda e: [m.value for m in e], native_enum=False, length=32),
        nullable=False,
        default=Visibility.PRIVATE,
    )
    password = Column(String(255), nullable=True)
    expires_at = Column(DateTime, nullable=True, index=True)
    download_limit = Column(Integer, nullable=True)
    download_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    shares = relationship("ShareLink", back_populates="file", passive_deletes=True)

    @property
    def has_password(self) -> bool:
        return self.password is not None
