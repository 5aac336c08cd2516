from typing import Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from vaultshare.models.file import Visibility


# Properties to receive on metadata update
class FileMetadataUpdate(BaseModel):
    visibility: Visibility
    password: Optional[str] = None
    expires_at: Optional[datetime] = None
    download_limit: Optional[int] = Field(default=None, ge=1)


class FileVisibilityUpdate(BaseModel):
    visibility: Visibility
    password: Optional[str] = None


# Properties to return to the owner. The password hash is never exposed.
class FileRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    original_name: str
    content_type: str
    size: int
    visibility: Visibility
    has_password: bool
    expires_at: Optional[datetime] = None
    download_limit: Optional[int] = None
    download_count: int
    created_at: datetime


class FileUploaded(BaseModel):
    message: str = "File uploaded successfully"
    file: FileRecord
    share_link: str


# Public metadata, safe for anonymous callers
class FileMetadata(BaseModel):
    visibility: Visibility
    file_name: str
    is_expired: bool
    has_password: bool


class FileStats(BaseModel):
    total_files: int
    expired_files: int
    private_files: int
    public_files: int
    password_protected_files: int
    total_downloads: int
