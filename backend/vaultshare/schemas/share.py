from typing import Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class ShareCreate(BaseModel):
    file_id: str
    email: EmailStr
    expires_at: datetime
    max_download: int = Field(ge=1)
    note: Optional[str] = None


class ShareLink(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token: str
    file_id: str
    recipient_email: str
    expires_at: datetime
    max_download: int
    download_count: int
    note: Optional[str] = None
    created_at: datetime


class ShareCreated(BaseModel):
    message: str = "File shared successfully"
    share_url: str
    notified: bool
    notification_error: Optional[str] = None


# Public info for share page (hide sensitive info)
class ShareInfo(BaseModel):
    file_name: str
    file_size: int
    note: Optional[str] = None
    expires_at: datetime
    max_download: int
    download_count: int
    password_required: bool


class ShareAccess(BaseModel):
    password: Optional[str] = None
