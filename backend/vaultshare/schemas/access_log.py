from typing import Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class AccessLog(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    email: Optional[str] = None
    accessed_at: datetime


class FailedAccessLog(AccessLog):
    reason: str
