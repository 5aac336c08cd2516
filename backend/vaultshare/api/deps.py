from typing import Generator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from vaultshare.core import security
from vaultshare.core.config import settings
from vaultshare.services.access import RequestContext
from vaultshare.services.files import FileService
from vaultshare.services.preview import PreviewRenderer
from vaultshare.services.shares import ShareLinkManager

reusable_oauth2 = OAuth2PasswordBearer(tokenUrl=settings.TOKEN_URL, auto_error=False)


def get_db(request: Request) -> Generator:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_optional_user_id(request: Request, token: Optional[str] = Depends(reusable_oauth2)) -> Optional[str]:
    if not token:
        return None
    app_settings = request.app.state.settings
    return security.get_subject(token, app_settings.SECRET_KEY, app_settings.ALGORITHM)


def get_current_user_id(user_id: Optional[str] = Depends(get_optional_user_id)) -> str:
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_request_context(request: Request, user_id: Optional[str] = Depends(get_optional_user_id)) -> RequestContext:
    return RequestContext(
        caller_id=user_id,
        now=request.app.state.clock(),
        client_ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def get_file_service(request: Request) -> FileService:
    return request.app.state.file_service


def get_share_manager(request: Request) -> ShareLinkManager:
    return request.app.state.share_manager


def get_preview_renderer(request: Request) -> PreviewRenderer:
    return request.app.state.preview_renderer
