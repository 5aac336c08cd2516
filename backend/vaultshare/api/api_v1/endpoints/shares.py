from contextlib import contextmanager
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from vaultshare import schemas
from vaultshare.api import deps
from vaultshare.api.api_v1.endpoints.files import attachment
from vaultshare.core.exceptions import NotFound, ShareUnavailable
from vaultshare.services.access import RequestContext
from vaultshare.services.preview import PreviewRenderer
from vaultshare.services.shares import ShareLinkManager

router = APIRouter()


@contextmanager
def link_unavailable():
    """Unknown, expired and exhausted links all look the same from outside."""
    try:
        yield
    except (NotFound, ShareUnavailable):
        raise NotFound("Link unavailable or expired")


@router.post("", response_model=schemas.ShareCreated)
async def create_share(
    *,
    db: Session = Depends(deps.get_db),
    current_user_id: str = Depends(deps.get_current_user_id),
    shares: ShareLinkManager = Depends(deps.get_share_manager),
    share_in: schemas.ShareCreate,
) -> Any:
    """
    Share a file with one recipient. The link's downloads come out of the file's own limit.
    """
    created = await shares.create_share(
        db,
        file_id=share_in.file_id,
        owner_id=current_user_id,
        recipient_email=share_in.email,
        expires_at=share_in.expires_at,
        max_download=share_in.max_download,
        note=share_in.note,
    )
    return schemas.ShareCreated(
        share_url=created.share_url,
        notified=created.notified,
        notification_error=created.notification_error,
    )


@router.get("/{token}", response_model=schemas.ShareInfo)
def read_share(
    *,
    db: Session = Depends(deps.get_db),
    context: RequestContext = Depends(deps.get_request_context),
    shares: ShareLinkManager = Depends(deps.get_share_manager),
    token: str,
) -> Any:
    with link_unavailable():
        return shares.resolve(db, token, context)


@router.post("/{token}/download")
def download_shared_file(
    *,
    db: Session = Depends(deps.get_db),
    context: RequestContext = Depends(deps.get_request_context),
    shares: ShareLinkManager = Depends(deps.get_share_manager),
    token: str,
    access: Optional[schemas.ShareAccess] = Body(None),
) -> Any:
    password = access.password if access else None
    with link_unavailable():
        record, data = shares.download_via_share(db, token, password, context)
    return attachment(record.original_name, data, record.content_type or "application/octet-stream")


@router.post("/{token}/preview")
def preview_shared_file(
    *,
    db: Session = Depends(deps.get_db),
    context: RequestContext = Depends(deps.get_request_context),
    renderer: PreviewRenderer = Depends(deps.get_preview_renderer),
    token: str,
    access: Optional[schemas.ShareAccess] = Body(None),
) -> Any:
    password = access.password if access else None
    with link_unavailable():
        entry = renderer.preview_via_share(db, token, password, context)
    return Response(
        content=entry.content,
        media_type=entry.mime_type,
        headers={"Cache-Control": "no-store", "Content-Disposition": "inline"},
    )
