import dataclasses
from datetime import datetime
from typing import Any, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from vaultshare import schemas
from vaultshare.api import deps
from vaultshare.core.exceptions import InvalidInput
from vaultshare.models.file import Visibility
from vaultshare.services.access import RequestContext
from vaultshare.services.files import FileService
from vaultshare.services.shares import ShareLinkManager

router = APIRouter()


def attachment(filename: str, data: bytes, media_type: str) -> Response:
    encoded_filename = quote(filename)
    return Response(
        content=data,
        media_type=media_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{encoded_filename}",
            "Content-Length": str(len(data)),
        },
    )


@router.post("/upload", response_model=schemas.FileUploaded)
def upload_file(
    *,
    db: Session = Depends(deps.get_db),
    current_user_id: str = Depends(deps.get_current_user_id),
    files: FileService = Depends(deps.get_file_service),
    shares: ShareLinkManager = Depends(deps.get_share_manager),
    file: UploadFile = File(...),
    visibility: Visibility = Form(Visibility.PRIVATE),
    password: Optional[str] = Form(None),
    expires_at: Optional[datetime] = Form(None),
    download_limit: Optional[int] = Form(None),
) -> Any:
    """
    Upload a file with its protection policy.
    """
    if not file.filename:
        raise InvalidInput("No file uploaded")
    record = files.upload(
        db,
        owner_id=current_user_id,
        data=file.file.read(),
        filename=file.filename,
        content_type=file.content_type,
        visibility=visibility,
        password=password,
        expires_at=expires_at,
        download_limit=download_limit,
    )
    return schemas.FileUploaded(
        file=schemas.FileRecord.model_validate(record),
        share_link=f"{shares.frontend_url}/preview/{record.id}",
    )


@router.get("/me/stats", response_model=schemas.FileStats)
def read_stats(
    *,
    db: Session = Depends(deps.get_db),
    current_user_id: str = Depends(deps.get_current_user_id),
    files: FileService = Depends(deps.get_file_service),
) -> Any:
    return files.stats(db, current_user_id)


@router.patch("/{file_id}/metadata", response_model=schemas.FileRecord)
def update_metadata(
    *,
    db: Session = Depends(deps.get_db),
    current_user_id: str = Depends(deps.get_current_user_id),
    files: FileService = Depends(deps.get_file_service),
    file_id: str,
    file_in: schemas.FileMetadataUpdate,
) -> Any:
    """
    Change visibility, password, expiry or download limit. Omitted values stay as they are.
    """
    return files.update_metadata(
        db,
        file_id=file_id,
        owner_id=current_user_id,
        visibility=file_in.visibility,
        password=file_in.password,
        expires_at=file_in.expires_at,
        download_limit=file_in.download_limit,
    )


@router.patch("/{file_id}/visibility", response_model=schemas.FileRecord)
def update_visibility(
    *,
    db: Session = Depends(deps.get_db),
    current_user_id: str = Depends(deps.get_current_user_id),
    files: FileService = Depends(deps.get_file_service),
    file_id: str,
    file_in: schemas.FileVisibilityUpdate,
) -> Any:
    return files.update_visibility(
        db,
        file_id=file_id,
        owner_id=current_user_id,
        visibility=file_in.visibility,
        password=file_in.password,
    )


@router.get("/{file_id}/metadata", response_model=schemas.FileMetadata)
def read_metadata(
    *,
    db: Session = Depends(deps.get_db),
    files: FileService = Depends(deps.get_file_service),
    file_id: str,
) -> Any:
    """
    Public metadata used by the download page. Does not count as a download.
    """
    return files.get_metadata(db, file_id)


@router.get("/{file_id}/download")
def download_file(
    *,
    db: Session = Depends(deps.get_db),
    context: RequestContext = Depends(deps.get_request_context),
    files: FileService = Depends(deps.get_file_service),
    file_id: str,
    password: Optional[str] = Query(None),
) -> Any:
    context = dataclasses.replace(context, password=password)
    record, data = files.download(db, file_id, context)
    return attachment(record.original_name, data, record.content_type or "application/octet-stream")


@router.get("/{file_id}/preview")
def preview_file(
    *,
    db: Session = Depends(deps.get_db),
    context: RequestContext = Depends(deps.get_request_context),
    files: FileService = Depends(deps.get_file_service),
    file_id: str,
    password: Optional[str] = Query(None),
) -> Any:
    """
    Watermarked inline view. Logged, but not counted as a download.
    """
    context = dataclasses.replace(context, password=password)
    entry = files.preview(db, file_id, context)
    return Response(
        content=entry.content,
        media_type=entry.mime_type,
        headers={"Cache-Control": "no-store", "Content-Disposition": "inline"},
    )


@router.delete("/{file_id}")
def delete_file(
    *,
    db: Session = Depends(deps.get_db),
    current_user_id: str = Depends(deps.get_current_user_id),
    files: FileService = Depends(deps.get_file_service),
    file_id: str,
) -> Any:
    files.delete_file(db, file_id=file_id, owner_id=current_user_id)
    return {"message": "File deleted successfully"}


@router.get("/{file_id}/access-logs", response_model=schemas.Page[schemas.AccessLog])
def read_access_logs(
    *,
    db: Session = Depends(deps.get_db),
    current_user_id: str = Depends(deps.get_current_user_id),
    files: FileService = Depends(deps.get_file_service),
    file_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> Any:
    return files.list_access_logs(db, file_id=file_id, owner_id=current_user_id, page=page, limit=limit)


@router.get("/{file_id}/failed-logs", response_model=schemas.Page[schemas.FailedAccessLog])
def read_failed_logs(
    *,
    db: Session = Depends(deps.get_db),
    current_user_id: str = Depends(deps.get_current_user_id),
    files: FileService = Depends(deps.get_file_service),
    file_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> Any:
    return files.list_failed_logs(db, file_id=file_id, owner_id=current_user_id, page=page, limit=limit)


@router.get("/{file_id}/shares", response_model=schemas.Page[schemas.ShareLink])
def read_shares(
    *,
    db: Session = Depends(deps.get_db),
    current_user_id: str = Depends(deps.get_current_user_id),
    shares: ShareLinkManager = Depends(deps.get_share_manager),
    file_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> Any:
    return shares.list_shares(db, file_id=file_id, owner_id=current_user_id, page=page, limit=limit)
