import logging
import mimetypes
from datetime import datetime
from typing import Callable, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vaultshare import crud, schemas
from vaultshare.core import security
from vaultshare.core.exceptions import (
    AccessDenied,
    BlobNotFound,
    DenyReason,
    Forbidden,
    InvalidInput,
    NotFound,
    UnsupportedType,
)
from vaultshare.core.time import as_utc, format_watermark_time, utcnow
from vaultshare.models.file import FileRecord, Visibility
from vaultshare.services.access import AccessDecisionEngine, RequestContext, is_expired
from vaultshare.services.audit import AuditLog
from vaultshare.services.cache import PreviewEntry
from vaultshare.services.preview import preview_kind, watermark
from vaultshare.services.storage import BlobStore

logger = logging.getLogger(__name__)


def guess_content_type(filename: str, content_type: Optional[str] = None) -> str:
    if content_type and content_type != "application/octet-stream":
        return content_type
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


class FileService:
    def __init__(
        self,
        blob_store: BlobStore,
        audit: AuditLog,
        engine: Optional[AccessDecisionEngine] = None,
        hash_password: Callable[[str], str] = security.get_password_hash,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.blob_store = blob_store
        self.audit = audit
        self.engine = engine or AccessDecisionEngine()
        self.hash_password = hash_password
        self.clock = clock

    def get_owned(self, db: Session, file_id: str, owner_id: str) -> FileRecord:
        file = crud.file.get(db, id=file_id)
        if not file:
            raise NotFound("File not found")
        if file.owner_id != owner_id:
            raise Forbidden("You do not own this file")
        return file

    def _password_fields(self, file: Optional[FileRecord], visibility: Visibility, password: Optional[str]) -> dict:
        # password is stored iff visibility is password_protected
        if visibility != Visibility.PASSWORD_PROTECTED:
            return {"visibility": visibility, "password": None}
        if password:
            return {"visibility": visibility, "password": self.hash_password(password)}
        if file is not None and file.password is not None:
            return {"visibility": visibility}
        raise InvalidInput("A password is required for password protected files")

    def _validate_expiry(self, expires_at: Optional[datetime]) -> Optional[datetime]:
        expires_at = as_utc(expires_at)
        if expires_at is not None and expires_at <= self.clock():
            raise InvalidInput("Expiration date must be in the future.")
        return expires_at

    def upload(
        self,
        db: Session,
        *,
        owner_id: str,
        data: bytes,
        filename: str,
        content_type: Optional[str] = None,
        visibility: Visibility = Visibility.PRIVATE,
        password: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        download_limit: Optional[int] = None,
    ) -> FileRecord:
        if not filename:
            raise InvalidInput("A file name is required")
        if download_limit is not None and download_limit < 1:
            raise InvalidInput("Download limit must be at least 1")
        policy = self._password_fields(None, visibility, password)
        expires_at = self._validate_expiry(expires_at)
        content_type = guess_content_type(filename, content_type)

        key = self.blob_store.put(data, content_type)
        try:
            file = crud.file.create_record(
                db,
                owner_id=owner_id,
                storage_key=key,
                bucket=self.blob_store.name,
                original_name=filename,
                content_type=content_type,
                size=len(data),
                visibility=policy["visibility"],
                password_hash=policy.get("password"),
                expires_at=expires_at,
                download_limit=download_limit,
            )
        except SQLAlchemyError:
            db.rollback()
            logger.error("Failed to record upload of %s, removing blob %s", filename, key)
            self.blob_store.delete(key)
            raise
        logger.info("File %s uploaded by %s (%d bytes)", file.id, owner_id, file.size)
        return file

    def update_metadata(
        self,
        db: Session,
        *,
        file_id: str,
        owner_id: str,
        visibility: Visibility,
        password: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        download_limit: Optional[int] = None,
    ) -> FileRecord:
        file = self.get_owned(db, file_id, owner_id)
        values = self._password_fields(file, visibility, password)
        if expires_at is not None:
            values["expires_at"] = self._validate_expiry(expires_at)
        if download_limit is not None:
            if download_limit < 1:
                raise InvalidInput("Download limit must be at least 1")
            if download_limit < file.download_count:
                raise InvalidInput("Download limit cannot be lower than the downloads already made")
            values["download_limit"] = download_limit
        return crud.file.update_policy(db, db_obj=file, values=values)

    def update_visibility(
        self, db: Session, *, file_id: str, owner_id: str, visibility: Visibility, password: Optional[str] = None
    ) -> FileRecord:
        file = self.get_owned(db, file_id, owner_id)
        values = self._password_fields(file, visibility, password)
        return crud.file.update_policy(db, db_obj=file, values=values)

    def get_metadata(self, db: Session, file_id: str) -> schemas.FileMetadata:
        """Public metadata lookup. Never consumes quota and never writes to the audit log."""
        file = crud.file.get(db, id=file_id)
        if not file:
            raise NotFound("File not found")
        return schemas.FileMetadata(
            visibility=file.visibility,
            file_name=file.original_name,
            is_expired=is_expired(file.expires_at, self.clock()),
            has_password=file.has_password,
        )

    def _deny(self, db: Session, file: FileRecord, context: RequestContext, reason: DenyReason):
        self.audit.record_failure(db, file.id, context, reason.value)
        raise AccessDenied(reason)

    def download(self, db: Session, file_id: str, context: RequestContext) -> Tuple[FileRecord, bytes]:
        file = crud.file.get(db, id=file_id)
        if not file:
            raise NotFound("File not found")

        decision = self.engine.decide(file, context)
        if not decision.allowed:
            self._deny(db, file, context, decision.reason)

        try:
            data = self.blob_store.get(file.storage_key)
        except BlobNotFound:
            self.audit.record_failure(db, file.id, context, DenyReason.FILE_MISSING.value)
            raise NotFound("File does not exist on server")

        # Another request may have taken the last slot since the decision.
        if not crud.file.increment_download(db, file_id=file.id):
            self._deny(db, file, context, DenyReason.LIMIT_EXCEEDED)

        self.audit.record_success(db, file.id, context)
        db.refresh(file)
        return file, data

    def preview(self, db: Session, file_id: str, context: RequestContext) -> PreviewEntry:
        """
        Inline watermarked rendition of a file, marked with the viewer.

        Same access rules as download(). The view is logged but does not
        count against the download limit.
        """
        file = crud.file.get(db, id=file_id)
        if not file:
            raise NotFound("File not found")

        decision = self.engine.decide(file, context)
        if not decision.allowed:
            self._deny(db, file, context, decision.reason)

        kind = preview_kind(file)
        if kind is None:
            raise UnsupportedType()
        try:
            data = self.blob_store.get(file.storage_key)
        except BlobNotFound:
            self.audit.record_failure(db, file.id, context, DenyReason.FILE_MISSING.value)
            raise NotFound("File does not exist on server")

        viewer = context.caller_id or context.client_ip or "anonymous"
        entry = watermark(data, kind, viewer, format_watermark_time(context.now))
        self.audit.record_success(db, file.id, context)
        return entry

    def delete_file(self, db: Session, *, file_id: str, owner_id: str) -> None:
        file = self.get_owned(db, file_id, owner_id)
        try:
            self.blob_store.delete(file.storage_key)
        except BlobNotFound:
            logger.warning("Blob %s of file %s was already gone", file.storage_key, file.id)
        crud.file.remove_cascade(db, file_id=file.id)
        logger.info("File %s deleted by owner %s", file.id, owner_id)

    def stats(self, db: Session, owner_id: str) -> schemas.FileStats:
        counts = crud.file.count_by_owner(db, owner_id=owner_id, now=self.clock())
        return schemas.FileStats(
            total_downloads=crud.access_log.count_for_owner(db, owner_id=owner_id),
            **counts,
        )

    def list_access_logs(self, db: Session, *, file_id: str, owner_id: str, page: int = 1, limit: int = 10):
        self.get_owned(db, file_id, owner_id)
        return self.audit.list_successes(db, file_id, page=page, limit=limit)

    def list_failed_logs(self, db: Session, *, file_id: str, owner_id: str, page: int = 1, limit: int = 10):
        self.get_owned(db, file_id, owner_id)
        return self.audit.list_failures(db, file_id, page=page, limit=limit)
