"""
Share links: time- and quota-bounded download capabilities for one file.

A link's quota is carved out of the file's own remaining download budget
when the link is created, then counted down independently by every
download or preview made through the token.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from vaultshare import crud, schemas
from vaultshare.core import security
from vaultshare.core.exceptions import (
    AccessDenied,
    BlobNotFound,
    DenyReason,
    Forbidden,
    InvalidInput,
    NotFound,
    QuotaExceeded,
    ShareUnavailable,
    UpstreamFailure,
)
from vaultshare.core.time import as_utc, utcnow
from vaultshare.models.file import FileRecord, Visibility
from vaultshare.models.share import ShareLink
from vaultshare.services.access import RequestContext, is_expired
from vaultshare.services.audit import AuditLog
from vaultshare.services.notifications import Notifier
from vaultshare.services.storage import BlobStore

logger = logging.getLogger(__name__)

TOKEN_BYTES = 24


@dataclass
class ShareCreation:
    share: ShareLink
    share_url: str
    notified: bool
    notification_error: Optional[str] = None


def share_problem(share: ShareLink, now: datetime) -> Optional[DenyReason]:
    """Why a link can no longer be used, or None while it is valid."""
    if is_expired(share.expires_at, now):
        return DenyReason.EXPIRED
    if share.download_count >= share.max_download:
        return DenyReason.LIMIT_EXCEEDED
    return None


class ShareLinkManager:
    def __init__(
        self,
        blob_store: BlobStore,
        notifier: Notifier,
        audit: AuditLog,
        frontend_url: str,
        verify_password: Callable[[Optional[str], Optional[str]], bool] = security.verify_password,
        token_factory: Callable[[], str] = lambda: secrets.token_hex(TOKEN_BYTES),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.blob_store = blob_store
        self.notifier = notifier
        self.audit = audit
        self.frontend_url = frontend_url.rstrip("/")
        self.verify_password = verify_password
        self.token_factory = token_factory
        self.clock = clock

    def share_url(self, token: str) -> str:
        return f"{self.frontend_url}/preview/token/{token}"

    def _context(self, context: Optional[RequestContext]) -> RequestContext:
        return context if context is not None else RequestContext(now=self.clock())

    def add_share(
        self,
        db: Session,
        *,
        file_id: str,
        owner_id: str,
        recipient_email: str,
        expires_at: datetime,
        max_download: int,
        note: Optional[str] = None,
    ) -> ShareLink:
        """Validate, carve the quota out of the file and insert the link. No notice is sent."""
        if not recipient_email:
            raise InvalidInput("A recipient email is required")
        if expires_at is None:
            raise InvalidInput("An expiry date is required")
        if max_download is None or max_download < 1:
            raise InvalidInput("Maximum downloads must be at least 1")

        file = crud.file.get(db, id=file_id)
        if not file:
            raise NotFound("File not found")
        if file.owner_id != owner_id:
            raise Forbidden("You do not own this file")

        token = self.token_factory()
        try:
            # Budget decrement and share insert commit together or not at all.
            if file.download_limit is not None:
                if not crud.file.reserve_downloads(db, file_id=file.id, amount=max_download):
                    db.rollback()
                    raise QuotaExceeded()
            share = crud.share.add(
                db,
                token=token,
                file_id=file.id,
                recipient_email=recipient_email,
                expires_at=as_utc(expires_at),
                max_download=max_download,
                note=note,
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        db.refresh(share)
        logger.info("File %s shared with %s (%d downloads)", file.id, recipient_email, max_download)
        return share

    async def create_share(
        self,
        db: Session,
        *,
        file_id: str,
        owner_id: str,
        recipient_email: str,
        expires_at: datetime,
        max_download: int,
        note: Optional[str] = None,
    ) -> ShareCreation:
        # store work off the event loop; only the notice is awaited here
        share = await run_in_threadpool(
            self.add_share,
            db,
            file_id=file_id,
            owner_id=owner_id,
            recipient_email=recipient_email,
            expires_at=expires_at,
            max_download=max_download,
            note=note,
        )
        file = share.file
        url = self.share_url(share.token)
        try:
            await self.notifier.send_file_share_notice(
                to=recipient_email,
                share_url=url,
                filename=file.original_name or "Confidential Document",
            )
        except UpstreamFailure as e:
            # The share stays; the caller is told the notice did not go out.
            return ShareCreation(share=share, share_url=url, notified=False, notification_error=e.message)
        return ShareCreation(share=share, share_url=url, notified=True)

    def get_share(self, db: Session, token: str) -> ShareLink:
        share = crud.share.get_by_token(db, token=token)
        if not share or share.file is None:
            raise NotFound("Link not found")
        return share

    def check_usable(self, db: Session, share: ShareLink, context: RequestContext) -> None:
        problem = share_problem(share, context.now)
        if problem is not None:
            self.audit.record_failure(db, share.file_id, context, problem.value, email=share.recipient_email)
            raise ShareUnavailable()

    def check_password(self, db: Session, share: ShareLink, password: Optional[str], context: RequestContext) -> None:
        file = share.file
        if file.visibility != Visibility.PASSWORD_PROTECTED:
            return
        if not self.verify_password(password, file.password):
            self.audit.record_failure(
                db, file.id, context, DenyReason.INVALID_PASSWORD.value, email=share.recipient_email
            )
            raise AccessDenied(DenyReason.INVALID_PASSWORD)

    def resolve(self, db: Session, token: str, context: Optional[RequestContext] = None) -> schemas.ShareInfo:
        context = self._context(context)
        share = self.get_share(db, token)
        self.check_usable(db, share, context)
        file = share.file
        return schemas.ShareInfo(
            file_name=file.original_name,
            file_size=file.size,
            note=share.note,
            expires_at=share.expires_at,
            max_download=share.max_download,
            download_count=share.download_count,
            password_required=file.visibility == Visibility.PASSWORD_PROTECTED,
        )

    def authorize(
        self, db: Session, token: str, password: Optional[str], context: Optional[RequestContext] = None
    ) -> ShareLink:
        """Everything consume() checks, without using up a download."""
        context = self._context(context)
        share = self.get_share(db, token)
        self.check_usable(db, share, context)
        self.check_password(db, share, password, context)
        return share

    def claim(self, db: Session, share: ShareLink, context: Optional[RequestContext] = None) -> None:
        context = self._context(context)
        if not crud.share.claim_download(db, share_id=share.id, now=context.now):
            db.refresh(share)
            problem = share_problem(share, context.now) or DenyReason.LIMIT_EXCEEDED
            self.audit.record_failure(db, share.file_id, context, problem.value, email=share.recipient_email)
            raise ShareUnavailable()
        db.refresh(share)

    def consume(
        self, db: Session, token: str, password: Optional[str] = None, context: Optional[RequestContext] = None
    ) -> FileRecord:
        context = self._context(context)
        share = self.authorize(db, token, password, context)
        self.claim(db, share, context)
        return share.file

    def download_via_share(
        self, db: Session, token: str, password: Optional[str], context: RequestContext
    ) -> Tuple[FileRecord, bytes]:
        share = self.authorize(db, token, password, context)
        file = share.file
        try:
            data = self.blob_store.get(file.storage_key)
        except BlobNotFound:
            self.audit.record_failure(
                db, file.id, context, DenyReason.FILE_MISSING.value, email=share.recipient_email
            )
            raise NotFound("File not found")
        self.claim(db, share, context)
        self.audit.record_success(db, file.id, context, email=share.recipient_email)
        return file, data

    def list_shares(self, db: Session, *, file_id: str, owner_id: str, page: int = 1, limit: int = 10) -> schemas.Page:
        file = crud.file.get(db, id=file_id)
        if not file:
            raise NotFound("File not found")
        if file.owner_id != owner_id:
            raise Forbidden("You do not own this file")
        items, total = crud.share.get_multi_by_file(db, file_id=file_id, page=page, limit=limit)
        return schemas.Page[schemas.ShareLink].build(
            [schemas.ShareLink.model_validate(item) for item in items], total, page, limit
        )
