import logging
import mimetypes
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from vaultshare.core.exceptions import BlobNotFound, DenyReason, NotFound, UnsupportedType
from vaultshare.core.time import format_watermark_time, utcnow
from vaultshare.models.file import FileRecord
from vaultshare.models.share import ShareLink
from vaultshare.services.access import RequestContext
from vaultshare.services.audit import AuditLog
from vaultshare.services.cache import PreviewCache, PreviewEntry
from vaultshare.services.shares import ShareLinkManager
from vaultshare.services.storage import BlobStore
from vaultshare.utils.watermark import add_image_watermark, add_pdf_watermark

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
PNG_MIME = "image/png"


def unclaimed_key(token: str) -> str:
    # entries written by render() were never charged to the link
    return f"unclaimed:{token}"


def preview_kind(file: FileRecord) -> Optional[str]:
    """'pdf', 'image' or None when no watermark is defined for the file's type."""
    content_type = file.content_type
    if not content_type or content_type == "application/octet-stream":
        content_type, _ = mimetypes.guess_type(file.original_name or "")
    if content_type == PDF_MIME:
        return "pdf"
    if content_type and content_type.startswith("image/"):
        return "image"
    return None


def watermark(data: bytes, kind: str, email: str, timestamp: str) -> PreviewEntry:
    if kind == "pdf":
        return PreviewEntry(content=add_pdf_watermark(data, email, timestamp), mime_type=PDF_MIME, is_image=False)
    if kind == "image":
        return PreviewEntry(content=add_image_watermark(data, email, timestamp), mime_type=PNG_MIME, is_image=True)
    raise UnsupportedType()


class PreviewRenderer:
    """
    Watermarked, non-persistent previews of shared files.

    Renditions are cached per token for a short TTL so repeated views within
    that window are neither re-rendered nor charged against the link's quota.
    """

    def __init__(
        self,
        shares: ShareLinkManager,
        blob_store: BlobStore,
        cache: PreviewCache,
        audit: AuditLog,
        ttl: int = 60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.shares = shares
        self.blob_store = blob_store
        self.cache = cache
        self.audit = audit
        self.ttl = ttl
        self.clock = clock

    def _render_share(self, share: ShareLink, now: datetime) -> PreviewEntry:
        file = share.file
        kind = preview_kind(file)
        if kind is None:
            raise UnsupportedType()
        data = self.blob_store.get(file.storage_key)
        return watermark(data, kind, share.recipient_email, format_watermark_time(now))

    def render(self, db: Session, token: str) -> PreviewEntry:
        """Rendition for a link without charging it. Never seeds the charged cache entry."""
        cached = self.cache.get(token) or self.cache.get(unclaimed_key(token))
        if cached is not None:
            return cached
        context = RequestContext(now=self.clock())
        share = self.shares.get_share(db, token)
        self.shares.check_usable(db, share, context)
        try:
            entry = self._render_share(share, context.now)
        except BlobNotFound:
            raise NotFound("File not found")
        self.cache.set(unclaimed_key(token), entry, self.ttl)
        return entry

    def preview_via_share(
        self, db: Session, token: str, password: Optional[str], context: RequestContext
    ) -> PreviewEntry:
        share = self.shares.get_share(db, token)

        cached = self.cache.get(token)
        if cached is not None:
            self.shares.check_password(db, share, password, context)
            logger.debug("Serving cached preview for share %s", share.id)
            return cached

        self.shares.check_usable(db, share, context)
        self.shares.check_password(db, share, password, context)
        if preview_kind(share.file) is None:
            raise UnsupportedType()
        try:
            entry = self._render_share(share, context.now)
        except BlobNotFound:
            self.audit.record_failure(
                db, share.file_id, context, DenyReason.FILE_MISSING.value, email=share.recipient_email
            )
            raise NotFound("File not found")

        self.shares.claim(db, share, context)
        self.cache.set(token, entry, self.ttl)
        self.audit.record_success(db, share.file_id, context, email=share.recipient_email)
        return entry
