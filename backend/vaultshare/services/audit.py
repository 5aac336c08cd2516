import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from vaultshare import crud, schemas
from vaultshare.core.time import utcnow
from vaultshare.services.access import RequestContext

logger = logging.getLogger(__name__)


class AuditLog:
    """
    Append-only record of who accessed a file and who was refused.

    Two streams per file: successful transfers and denied attempts. Entries
    are never updated; they disappear only together with their file.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def record_success(
        self, db: Session, file_id: str, context: RequestContext, email: Optional[str] = None
    ):
        return crud.access_log.create_success(
            db,
            file_id=file_id,
            ip_address=context.client_ip,
            user_agent=context.user_agent,
            email=email,
            accessed_at=self.clock(),
        )

    def record_failure(
        self, db: Session, file_id: str, context: RequestContext, reason: str, email: Optional[str] = None
    ):
        logger.info("Access to file %s denied: %s (ip=%s)", file_id, reason, context.client_ip)
        return crud.access_log.create_failure(
            db,
            file_id=file_id,
            ip_address=context.client_ip,
            user_agent=context.user_agent,
            email=email,
            reason=reason,
            accessed_at=self.clock(),
        )

    def list_successes(self, db: Session, file_id: str, page: int = 1, limit: int = 10) -> schemas.Page:
        items, total = crud.access_log.get_successes(db, file_id=file_id, page=page, limit=limit)
        return schemas.Page[schemas.AccessLog].build(
            [schemas.AccessLog.model_validate(item) for item in items], total, page, limit
        )

    def list_failures(self, db: Session, file_id: str, page: int = 1, limit: int = 10) -> schemas.Page:
        items, total = crud.access_log.get_failures(db, file_id=file_id, page=page, limit=limit)
        return schemas.Page[schemas.FailedAccessLog].build(
            [schemas.FailedAccessLog.model_validate(item) for item in items], total, page, limit
        )
