from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from vaultshare.crud.base import CRUDBase
from vaultshare.models.access_log import AccessLog, FailedAccessLog, FileDeletionFailureLog
from vaultshare.models.file import FileRecord


class CRUDAccessLog(CRUDBase[AccessLog]):
    def create_success(
        self,
        db: Session,
        *,
        file_id: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
        email: Optional[str],
        accessed_at: datetime,
    ) -> AccessLog:
        entry = AccessLog(
            file_id=file_id,
            ip_address=ip_address,
            user_agent=user_agent,
            email=email,
            accessed_at=accessed_at,
        )
        db.add(entry)
        db.commit()
        return entry

    def create_failure(
        self,
        db: Session,
        *,
        file_id: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
        email: Optional[str],
        reason: str,
        accessed_at: datetime,
    ) -> FailedAccessLog:
        entry = FailedAccessLog(
            file_id=file_id,
            ip_address=ip_address,
            user_agent=user_agent,
            email=email,
            reason=reason,
            accessed_at=accessed_at,
        )
        db.add(entry)
        db.commit()
        return entry

    def create_deletion_failure(
        self, db: Session, *, file_id: str, file_name: Optional[str], reason: str, failed_at: datetime
    ) -> FileDeletionFailureLog:
        entry = FileDeletionFailureLog(file_id=file_id, file_name=file_name, reason=reason, failed_at=failed_at)
        db.add(entry)
        db.commit()
        return entry

    def get_successes(
        self, db: Session, *, file_id: str, page: int = 1, limit: int = 10
    ) -> Tuple[List[AccessLog], int]:
        query = (
            db.query(AccessLog)
            .filter(AccessLog.file_id == file_id)
            .order_by(AccessLog.accessed_at.desc())
        )
        return self.paginate(query, page=page, limit=limit)

    def get_failures(
        self, db: Session, *, file_id: str, page: int = 1, limit: int = 10
    ) -> Tuple[List[FailedAccessLog], int]:
        query = (
            db.query(FailedAccessLog)
            .filter(FailedAccessLog.file_id == file_id)
            .order_by(FailedAccessLog.accessed_at.desc())
        )
        return self.paginate(query, page=page, limit=limit)

    def count_for_owner(self, db: Session, *, owner_id: str) -> int:
        return (
            db.query(func.count(AccessLog.id))
            .join(FileRecord, FileRecord.id == AccessLog.file_id)
            .filter(FileRecord.owner_id == owner_id)
            .scalar()
        )


access_log = CRUDAccessLog(AccessLog)
