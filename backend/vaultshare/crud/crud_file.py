from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, or_, update
from sqlalchemy.orm import Session

from vaultshare.crud.base import CRUDBase
from vaultshare.models.access_log import AccessLog, FailedAccessLog
from vaultshare.models.file import FileRecord, Visibility
from vaultshare.models.share import ShareLink


class CRUDFile(CRUDBase[FileRecord]):
    def create_record(
        self,
        db: Session,
        *,
        owner_id: str,
        storage_key: str,
        bucket: Optional[str],
        original_name: str,
        content_type: str,
        size: int,
        visibility: Visibility = Visibility.PRIVATE,
        password_hash: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        download_limit: Optional[int] = None,
    ) -> FileRecord:
        db_obj = FileRecord(
            owner_id=owner_id,
            storage_key=storage_key,
            bucket=bucket,
            original_name=original_name,
            content_type=content_type,
            size=size,
            visibility=visibility,
            password=password_hash,
            expires_at=expires_at,
            download_limit=download_limit,
            download_count=0,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def update_policy(self, db: Session, *, db_obj: FileRecord, values: Dict[str, Any]) -> FileRecord:
        for field, value in values.items():
            setattr(db_obj, field, value)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def increment_download(self, db: Session, *, file_id: str) -> bool:
        """
        Count one completed download, but only while the limit allows it.
        Check and increment run as one statement so concurrent callers
        cannot both pass the last remaining slot.
        """
        stmt = (
            update(FileRecord)
            .where(
                FileRecord.id == file_id,
                or_(
                    FileRecord.download_limit.is_(None),
                    FileRecord.download_count < FileRecord.download_limit,
                ),
            )
            .values(download_count=FileRecord.download_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = db.execute(stmt)
        db.commit()
        return result.rowcount == 1

    def reserve_downloads(self, db: Session, *, file_id: str, amount: int) -> bool:
        """
        Carve `amount` downloads out of the file's remaining budget.
        Does not commit: callers pair it with the share insert.
        """
        stmt = (
            update(FileRecord)
            .where(
                FileRecord.id == file_id,
                FileRecord.download_limit.is_not(None),
                FileRecord.download_limit - FileRecord.download_count >= amount,
            )
            .values(download_limit=FileRecord.download_limit - amount)
            .execution_options(synchronize_session=False)
        )
        return db.execute(stmt).rowcount == 1

    def get_expired(self, db: Session, *, now: datetime) -> List[FileRecord]:
        return (
            db.query(FileRecord)
            .filter(FileRecord.expires_at.is_not(None), FileRecord.expires_at < now)
            .all()
        )

    def remove_cascade(self, db: Session, *, file_id: str) -> bool:
        """Delete a file row with its shares and log entries. False if it was already gone."""
        for model in (ShareLink, AccessLog, FailedAccessLog):
            db.execute(
                delete(model)
                .where(model.file_id == file_id)
                .execution_options(synchronize_session=False)
            )
        result = db.execute(
            delete(FileRecord)
            .where(FileRecord.id == file_id)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount > 0

    def count_by_owner(self, db: Session, *, owner_id: str, now: datetime) -> Dict[str, int]:
        base = db.query(func.count(FileRecord.id)).filter(FileRecord.owner_id == owner_id)
        counts = {
            "total_files": base.scalar(),
            "expired_files": base.filter(FileRecord.expires_at < now).scalar(),
        }
        for visibility in Visibility:
            counts[f"{visibility.value}_files"] = base.filter(FileRecord.visibility == visibility).scalar()
        return counts


file = CRUDFile(FileRecord)
