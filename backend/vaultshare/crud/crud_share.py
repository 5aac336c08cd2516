from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session, joinedload

from vaultshare.crud.base import CRUDBase
from vaultshare.models.share import ShareLink


class CRUDShare(CRUDBase[ShareLink]):
    def add(
        self,
        db: Session,
        *,
        token: str,
        file_id: str,
        recipient_email: str,
        expires_at: datetime,
        max_download: int,
        note: Optional[str],
    ) -> ShareLink:
        # Flushed, not committed: the caller owns the transaction.
        db_obj = ShareLink(
            token=token,
            file_id=file_id,
            recipient_email=recipient_email,
            expires_at=expires_at,
            max_download=max_download,
            download_count=0,
            note=note,
        )
        db.add(db_obj)
        db.flush()
        return db_obj

    def get_by_token(self, db: Session, *, token: str) -> Optional[ShareLink]:
        return (
            db.query(ShareLink)
            .options(joinedload(ShareLink.file))
            .filter(ShareLink.token == token)
            .first()
        )

    def claim_download(self, db: Session, *, share_id: str, now: datetime) -> bool:
        """Consume one download if the link is still within its expiry and quota."""
        stmt = (
            update(ShareLink)
            .where(
                ShareLink.id == share_id,
                ShareLink.download_count < ShareLink.max_download,
                ShareLink.expires_at >= now,
            )
            .values(download_count=ShareLink.download_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = db.execute(stmt)
        db.commit()
        return result.rowcount == 1

    def get_multi_by_file(
        self, db: Session, *, file_id: str, page: int = 1, limit: int = 10
    ) -> Tuple[List[ShareLink], int]:
        query = (
            db.query(ShareLink)
            .filter(ShareLink.file_id == file_id)
            .order_by(ShareLink.created_at.desc())
        )
        return self.paginate(query, page=page, limit=limit)


share = CRUDShare(ShareLink)
