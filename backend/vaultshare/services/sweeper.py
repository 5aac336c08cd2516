"""
Background purge of expired files.

Each run removes every file whose expiry has passed: the blob first, then
the record together with its shares and logs. Files without an expiry are
kept. One item failing never stops the rest of the batch.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from vaultshare import crud
from vaultshare.core.exceptions import BlobNotFound
from vaultshare.core.time import utcnow
from vaultshare.services.storage import BlobStore

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    purged: List[str] = field(default_factory=list)
    already_gone: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.purged) + len(self.already_gone) + len(self.failures)


class ExpirySweeper:
    def __init__(
        self,
        session_factory: sessionmaker,
        blob_store: BlobStore,
        interval_seconds: int = 180,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    def _record_failure(self, db: Session, file_id: str, file_name: Optional[str], reason: str) -> None:
        try:
            crud.access_log.create_deletion_failure(
                db, file_id=file_id, file_name=file_name, reason=reason, failed_at=self.clock()
            )
        except Exception:
            db.rollback()
            logger.exception("Could not record deletion failure for file %s", file_id)

    def _purge(self, db: Session, file_id: str, storage_key: str, file_name: Optional[str], report: SweepReport):
        blob_missing = False
        try:
            self.blob_store.delete(storage_key)
        except BlobNotFound:
            blob_missing = True
        except Exception as e:
            # The record stays so the next run retries the blob.
            report.failures[file_id] = str(e)
            logger.error("Failed to delete blob for expired file %s: %s", file_id, e)
            self._record_failure(db, file_id, file_name, str(e))
            return

        if crud.file.remove_cascade(db, file_id=file_id):
            report.purged.append(file_id)
            if blob_missing:
                logger.warning("Expired file %s had no blob; record removed", file_id)
        else:
            report.already_gone.append(file_id)

    def run_once(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self.clock()
        report = SweepReport()
        db = self.session_factory()
        try:
            expired = [
                (f.id, f.storage_key, f.original_name) for f in crud.file.get_expired(db, now=now)
            ]
            for file_id, storage_key, file_name in expired:
                try:
                    self._purge(db, file_id, storage_key, file_name, report)
                except Exception as e:
                    db.rollback()
                    report.failures[file_id] = str(e)
                    logger.exception("Failed to purge expired file %s", file_id)
                    self._record_failure(db, file_id, file_name, str(e))
        finally:
            db.close()

        if report.total:
            logger.info(
                "Expiry sweep: %d purged, %d already gone, %d failed",
                len(report.purged),
                len(report.already_gone),
                len(report.failures),
            )
        return report

    async def _loop(self) -> None:
        while True:
            try:
                await run_in_threadpool(self.run_once)
            except Exception:
                logger.exception("Expiry sweep failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._loop())
            logger.info("Expiry sweeper started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
