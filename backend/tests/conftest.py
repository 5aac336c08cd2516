from datetime import datetime, timedelta
from typing import List, Optional

import pytest

from vaultshare.core.exceptions import UpstreamFailure
from vaultshare.db.base import Base
from vaultshare.db.session import make_engine, make_session_factory
from vaultshare.models.file import Visibility
from vaultshare.services.access import RequestContext
from vaultshare.services.audit import AuditLog
from vaultshare.services.cache import MemoryPreviewCache
from vaultshare.services.files import FileService
from vaultshare.services.notifications import Notifier
from vaultshare.services.preview import PreviewRenderer
from vaultshare.services.shares import ShareLinkManager
from vaultshare.services.storage import MemoryBlobStore

OWNER = "owner-1"
FRONTEND_URL = "http://frontend.test"


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class ManualMonotonic:
    def __init__(self):
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent: List[dict] = []

    async def send_file_share_notice(self, to: str, share_url: str, filename: str) -> None:
        self.sent.append({"to": to, "share_url": share_url, "filename": filename})


class FailingNotifier(Notifier):
    async def send_file_share_notice(self, to: str, share_url: str, filename: str) -> None:
        raise UpstreamFailure("Failed to send email: SMTP unavailable")


@pytest.fixture()
def clock():
    return Clock(datetime(2026, 3, 1, 12, 0, 0))


@pytest.fixture()
def session_factory(tmp_path):
    # A file database so worker threads in the concurrency tests share state.
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def blob_store():
    return MemoryBlobStore()


@pytest.fixture()
def audit(clock):
    return AuditLog(clock=clock)


@pytest.fixture()
def file_service(blob_store, audit, clock):
    return FileService(blob_store, audit, clock=clock)


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def share_manager(blob_store, notifier, audit, clock):
    return ShareLinkManager(blob_store, notifier, audit, frontend_url=FRONTEND_URL, clock=clock)


@pytest.fixture()
def monotonic():
    return ManualMonotonic()


@pytest.fixture()
def preview_cache(monotonic):
    return MemoryPreviewCache(clock=monotonic)


@pytest.fixture()
def renderer(share_manager, blob_store, preview_cache, audit, clock):
    return PreviewRenderer(share_manager, blob_store, preview_cache, audit, ttl=60, clock=clock)


@pytest.fixture()
def context(clock):
    def make(caller_id: Optional[str] = None, password: Optional[str] = None) -> RequestContext:
        return RequestContext(
            caller_id=caller_id,
            password=password,
            now=clock(),
            client_ip="10.0.0.7",
            user_agent="pytest",
        )

    return make


@pytest.fixture()
def upload(db, file_service):
    def make(
        data: bytes = b"hello world",
        filename: str = "notes.txt",
        content_type: Optional[str] = "text/plain",
        visibility: Visibility = Visibility.PUBLIC,
        password: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        download_limit: Optional[int] = None,
        owner_id: str = OWNER,
    ):
        return file_service.upload(
            db,
            owner_id=owner_id,
            data=data,
            filename=filename,
            content_type=content_type,
            visibility=visibility,
            password=password,
            expires_at=expires_at,
            download_limit=download_limit,
        )

    return make
