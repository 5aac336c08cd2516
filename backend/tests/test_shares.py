import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from vaultshare import crud
from vaultshare.core.exceptions import (
    AccessDenied,
    DenyReason,
    Forbidden,
    InvalidInput,
    NotFound,
    QuotaExceeded,
    ShareUnavailable,
)
from vaultshare.models import AccessLog, FailedAccessLog, ShareLink
from vaultshare.models.file import Visibility
from vaultshare.services.access import RequestContext
from vaultshare.services.shares import ShareLinkManager

from .conftest import FRONTEND_URL, OWNER, FailingNotifier

RECIPIENT = "recipient@example.com"


@pytest.fixture()
def share(db, share_manager, clock):
    def make(file, max_download=2, expires_in=timedelta(days=1), email=RECIPIENT, note="for review"):
        return asyncio.run(
            share_manager.create_share(
                db,
                file_id=file.id,
                owner_id=OWNER,
                recipient_email=email,
                expires_at=clock() + expires_in,
                max_download=max_download,
                note=note,
            )
        )

    return make


def test_create_share_notifies_recipient(db, upload, share, notifier):
    file = upload(filename="plan.pdf")
    created = share(file)
    assert created.notified
    assert created.notification_error is None
    assert len(created.share.token) == 48
    assert created.share_url == f"{FRONTEND_URL}/preview/token/{created.share.token}"
    assert notifier.sent == [{"to": RECIPIENT, "share_url": created.share_url, "filename": "plan.pdf"}]


def test_share_quota_is_carved_from_file_limit(db, upload, share):
    file = upload(download_limit=5)
    share(file, max_download=3)
    db.refresh(file)
    assert file.download_limit == 2
    with pytest.raises(QuotaExceeded):
        share(file, max_download=3)
    db.refresh(file)
    assert file.download_limit == 2
    assert db.query(ShareLink).count() == 1


def test_share_of_unlimited_file_keeps_no_limit(db, upload, share):
    file = upload()
    share(file, max_download=10)
    db.refresh(file)
    assert file.download_limit is None


def test_share_quota_counts_existing_downloads(db, upload, share, file_service, context):
    file = upload(download_limit=3)
    file_service.download(db, file.id, context())
    file_service.download(db, file.id, context())
    with pytest.raises(QuotaExceeded):
        share(file, max_download=2)
    share(file, max_download=1)


def test_create_share_validation(db, upload, share, share_manager, clock):
    file = upload()
    with pytest.raises(InvalidInput):
        share(file, max_download=0)
    with pytest.raises(InvalidInput):
        share(file, email="")
    with pytest.raises(NotFound):
        asyncio.run(
            share_manager.create_share(
                db,
                file_id="missing",
                owner_id=OWNER,
                recipient_email=RECIPIENT,
                expires_at=clock() + timedelta(days=1),
                max_download=1,
            )
        )
    with pytest.raises(Forbidden):
        asyncio.run(
            share_manager.create_share(
                db,
                file_id=file.id,
                owner_id="not-the-owner",
                recipient_email=RECIPIENT,
                expires_at=clock() + timedelta(days=1),
                max_download=1,
            )
        )


def test_notification_failure_keeps_share(db, upload, blob_store, audit, clock):
    manager = ShareLinkManager(blob_store, FailingNotifier(), audit, frontend_url=FRONTEND_URL, clock=clock)
    file = upload(download_limit=4)
    created = asyncio.run(
        manager.create_share(
            db,
            file_id=file.id,
            owner_id=OWNER,
            recipient_email=RECIPIENT,
            expires_at=clock() + timedelta(days=1),
            max_download=2,
        )
    )
    assert not created.notified
    assert "SMTP unavailable" in created.notification_error
    assert crud.share.get_by_token(db, token=created.share.token) is not None
    db.refresh(file)
    assert file.download_limit == 2


def test_resolve_returns_public_info(db, upload, share, share_manager):
    file = upload(visibility=Visibility.PASSWORD_PROTECTED, password="pw", filename="deck.pdf")
    token = share(file).share.token
    info = share_manager.resolve(db, token)
    assert info.file_name == "deck.pdf"
    assert info.password_required
    assert info.note == "for review"
    assert info.download_count == 0
    assert not hasattr(info, "password")


def test_resolve_unknown_token(db, share_manager):
    with pytest.raises(NotFound):
        share_manager.resolve(db, "nope")


def test_resolve_after_expiry(db, upload, share, share_manager, clock):
    token = share(upload(), expires_in=timedelta(hours=1)).share.token
    clock.advance(hours=1)
    share_manager.resolve(db, token)
    clock.advance(seconds=1)
    with pytest.raises(ShareUnavailable):
        share_manager.resolve(db, token)


def test_exhausted_and_expired_look_the_same(db, upload, share, share_manager, clock):
    expired = share(upload(), expires_in=timedelta(minutes=1)).share.token
    exhausted = share(upload(), max_download=1).share.token
    share_manager.consume(db, exhausted)
    clock.advance(minutes=2)

    with pytest.raises(ShareUnavailable) as first:
        share_manager.resolve(db, expired)
    with pytest.raises(ShareUnavailable) as second:
        share_manager.resolve(db, exhausted)
    assert first.value.message == second.value.message
    reasons = sorted(row.reason for row in db.query(FailedAccessLog))
    assert reasons == ["expired", "limit_exceeded"]


def test_consume_counts_once(db, upload, share, share_manager):
    token = share(upload(), max_download=2).share.token
    file = share_manager.consume(db, token)
    assert file.original_name == "notes.txt"
    assert crud.share.get_by_token(db, token=token).download_count == 1


def test_consume_wrong_password(db, upload, share, share_manager):
    file = upload(visibility=Visibility.PASSWORD_PROTECTED, password="pw")
    token = share(file).share.token
    with pytest.raises(AccessDenied) as exc:
        share_manager.consume(db, token, password="wrong")
    assert exc.value.deny_reason == DenyReason.INVALID_PASSWORD
    entry = db.query(FailedAccessLog).one()
    assert entry.email == RECIPIENT
    assert crud.share.get_by_token(db, token=token).download_count == 0
    share_manager.consume(db, token, password="pw")


def test_share_counter_is_independent_of_file(db, upload, share, share_manager):
    file = upload(download_limit=3)
    token = share(file, max_download=1).share.token
    share_manager.consume(db, token)
    db.refresh(file)
    assert file.download_count == 0


def test_download_via_share(db, upload, share, share_manager, context):
    file = upload(data=b"shared bytes")
    token = share(file, max_download=1).share.token
    record, data = share_manager.download_via_share(db, token, None, context())
    assert data == b"shared bytes"
    assert record.id == file.id
    log = db.query(AccessLog).one()
    assert log.email == RECIPIENT
    with pytest.raises(ShareUnavailable):
        share_manager.download_via_share(db, token, None, context())


def test_download_via_share_missing_blob(db, upload, share, share_manager, blob_store, context):
    file = upload()
    token = share(file).share.token
    blob_store.delete(file.storage_key)
    with pytest.raises(NotFound):
        share_manager.download_via_share(db, token, None, context())
    assert crud.share.get_by_token(db, token=token).download_count == 0
    assert db.query(FailedAccessLog).one().reason == "file_missing"


def test_concurrent_consumers_never_exceed_quota(session_factory, upload, share, share_manager, clock):
    token = share(upload(), max_download=3).share.token

    def attempt():
        session = session_factory()
        try:
            share_manager.consume(session, token, context=RequestContext(now=clock()))
            return True
        except ShareUnavailable:
            return False
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=10) as pool:
        results = list(pool.map(lambda _: attempt(), range(10)))

    assert results.count(True) == 3
    session = session_factory()
    try:
        assert crud.share.get_by_token(session, token=token).download_count == 3
    finally:
        session.close()


def test_list_shares(db, upload, share, share_manager, clock):
    file = upload()
    share(file, email="a@example.com")
    clock.advance(seconds=1)
    share(file, email="b@example.com")
    page = share_manager.list_shares(db, file_id=file.id, owner_id=OWNER)
    assert page.total == 2
    with pytest.raises(Forbidden):
        share_manager.list_shares(db, file_id=file.id, owner_id="other")


def test_add_share_stores_link_without_notice(db, upload, share_manager, notifier, clock):
    file = upload(download_limit=2)
    link = share_manager.add_share(
        db,
        file_id=file.id,
        owner_id=OWNER,
        recipient_email=RECIPIENT,
        expires_at=clock() + timedelta(days=1),
        max_download=2,
    )
    assert crud.share.get_by_token(db, token=link.token).id == link.id
    assert notifier.sent == []
    db.refresh(file)
    assert file.download_limit == 0
