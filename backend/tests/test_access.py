from datetime import datetime, timedelta

import pytest

from vaultshare.core import security
from vaultshare.core.exceptions import DenyReason
from vaultshare.models.file import FileRecord, Visibility
from vaultshare.services.access import AccessDecisionEngine, RequestContext, is_expired

NOW = datetime(2026, 3, 1, 12, 0, 0)
PASSWORD_HASH = security.get_password_hash("s3cret")


def make_file(**overrides) -> FileRecord:
    values = dict(
        id="file-1",
        owner_id="owner",
        storage_key="key",
        original_name="report.pdf",
        content_type="application/pdf",
        size=10,
        visibility=Visibility.PUBLIC,
        password=None,
        expires_at=None,
        download_limit=None,
        download_count=0,
    )
    values.update(overrides)
    return FileRecord(**values)


@pytest.fixture()
def engine():
    return AccessDecisionEngine()


def test_public_file_is_allowed(engine):
    decision = engine.decide(make_file(), RequestContext(now=NOW))
    assert decision.allowed
    assert decision.reason is None


def test_expiry_is_strict(engine):
    file = make_file(expires_at=NOW)
    assert engine.decide(file, RequestContext(now=NOW)).allowed
    later = NOW + timedelta(seconds=1)
    assert engine.decide(file, RequestContext(now=later)).reason == DenyReason.EXPIRED


def test_expired_file_is_denied_to_owner(engine):
    file = make_file(expires_at=NOW - timedelta(minutes=1), visibility=Visibility.PRIVATE)
    decision = engine.decide(file, RequestContext(caller_id="owner", now=NOW))
    assert decision.reason == DenyReason.EXPIRED


def test_expiry_checked_before_visibility(engine):
    file = make_file(expires_at=NOW - timedelta(days=1), visibility=Visibility.PRIVATE)
    assert engine.decide(file, RequestContext(now=NOW)).reason == DenyReason.EXPIRED


def test_private_file_forbidden_to_others(engine):
    file = make_file(visibility=Visibility.PRIVATE)
    assert engine.decide(file, RequestContext(caller_id="someone", now=NOW)).reason == DenyReason.FORBIDDEN
    assert engine.decide(file, RequestContext(now=NOW)).reason == DenyReason.FORBIDDEN


def test_owner_bypasses_private_and_password(engine):
    private = make_file(visibility=Visibility.PRIVATE)
    protected = make_file(visibility=Visibility.PASSWORD_PROTECTED, password=PASSWORD_HASH)
    assert engine.decide(private, RequestContext(caller_id="owner", now=NOW)).allowed
    assert engine.decide(protected, RequestContext(caller_id="owner", now=NOW)).allowed


@pytest.mark.parametrize("password", [None, "", "wrong"])
def test_password_protected_requires_matching_password(engine, password):
    file = make_file(visibility=Visibility.PASSWORD_PROTECTED, password=PASSWORD_HASH)
    decision = engine.decide(file, RequestContext(password=password, now=NOW))
    assert decision.reason == DenyReason.INVALID_PASSWORD


def test_password_is_compared_against_hash(engine):
    file = make_file(visibility=Visibility.PASSWORD_PROTECTED, password=PASSWORD_HASH)
    assert engine.decide(file, RequestContext(password="s3cret", now=NOW)).allowed
    # supplying the stored hash itself must not work
    assert not engine.decide(file, RequestContext(password=PASSWORD_HASH, now=NOW)).allowed


def test_limit_reached_denies_everyone(engine):
    file = make_file(download_limit=2, download_count=2)
    assert engine.decide(file, RequestContext(now=NOW)).reason == DenyReason.LIMIT_EXCEEDED
    assert engine.decide(file, RequestContext(caller_id="owner", now=NOW)).reason == DenyReason.LIMIT_EXCEEDED


def test_limit_not_reached(engine):
    assert engine.decide(make_file(download_limit=2, download_count=1), RequestContext(now=NOW)).allowed


def test_aware_timestamps_are_normalised():
    from datetime import timezone

    ctx = RequestContext(now=datetime(2026, 3, 1, 14, 0, tzinfo=timezone(timedelta(hours=2))))
    assert ctx.now == NOW
    assert not is_expired(NOW, ctx.now)
    assert not is_expired(None, ctx.now)
