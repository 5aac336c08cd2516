"""
Access decision engine.

Pure policy evaluation: given a file record and the context of one request,
answer ALLOW or DENY(reason). Nothing here touches the database, the blob
store or the audit log; callers act on the decision.

Rules, first match wins:

1. expired (now > expires_at)                      -> DENY expired
   Applies to the owner as well.
2. caller is the owner                              -> skip 3 and 4
3. private                                          -> DENY forbidden
4. password_protected and password does not verify  -> DENY invalid_password
5. download_count >= download_limit                 -> DENY limit_exceeded
6. otherwise                                        -> ALLOW
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from vaultshare.core import security
from vaultshare.core.exceptions import DenyReason
from vaultshare.core.time import as_utc, utcnow
from vaultshare.models.file import FileRecord, Visibility


@dataclass(frozen=True)
class RequestContext:
    caller_id: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    now: datetime = field(default_factory=utcnow)
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "now", as_utc(self.now))


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(False, reason)


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    # Strict: a file is still valid at the exact expiry instant.
    return expires_at is not None and as_utc(now) > as_utc(expires_at)


def limit_reached(download_count: int, download_limit: Optional[int]) -> bool:
    return download_limit is not None and (download_count or 0) >= download_limit


class AccessDecisionEngine:
    def __init__(self, verify_password: Callable[[Optional[str], Optional[str]], bool] = security.verify_password):
        self.verify_password = verify_password

    def decide(self, file: FileRecord, context: RequestContext) -> Decision:
        if is_expired(file.expires_at, context.now):
            return Decision.deny(DenyReason.EXPIRED)

        is_owner = context.caller_id is not None and context.caller_id == file.owner_id
        if not is_owner:
            if file.visibility == Visibility.PRIVATE:
                return Decision.deny(DenyReason.FORBIDDEN)
            if file.visibility == Visibility.PASSWORD_PROTECTED:
                if not self.verify_password(context.password, file.password):
                    return Decision.deny(DenyReason.INVALID_PASSWORD)

        if limit_reached(file.download_count, file.download_limit):
            return Decision.deny(DenyReason.LIMIT_EXCEEDED)

        return Decision.allow()
