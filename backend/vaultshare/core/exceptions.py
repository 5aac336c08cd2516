"""
Error taxonomy shared by the access-control services.

Services raise these; the HTTP layer turns them into JSON responses.
"""
import enum
from typing import Optional


class DenyReason(str, enum.Enum):
    EXPIRED = "expired"
    FORBIDDEN = "forbidden"
    INVALID_PASSWORD = "invalid_password"
    LIMIT_EXCEEDED = "limit_exceeded"
    FILE_MISSING = "file_missing"


class VaultShareError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None, reason: Optional[str] = None):
        self.message = message or self.default_message
        self.reason = reason
        super().__init__(self.message)


class NotFound(VaultShareError):
    status_code = 404
    default_message = "Not found"


class BlobNotFound(NotFound):
    default_message = "File does not exist in storage"

    def __init__(self, key: str):
        super().__init__(f"Blob {key} not found in storage")
        self.key = key


class Forbidden(VaultShareError):
    status_code = 403
    default_message = "You do not have permission to access this file"


class AccessDenied(Forbidden):
    messages = {
        DenyReason.EXPIRED: "File has expired",
        DenyReason.FORBIDDEN: "You do not have access to this file",
        DenyReason.INVALID_PASSWORD: "Invalid password",
        DenyReason.LIMIT_EXCEEDED: "Download limit exceeded",
    }

    def __init__(self, reason: DenyReason):
        super().__init__(self.messages.get(reason, self.default_message), reason=reason.value)
        self.deny_reason = reason


class ShareUnavailable(VaultShareError):
    # expired and exhausted links look the same from outside
    status_code = 410
    default_message = "Link is no longer valid"


class InvalidInput(VaultShareError):
    status_code = 400
    default_message = "Invalid input"


class QuotaExceeded(VaultShareError):
    status_code = 409
    default_message = "Cannot proceed: maximum download limit has been reached"


class UpstreamFailure(VaultShareError):
    status_code = 502
    default_message = "Upstream service failure"


class UnsupportedType(VaultShareError):
    status_code = 415
    default_message = "Unsupported file type for preview"
