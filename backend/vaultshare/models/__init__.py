from .file import FileRecord, Visibility
from .share import ShareLink
from .access_log import AccessLog, FailedAccessLog, FileDeletionFailureLog
