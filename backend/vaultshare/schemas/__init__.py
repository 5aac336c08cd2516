from .common import Page
from .file import FileRecord, FileUploaded, FileMetadataUpdate, FileVisibilityUpdate, FileMetadata, FileStats
from .share import ShareCreate, ShareLink, ShareCreated, ShareInfo, ShareAccess
from .access_log import AccessLog, FailedAccessLog
