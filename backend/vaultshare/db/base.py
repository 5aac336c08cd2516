# Import all the models, so that Base has them before being
# imported by create_all
from vaultshare.db.base_class import Base  # noqa: F401
from vaultshare.models.file import FileRecord  # noqa: F401
from vaultshare.models.share import ShareLink  # noqa: F401
from vaultshare.models.access_log import AccessLog, FailedAccessLog, FileDeletionFailureLog  # noqa: F401
