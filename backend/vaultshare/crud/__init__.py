from .crud_file import file
from .crud_share import share
from .crud_access_log import access_log
