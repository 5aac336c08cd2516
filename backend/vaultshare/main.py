import logging

import uvicorn

from vaultshare.core.config import settings
from vaultshare.factory import create_app

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(settings)

if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8899)
