import os

import uvicorn

from moongazer.config import settings
from utils.logging_utils import get_tagged_logger, setup_logging

logger = get_tagged_logger(__name__, tag="server")


if __name__ == "__main__":
    setup_logging(level=settings.log_level, service_name="moongazer-api")
    logger.info("Starting Moongazer API", extra={"port": os.getenv("PORT", 8000)})

    uvicorn.run(
        "moongazer.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False,
    )
