import os

import uvicorn

from readme_pulse.config import get_settings
from utils.logging_utils import get_tagged_logger, setup_logging

logger = get_tagged_logger(__name__, tag="server")


if __name__ == "__main__":
    settings = get_settings()
    setup_logging(level=settings.log_level, job_name="readme_server")
    logger.info("Serving README sections from %s", settings.readme_path)

    uvicorn.run(
        "readme_pulse.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False,
    )
