"""
Start the feedback service: logging first, then services, then HTTP.
"""

from __future__ import annotations

import logging

import uvicorn

from userfeedback.app import create_app
from userfeedback.config import get_settings
from userfeedback.logging_setup import configure_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_path, settings.log_level)
    app = create_app(settings)
    logger.info("Server is running on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
