"""Cloud Run entrypoint: ``gunicorn main:app`` or ``python main.py``."""

import os

from src.app import app
from src.config import get_settings
from src.logging_config import get_logger

logger = get_logger(__name__)


if __name__ == "__main__":
    settings = get_settings()
    port = int(os.environ.get("PORT", settings.port))

    logger.info(f"Starting server on port {port}")
    app.run(host="0.0.0.0", port=port, debug=settings.debug)
