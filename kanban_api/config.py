import logging
import os

from . import __version__

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./kanban.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
API_VERSION = os.getenv("API_VERSION", __version__)


def configure_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
