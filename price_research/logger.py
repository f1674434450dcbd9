import logging
from logging.handlers import RotatingFileHandler
import os

from price_research.config import get_settings


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger  # handler already attached

    settings = get_settings()
    logger.setLevel(settings.log_level.upper())

    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
    )

    # console
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # rotating file
    os.makedirs(settings.log_dir, exist_ok=True)
    file_handler = RotatingFileHandler(
        os.path.join(settings.log_dir, "price_research.log"),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger
