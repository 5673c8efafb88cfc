# services/logger_config.py
import logging
from logging.handlers import RotatingFileHandler
import os
from config import settings

# Third-party loggers that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")

def setup_logging():
    """
    Configure the gateway logger from settings.

    One rotating file (LOG_FILE_PATH, unless LOG_TO_FILE is off) plus the
    console, both at LOG_LEVEL.
    """
    logger = logging.getLogger(settings.LOGGER_NAME)

    # Avoid adding duplicate handlers if this function is called multiple times
    if logger.hasHandlers():
        logger.handlers.clear()

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
    )

    if settings.LOG_TO_FILE:
        try:
            os.makedirs(os.path.dirname(settings.LOG_FILE_PATH) or ".", exist_ok=True)
            file_handler = RotatingFileHandler(
                settings.LOG_FILE_PATH,
                maxBytes=settings.LOG_MAX_BYTES,
                backupCount=settings.LOG_BACKUP_COUNT,
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            # read-only checkout: keep console logging
            print(f"Error setting up file logger: {e}")

    logger.propagate = True

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(f"Logging configured (level={logging.getLevelName(level)}, file={settings.LOG_TO_FILE})")
    return logger
