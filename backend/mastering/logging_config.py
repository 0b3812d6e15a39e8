import logging
import sys
import os
from logging.handlers import RotatingFileHandler

# Log directory, file and level for the worker process
LOG_DIR = os.getenv("LOG_DIR") or "backend/logs"
LOG_FILE = os.path.join(LOG_DIR, "worker.log")
LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()

# Pipeline loggers follow LOG_LEVEL; chatty third-party loggers are capped.
PIPELINE_LOGGERS = (
    "mastering.services.orchestrator",
    "mastering.services.mastering",
    "mastering.services.eq",
    "mastering.services.eq_engine",
    "mastering.services.cleanup",
    "mastering.workers",
)
QUIET_LOGGERS = {
    "mastering.utils.process": logging.INFO,
    "celery": logging.INFO,
    "sqlalchemy.engine": logging.WARNING,
}


def setup_logging():
    """
    Configures logging for the mastering worker.
    Stage progress, degraded EQ runs and job failures go to the console and
    to a rotating worker.log next to the Celery output.
    """
    os.makedirs(LOG_DIR, exist_ok=True)
    level = logging.getLevelName(LOG_LEVEL)
    if not isinstance(level, int):
        level = logging.INFO

    log_formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(name)s - %(funcName)s - %(lineno)d - %(message)s"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
        file_handler = RotatingFileHandler(LOG_FILE, maxBytes=1024*1024*5, backupCount=2) # 5MB per file, 2 backups
        file_handler.setFormatter(log_formatter)
        root_logger.addHandler(file_handler)
    if not any(getattr(h, "stream", None) is sys.stdout for h in root_logger.handlers):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(log_formatter)
        root_logger.addHandler(console_handler)

    for name in PIPELINE_LOGGERS:
        logging.getLogger(name).setLevel(level)
    for name, cap in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(cap, level))

    logging.getLogger(__name__).info("Worker logging configured (level=%s, file=%s)", logging.getLevelName(level), LOG_FILE)
