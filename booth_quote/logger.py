from __future__ import annotations
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional

LOGGER_NAME = "booth_quote"
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def setup_file_logger(log_dir: Path, level: int = logging.INFO) -> logging.Logger:
    """
    One timestamped log file per session for the whole booth_quote package.

    Module loggers (booth_quote.storage, booth_quote.render.pdf_export, ...) propagate
    here. Repeated calls keep the first file and only adjust the level.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if current_log_file(logger) is not None:
        return logger

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{LOGGER_NAME}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(fh)
    logger.info("Logging to %s", log_file)

    return logger


def current_log_file(logger: Optional[logging.Logger] = None) -> Optional[Path]:
    """Path of the session log file, or None before setup_file_logger ran."""
    logger = logger or logging.getLogger(LOGGER_NAME)
    for h in logger.handlers:
        if isinstance(h, logging.FileHandler):
            return Path(h.baseFilename)
    return None
