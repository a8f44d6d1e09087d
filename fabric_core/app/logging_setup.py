import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from . import config

_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger with a console handler and, when LOG_FILE is set, a rotating file."""
    level = (level or config.LOG_LEVEL).upper()
    log_file = log_file if log_file is not None else config.LOG_FILE

    fmt = logging.Formatter(_FORMAT)
    logger = logging.getLogger()
    logger.setLevel(level)

    # avoid duplicate handlers on reload
    if not any(getattr(h, "_fabric_core", False) for h in logger.handlers):
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        console._fabric_core = True
        logger.addHandler(console)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        if not any(getattr(h, "baseFilename", "") == str(path.resolve()) for h in logger.handlers):
            handler = logging.handlers.RotatingFileHandler(
                path, maxBytes=5_000_000, backupCount=3, encoding="utf-8"
            )
            handler.setFormatter(fmt)
            logger.addHandler(handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)

    return logger
