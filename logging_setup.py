import logging
import logging.handlers
from pathlib import Path

import config

LOG_FILE_NAME = "site_ledger.log"


def setup_logging(log_dir: str = config.LOG_DIR, level: str = config.LOG_LEVEL) -> Path:
    """Configure rotating file logging under LOG_DIR/site_ledger.log"""
    log_path = Path(log_dir).expanduser()
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / LOG_FILE_NAME

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")
    handler = logging.handlers.RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
    handler.setFormatter(fmt)
    handler.setLevel(level)

    def _has_handler(lg: logging.Logger) -> bool:
        return any(getattr(h, "baseFilename", "").endswith(LOG_FILE_NAME) for h in lg.handlers)

    root = logging.getLogger()
    root.setLevel(level)
    # avoid duplicate handlers on reload
    if not _has_handler(root):
        root.addHandler(handler)

    # also wire uvicorn loggers (if present)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        lg = logging.getLogger(name)
        lg.setLevel(level)
        if not _has_handler(lg):
            lg.addHandler(handler)

    return log_file
