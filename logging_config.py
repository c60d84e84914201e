import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Inisialisasi logging: console, plus file berotasi jika ``log_file`` diberikan."""
    handlers = [logging.StreamHandler()]

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_file,
                maxBytes=10485760,  # 10MB
                backupCount=5,
            )
        )

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    logger = logging.getLogger(__name__)
    logger.debug("Logging initialized (level=%s)", level)
    return logger


class DebugLogHandler(logging.Handler):
    """Simpan pesan log terakhir untuk ditampilkan sebagai baris debug di layar."""

    def __init__(self, level: int = logging.INFO):
        super().__init__(level)
        self.last_message = ""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.last_message = record.getMessage()
        except Exception:
            self.handleError(record)
