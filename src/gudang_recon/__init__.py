import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = PROJECT_ROOT / ".logs"
LOG_FILE_NAME = "gudang_recon.log"

_FORMATTER = logging.Formatter(
    fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _attach_file_handler(logger: logging.Logger, log_dir: Path) -> Optional[Path]:
    log_file = log_dir / LOG_FILE_NAME
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
    except OSError as exc:
        print(
            f"Warning: unable to initialize log file at '{log_file}': {exc}",
            file=sys.stderr,
        )
        return None
    file_handler.setFormatter(_FORMATTER)
    logger.addHandler(file_handler)
    return log_file


def _configure_logging() -> logging.Logger:
    """Configure package-wide logging with file and console handlers."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    _attach_file_handler(logger, LOG_DIR)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(_FORMATTER)
    logger.addHandler(console_handler)

    return logger


def configure_log_output(log_dir: Optional[Path] = None, level: str = "INFO") -> Optional[Path]:
    """Apply the ``[Logging]`` settings of ``config.ini`` to the package logger.

    The level applies to every handler. When ``log_dir`` is given the rotating
    file handler is moved there. Returns the active log file, if any.
    """

    log.setLevel(level.upper())
    file_handlers = [handler for handler in log.handlers if isinstance(handler, RotatingFileHandler)]
    if log_dir is None:
        return Path(file_handlers[0].baseFilename) if file_handlers else None

    target = Path(log_dir) / LOG_FILE_NAME
    if any(Path(handler.baseFilename).resolve() == target.resolve() for handler in file_handlers):
        return target
    for handler in file_handlers:
        log.removeHandler(handler)
        handler.close()
    return _attach_file_handler(log, Path(log_dir))


log = _configure_logging()
log.info("Logger initialized for the 'gudang_recon' package.")
