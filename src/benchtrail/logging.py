import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import LOG_PATH, MAX_LOG_SIZE_BYTES

_STDERR_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
_VERBOSE_FORMAT = "# %(message)s"
_BACKUP_COUNT = 5


def _resolve_level(level_name: str) -> int:
    level = logging.getLevelName(level_name.strip().upper())
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(
    *,
    verbose: bool = False,
    level_name: str = "WARNING",
    file_logging: bool = False,
    log_path: Path | None = None,
) -> None:
    """Install stderr (and optionally rotating file) handlers on the package logger.

    Args:
        verbose: Print debug output, including every external command, as `# ...`.
        level_name: stderr level when not verbose.
        file_logging: Also keep a debug log file.
        log_path: Log file; defaults to the platform state directory.
    """
    logger = logging.getLogger("benchtrail")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level = logging.DEBUG if verbose else _resolve_level(level_name)
    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(logging.Formatter(_VERBOSE_FORMAT if verbose else _STDERR_FORMAT))
    logger.addHandler(stderr_handler)
    logger.setLevel(logging.DEBUG if file_logging else level)
    logger.propagate = False

    if not file_logging:
        return

    path = log_path or LOG_PATH
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=MAX_LOG_SIZE_BYTES,
            backupCount=_BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as exc:
        logger.warning("Cannot open log file %s: %s", path, exc)
        return
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(_STDERR_FORMAT))
    logger.addHandler(file_handler)


__all__ = ["configure_logging"]
