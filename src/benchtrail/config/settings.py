import logging
import os
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_state_dir

from .compat import env_bool, env_float

logger = logging.getLogger(__name__)

__all__ = [
    "CACHE_DIR_NAME",
    "CACHE_FILE_NAME",
    "CACHE_TREE_DIR",
    "DEFAULT_BENCH_FILTER",
    "DEFAULT_THRESHOLD",
    "LOG_DIR",
    "LOG_PATH",
    "MAX_LOG_SIZE_BYTES",
    "BenchtrailConfig",
]

# Cache layout: <git_dir>/benchtrail/tree-cache/<tree_id>/<rel_path>/dir-cache.json
CACHE_DIR_NAME = "benchtrail"
CACHE_TREE_DIR = "tree-cache"
CACHE_FILE_NAME = "dir-cache.json"

# `log` defaults
DEFAULT_BENCH_FILTER = "."
DEFAULT_THRESHOLD = 2.0

# Logging - Cross-platform state directory:
# - Linux: ~/.local/state/benchtrail
# - macOS: ~/Library/Application Support/benchtrail
# - Windows: %LOCALAPPDATA%\benchtrail
# Note: Directory is created lazily in logging.py when file logging is enabled
LOG_DIR = Path(user_state_dir("benchtrail", appauthor=False))
LOG_PATH = LOG_DIR / "benchtrail.log"
MAX_LOG_SIZE_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class BenchtrailConfig:
    go_command: str = "go"
    git_command: str = "git"
    cache_dir: str | None = None  # None: cache lives in the repository's git dir
    caching: bool = True  # read and write the on-disk benchmark cache
    colored: bool = True
    verbose: bool = False
    harness_timeout: float | None = None  # seconds; None waits indefinitely
    log_level: str = "WARNING"
    file_logging: bool = False

    @classmethod
    def from_env(cls) -> "BenchtrailConfig":
        # Read at call time so values from a .env file loaded by the CLI apply
        cache_dir = os.getenv("BENCHTRAIL_CACHE_DIR", "").strip() or None
        if cache_dir:
            cache_dir = str(Path(cache_dir).expanduser().resolve())
            logger.debug("Using BENCHTRAIL_CACHE_DIR: %s", cache_dir)

        timeout = env_float("BENCHTRAIL_HARNESS_TIMEOUT")
        if timeout is not None and timeout <= 0:
            logger.warning("BENCHTRAIL_HARNESS_TIMEOUT must be positive, ignoring %s", timeout)
            timeout = None

        return cls(
            go_command=os.getenv("BENCHTRAIL_GO", "").strip() or "go",
            git_command=os.getenv("BENCHTRAIL_GIT", "").strip() or "git",
            cache_dir=cache_dir,
            caching=env_bool("BENCHTRAIL_CACHING", default=True),
            colored=env_bool("BENCHTRAIL_COLOR", default=True),
            harness_timeout=timeout,
            log_level=os.getenv("BENCHTRAIL_LOG_LEVEL", "").strip().upper() or "WARNING",
            file_logging=env_bool("BENCHTRAIL_LOGGING", default=False),
        )
