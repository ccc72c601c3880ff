"""Configuration module for benchtrail."""

from .settings import (
    CACHE_DIR_NAME,
    CACHE_FILE_NAME,
    CACHE_TREE_DIR,
    DEFAULT_BENCH_FILTER,
    DEFAULT_THRESHOLD,
    LOG_DIR,
    LOG_PATH,
    MAX_LOG_SIZE_BYTES,
    BenchtrailConfig,
)

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
