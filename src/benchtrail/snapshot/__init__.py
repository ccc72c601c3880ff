from .cache import PackageSnapshotCache, cache_path, cache_root, clear_cache, tree_cache_dir
from .package import (
    PackageSetSnapshot,
    PackageSnapshot,
    SnapshotContext,
)
from .sandbox import TreeSandbox

__all__ = [
    "PackageSetSnapshot",
    "PackageSnapshot",
    "PackageSnapshotCache",
    "SnapshotContext",
    "TreeSandbox",
    "cache_path",
    "cache_root",
    "clear_cache",
    "tree_cache_dir",
]
