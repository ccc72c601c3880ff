import hashlib
import json
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..bench.collection import BenchmarkRunCollection
from ..bench.filter import BenchFilter
from ..bench.run import BenchmarkRun
from ..config import CACHE_DIR_NAME, CACHE_FILE_NAME, CACHE_TREE_DIR
from ..errors import CacheIOError, DuplicateBenchmarkError
from ..repo.git import Repository

logger = logging.getLogger(__name__)

_FINGERPRINT_LEN = 12


def _sanitize_repo_name(repo_name: str) -> str:
    return "".join(c if c.isalnum() or c in "-_" else "_" for c in repo_name)


def cache_root(repository: Repository, cache_dir: str | None = None) -> Path:
    """Return the directory holding all tree caches of a repository.

    Defaults to `<git dir>/benchtrail`. With `cache_dir`, each repository gets
    `<cache_dir>/<name>__<fingerprint>` where the fingerprint is a short
    SHA-256 of the repository root.
    """
    if cache_dir is None:
        return repository.git_dir / CACHE_DIR_NAME
    fingerprint = hashlib.sha256(str(repository.root).encode("utf-8")).hexdigest()
    name = _sanitize_repo_name(repository.root.name)
    return Path(cache_dir) / f"{name}__{fingerprint[:_FINGERPRINT_LEN]}"


def tree_cache_dir(repository: Repository, tree_id: str, cache_dir: str | None = None) -> Path:
    return cache_root(repository, cache_dir) / CACHE_TREE_DIR / tree_id


def cache_path(
    repository: Repository, tree_id: str, rel_package_path: str, cache_dir: str | None = None
) -> Path:
    """Location of the cache file for one package in one tree."""
    return tree_cache_dir(repository, tree_id, cache_dir) / rel_package_path / CACHE_FILE_NAME


def clear_cache(
    repository: Repository, tree_id: str | None = None, cache_dir: str | None = None
) -> Path:
    """Delete cached results of one tree, or of every tree when `tree_id` is None.

    Returns:
        The removed directory.

    Raises:
        CacheIOError: The directory exists but could not be removed.
    """
    if tree_id is None:
        target = cache_root(repository, cache_dir)
    else:
        target = tree_cache_dir(repository, tree_id, cache_dir)
    try:
        shutil.rmtree(target)
    except FileNotFoundError:
        logger.debug("No cache at %s", target)
    except OSError as exc:
        raise CacheIOError(str(target), str(exc)) from exc
    return target


@dataclass
class PackageSnapshotCache:
    """Previously run benchmarks and known benchmark names of one package tree."""

    benchmarks: BenchmarkRunCollection = field(default_factory=BenchmarkRunCollection)
    # True if `benchmarks` is the full list of benchmarks in the package snapshot
    benchmarks_is_complete: bool = False
    all_benchmark_names: list[str] | None = None  # None if unknown

    def is_empty(self) -> bool:
        return len(self.benchmarks) == 0

    def query(self, pattern: BenchFilter) -> tuple[BenchmarkRunCollection, bool]:
        """Return cached runs whose name matches `pattern`.

        Returns:
            Tuple of (matching runs, complete). `complete` is True only if the
            package was once run with an unrestricted filter, so no run matching
            `pattern` can be missing.
        """
        matched = BenchmarkRunCollection(
            run for run in self.benchmarks if pattern.search(run.name)
        )
        return matched, self.benchmarks_is_complete

    def missing_names(
        self, pattern: BenchFilter, matched: BenchmarkRunCollection
    ) -> list[str]:
        """Names matching `pattern` in the full name list that `matched` lacks.

        Requires `all_benchmark_names` to be known.
        """
        if self.all_benchmark_names is None:
            raise ValueError("benchmark names are not known")
        return [
            name
            for name in self.all_benchmark_names
            if pattern.search(name) and name not in matched
        ]

    def record(self, run: BenchmarkRun) -> None:
        """Add a run. Raises DuplicateBenchmarkError if the name is already cached."""
        self.benchmarks.add(run)

    def promote_if_complete(self) -> bool:
        """Mark the cache complete once every known benchmark name is cached."""
        if self.benchmarks_is_complete or self.all_benchmark_names is None:
            return self.benchmarks_is_complete
        if all(name in self.benchmarks for name in self.all_benchmark_names):
            self.benchmarks_is_complete = True
        return self.benchmarks_is_complete

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "benchmarks": self.benchmarks.to_list(),
            "benchmarks_is_complete": self.benchmarks_is_complete,
            "all_benchmark_names": self.all_benchmark_names,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PackageSnapshotCache":
        names = data.get("all_benchmark_names")
        return cls(
            benchmarks=BenchmarkRunCollection.from_list(data.get("benchmarks") or []),
            benchmarks_is_complete=bool(data.get("benchmarks_is_complete", False)),
            all_benchmark_names=[str(n) for n in names] if names is not None else None,
        )

    @classmethod
    def load(cls, path: Path) -> "PackageSnapshotCache":
        """Load a cache file.

        A missing file is an empty, valid cache.

        Raises:
            CacheIOError: The file exists but cannot be read or parsed.
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return cls()
        except (OSError, json.JSONDecodeError) as exc:
            raise CacheIOError(str(path), str(exc)) from exc

        if not isinstance(data, dict):
            raise CacheIOError(str(path), "cache file is not a JSON object")
        try:
            return cls.from_dict(data)
        except (KeyError, TypeError, ValueError, DuplicateBenchmarkError) as exc:
            raise CacheIOError(str(path), f"invalid cache contents: {exc}") from exc

    def save(self, path: Path) -> None:
        """Persist the cache, replacing `path` atomically.

        Raises:
            CacheIOError: The file could not be written.
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write atomically using temp file
            temp_path = path.with_suffix(".tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            temp_path.replace(path)
        except OSError as exc:
            raise CacheIOError(str(path), str(exc)) from exc
        logger.debug(
            "Saved cache %s: %d benchmarks, complete=%s",
            path,
            len(self.benchmarks),
            self.benchmarks_is_complete,
        )


__all__ = [
    "PackageSnapshotCache",
    "cache_path",
    "clear_cache",
    "cache_root",
    "tree_cache_dir",
]
