from __future__ import annotations

import logging
from collections.abc import Callable, Collection
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..bench.collection import BenchmarkRunCollection
from ..bench.filter import compile_bench_filter, exact_names_filters
from ..bench.run import BenchmarkRun
from ..config import BenchtrailConfig
from ..errors import CacheIOError, ExecutionError
from ..repo.packages import PackageSet
from .cache import PackageSnapshotCache, cache_path
from .sandbox import TreeSandbox

if TYPE_CHECKING:
    from ..harness import GoHarness

logger = logging.getLogger(__name__)

# Called with (relative package path, run) as soon as a run is available
BenchmarkCallback = Callable[[str, BenchmarkRun], None]

# Filters that select every benchmark of a package
UNRESTRICTED_FILTERS = frozenset(("", ".", ".*"))


def _ignore(_rel_path: str, _run: BenchmarkRun) -> None:
    return None


@dataclass(frozen=True)
class SnapshotContext:
    """What every package of one tree snapshot shares."""

    package_set: PackageSet
    sandbox: TreeSandbox
    harness: GoHarness
    config: BenchtrailConfig


class PackageSnapshot:
    """One package of a tree snapshot, with its (package, tree id) cache."""

    def __init__(self, context: SnapshotContext, rel_package_path: str) -> None:
        self.context = context
        self.rel_package_path = rel_package_path
        self.cache: PackageSnapshotCache | None = None

    @property
    def import_path(self) -> str:
        return self.context.package_set.import_path(self.rel_package_path)

    @property
    def caching(self) -> bool:
        return self.context.config.caching

    def cache_filename(self) -> Path:
        return cache_path(
            self.context.package_set.repository,
            self.context.sandbox.tree_id,
            self.rel_package_path,
            self.context.config.cache_dir,
        )

    def load_cache(self) -> PackageSnapshotCache:
        try:
            self.cache = PackageSnapshotCache.load(self.cache_filename())
        except CacheIOError as exc:
            logger.warning("could not load cache: %s", exc)
            self.cache = PackageSnapshotCache()
        return self.cache

    def ensure_cache_loaded(self) -> PackageSnapshotCache:
        if self.cache is None:
            return self.load_cache()
        return self.cache

    def save_cache(self) -> None:
        if self.cache is None:
            raise RuntimeError("cache not loaded")
        try:
            self.cache.save(self.cache_filename())
        except CacheIOError as exc:
            logger.warning("could not save benchmark results: %s", exc)

    def get_benchmark_names(self) -> list[str]:
        """Return all benchmark names of the package, listing them once per tree."""
        cache = self.ensure_cache_loaded() if self.caching else None
        if cache is not None and cache.all_benchmark_names is not None:
            return cache.all_benchmark_names

        names = self.context.harness.list_names(self.context.sandbox, self.import_path)
        if cache is not None:
            cache.all_benchmark_names = names
            self.save_cache()
        return names

    def run_benchmarks(
        self,
        bench_filter: str,
        on_result: BenchmarkCallback | None = None,
        *,
        only: Collection[str] | None = None,
    ) -> BenchmarkRunCollection:
        """Run the benchmarks matching `bench_filter` ("." when empty).

        Every run is passed to `on_result` while the harness is still going,
        and recorded in the cache, which is saved once the harness succeeds.
        With `only`, runs of other names are dropped.
        """
        on_result = on_result or _ignore
        bench_filter = bench_filter or "."
        cache = self.ensure_cache_loaded() if self.caching else None

        result = BenchmarkRunCollection()
        names: list[str] = []
        for run in self.context.harness.run(self.context.sandbox, self.import_path, bench_filter):
            if only is not None and run.name not in only:
                logger.debug("dropping %s, not requested", run.name)
                continue
            on_result(self.rel_package_path, run)
            result.add(run)
            if cache is not None:
                cache.record(run)
            names.append(run.name)

        if cache is not None:
            if bench_filter in UNRESTRICTED_FILTERS:
                cache.benchmarks_is_complete = True
                cache.all_benchmark_names = names
            else:
                cache.promote_if_complete()
            self.save_cache()
        return result

    def _load_benchmarks_from_cache(
        self, bench_filter: str, on_result: BenchmarkCallback
    ) -> BenchmarkRunCollection | None:
        """Serve benchmarks from cache, running only the ones it lacks.

        Returns None when the cache knows nothing about the package yet. An
        empty but complete cache is a package without benchmarks.
        """
        cache = self.ensure_cache_loaded()
        if (
            cache.is_empty()
            and not cache.benchmarks_is_complete
            and cache.all_benchmark_names is None
        ):
            logger.debug("nothing in cache for %s", self.rel_package_path)
            return None

        pattern = compile_bench_filter(bench_filter)
        result, complete = cache.query(pattern)
        logger.debug("benchmarks in cache: %s", result)
        for run in result:
            on_result(self.rel_package_path, run)
        if complete:
            return result

        logger.debug("not all benchmarks are in cache, getting full benchmark name list")
        self.get_benchmark_names()
        missing = cache.missing_names(pattern, result)
        if not missing:
            if cache.promote_if_complete():
                self.save_cache()
            return result

        logger.debug("cached benchmarks miss requested ones: %s", missing)
        wanted = set(missing)
        ran = BenchmarkRunCollection()
        for names_filter in exact_names_filters(missing):
            for run in self.run_benchmarks(names_filter, on_result, only=wanted):
                ran.add(run)
        for name in missing:
            run = ran.find(name)
            if run is None:
                raise ExecutionError(f"requested benchmark {name} didn't run")
            result.add(run)
        return result

    def get_benchmarks(
        self, bench_filter: str, on_result: BenchmarkCallback | None = None
    ) -> BenchmarkRunCollection:
        """Return benchmarks from cache or by running them.

        Args:
            bench_filter: Benchmark name regexp, "." when empty.
            on_result: Called as soon as each benchmark is available.
        """
        on_result = on_result or _ignore
        if self.caching:
            benchmarks = self._load_benchmarks_from_cache(bench_filter, on_result)
            if benchmarks is not None:
                return benchmarks
        return self.run_benchmarks(bench_filter, on_result)


class PackageSetSnapshot:
    """All selected packages of a package set, at one tree."""

    def __init__(
        self,
        package_set: PackageSet,
        sandbox: TreeSandbox,
        harness: GoHarness,
        config: BenchtrailConfig,
    ) -> None:
        self.context = SnapshotContext(
            package_set=package_set, sandbox=sandbox, harness=harness, config=config
        )
        self.packages = tuple(
            PackageSnapshot(self.context, rel_path) for rel_path in package_set.rel_package_paths
        )

    @property
    def tree_id(self) -> str:
        return self.context.sandbox.tree_id

    def get_benchmarks(
        self, bench_filter: str, on_result: BenchmarkCallback | None = None
    ) -> dict[str, BenchmarkRunCollection]:
        """Return a mapping {relative package path: benchmarks}."""
        results: dict[str, BenchmarkRunCollection] = {}
        for package in self.packages:
            results[package.rel_package_path] = package.get_benchmarks(bench_filter, on_result)
        return results


__all__ = [
    "UNRESTRICTED_FILTERS",
    "BenchmarkCallback",
    "PackageSetSnapshot",
    "PackageSnapshot",
    "SnapshotContext",
]
