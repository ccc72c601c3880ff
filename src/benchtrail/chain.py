import logging
from collections.abc import Callable
from contextlib import closing
from dataclasses import dataclass, field, replace
from typing import Literal

import click

from .bench.collection import BenchmarkRunCollection
from .bench.filter import compile_bench_filter
from .bench.run import BenchmarkRun
from .config import DEFAULT_BENCH_FILTER, DEFAULT_THRESHOLD, BenchtrailConfig
from .errors import HarnessFailure, InvalidArgument
from .harness import GoHarness
from .repo.packages import PackageSet
from .snapshot.package import BenchmarkCallback, PackageSetSnapshot
from .snapshot.sandbox import TreeSandbox

logger = logging.getLogger(__name__)

FailurePolicy = Literal["abort", "skip"]
FAILURE_POLICIES: tuple[FailurePolicy, ...] = ("abort", "skip")


@dataclass(frozen=True)
class LogOptions:
    bench_filter: str = DEFAULT_BENCH_FILTER  # passed to `go test -bench`
    threshold: float = DEFAULT_THRESHOLD  # min abs ns/op change to display, in percent
    revision_range: str | None = None  # passed to `git log`
    on_failure: FailurePolicy = "abort"

    def validate(self) -> None:
        """Raise InvalidArgument before any subprocess is started."""
        if not 0 <= self.threshold <= 100:
            raise InvalidArgument("threshold must be in [0, 100] interval")
        compile_bench_filter(self.bench_filter)
        if self.on_failure not in FAILURE_POLICIES:
            raise InvalidArgument(f"unknown failure policy: {self.on_failure}")


@dataclass
class CommitTestRun:
    """Benchmark results of one commit, kept only for the rest of the traversal."""

    benchmarks: dict[str, BenchmarkRunCollection] = field(default_factory=dict)
    failure: HarnessFailure | None = None

    def find(self, rel_package_path: str, name: str) -> BenchmarkRun | None:
        runs = self.benchmarks.get(rel_package_path)
        if runs is None:
            return None
        return runs.find(name)


class CommitChainDiff:
    """`git log` with benchmark results and their change relative to the parent.

    Every commit is benchmarked at most once per traversal: a commit fetched as
    the parent of one step is reused as the child of the next.
    """

    def __init__(
        self,
        package_set: PackageSet,
        options: LogOptions,
        config: BenchtrailConfig,
        *,
        harness: GoHarness | None = None,
        out: Callable[[str], None] = click.echo,
    ) -> None:
        options.validate()
        self.package_set = package_set
        self.options = options
        self.config = config
        self.harness = harness or GoHarness(config)
        self.out = out

    def fetch(self, revision: str, on_result: BenchmarkCallback | None = None) -> CommitTestRun:
        """Benchmarks of every package at `revision`, from cache or by running them.

        Raises:
            HarnessFailure: The harness failed and the failure policy is "abort".
        """
        with TreeSandbox(self.package_set, revision) as sandbox:
            snapshot = PackageSetSnapshot(self.package_set, sandbox, self.harness, self.config)
            try:
                return CommitTestRun(
                    benchmarks=snapshot.get_benchmarks(self.options.bench_filter, on_result)
                )
            except HarnessFailure as exc:
                if self.options.on_failure == "abort":
                    raise
                logger.info("benchmarks failed at %s: %s", revision, exc.stderr.strip())
                return CommitTestRun(failure=exc)

    def annotated(
        self, run: BenchmarkRun, parent_run: CommitTestRun | None, rel_path: str
    ) -> BenchmarkRun | None:
        """Return a copy of `run` annotated against the parent, or None to hide it.

        Runs without a baseline (no parent, failed parent, new benchmark) are
        always shown.
        """
        shown = replace(run, ns_per_op_change=0.0)
        if parent_run is None:
            return shown
        previous = parent_run.find(rel_path, run.name)
        if previous is None:
            return shown
        shown.annotate(previous)
        if abs(shown.ns_per_op_change) < self.options.threshold:
            return None
        return shown

    def _print_run(
        self, rel_path: str, run: BenchmarkRun, parent_run: CommitTestRun | None
    ) -> None:
        shown = self.annotated(run, parent_run, rel_path)
        if shown is not None:
            self.out(shown.format(colored=self.config.colored))

    def _print_failure(self, failure: HarnessFailure) -> None:
        message = str(failure)
        self.out(click.style(message, fg="red") if self.config.colored else message)

    def _print_commit(self, commit_id: str, first: bool) -> None:
        if not first:
            self.out("")
        self.out(self.package_set.repository.show_commit(commit_id, colored=self.config.colored))
        self.out("")

    def run(self) -> None:
        """Walk the log, printing each commit followed by its benchmark deltas."""
        repository = self.package_set.repository
        with closing(repository.iter_commit_ids(self.options.revision_range)) as commit_ids:
            commit_id = next(commit_ids, None)
            if commit_id is None:
                return

            # results of the parent of the commit processed in the previous iteration
            prev_parent_run: CommitTestRun | None = None
            first = True
            while True:
                parent_id = next(commit_ids, "")

                self._print_commit(commit_id, first)
                first = False

                parent_run: CommitTestRun | None = None
                if parent_id:
                    parent_run = self.fetch(parent_id)

                def print_run(rel_path: str, run: BenchmarkRun) -> None:
                    self._print_run(rel_path, run, parent_run)

                if prev_parent_run is not None:
                    # this commit was the parent in the previous iteration
                    if prev_parent_run.failure is not None:
                        self._print_failure(prev_parent_run.failure)
                    for rel_path in self.package_set.rel_package_paths:
                        for run in prev_parent_run.benchmarks.get(rel_path, ()):
                            print_run(rel_path, run)
                else:
                    current = self.fetch(commit_id, print_run)
                    if current.failure is not None:
                        self._print_failure(current.failure)

                if not parent_id:
                    # git log has completed
                    break
                commit_id = parent_id
                prev_parent_run = parent_run


__all__ = ["FAILURE_POLICIES", "CommitChainDiff", "CommitTestRun", "LogOptions"]
