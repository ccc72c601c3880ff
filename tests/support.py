import shutil
import subprocess
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from benchtrail.bench import BenchmarkRun, compile_bench_filter, parse_benchmark_run
from benchtrail.errors import HarnessFailure
from benchtrail.repo.git import Repository, discover_repository
from benchtrail.repo.packages import PackageSet
from benchtrail.snapshot.sandbox import TreeSandbox

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
requires_go = pytest.mark.skipif(shutil.which("go") is None, reason="go is not installed")


def benchmark_line(name: str, ns_per_op: float, n: int = 1000) -> str:
    return f"{name}-8   \t{n}\t{ns_per_op:g} ns/op"


def make_run(name: str, ns_per_op: float, n: int = 1000) -> BenchmarkRun:
    run = parse_benchmark_run(benchmark_line(name, ns_per_op, n))
    assert run is not None
    return run


class GitRepo:
    """Throwaway git repository for tests."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.git("init", "-q")
        self.git("config", "user.email", "test@test.com")
        self.git("config", "user.name", "Test")
        self.git("config", "commit.gpgsign", "false")

    def git(self, *args: str) -> str:
        completed = subprocess.run(
            ["git", *args],
            cwd=self.root,
            capture_output=True,
            text=True,
            check=True,
        )
        return completed.stdout.strip()

    def commit(self, message: str, files: dict[str, str] | None = None) -> str:
        for rel, content in (files or {}).items():
            path = self.root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        self.git("add", "-A")
        self.git("commit", "-q", "--allow-empty", "-m", message)
        return self.git("rev-parse", "HEAD")

    def tree(self, revision: str) -> str:
        return self.git("rev-parse", f"{revision}^{{tree}}")

    @property
    def repository(self) -> Repository:
        return discover_repository(self.root)

    def package_set(
        self, rel_paths: tuple[str, ...] = ("pkg",), root_import_path: str = "example.com/proj"
    ) -> PackageSet:
        return PackageSet(
            repository=self.repository,
            root_import_path=root_import_path,
            rel_package_paths=rel_paths,
        )


@dataclass
class FakeHarness:
    """Stands in for GoHarness; results are keyed by tree id and import path.

    `results[tree_id][import_path]` lists (name, ns/op) pairs in output order.
    Filters select names level by level, as `go test -bench` does.
    Trees listed in `failing` exit with a non-zero status.
    """

    results: dict[str, dict[str, list[tuple[str, float]]]] = field(default_factory=dict)
    failing: set[str] = field(default_factory=set)
    runs: list[tuple[str, str, str]] = field(default_factory=list)  # (tree, import path, filter)
    listings: list[tuple[str, str]] = field(default_factory=list)

    def _benchmarks(self, sandbox: TreeSandbox, import_path: str) -> list[tuple[str, float]]:
        sandbox.ensure_open()
        return self.results.get(sandbox.tree_id, {}).get(import_path, [])

    def run(
        self, sandbox: TreeSandbox, import_path: str, bench_filter: str
    ) -> Iterator[BenchmarkRun]:
        self.runs.append((sandbox.tree_id, import_path, bench_filter))
        pattern = compile_bench_filter(bench_filter)
        for name, ns_per_op in self._benchmarks(sandbox, import_path):
            if pattern.search(name):
                yield make_run(name, ns_per_op)
        if sandbox.tree_id in self.failing:
            raise HarnessFailure(2, "--- FAIL: BenchmarkBroken\n")

    def list_names(self, sandbox: TreeSandbox, import_path: str) -> list[str]:
        self.listings.append((sandbox.tree_id, import_path))
        if sandbox.tree_id in self.failing:
            raise HarnessFailure(2, "--- FAIL: BenchmarkBroken\n")
        return [name for name, _ in self._benchmarks(sandbox, import_path)]
