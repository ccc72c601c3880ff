from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from support import GitRepo, requires_go

from benchtrail.chain import CommitChainDiff, LogOptions
from benchtrail.cli import main
from benchtrail.config import BenchtrailConfig
from benchtrail.harness import GoHarness
from benchtrail.repo.packages import open_package_set
from benchtrail.snapshot import PackageSetSnapshot, TreeSandbox

GO_MOD = "module example.com/proj\n\ngo 1.18\n"

BENCH_TEST = """\
package pkg

import "testing"

func BenchmarkSum(b *testing.B) {
\tfor i := 0; i < b.N; i++ {
\t\tSum(100)
\t}
}
"""


def _sum(body: str) -> str:
    return f"package pkg\n\nfunc Sum(n int) int {{\n{body}}}\n"


FAST = _sum("\treturn n * (n - 1) / 2\n")
SLOW = _sum("\tt := 0\n\tfor i := 0; i < n; i++ {\n\t\tt += i\n\t}\n\treturn t\n")


def _bench_lines(output: str) -> list[str]:
    return [line for line in output.splitlines() if line.startswith("BenchmarkSum")]


@pytest.fixture
def go_repo(git_repo: GitRepo, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> GitRepo:
    git_repo.commit(
        "add sum",
        {"go.mod": GO_MOD, "pkg/sum.go": SLOW, "pkg/sum_test.go": BENCH_TEST},
    )
    git_repo.commit("closed form sum", {"pkg/sum.go": FAST})
    monkeypatch.chdir(git_repo.root)
    return git_repo


@requires_go
@pytest.mark.integration
class TestLogWithGo:
    def test_every_commit_reports_benchmark(self, go_repo: GitRepo, tmp_path: Path) -> None:
        config = BenchtrailConfig(colored=False, cache_dir=str(tmp_path / "cache"))
        package_set = open_package_set(["./pkg"])
        assert package_set.rel_package_paths == ("pkg",)
        assert package_set.root_import_path == "example.com/proj"

        out: list[str] = []
        CommitChainDiff(
            package_set,
            LogOptions(threshold=0),
            config,
            harness=GoHarness(config),
            out=out.append,
        ).run()

        bench_lines = [line for line in out if line.startswith("BenchmarkSum")]
        assert len(bench_lines) == 2
        assert "%" not in bench_lines[-1]

    def test_second_run_is_served_from_cache(
        self, go_repo: GitRepo, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("BENCHTRAIL_CACHE_DIR", str(tmp_path / "cache"))
        runner = CliRunner()
        first = runner.invoke(main, ["--no-color", "log", "--threshold", "0", "./pkg"])
        assert first.exit_code == 0, first.output

        # packages are resolved up front; a missing go binary proves nothing is rerun
        package_set = open_package_set(["./pkg"])
        monkeypatch.setenv("BENCHTRAIL_GO", "benchtrail-no-such-go")
        with patch("benchtrail.cli.open_package_set", return_value=package_set):
            second = runner.invoke(main, ["--no-color", "log", "--threshold", "0", "./pkg"])

        assert second.exit_code == 0, second.output
        assert _bench_lines(second.output) == _bench_lines(first.output)
        assert len(_bench_lines(first.output)) == 2


SUB_BENCH_TEST = """\
package pkg

import "testing"

func BenchmarkA(b *testing.B) {
\tfor _, name := range []string{"x", "y"} {
\t\tb.Run(name, func(b *testing.B) {
\t\t\tfor i := 0; i < b.N; i++ {
\t\t\t\tSum(10)
\t\t\t}
\t\t})
\t}
}
"""


@requires_go
@pytest.mark.integration
class TestSubBenchmarksWithGo:
    def test_missing_sub_benchmark_is_run_from_cache_state(
        self, git_repo: GitRepo, clean_env: None, tmp_path: Path
    ) -> None:
        git_repo.commit(
            "sub benchmarks",
            {"go.mod": GO_MOD, "pkg/sum.go": FAST, "pkg/sum_test.go": SUB_BENCH_TEST},
        )
        config = BenchtrailConfig(colored=False, cache_dir=str(tmp_path / "cache"))
        harness = GoHarness(config)
        package_set = git_repo.package_set()

        def get(bench_filter: str) -> list[str]:
            with TreeSandbox(package_set, "HEAD") as sandbox:
                snapshot = PackageSetSnapshot(package_set, sandbox, harness, config)
                return snapshot.get_benchmarks(bench_filter)["pkg"].names()

        assert get("A/x") == ["BenchmarkA/x"]
        assert get(".") == ["BenchmarkA/x", "BenchmarkA/y"]
