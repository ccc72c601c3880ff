import json
import os
import subprocess
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from support import GitRepo, requires_go

from benchtrail.config import BenchtrailConfig
from benchtrail.errors import ExecutionError, HarnessFailure
from benchtrail.harness import GoHarness
from benchtrail.snapshot.sandbox import TreeSandbox

FAKE_GO = """\
import json
import os
import sys

with open(os.environ["FAKE_GO_LOG"], "a") as log:
    log.write(json.dumps({"argv": sys.argv[1:], "cwd": os.getcwd(),
                          "gopath": os.environ.get("GOPATH", ""),
                          "gomodcache": os.environ.get("GOMODCACHE", ""),
                          "goflags": os.environ.get("GOFLAGS", "")}) + "\\n")

if sys.argv[1:] == ["env", "GOMODCACHE"]:
    if "FAKE_GOMODCACHE" not in os.environ:
        print("go: cannot find GOROOT", file=sys.stderr)
        sys.exit(1)
    print(os.environ["FAKE_GOMODCACHE"])
    sys.exit(0)

print("goos: linux")
print("BenchmarkParse-8   \\t 2000\\t   512 ns/op")
print("BenchmarkParse-8   \\t 2000\\t   510 ns/op")
sys.stdout.flush()
print("warming up", file=sys.stderr)
print("BenchmarkFormat-8  \\t 1000\\t  1024.5 ns/op")
print("PASS")
sys.exit(int(os.environ.get("FAKE_GO_EXIT", "0")))
"""


@pytest.fixture
def fake_go(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    if sys.platform == "win32":
        pytest.skip("fake go needs a POSIX shebang")
    script = tmp_path / "fake-go"
    script.write_text(f"#!{sys.executable}\n{FAKE_GO}")
    script.chmod(0o755)
    log = tmp_path / "go-calls.jsonl"
    monkeypatch.setenv("FAKE_GO_LOG", str(log))
    monkeypatch.setenv("GOPATH", "/existing/gopath")
    monkeypatch.setenv("GOMODCACHE", "/existing/modcache")
    monkeypatch.delenv("GOFLAGS", raising=False)
    return script


def _calls(tmp_path: Path) -> list[dict[str, Any]]:
    lines = (tmp_path / "go-calls.jsonl").read_text().splitlines()
    return [json.loads(line) for line in lines]


@pytest.fixture
def sandbox(git_repo: GitRepo) -> Iterator[TreeSandbox]:
    git_repo.commit("initial", {"pkg/a.go": "package pkg\n"})
    with TreeSandbox(git_repo.package_set(), "HEAD") as sandbox:
        yield sandbox


class TestGoHarness:
    def test_command(self) -> None:
        harness = GoHarness(BenchtrailConfig(go_command="go1.22"))
        assert harness.command("example.com/proj/pkg", "Parse") == [
            "go1.22",
            "test",
            "-run=^$",
            "-bench=Parse",
            "example.com/proj/pkg",
        ]

    def test_run_parses_benchmark_lines(
        self, fake_go: Path, sandbox: TreeSandbox, tmp_path: Path
    ) -> None:
        harness = GoHarness(BenchtrailConfig(go_command=str(fake_go)))
        runs = list(harness.run(sandbox, "example.com/proj/pkg", "."))

        assert [(run.name, run.ns_per_op) for run in runs] == [
            ("BenchmarkParse", 512),
            ("BenchmarkParse", 510),
            ("BenchmarkFormat", 1024.5),
        ]
        (call,) = _calls(tmp_path)
        assert call["argv"] == ["test", "-run=^$", "-bench=.", "example.com/proj/pkg"]
        assert Path(call["cwd"]).resolve() == sandbox.checkout_dir.resolve()
        workspace = str(sandbox.workspace)
        assert call["gopath"] == os.pathsep.join((workspace, "/existing/gopath"))
        assert call["gomodcache"] == "/existing/modcache"

    def test_list_names_runs_once_and_deduplicates(
        self, fake_go: Path, sandbox: TreeSandbox, tmp_path: Path
    ) -> None:
        harness = GoHarness(BenchtrailConfig(go_command=str(fake_go)))
        names = harness.list_names(sandbox, "example.com/proj/pkg")

        assert names == ["BenchmarkParse", "BenchmarkFormat"]
        (call,) = _calls(tmp_path)
        assert "-benchtime=1x" in call["argv"]

    def test_failure(
        self, fake_go: Path, sandbox: TreeSandbox, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FAKE_GO_EXIT", "2")
        harness = GoHarness(BenchtrailConfig(go_command=str(fake_go)))
        runs = harness.run(sandbox, "example.com/proj/pkg", ".")

        with pytest.raises(HarnessFailure) as exc_info:
            list(runs)
        assert exc_info.value.returncode == 2
        assert "warming up" in exc_info.value.stderr
        assert str(exc_info.value) == "benchmarks failed (exit 2)"

    def test_echoes_stderr(
        self, fake_go: Path, sandbox: TreeSandbox, capsys: pytest.CaptureFixture[str]
    ) -> None:
        config = BenchtrailConfig(go_command=str(fake_go), colored=False)
        harness = GoHarness(config, echo_stderr=True)
        list(harness.run(sandbox, "example.com/proj/pkg", "."))
        assert "warming up" in capsys.readouterr().err

    def test_missing_go(self, sandbox: TreeSandbox) -> None:
        harness = GoHarness(BenchtrailConfig(go_command="benchtrail-no-such-go"))
        with pytest.raises(ExecutionError):
            list(harness.run(sandbox, "example.com/proj/pkg", "."))


class TestModuleCache:
    def test_asks_go_once_when_unset(
        self,
        fake_go: Path,
        sandbox: TreeSandbox,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv("GOMODCACHE")
        monkeypatch.setenv("FAKE_GOMODCACHE", "/home/user/go/pkg/mod")
        harness = GoHarness(BenchtrailConfig(go_command=str(fake_go)))
        list(harness.run(sandbox, "example.com/proj/pkg", "."))
        list(harness.run(sandbox, "example.com/proj/pkg", "Parse"))

        query, first, second = _calls(tmp_path)
        assert query["argv"] == ["env", "GOMODCACHE"]
        assert query["gopath"] == "/existing/gopath"
        assert first["gomodcache"] == second["gomodcache"] == "/home/user/go/pkg/mod"
        assert "-modcacherw" not in first["goflags"]

    def test_unknown_cache_keeps_downloads_removable(
        self,
        fake_go: Path,
        sandbox: TreeSandbox,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv("GOMODCACHE")
        monkeypatch.setenv("GOFLAGS", "-mod=mod")
        harness = GoHarness(BenchtrailConfig(go_command=str(fake_go)))
        list(harness.run(sandbox, "example.com/proj/pkg", "."))

        _query, call = _calls(tmp_path)
        assert call["gomodcache"] == ""
        assert call["goflags"] == "-mod=mod -modcacherw"


@requires_go
class TestRealGo:
    def test_runs_package_benchmarks(self, git_repo: GitRepo) -> None:
        git_repo.commit(
            "bench",
            {
                "go.mod": "module example.com/proj\n\ngo 1.18\n",
                "pkg/pkg.go": "package pkg\n\nfunc Sum(n int) int {\n"
                "\tt := 0\n\tfor i := 0; i < n; i++ {\n\t\tt += i\n\t}\n\treturn t\n}\n",
                "pkg/pkg_test.go": "package pkg\n\nimport \"testing\"\n\n"
                "func BenchmarkSum(b *testing.B) {\n"
                "\tfor i := 0; i < b.N; i++ {\n\t\tSum(10)\n\t}\n}\n",
            },
        )
        harness = GoHarness(BenchtrailConfig())
        with TreeSandbox(git_repo.package_set(), "HEAD") as sandbox:
            names = harness.list_names(sandbox, "example.com/proj/pkg")
        assert names == ["BenchmarkSum"]

    def test_module_cache_stays_outside_sandbox(self, git_repo: GitRepo) -> None:
        git_repo.commit("initial", {"go.mod": "module example.com/proj\n\ngo 1.18\n"})
        harness = GoHarness(BenchtrailConfig())
        with TreeSandbox(git_repo.package_set(), "HEAD") as sandbox:
            env, _overrides = harness._environment(sandbox)
            completed = subprocess.run(
                ["go", "env", "GOMODCACHE"],
                cwd=sandbox.checkout_dir,
                env=env,
                capture_output=True,
                text=True,
                check=True,
            )
            modcache = Path(completed.stdout.strip()).resolve()
            assert not modcache.is_relative_to(sandbox.workspace.resolve())
