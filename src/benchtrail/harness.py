import logging
import os
import subprocess  # nosec B404
from collections.abc import Iterator, Sequence
from functools import cached_property

import click

from .bench.run import BenchmarkRun, parse_benchmark_run
from .config import BenchtrailConfig
from .errors import CommandFailedError, HarnessFailure
from .process import format_command, stream_lines
from .snapshot.sandbox import TreeSandbox

logger = logging.getLogger(__name__)

# Benchmarks only: no regular test name matches `^$`
_SKIP_TESTS = "-run=^$"
# One iteration per benchmark is enough to enumerate names
_LIST_ARGS = ("-benchtime=1x",)
# Lets the sandbox be deleted if modules do get downloaded into it
_WRITABLE_MODCACHE_FLAG = "-modcacherw"
_GO_ENV_TIMEOUT = 30.0


class GoHarness:
    """Runs `go test -bench` against a sandboxed tree and parses its output."""

    def __init__(self, config: BenchtrailConfig, *, echo_stderr: bool = False) -> None:
        self.config = config
        self.echo_stderr = echo_stderr

    def _on_stderr(self, line: str) -> None:
        text = line.rstrip("\r\n")
        logger.debug("go stderr: %s", text)
        if self.echo_stderr:
            click.echo(click.style(text, fg="red") if self.config.colored else text, err=True)

    @cached_property
    def user_module_cache(self) -> str | None:
        """Module cache of the caller's own environment, looked up once.

        The sandbox becomes GOPATH, so without pinning GOMODCACHE go would
        download every dependency into the throwaway workspace.
        """
        if configured := os.environ.get("GOMODCACHE"):
            return configured
        cmd = [self.config.go_command, "env", "GOMODCACHE"]
        logger.debug(format_command(cmd))
        try:
            completed = subprocess.run(  # nosec B603
                cmd, capture_output=True, text=True, check=False, timeout=_GO_ENV_TIMEOUT
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.warning("Cannot query go module cache: %s", exc)
            return None
        if completed.returncode != 0:
            logger.warning("go env GOMODCACHE failed: %s", completed.stderr.strip())
            return None
        return completed.stdout.strip() or None

    def _environment(self, sandbox: TreeSandbox) -> tuple[dict[str, str], dict[str, str]]:
        workspace = sandbox.ensure_open()
        gopath = str(workspace)
        if existing := os.environ.get("GOPATH"):
            gopath = os.pathsep.join((gopath, existing))
        overrides = {"GOPATH": gopath}
        if modcache := self.user_module_cache:
            overrides["GOMODCACHE"] = modcache
        else:
            goflags = os.environ.get("GOFLAGS", "").split()
            if _WRITABLE_MODCACHE_FLAG not in goflags:
                overrides["GOFLAGS"] = " ".join([*goflags, _WRITABLE_MODCACHE_FLAG])
        return {**os.environ, **overrides}, overrides

    def command(
        self, import_path: str, bench_filter: str, extra_args: Sequence[str] = ()
    ) -> list[str]:
        return [
            self.config.go_command,
            "test",
            _SKIP_TESTS,
            f"-bench={bench_filter}",
            *extra_args,
            import_path,
        ]

    def stream(
        self,
        sandbox: TreeSandbox,
        import_path: str,
        bench_filter: str,
        extra_args: Sequence[str] = (),
    ) -> Iterator[BenchmarkRun]:
        """Yield each benchmark result line as soon as the harness prints it.

        Lines that are not benchmark results are ignored.

        Raises:
            HarnessFailure: go exited with a non-zero status.
            ExecutionError: go could not be started or timed out.
        """
        env, overrides = self._environment(sandbox)
        cmd = self.command(import_path, bench_filter, extra_args)
        try:
            for line in stream_lines(
                cmd,
                cwd=str(sandbox.checkout_dir),
                env=env,
                env_overrides=overrides,
                on_stderr=self._on_stderr,
                timeout=self.config.harness_timeout,
            ):
                logger.debug("\t%s", line)
                run = parse_benchmark_run(line)
                if run is not None:
                    yield run
        except CommandFailedError as exc:
            raise HarnessFailure(exc.returncode, exc.stderr) from exc

    def run(
        self, sandbox: TreeSandbox, import_path: str, bench_filter: str
    ) -> Iterator[BenchmarkRun]:
        return self.stream(sandbox, import_path, bench_filter)

    def list_names(self, sandbox: TreeSandbox, import_path: str) -> list[str]:
        """Return the names of all benchmarks in a package, in harness order."""
        names: list[str] = []
        for run in self.stream(sandbox, import_path, ".", _LIST_ARGS):
            if run.name not in names:
                names.append(run.name)
        return names


__all__ = ["GoHarness"]
