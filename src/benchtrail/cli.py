import os
import sys
from collections.abc import Callable
from dataclasses import replace
from functools import wraps
from pathlib import Path
from typing import Any, TypeVar

import click
from dotenv import load_dotenv

from .chain import FAILURE_POLICIES, CommitChainDiff, LogOptions
from .config import DEFAULT_BENCH_FILTER, DEFAULT_THRESHOLD, BenchtrailConfig
from .errors import BenchtrailError
from .harness import GoHarness
from .logging import configure_logging
from .repo.packages import PackageSet, open_package_set
from .snapshot.cache import cache_path, clear_cache

F = TypeVar("F", bound=Callable[..., Any])


def _load_dotenv() -> None:
    dotenv_path = os.getenv("BENCHTRAIL_DOTENV_PATH", "").strip()
    if not dotenv_path:
        load_dotenv()
        return
    path = Path(dotenv_path).expanduser()
    if path.exists():
        load_dotenv(path)
    else:
        click.echo(f"Warning: BENCHTRAIL_DOTENV_PATH does not exist: {dotenv_path}", err=True)
        load_dotenv()  # Fallback to default search


def _fatal(config: BenchtrailConfig, exc: BenchtrailError) -> None:
    message = str(exc)
    click.echo(click.style(message, fg="red") if config.colored else message, err=True)
    sys.exit(1)


def _reports_errors(func: F) -> F:
    """Turn BenchtrailError into a one-line message and exit status 1."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except BenchtrailError as exc:
            config = click.get_current_context().find_object(BenchtrailConfig)
            _fatal(config or BenchtrailConfig(), exc)

    return wrapper  # type: ignore[return-value]


def _open_packages(config: BenchtrailConfig, packages: tuple[str, ...]) -> PackageSet:
    return open_package_set(packages, go=config.go_command, git=config.git_command)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Print debug output, including commands run")
@click.option(
    "--color/--no-color",
    "color",
    default=None,
    help="Colorize output (default: BENCHTRAIL_COLOR env or on)",
)
@click.option(
    "--cache/--no-cache",
    "caching",
    default=None,
    help="Read and write cached benchmark results (default: BENCHTRAIL_CACHING env or on)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, color: bool | None, caching: bool | None) -> None:
    """Track Go benchmark changes across git history."""
    _load_dotenv()
    config = BenchtrailConfig.from_env()
    overrides: dict[str, Any] = {}
    if verbose:
        overrides["verbose"] = True
    if color is not None:
        overrides["colored"] = color
    if caching is not None:
        overrides["caching"] = caching
    if overrides:
        config = replace(config, **overrides)

    configure_logging(
        verbose=config.verbose,
        level_name=config.log_level,
        file_logging=config.file_logging,
    )
    ctx.obj = config


@main.command("log")
@click.option(
    "--revisions",
    "-r",
    "revision_range",
    default=None,
    help="Revision range passed to git log (default: HEAD history)",
)
@click.option(
    "--bench",
    "bench_filter",
    default=DEFAULT_BENCH_FILTER,
    show_default=True,
    help="Run only benchmarks matching this regexp",
)
@click.option(
    "--threshold",
    default=DEFAULT_THRESHOLD,
    show_default=True,
    type=float,
    help="Hide benchmarks whose ns/op changed by less than this many percent",
)
@click.option(
    "--on-failure",
    type=click.Choice(FAILURE_POLICIES),
    default="abort",
    show_default=True,
    help="Stop at a commit whose benchmarks fail, or report it and continue",
)
@click.argument("packages", nargs=-1)
@click.pass_obj
@_reports_errors
def log_command(
    config: BenchtrailConfig,
    revision_range: str | None,
    bench_filter: str,
    threshold: float,
    on_failure: str,
    packages: tuple[str, ...],
) -> None:
    """Show commit logs with benchmark results and their change against the parent."""
    options = LogOptions(
        bench_filter=bench_filter,
        threshold=threshold,
        revision_range=revision_range,
        on_failure=on_failure,  # type: ignore[arg-type]
    )
    options.validate()
    package_set = _open_packages(config, packages)
    harness = GoHarness(config, echo_stderr=True)
    CommitChainDiff(package_set, options, config, harness=harness).run()


@main.group("cache")
def cache_group() -> None:
    """Inspect or remove cached benchmark results."""


@cache_group.command("path")
@click.argument("revision")
@click.argument("packages", nargs=-1)
@click.pass_obj
@_reports_errors
def cache_path_command(config: BenchtrailConfig, revision: str, packages: tuple[str, ...]) -> None:
    """Print cache file locations of PACKAGES at REVISION."""
    package_set = _open_packages(config, packages)
    repository = package_set.repository
    tree_id = repository.resolve_tree(revision)
    for rel_path in package_set.rel_package_paths:
        click.echo(cache_path(repository, tree_id, rel_path, config.cache_dir))


@cache_group.command("clear")
@click.option("--tree", "tree_id", default=None, help="Only remove results of this tree id")
@click.option(
    "--revision",
    default=None,
    help="Only remove results of the tree of this revision",
)
@click.argument("packages", nargs=-1)
@click.pass_obj
@_reports_errors
def cache_clear_command(
    config: BenchtrailConfig,
    tree_id: str | None,
    revision: str | None,
    packages: tuple[str, ...],
) -> None:
    """Remove cached results of the repository holding PACKAGES."""
    if tree_id and revision:
        raise click.UsageError("--tree and --revision are mutually exclusive")
    package_set = _open_packages(config, packages)
    repository = package_set.repository
    if revision:
        tree_id = repository.resolve_tree(revision)
    removed = clear_cache(repository, tree_id, config.cache_dir)
    click.echo(f"Removed {removed}")


if __name__ == "__main__":
    main()
