import logging
import posixpath
import subprocess  # nosec B404
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..errors import ExecutionError, GitCommandError, InvalidArgument, ResolutionError
from ..process import format_command
from .git import Repository, discover_repository

logger = logging.getLogger(__name__)

# go list template: one "<dir>\t<import path>" line per package
_GO_LIST_FORMAT = "{{.Dir}}\t{{.ImportPath}}"


@dataclass(frozen=True)
class GoListEntry:
    """One package reported by `go list`."""

    dir: str
    import_path: str


@dataclass(frozen=True)
class PackageSet:
    """Go packages within one git repository, as selected on the command line."""

    repository: Repository
    root_import_path: str  # import path of the repository root
    rel_package_paths: tuple[str, ...]  # package dirs relative to the root, "." for the root
    selectors: tuple[str, ...] = ()  # as given by the user, possibly patterns

    def import_path(self, rel_path: str) -> str:
        return join_import_path(self.root_import_path, rel_path)


def join_import_path(root_import_path: str, rel_path: str) -> str:
    if rel_path in (".", ""):
        return root_import_path
    if not root_import_path:
        return rel_path
    return posixpath.join(root_import_path, rel_path)


def root_import_path_for(import_path: str, rel_path: str) -> str:
    """Walk `import_path` up by as many segments as `rel_path` has.

    >>> root_import_path_for("example.com/mod/pkg/sub", "pkg/sub")
    'example.com/mod'
    """
    root = import_path
    rel = rel_path
    while rel not in (".", ""):
        root = posixpath.dirname(root)
        rel = posixpath.dirname(rel)
    return root


def resolve_packages(selectors: Sequence[str], *, go: str = "go") -> list[GoListEntry]:
    """Return location and import path for each package.

    Args:
        selectors: Package paths or patterns understood by `go list`.
        go: go executable.

    Raises:
        ResolutionError: `go list` rejected the selectors.
        ExecutionError: go could not be started.
    """
    cmd = [go, "list", "-f", _GO_LIST_FORMAT, *selectors]
    logger.debug(format_command(cmd))
    try:
        completed = subprocess.run(  # nosec B603 B607
            cmd,
            check=False,
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        raise ExecutionError(f"could not start {go}: {exc}") from exc

    if completed.returncode != 0:
        detail = (completed.stderr or completed.stdout or "").strip()
        raise ResolutionError(f"cannot resolve packages {' '.join(selectors)}: {detail}")

    entries: list[GoListEntry] = []
    for line in (completed.stdout or "").splitlines():
        if not line.strip():
            continue
        parts = line.split("\t", 1)
        if len(parts) != 2:
            raise ResolutionError(f"unexpected go list output: {line}")
        entries.append(GoListEntry(dir=parts[0], import_path=parts[1]))
    return entries


def _rel_package_path(repository: Repository, package_dir: str) -> str:
    try:
        rel = Path(package_dir).resolve().relative_to(repository.root)
    except ValueError as exc:
        raise ResolutionError(
            f"package {package_dir} is outside repository {repository.root}"
        ) from exc
    return rel.as_posix()


def open_package_set(
    selectors: Sequence[str], *, go: str = "go", git: str = "git"
) -> PackageSet:
    """Resolve package selectors into a PackageSet rooted at one git repository.

    Raises:
        InvalidArgument: No selectors were given.
        ResolutionError: Nothing matched, a package is outside GOPATH/modules or
            outside git, or the packages span several repositories.
    """
    if not selectors:
        raise InvalidArgument("packages are not specified")

    entries = resolve_packages(selectors, go=go)
    if not entries:
        raise ResolutionError("packages not found")
    for entry in entries:
        if entry.import_path == "_" + entry.dir:
            raise ResolutionError(f"package {entry.dir} is not under a $GOPATH or module")
    logger.debug("Resolved packages: %s", entries)

    repository: Repository | None = None
    root_import_path = ""
    rel_paths: list[str] = []
    for entry in entries:
        try:
            entry_repo = discover_repository(entry.dir, git=git)
        except GitCommandError as exc:
            raise ResolutionError(
                f"package {entry.dir} is not in a git repository: {exc.detail}"
            ) from exc

        if repository is None:
            repository = entry_repo
            rel = _rel_package_path(repository, entry.dir)
            root_import_path = root_import_path_for(entry.import_path, rel)
        elif entry_repo.root != repository.root:
            raise ResolutionError("packages span multiple git repositories")
        else:
            rel = _rel_package_path(repository, entry.dir)

        if join_import_path(root_import_path, rel) != entry.import_path:
            raise ResolutionError(
                f"package {entry.import_path} does not match its location {rel} "
                f"under root import path {root_import_path}"
            )
        if rel not in rel_paths:
            rel_paths.append(rel)

    assert repository is not None
    return PackageSet(
        repository=repository,
        root_import_path=root_import_path,
        rel_package_paths=tuple(rel_paths),
        selectors=tuple(selectors),
    )


__all__ = [
    "GoListEntry",
    "PackageSet",
    "join_import_path",
    "open_package_set",
    "resolve_packages",
    "root_import_path_for",
]
