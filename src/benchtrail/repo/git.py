import logging
import subprocess  # nosec B404
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

from ..errors import CommandFailedError, GitCommandError
from ..process import format_command, stream_lines

logger = logging.getLogger(__name__)


def _format_git_error_detail(stdout: str, stderr: str) -> str:
    stderr_text = (stderr or "").strip()
    if stderr_text:
        return stderr_text
    return (stdout or "").strip()


def run_git(
    repo_path: Path | str | None,
    args: list[str],
    *,
    git: str = "git",
    env: dict[str, str] | None = None,
    env_overrides: Mapping[str, str] | None = None,
) -> str:
    """Run a git command and return its stripped stdout.

    Args:
        repo_path: Directory passed to `git -C`, or None for the current one.
        args: git subcommand and arguments.
        git: git executable.
        env: Full environment for the process (inherits ours when None).
        env_overrides: Variables that differ from ours; only used for logging.

    Raises:
        GitCommandError: git exited with a non-zero status or could not run.
    """
    cmd = [git]
    if repo_path is not None:
        cmd.extend(["-C", str(repo_path)])
    cmd.extend(args)
    logger.debug(format_command(cmd, env_overrides))
    try:
        completed = subprocess.run(  # nosec B603 B607
            cmd,
            check=False,
            capture_output=True,
            text=True,
            env=env,
        )
    except OSError as exc:
        raise GitCommandError(args, -1, str(exc)) from exc
    if completed.returncode == 0:
        return (completed.stdout or "").strip()
    detail = _format_git_error_detail(completed.stdout or "", completed.stderr or "")
    raise GitCommandError(args, completed.returncode, detail)


@dataclass(frozen=True)
class Repository:
    """A git work tree: its root directory and its (absolute) git directory."""

    root: Path
    git_dir: Path
    git: str = "git"

    def run(
        self,
        args: list[str],
        *,
        env: dict[str, str] | None = None,
        env_overrides: Mapping[str, str] | None = None,
    ) -> str:
        return run_git(self.root, args, git=self.git, env=env, env_overrides=env_overrides)

    def resolve_tree(self, revision: str) -> str:
        """Return the tree id of `revision`.

        Two commits with identical contents share one tree id.
        """
        return self.run(["rev-parse", "--verify", f"{revision}^{{tree}}"])

    def iter_commit_ids(self, revision_range: str | None = None) -> Iterator[str]:
        """Stream commit ids of `git log` in the order git prints them.

        Close the iterator (e.g. with `contextlib.closing`) to stop git early.
        """
        args = ["log", "--format=%H"]
        if revision_range:
            args.append(revision_range)
        cmd = [self.git, "-C", str(self.root), *args]
        try:
            for line in stream_lines(cmd):
                commit_id = line.strip()
                if commit_id:
                    yield commit_id
        except CommandFailedError as exc:
            raise GitCommandError(args, exc.returncode, exc.stderr.strip()) from exc

    def show_commit(self, commit_id: str, *, colored: bool = False) -> str:
        """Return the native `git log -1` entry for a commit, verbatim."""
        color = "always" if colored else "never"
        return self.run(["log", "-1", f"--color={color}", commit_id])


def discover_repository(path: Path | str, *, git: str = "git") -> Repository:
    """Return the git repository containing `path`.

    Raises:
        GitCommandError: `path` is not inside a git work tree.
    """
    out = run_git(path, ["rev-parse", "--show-toplevel", "--absolute-git-dir"], git=git)
    lines = out.splitlines()
    if len(lines) != 2:
        raise GitCommandError(["rev-parse", "--show-toplevel"], 0, f"unexpected output: {out!r}")
    root, git_dir = lines
    return Repository(root=Path(root).resolve(), git_dir=Path(git_dir).resolve(), git=git)


__all__ = ["Repository", "discover_repository", "run_git"]
