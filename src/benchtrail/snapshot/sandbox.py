import logging
import os
import shutil
import tempfile
from pathlib import Path
from types import TracebackType

from ..errors import CheckoutError, GitCommandError, SandboxStateError
from ..repo.packages import PackageSet

logger = logging.getLogger(__name__)

_WORKSPACE_PREFIX = "benchtrail-"
_INDEX_FILE_NAME = "index"


def remove_workspace(path: Path) -> bool:
    """Best-effort recursive delete. Returns False (and logs) on failure."""
    try:
        shutil.rmtree(path)
        return True
    except FileNotFoundError:
        return True
    except OSError as exc:
        logger.warning("could not delete checkout %s: %s", path, exc)
        return False


class TreeSandbox:
    """A revision's tree checked out into an isolated temporary workspace.

    The sandbox starts unopened. Resolving the tree id is cheap and never
    touches the filesystem; the checkout happens only on `open()` or the first
    `ensure_open()`, since most revisions are served from cache. The workspace
    has GOPATH shape: the tree lives at `<workspace>/src/<root import path>`.

    Use as a context manager so the workspace is removed on every exit path.
    """

    def __init__(self, package_set: PackageSet, revision: str) -> None:
        self.package_set = package_set
        self.revision = revision
        self._tree_id: str | None = None
        self._workspace: Path | None = None

    def __enter__(self) -> "TreeSandbox":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"TreeSandbox(revision={self.revision!r}, workspace={self._workspace!s})"

    @property
    def tree_id(self) -> str:
        if self._tree_id is None:
            self._tree_id = self.package_set.repository.resolve_tree(self.revision)
            logger.debug("treeId of %s is %s", self.revision, self._tree_id)
        return self._tree_id

    @property
    def is_open(self) -> bool:
        return self._workspace is not None

    @property
    def workspace(self) -> Path | None:
        return self._workspace

    def _checkout_path(self, workspace: Path) -> Path:
        root_import_path = self.package_set.root_import_path
        return workspace / "src" / root_import_path if root_import_path else workspace / "src"

    @property
    def checkout_dir(self) -> Path:
        """Root of the checked-out tree, opening the sandbox if needed."""
        return self._checkout_path(self.ensure_open())

    def open(self) -> Path:
        """Check the revision's tree out into a new temporary workspace.

        Returns:
            The workspace directory.

        Raises:
            SandboxStateError: The sandbox is already open.
            CheckoutError: git could not export the tree; nothing is left behind.
        """
        if self._workspace is not None:
            raise SandboxStateError("sandbox already open")

        workspace = Path(tempfile.mkdtemp(prefix=_WORKSPACE_PREFIX))
        checkout = self._checkout_path(workspace)
        logger.debug("sandboxing %s to %s...", self.revision, checkout)
        try:
            checkout.mkdir(parents=True, exist_ok=True)
            self._export_tree(workspace, checkout)
        except GitCommandError as exc:
            remove_workspace(workspace)
            raise CheckoutError(self.revision, str(checkout), exc.detail) from exc
        except OSError as exc:
            remove_workspace(workspace)
            raise CheckoutError(self.revision, str(checkout), str(exc)) from exc

        self._workspace = workspace
        return workspace

    def _export_tree(self, workspace: Path, checkout: Path) -> None:
        # A private index keeps the user's index and work tree untouched
        overrides = {"GIT_INDEX_FILE": str(workspace / _INDEX_FILE_NAME)}
        env = {**os.environ, **overrides}
        repository = self.package_set.repository
        repository.run(["read-tree", self.tree_id], env=env, env_overrides=overrides)
        repository.run(
            ["checkout-index", "--all", "--force", f"--prefix={checkout}{os.sep}"],
            env=env,
            env_overrides=overrides,
        )

    def ensure_open(self) -> Path:
        if self._workspace is None:
            return self.open()
        return self._workspace

    def close(self) -> None:
        """Delete the workspace if present. Safe to call when never opened."""
        if self._workspace is None:
            return
        workspace = self._workspace
        self._workspace = None
        remove_workspace(workspace)


__all__ = ["TreeSandbox", "remove_workspace"]
