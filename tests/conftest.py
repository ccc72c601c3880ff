import logging
import os
import shutil
from collections.abc import Iterator
from pathlib import Path

import pytest
from support import FakeHarness, GitRepo

from benchtrail.config import BenchtrailConfig


@pytest.fixture
def git_repo(tmp_path: Path) -> GitRepo:
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    root = tmp_path / "repo"
    root.mkdir()
    return GitRepo(root)


@pytest.fixture
def config(tmp_path: Path) -> BenchtrailConfig:
    return BenchtrailConfig(colored=False, cache_dir=str(tmp_path / "cache"))


@pytest.fixture
def harness() -> FakeHarness:
    return FakeHarness()


@pytest.fixture(autouse=True)
def reset_package_logger() -> Iterator[None]:
    """Undo configure_logging so caplog sees records from every test."""
    yield
    logger = logging.getLogger("benchtrail")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove BENCHTRAIL_* variables so defaults apply."""
    for name in list(os.environ):
        if name.startswith("BENCHTRAIL_"):
            monkeypatch.delenv(name)
