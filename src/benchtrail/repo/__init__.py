from .git import Repository, discover_repository, run_git
from .packages import GoListEntry, PackageSet, open_package_set, resolve_packages

__all__ = [
    "GoListEntry",
    "PackageSet",
    "Repository",
    "discover_repository",
    "open_package_set",
    "resolve_packages",
    "run_git",
]
