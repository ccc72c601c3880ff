import bisect
from collections.abc import Iterable, Iterator
from operator import attrgetter
from typing import Any

from ..errors import DuplicateBenchmarkError
from .run import BenchmarkRun

__all__ = ["BenchmarkRunCollection"]

_by_name = attrgetter("name")


class BenchmarkRunCollection:
    """Benchmark runs kept sorted by name, at most one run per name."""

    def __init__(self, runs: Iterable[BenchmarkRun] = ()) -> None:
        self._runs: list[BenchmarkRun] = []
        for run in runs:
            self.add(run)

    def _search(self, name: str) -> int:
        return bisect.bisect_left(self._runs, name, key=_by_name)

    def find(self, name: str) -> BenchmarkRun | None:
        i = self._search(name)
        if i < len(self._runs) and self._runs[i].name == name:
            return self._runs[i]
        return None

    def add(self, run: BenchmarkRun) -> None:
        """Insert `run` keeping the collection sorted.

        Raises:
            DuplicateBenchmarkError: A run with the same name is already present.
                The collection is left unchanged.
        """
        i = self._search(run.name)
        if i < len(self._runs) and self._runs[i].name == run.name:
            raise DuplicateBenchmarkError(run.name)
        self._runs.insert(i, run)

    def names(self) -> list[str]:
        return [run.name for run in self._runs]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.find(name) is not None

    def __iter__(self) -> Iterator[BenchmarkRun]:
        return iter(self._runs)

    def __len__(self) -> int:
        return len(self._runs)

    def __getitem__(self, index: int) -> BenchmarkRun:
        return self._runs[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BenchmarkRunCollection):
            return NotImplemented
        return self._runs == other._runs

    def __repr__(self) -> str:
        return f"BenchmarkRunCollection({self.names()!r})"

    def to_list(self) -> list[dict[str, Any]]:
        return [run.to_dict() for run in self._runs]

    @classmethod
    def from_list(cls, data: Iterable[dict[str, Any]]) -> "BenchmarkRunCollection":
        return cls(BenchmarkRun.from_dict(item) for item in data)
