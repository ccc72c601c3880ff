import math
import re
import struct
from dataclasses import dataclass
from typing import Any

import click

__all__ = ["BENCHMARK_LINE_RE", "BenchmarkRun", "parse_benchmark_run", "percent_change"]

# `go test -bench` result line: name, optional -GOMAXPROCS suffix, iterations, ns/op.
# Sub-benchmark names may contain "-"; only the last -N is taken as the suffix.
BENCHMARK_LINE_RE = re.compile(
    r"^\s*(Benchmark\S*?)(-\d+)?\s+(\d+)\s+(\d+(?:\.\d+)?|\.\d+) ns/op\s*$"
)


def _to_float32(value: float) -> float:
    return struct.unpack("f", struct.pack("f", value))[0]


def percent_change(current: float, previous: float) -> float:
    """Return how much slower `current` is than `previous`, in percent.

    Exactly 0 when both are equal, infinite against a zero baseline.
    """
    if current == previous:
        return 0.0
    if previous == 0:
        return math.copysign(math.inf, current)
    return 100 * (current - previous) / previous


@dataclass
class BenchmarkRun:
    """One measured benchmark: a name, an iteration count and a per-iteration time.

    `ns_per_op_change` is derived, not observed. It stays 0 until the run is
    annotated against a baseline run of the same name.
    """

    line: str  # harness output line this run was parsed from
    name: str
    n: int  # number of iterations
    ns_per_op: float
    ns_per_op_change: float = 0.0  # percent, positive means slower

    def annotate(self, previous: "BenchmarkRun") -> None:
        """Compute `ns_per_op_change` relative to `previous`."""
        self.ns_per_op_change = percent_change(self.ns_per_op, previous.ns_per_op)

    def format(self, *, colored: bool = False) -> str:
        """Return the original output line, with the delta appended when non-zero."""
        if self.ns_per_op_change == 0:
            return self.line
        delta = f"{self.ns_per_op_change:+f}%"
        if colored:
            # more time is worse
            delta = click.style(delta, fg="red" if self.ns_per_op_change > 0 else "green")
        return f"{self.line}\t{delta}"

    def __str__(self) -> str:
        return self.format()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "line": self.line,
            "name": self.name,
            "n": self.n,
            "ns_per_op": self.ns_per_op,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BenchmarkRun":
        return cls(
            line=str(data["line"]),
            name=str(data["name"]),
            n=int(data["n"]),
            ns_per_op=_to_float32(float(data["ns_per_op"])),
        )


def parse_benchmark_run(line: str) -> BenchmarkRun | None:
    """Parse a BenchmarkRun from one line of harness output.

    Args:
        line: Raw output line; a trailing newline is ignored.

    Returns:
        The parsed run, or None if the line is not a benchmark result.
    """
    line = line.rstrip("\r\n")
    match = BENCHMARK_LINE_RE.match(line)
    if match is None:
        return None
    name, _procs, n, ns_per_op = match.groups()
    return BenchmarkRun(
        line=line,
        name=name,
        n=int(n),
        ns_per_op=_to_float32(float(ns_per_op)),
    )
