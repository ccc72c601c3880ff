"""Track Go benchmark results across git history."""

from .bench import BenchmarkRun, BenchmarkRunCollection, parse_benchmark_run, percent_change
from .chain import CommitChainDiff, CommitTestRun, LogOptions
from .config import BenchtrailConfig
from .errors import BenchtrailError

__version__ = "0.1.0"

__all__ = [
    "BenchmarkRun",
    "BenchmarkRunCollection",
    "BenchtrailConfig",
    "BenchtrailError",
    "CommitChainDiff",
    "CommitTestRun",
    "LogOptions",
    "__version__",
    "parse_benchmark_run",
    "percent_change",
]
