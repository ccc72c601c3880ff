from .collection import BenchmarkRunCollection
from .filter import BenchFilter, compile_bench_filter, exact_names_filters
from .run import BenchmarkRun, parse_benchmark_run, percent_change

__all__ = [
    "BenchFilter",
    "BenchmarkRun",
    "BenchmarkRunCollection",
    "compile_bench_filter",
    "exact_names_filters",
    "parse_benchmark_run",
    "percent_change",
]
