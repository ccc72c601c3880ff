class BenchtrailError(Exception):
    """Base class for errors reported to the user as a single line."""

    error_code = "BENCHTRAIL_ERROR"


class InvalidArgument(BenchtrailError):
    """Bad threshold, bad benchmark filter or no packages given."""

    error_code = "INVALID_ARGUMENT"


class ResolutionError(BenchtrailError):
    """Package selectors could not be resolved to one git repository."""

    error_code = "RESOLUTION_ERROR"


class GitCommandError(BenchtrailError):
    """A git invocation exited with a non-zero status."""

    error_code = "GIT_ERROR"

    def __init__(self, args: list[str], returncode: int, detail: str) -> None:
        self.args_list = args
        self.returncode = returncode
        self.detail = detail
        suffix = f": {detail}" if detail else ""
        self.message = f"git {' '.join(args)} failed (code {returncode}){suffix}"
        super().__init__(self.message)


class CheckoutError(BenchtrailError):
    """Exporting a revision's tree into a sandbox failed."""

    error_code = "CHECKOUT_ERROR"

    def __init__(self, revision: str, target: str, diagnostic: str) -> None:
        self.revision = revision
        self.target = target
        self.diagnostic = diagnostic
        self.message = f"could not checkout revision {revision} to {target}: {diagnostic}"
        super().__init__(self.message)


class SandboxStateError(BenchtrailError):
    error_code = "SANDBOX_STATE"


class HarnessFailure(BenchtrailError):
    """The benchmark harness exited with a non-zero status."""

    error_code = "HARNESS_FAILURE"

    def __init__(self, returncode: int, stderr: str) -> None:
        self.returncode = returncode
        self.stderr = stderr
        self.message = f"benchmarks failed (exit {returncode})"
        super().__init__(self.message)


class CommandFailedError(BenchtrailError):
    """An external command exited with a non-zero status."""

    error_code = "COMMAND_FAILED"

    def __init__(self, command: list[str], returncode: int, stderr: str) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip()
        suffix = f": {detail}" if detail else ""
        name = command[0] if command else "command"
        self.message = f"{name} exited with code {returncode}{suffix}"
        super().__init__(self.message)


class ExecutionError(BenchtrailError):
    """The harness could not be started or behaved unexpectedly."""

    error_code = "EXECUTION_ERROR"


class CacheIOError(BenchtrailError):
    """Reading or writing a persisted benchmark cache failed."""

    error_code = "CACHE_IO_ERROR"

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        self.message = f"cache {path}: {reason}"
        super().__init__(self.message)


class DuplicateBenchmarkError(BenchtrailError):
    error_code = "DUPLICATE_BENCHMARK"

    def __init__(self, name: str) -> None:
        self.name = name
        self.message = f"benchmark {name} with this name is already present"
        super().__init__(self.message)


__all__ = [
    "BenchtrailError",
    "CacheIOError",
    "CheckoutError",
    "CommandFailedError",
    "DuplicateBenchmarkError",
    "ExecutionError",
    "GitCommandError",
    "HarnessFailure",
    "InvalidArgument",
    "ResolutionError",
    "SandboxStateError",
]
