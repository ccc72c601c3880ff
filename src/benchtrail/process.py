import contextlib
import logging
import queue
import shlex
import subprocess  # nosec B404 - git and go are invoked as external collaborators
import threading
import time
from collections.abc import Callable, Iterator, Mapping

import psutil

from .errors import CommandFailedError, ExecutionError

logger = logging.getLogger(__name__)

_EOF = object()
_THREAD_JOIN_TIMEOUT = 5.0
_TERMINATE_GRACE = 2.0  # seconds between SIGTERM and SIGKILL


def format_command(command: list[str], env: Mapping[str, str] | None = None) -> str:
    """Render a command line for the debug log, prefixed by overridden env vars."""
    parts = [f"{key}={value}" for key, value in (env or {}).items()]
    parts.append(shlex.join(command))
    return "$ " + " ".join(parts)


def _stop_process(process: subprocess.Popen[str]) -> None:
    """Terminate `process` and every descendant, killing those still alive after a grace period.

    `go test` runs the compiled test binary as a child, so stopping only the
    direct child would leave the benchmark running.
    """
    try:
        procs = [psutil.Process(process.pid)]
        procs.extend(procs[0].children(recursive=True))
    except psutil.Error:
        procs = []

    for proc in procs:
        with contextlib.suppress(psutil.Error):
            proc.terminate()
    _gone, alive = psutil.wait_procs(procs, timeout=_TERMINATE_GRACE)
    for proc in alive:
        logger.debug("Killing pid %d after %.1fs", proc.pid, _TERMINATE_GRACE)
        with contextlib.suppress(psutil.Error):
            proc.kill()
    process.wait()


def _read_stdout_loop(process: subprocess.Popen[str], lines: "queue.Queue[object]") -> None:
    try:
        if process.stdout is not None:
            for line in process.stdout:
                lines.put(line)
    except (OSError, ValueError) as exc:
        logger.debug("stdout reader stopped: %s", exc)
    finally:
        lines.put(_EOF)


def _drain_stderr_loop(
    process: subprocess.Popen[str],
    chunks: list[str],
    on_stderr: Callable[[str], None] | None,
) -> None:
    if process.stderr is None:
        return
    try:
        for line in process.stderr:
            chunks.append(line)
            if on_stderr is not None:
                on_stderr(line)
    except (OSError, ValueError) as exc:
        logger.debug("stderr reader stopped: %s", exc)


def stream_lines(
    command: list[str],
    *,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    env_overrides: Mapping[str, str] | None = None,
    on_stderr: Callable[[str], None] | None = None,
    timeout: float | None = None,
) -> Iterator[str]:
    """Run `command` and yield its stdout lines while it is still running.

    A reader thread pushes stdout lines into a queue consumed by this generator;
    a second thread drains stderr so a full pipe cannot stall the process.
    The generator finishes only after the process has exited and both readers
    are done.

    Args:
        command: Executable and arguments.
        cwd: Working directory.
        env: Full environment for the process (inherits ours when None).
        env_overrides: Variables that differ from ours; only used for logging.
        on_stderr: Called with each stderr line as it arrives.
        timeout: Seconds before the process tree is killed.

    Yields:
        Stdout lines without their line terminator.

    Raises:
        ExecutionError: The command could not be started or timed out.
        CommandFailedError: The command exited with a non-zero status.
    """
    logger.debug(format_command(command, env_overrides))
    try:
        process = subprocess.Popen(  # nosec B603 - trusted command
            command,
            cwd=cwd,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as exc:
        raise ExecutionError(f"could not start {command[0]}: {exc}") from exc

    lines: queue.Queue[object] = queue.Queue()
    stderr_chunks: list[str] = []
    reader = threading.Thread(
        target=_read_stdout_loop, args=(process, lines), name="stdout-reader", daemon=True
    )
    drainer = threading.Thread(
        target=_drain_stderr_loop,
        args=(process, stderr_chunks, on_stderr),
        name="stderr-drainer",
        daemon=True,
    )
    reader.start()
    drainer.start()

    deadline = time.monotonic() + timeout if timeout is not None else None

    def remaining() -> float | None:
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    returncode: int | None = None
    try:
        while True:
            try:
                item = lines.get(timeout=remaining())
            except queue.Empty:
                raise ExecutionError(f"{command[0]} timed out after {timeout}s") from None
            if item is _EOF:
                break
            yield str(item).rstrip("\r\n")
        try:
            returncode = process.wait(timeout=remaining())
        except subprocess.TimeoutExpired:
            raise ExecutionError(f"{command[0]} timed out after {timeout}s") from None
    finally:
        if returncode is None:
            logger.debug("Stopping %s (pid %d)", command[0], process.pid)
            _stop_process(process)
        reader.join(_THREAD_JOIN_TIMEOUT)
        drainer.join(_THREAD_JOIN_TIMEOUT)
        for stream in (process.stdout, process.stderr):
            if stream is not None:
                with contextlib.suppress(OSError):
                    stream.close()

    if returncode != 0:
        raise CommandFailedError(command, returncode, "".join(stderr_chunks))


__all__ = ["format_command", "stream_lines"]
