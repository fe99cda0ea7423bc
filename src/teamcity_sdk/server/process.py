from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from typing import IO

import psutil

from .errors import ProcessCancelledError, ProcessError, ProcessLaunchError, ProcessTimeoutError
from .types import CommandSpec, ProcessResult

__all__ = [
    "launch_process",
    "run_process",
    "terminate_process_tree",
]

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.2
DEFAULT_TERMINATE_TIMEOUT = 10


def _build_env(spec: CommandSpec) -> dict[str, str]:
    env = os.environ.copy()
    env.update(spec.env)
    return env


def launch_process(spec: CommandSpec, *, stream_output: bool, logger: logging.Logger = logger) -> subprocess.Popen:
    """
    Start the command with stderr merged into stdout.

    When ``stream_output`` is False the merged output goes to the null device.

    Raises:
        ProcessLaunchError: The executable or working directory is unusable.
    """
    logger.debug("Launching %s in [%s]", " ".join(spec.argv), spec.working_dir)
    try:
        return subprocess.Popen(
            list(spec.argv),
            cwd=spec.working_dir,
            env=_build_env(spec),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE if stream_output else subprocess.DEVNULL,
            stderr=subprocess.STDOUT,
            text=stream_output,
            encoding="utf-8" if stream_output else None,
            errors="replace" if stream_output else None,
        )
    except OSError as exc:
        raise ProcessLaunchError(
            f"Failed to launch [{' '.join(spec.argv)}] in [{spec.working_dir}]: {exc}"
        ) from exc


def _forward_output(stream: IO[str], logger: logging.Logger) -> None:
    with stream:
        for line in stream:
            logger.info(line.rstrip("\r\n"))


def _wait_for_exit(
    process: subprocess.Popen,
    *,
    deadline: float | None,
    cancel_event: threading.Event | None,
    poll_interval: float,
) -> int:
    if deadline is None and cancel_event is None:
        return process.wait()

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise ProcessCancelledError(f"Wait for PID {process.pid} was cancelled")
        wait_for = poll_interval
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProcessTimeoutError(f"PID {process.pid} did not exit before its deadline")
            wait_for = min(wait_for, remaining)
        try:
            return process.wait(timeout=wait_for)
        except subprocess.TimeoutExpired:
            continue


def run_process(
    spec: CommandSpec,
    *,
    stream_output: bool,
    logger: logging.Logger = logger,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> ProcessResult:
    """
    Run the command to completion and return its exit code.

    Args:
        spec: Command to run
        stream_output: Forward each output line to ``logger`` at INFO and
            return only after the output stream is closed. Otherwise the
            output is discarded and only process exit is awaited.
        logger: Sink for the child's output lines
        timeout: Optional deadline in seconds; unbounded when None
        cancel_event: Optional event that aborts the wait when set
        poll_interval: Granularity of deadline and cancellation checks

    Raises:
        ProcessLaunchError: The process could not be started.
        ProcessTimeoutError: The deadline expired; the process tree was terminated.
        ProcessCancelledError: ``cancel_event`` was set; the process tree was terminated.
    """
    deadline = time.monotonic() + timeout if timeout is not None else None
    process = launch_process(spec, stream_output=stream_output, logger=logger)

    reader: threading.Thread | None = None
    if stream_output:
        reader = threading.Thread(
            target=_forward_output,
            args=(process.stdout, logger),
            name=f"output-{process.pid}",
            daemon=True,
        )
        reader.start()

    try:
        exit_code = _wait_for_exit(
            process,
            deadline=deadline,
            cancel_event=cancel_event,
            poll_interval=poll_interval,
        )
    except ProcessError:
        terminate_process_tree(process, DEFAULT_TERMINATE_TIMEOUT, logger=logger, context=f"process {process.pid}")
        if reader is not None:
            reader.join(timeout=poll_interval)
        raise

    if reader is not None:
        # At least one poll interval for the last lines, even past the deadline
        remaining = None if deadline is None else max(deadline - time.monotonic(), poll_interval)
        reader.join(timeout=remaining)
        if reader.is_alive():
            terminate_process_tree(process, DEFAULT_TERMINATE_TIMEOUT, logger=logger, context=f"process {process.pid}")
            raise ProcessTimeoutError(f"Output of PID {process.pid} was not closed before its deadline")

    logger.debug("PID %s exited with code %s", process.pid, exit_code)
    return ProcessResult(exit_code=exit_code, pid=process.pid)


def terminate_process_tree(
    process: subprocess.Popen,
    timeout_sec: float,
    *,
    logger: logging.Logger = logger,
    context: str = "process",
) -> None:
    """Terminate ``process`` and its descendants, killing whatever outlives ``timeout_sec``."""
    context_title = context.capitalize()
    logger.info("Terminating %s (PID: %s)...", context, process.pid)

    try:
        parent = psutil.Process(process.pid)
        children = parent.children(recursive=True)

        parent.terminate()
        for child in children:
            try:
                child.terminate()
            except psutil.NoSuchProcess:
                pass

        _, alive = psutil.wait_procs([parent] + children, timeout=timeout_sec)

        if alive:
            logger.warning("%s didn't terminate gracefully, forcing kill...", context_title)
            for p in alive:
                try:
                    p.kill()
                except psutil.NoSuchProcess:
                    pass
            _, alive = psutil.wait_procs(alive, timeout=5)
            if alive:
                logger.error("Failed to kill %s processes: %s", context_title, alive)
            else:
                logger.info("%s killed forcefully.", context_title)
        else:
            logger.info("%s terminated gracefully.", context_title)

    except psutil.NoSuchProcess:
        logger.info("%s already terminated.", context_title)
    finally:
        # reap so no zombie is left behind
        try:
            process.wait(timeout=1)
        except subprocess.TimeoutExpired:
            logger.warning("%s did not report its exit status", context_title)
