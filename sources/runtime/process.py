"""
Bounded-timeout execution of external processes (venv/pip/tap binaries).

Every invocation blocks its caller until the child exits or the deadline
passes. A timeout kills the whole process group and is a hard failure;
nothing here retries.
"""
from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import IO, Iterator, List, Mapping, Optional, Sequence

from .errors import ProcessFailedError, ProcessTimeoutError, SourceConnectionError
from .events import emit

STDERR_TAIL_LINES = 200


@dataclass(frozen=True)
class CmdResult:
    stdout: str
    stderr: str
    returncode: int


def _tail_text(text: str, max_lines: int = STDERR_TAIL_LINES) -> str:
    lines = (text or "").strip().splitlines()
    return "\n".join(lines[-max_lines:])


def _kill_group(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (AttributeError, OSError):
        proc.kill()


def _popen(cmd: List[str], *, text: bool, cwd: Optional[str], env: Optional[Mapping[str, str]]) -> subprocess.Popen:
    try:
        return subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=text,
            encoding="utf-8" if text else None,
            errors="replace" if text else None,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            start_new_session=True,
        )
    except OSError as e:
        raise SourceConnectionError(f"Cannot start [{cmd[0]}]: {e}") from e


def run_cmd(
    command: str,
    args: Sequence[str] = (),
    *,
    timeout_s: float,
    label: str = "process",
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> CmdResult:
    """
    Run a command to completion and capture its output as text.

    Raises ProcessTimeoutError, ProcessFailedError (non-zero exit, stderr tail
    attached) or SourceConnectionError (executable could not be started).
    """
    cmd = [command, *args]
    emit("process", "process.start", connector=label, level="debug", command=command, args=" ".join(args))
    started = time.monotonic()

    proc = _popen(cmd, text=True, cwd=cwd, env=env)
    try:
        out, err = proc.communicate(timeout=timeout_s)
    except subprocess.TimeoutExpired:
        _kill_group(proc)
        proc.communicate()
        emit("process", "process.timeout", connector=label, level="error", command=command, timeout_s=timeout_s)
        raise ProcessTimeoutError(cmd, timeout_s)
    except BaseException:
        _kill_group(proc)
        proc.wait()
        raise

    elapsed_ms = int((time.monotonic() - started) * 1000)
    emit(
        "process",
        "process.exit",
        connector=label,
        level="debug",
        command=command,
        returncode=proc.returncode,
        elapsed_ms=elapsed_ms,
    )
    if proc.returncode != 0:
        raise ProcessFailedError(cmd, proc.returncode, _tail_text(err))
    return CmdResult(stdout=out or "", stderr=err or "", returncode=proc.returncode)


class _StderrTail:
    """Drains a child's stderr on a daemon thread, logging lines and keeping a bounded tail."""

    def __init__(self, label: str, max_lines: int = STDERR_TAIL_LINES) -> None:
        self._label = label
        self._lines: deque = deque(maxlen=max_lines)
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def start(self, stream: Optional[IO[bytes]]) -> None:
        if stream is None:
            return
        self._thread = threading.Thread(target=self._drain, args=(stream,), daemon=True)
        self._thread.start()

    def _drain(self, stream: IO[bytes]) -> None:
        for raw in iter(stream.readline, b""):
            line = raw.decode("utf-8", errors="replace").rstrip("\n")
            if not line:
                continue
            with self._lock:
                self._lines.append(line)
            emit("process", line, connector=self._label, level="debug", source="stderr")

    def join(self, timeout: float) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def tail(self) -> str:
        with self._lock:
            return "\n".join(self._lines)


@contextmanager
def stream_cmd(
    command: str,
    args: Sequence[str] = (),
    *,
    timeout_s: float,
    label: str = "process",
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Iterator[IO[bytes]]:
    """
    Start a command and yield its binary stdout pipe.

    The deadline covers the whole block. Leaving the block with an exception
    terminates the child; a clean exit waits for it and checks the exit code.
    """
    cmd = [command, *args]
    emit("process", "process.start", connector=label, level="debug", command=command, args=" ".join(args))

    proc = _popen(cmd, text=False, cwd=cwd, env=env)
    tail = _StderrTail(label)
    tail.start(proc.stderr)

    timed_out = threading.Event()

    def _expire() -> None:
        timed_out.set()
        _kill_group(proc)

    timer = threading.Timer(timeout_s, _expire)
    timer.daemon = True
    timer.start()
    started = time.monotonic()

    try:
        try:
            yield proc.stdout  # type: ignore[misc]
        except BaseException as exc:
            _kill_group(proc)
            proc.wait()
            if timed_out.is_set():
                emit("process", "process.timeout", connector=label, level="error", command=command, timeout_s=timeout_s)
                raise ProcessTimeoutError(cmd, timeout_s) from exc
            raise

        remaining = max(0.0, timeout_s - (time.monotonic() - started))
        try:
            proc.wait(timeout=remaining)
        except subprocess.TimeoutExpired:
            timed_out.set()
            _kill_group(proc)
            proc.wait()

        if timed_out.is_set():
            emit("process", "process.timeout", connector=label, level="error", command=command, timeout_s=timeout_s)
            raise ProcessTimeoutError(cmd, timeout_s)

        tail.join(timeout=5)
        emit(
            "process",
            "process.exit",
            connector=label,
            level="debug",
            command=command,
            returncode=proc.returncode,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        if proc.returncode != 0:
            raise ProcessFailedError(cmd, proc.returncode, tail.tail())
    finally:
        timer.cancel()
        tail.join(timeout=5)
        for pipe in (proc.stdout, proc.stderr):
            if pipe is not None:
                pipe.close()
