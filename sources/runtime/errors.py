from __future__ import annotations

from typing import Optional, Sequence


class SourceError(Exception):
    """Base class for every error raised by the extraction core."""


class ConfigurationError(SourceError, ValueError):
    """Missing or invalid settings. Fatal, never retried."""


class SourceConnectionError(SourceError, ConnectionError):
    """External process or service unreachable. Retry is the orchestrator's call."""


class ProcessFailedError(SourceConnectionError):
    def __init__(self, command: Sequence[str], returncode: int, stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        msg = f"Command {self.command[0] if self.command else '?'} exited with code {returncode}"
        if stderr:
            msg += f": {stderr}"
        super().__init__(msg)


class ProcessTimeoutError(SourceConnectionError, TimeoutError):
    def __init__(self, command: Sequence[str], timeout_s: float):
        self.command = list(command)
        self.timeout_s = float(timeout_s)
        super().__init__(
            f"Command {self.command[0] if self.command else '?'} timed out after {self.timeout_s:g}s"
        )


class ProtocolError(SourceError):
    """Malformed tap output line or catalog shape. Fatal for the current sync."""

    def __init__(self, message: str, line: Optional[str] = None):
        super().__init__(message)
        self.line = line


class InstallError(SourceError):
    def __init__(self, tap: str, message: str):
        super().__init__(message)
        self.tap = tap


class TapNotReadyError(SourceError):
    def __init__(self, tap: str, cause: Optional[BaseException] = None):
        self.tap = tap
        self.cause = cause
        msg = f"Singer tap [{tap}] is not installed yet"
        if cause is not None:
            msg += f": last install attempt failed: {cause}"
        super().__init__(msg)
