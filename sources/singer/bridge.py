"""
Tap lifecycle manager.

Each tap lives in its own virtualenv under `venv_dir/<tap>`. Readiness checks
are safe from any thread: the first check for a missing tap claims it and
schedules exactly one background install; later checks poll and see the last
install error (if any) until the tap lands in the installed set.

The bridge is an explicitly owned service: build it at startup, hand it to
the drivers that need it, close() it at shutdown.
"""
from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from sources.runtime.errors import ConfigurationError, InstallError, SourceError
from sources.runtime.locking import ClaimSet, ReadWriteLock, file_lock
from sources.runtime.process import run_cmd

from .catalog import RawCatalog, Runner, discover
from .config import BridgeSettings
from .constants import CONNECTOR_NAME, TAP_DIR_PREFIX, TMP_DIR_NAME, VENV_BIN_DIR, VENV_PIP, VENV_PYTHON
from .events import error, info

Installer = Callable[[str], None]


class TapInstallState(str, Enum):
    NOT_INSTALLED = "not_installed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    FAILED = "failed"


def scan_installed_taps(venv_dir: str) -> List[str]:
    """Tap directories already present under the runtime root."""
    try:
        entries = list(os.scandir(venv_dir))
    except FileNotFoundError:
        return []
    return sorted(e.name.strip() for e in entries if e.is_dir() and e.name.startswith(TAP_DIR_PREFIX))


def _check_tap_name(tap: str) -> str:
    name = (tap or "").strip()
    if not name or os.sep in name or "/" in name or name in (".", ".."):
        raise ConfigurationError(f"Invalid singer tap name: {tap!r}")
    return name


class TapBridge:
    """
    Installs Singer taps into per-tap virtualenvs under `venv_dir` and runs
    them there.

    At most `settings.install_workers` installs run at once. A tap scheduled
    beyond that waits in the pool queue with its claim held, so it reports
    INSTALLING (and is not scheduled twice) before its installer has started.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        *,
        installer: Optional[Installer] = None,
        runner: Runner = run_cmd,
    ):
        self.settings = settings
        self.venv_dir = os.path.abspath(settings.venv_dir)
        self.tmp_dir = os.path.join(self.venv_dir, TMP_DIR_NAME)

        self._runner = runner
        self._installer: Installer = installer or self.install_tap

        self._installed = ClaimSet()
        self._in_progress = ClaimSet()
        self._errors: Dict[str, InstallError] = {}
        self._errors_lock = ReadWriteLock()

        self._executor = ThreadPoolExecutor(
            max_workers=settings.install_workers,
            thread_name_prefix="tap-install",
        )

        for tap in scan_installed_taps(self.venv_dir):
            self._installed.add(tap)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **kwargs: Any) -> "TapBridge":
        return cls(BridgeSettings.from_env(env), **kwargs)

    # -----------------------------
    # Paths
    # -----------------------------
    def tap_dir(self, tap: str) -> str:
        return os.path.join(self.venv_dir, _check_tap_name(tap))

    def tap_python(self, tap: str) -> str:
        return os.path.join(self.tap_dir(tap), VENV_BIN_DIR, VENV_PYTHON)

    def tap_pip(self, tap: str) -> str:
        return os.path.join(self.tap_dir(tap), VENV_BIN_DIR, VENV_PIP)

    def tap_executable(self, tap: str) -> str:
        return os.path.join(self.tap_dir(tap), VENV_BIN_DIR, _check_tap_name(tap))

    # -----------------------------
    # Readiness
    # -----------------------------
    def is_tap_ready(self, tap: str) -> Tuple[bool, Optional[InstallError]]:
        """
        (True, None) once installed. Otherwise schedules at most one install
        and returns (False, last_install_error_or_None); callers poll.
        """
        if tap in self._installed:
            return True, None

        self._ensure_tap(tap)
        if tap in self._installed:
            return True, None

        with self._errors_lock.read():
            return False, self._errors.get(tap)

    def _ensure_tap(self, tap: str) -> None:
        if not self.settings.install_taps:
            self._installed.add(tap)
            return

        if tap in self._installed:
            return

        if not self._in_progress.claim(tap):
            return

        try:
            self._executor.submit(self._install_and_record, tap)
        except RuntimeError:
            # executor already shut down
            self._in_progress.release(tap)
            raise

    def _install_and_record(self, tap: str) -> None:
        try:
            info("tap.install.start", tap=tap)
            try:
                self._installer(tap)
            except Exception as e:
                err = e if isinstance(e, InstallError) else InstallError(tap, f"error installing singer tap [{tap}]: {e}")
                if err is not e:
                    err.__cause__ = e
                error("tap.install.failed", tap=tap, error=str(err))
                with self._errors_lock.write():
                    self._errors[tap] = err
                return

            with self._errors_lock.write():
                self._errors.pop(tap, None)
            self._installed.add(tap)
            info("tap.install.ok", tap=tap)
        finally:
            self._in_progress.release(tap)

    def tap_state(self, tap: str) -> TapInstallState:
        if tap in self._installed:
            return TapInstallState.INSTALLED
        if tap in self._in_progress:
            return TapInstallState.INSTALLING
        with self._errors_lock.read():
            failed = tap in self._errors
        return TapInstallState.FAILED if failed else TapInstallState.NOT_INSTALLED

    def install_error(self, tap: str) -> Optional[InstallError]:
        with self._errors_lock.read():
            return self._errors.get(tap)

    def installed_taps(self) -> Set[str]:
        return self._installed.snapshot()

    # -----------------------------
    # Install / update
    # -----------------------------
    def install_tap(self, tap: str) -> None:
        """
        Create the tap's virtualenv, upgrade pip, pip install the tap.
        Blocking; each step has its own timeout. Raises InstallError.
        """
        path = self.tap_dir(tap)
        s = self.settings

        with file_lock(os.path.join(self.venv_dir, ".locks", f"{tap}.lock")):
            try:
                self._runner(s.python_exec_path, ["-m", "venv", path], timeout_s=s.venv_timeout_s, label=CONNECTOR_NAME)
            except SourceError as e:
                raise InstallError(tap, f"error creating singer python venv for [{path}]: {e}") from e

            try:
                self._runner(
                    self.tap_python(tap),
                    ["-m", "pip", "install", "--upgrade", "pip"],
                    timeout_s=s.pip_upgrade_timeout_s,
                    label=CONNECTOR_NAME,
                )
            except SourceError as e:
                raise InstallError(tap, f"error updating pip for [{path}] env: {e}") from e

            try:
                self._runner(self.tap_pip(tap), ["install", tap], timeout_s=s.install_timeout_s, label=CONNECTOR_NAME)
            except SourceError as e:
                raise InstallError(tap, f"error installing singer tap [{tap}]: {e}") from e

    def update_tap(self, tap: str) -> None:
        """
        Synchronously upgrade the tap package. No-op unless update_taps is on.
        Errors are raised to the caller, not cached.
        """
        if not self.settings.update_taps:
            return

        info("tap.update.start", tap=tap)
        self._runner(
            self.tap_pip(tap),
            ["install", tap, "--upgrade"],
            timeout_s=self.settings.update_timeout_s,
            label=CONNECTOR_NAME,
        )
        info("tap.update.ok", tap=tap)

    # -----------------------------
    # Discovery
    # -----------------------------
    def discover(self, tap: str, config_path: Optional[str] = None, config: Any = None) -> RawCatalog:
        return discover(
            tap,
            self.tap_executable(tap),
            self.tmp_dir,
            config_path=config_path,
            config=config,
            timeout_s=self.settings.discover_timeout_s,
            runner=self._runner,
        )

    # -----------------------------
    # Lifetime
    # -----------------------------
    def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "TapBridge":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
