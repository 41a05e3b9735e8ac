from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from sources.runtime.config import env_bool, env_int, parse_config

from .constants import (
    DEFAULT_INSTALL_WORKERS,
    DISCOVER_TIMEOUT_S,
    PIP_UPGRADE_TIMEOUT_S,
    SYNC_TIMEOUT_S,
    TAP_INSTALL_TIMEOUT_S,
    TAP_UPDATE_TIMEOUT_S,
    VENV_TIMEOUT_S,
)


def _not_blank(v: str, what: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError(f"Singer bridge {what} can't be empty")
    return v


class BridgeSettings(BaseModel):
    python_exec_path: str = Field(default="python3")
    venv_dir: str
    install_taps: bool = Field(default=True)
    update_taps: bool = Field(default=False)
    install_workers: int = Field(default=DEFAULT_INSTALL_WORKERS, ge=1, le=64)

    venv_timeout_s: float = Field(default=VENV_TIMEOUT_S, gt=0)
    pip_upgrade_timeout_s: float = Field(default=PIP_UPGRADE_TIMEOUT_S, gt=0)
    install_timeout_s: float = Field(default=TAP_INSTALL_TIMEOUT_S, gt=0)
    update_timeout_s: float = Field(default=TAP_UPDATE_TIMEOUT_S, gt=0)
    discover_timeout_s: float = Field(default=DISCOVER_TIMEOUT_S, gt=0)
    sync_timeout_s: float = Field(default=SYNC_TIMEOUT_S, gt=0)

    @field_validator("python_exec_path")
    @classmethod
    def _python_not_blank(cls, v: str) -> str:
        return _not_blank(v, "python exec path")

    @field_validator("venv_dir")
    @classmethod
    def _venv_not_blank(cls, v: str) -> str:
        return _not_blank(v, "venv dir")

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None, **overrides: Any) -> "BridgeSettings":
        e = env if env is not None else os.environ
        raw: Dict[str, Any] = {
            "python_exec_path": (e.get("SOURCES_PYTHON_EXEC_PATH") or "python3").strip(),
            "venv_dir": (e.get("SOURCES_VENV_DIR") or "").strip(),
            "install_taps": env_bool("SOURCES_INSTALL_TAPS", True, e),
            "update_taps": env_bool("SOURCES_UPDATE_TAPS", False, e),
            "install_workers": env_int("SOURCES_INSTALL_WORKERS", DEFAULT_INSTALL_WORKERS, e),
        }
        raw.update(overrides)
        return parse_config(BridgeSettings, raw, what="singer bridge")


class TapSourceConfig(BaseModel):
    """
    Source config of a tap-backed driver.

    config / config_path: tap config inline or as a file
    catalog / catalog_path: catalog inline or as a file; discovered when both are absent
    properties_path: legacy `--properties` catalog file
    """
    tap: str
    config: Optional[Dict[str, Any]] = None
    config_path: Optional[str] = None
    catalog: Optional[Dict[str, Any]] = None
    catalog_path: Optional[str] = None
    properties_path: Optional[str] = None
    stream_table_names: Dict[str, str] = Field(default_factory=dict)
    table_name_prefix: str = ""

    @field_validator("tap")
    @classmethod
    def _tap_not_blank(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("tap is required")
        return v

    @model_validator(mode="after")
    def _config_present(self) -> "TapSourceConfig":
        if self.config is None and not self.config_path:
            raise ValueError("either config or config_path is required")
        if self.catalog is not None and (self.catalog_path or self.properties_path):
            raise ValueError("catalog can't be combined with catalog_path/properties_path")
        return self
