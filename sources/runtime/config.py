from __future__ import annotations

import json
import os
from typing import Any, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import ConfigurationError

M = TypeVar("M", bound=BaseModel)


def env_bool(name: str, default: bool, env: Optional[Mapping[str, str]] = None) -> bool:
    v = (env if env is not None else os.environ).get(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def env_int(name: str, default: int, env: Optional[Mapping[str, str]] = None) -> int:
    v = ((env if env is not None else os.environ).get(name) or "").strip()
    if not v:
        return default
    try:
        n = int(v)
        return n if n > 0 else default
    except ValueError:
        return default


def parse_config(model: Type[M], raw: Any, *, what: str) -> M:
    """
    Validate an opaque config blob into `model`.

    Accepts a dict, a JSON object string, an existing model instance or None
    (treated as {}). Every failure surfaces as ConfigurationError.
    """
    if isinstance(raw, model):
        return raw
    if raw is None:
        raw = {}
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ConfigurationError(f"Invalid {what} config: not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Invalid {what} config: expected an object, got {type(raw).__name__}")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {what} config: {e}") from e
