from __future__ import annotations

import json
import os
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from sources.runtime.errors import ConfigurationError, ProcessFailedError, ProtocolError, SourceConnectionError
from sources.runtime.process import CmdResult, run_cmd

from .constants import CONNECTOR_NAME
from .events import error, info
from .messages import excerpt

Runner = Callable[..., CmdResult]


@dataclass
class RawCatalog:
    """
    Discovered catalog, kept as raw JSON so it can be handed back to the tap
    verbatim (plus forced selection flags).
    """
    streams: List[Dict[str, Any]] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {**self.extra, "streams": self.streams}

    def stream_names(self) -> List[str]:
        names = []
        for s in self.streams:
            n = s.get("tap_stream_id") or s.get("stream")
            if n:
                names.append(str(n))
        return names


def _malformed(reason: str, output: str, stderr: str) -> ProtocolError:
    msg = f"Malformed discovered catalog structure {excerpt(output)}: {reason}"
    if stderr:
        msg += f". {stderr.strip()}"
    return ProtocolError(msg)


def parse_catalog(output: str, stderr: str = "") -> RawCatalog:
    """
    Validate `tap --discover` stdout and force-select everything in it.
    """
    try:
        payload = json.loads(output)
    except ValueError as e:
        msg = f"Error unmarshalling catalog {excerpt(output)} output: {e}"
        if stderr:
            msg += f". {stderr.strip()}"
        raise ProtocolError(msg) from e

    if not isinstance(payload, dict):
        raise _malformed("catalog must be a json object", output, stderr)
    streams = payload.get("streams")
    if not isinstance(streams, list):
        raise _malformed("key 'streams' must be a list", output, stderr)

    for stream in streams:
        if not isinstance(stream, dict):
            raise _malformed("every stream must be an object", output, stderr)
        schema = stream.get("schema")
        if schema is None:
            raise _malformed("key 'schema' doesn't exist", output, stderr)
        if not isinstance(schema, dict):
            raise _malformed(f"value under key 'schema' must be object: {type(schema).__name__}", output, stderr)
        metadata = stream.get("metadata")
        if metadata is None:
            raise _malformed("key 'metadata' doesn't exist", output, stderr)
        if not isinstance(metadata, list):
            raise _malformed(f"value under key 'metadata' must be array: {type(metadata).__name__}", output, stderr)
        for entry in metadata:
            if not isinstance(entry, dict):
                raise _malformed("every 'metadata' entry must be an object", output, stderr)
            inner = entry.get("metadata")
            if inner is not None and not isinstance(inner, dict):
                raise _malformed("value under 'metadata.metadata' must be object", output, stderr)

    extra = {k: v for k, v in payload.items() if k != "streams"}
    return force_select_all(RawCatalog(streams=streams, extra=extra))


def force_select_all(catalog: RawCatalog) -> RawCatalog:
    """
    Mark every stream and every metadata entry selected, whatever the tap proposed.
    """
    for stream in catalog.streams:
        stream["schema"]["selected"] = True
        for entry in stream.get("metadata") or []:
            inner = entry.get("metadata")
            if not isinstance(inner, dict):
                inner = {}
                entry["metadata"] = inner
            inner["selected"] = True
    return catalog


def save_json_file(tmp_dir: str, payload: Any) -> str:
    """
    Write `payload` to a uniquely named file under tmp_dir and return its absolute path.
    """
    try:
        os.makedirs(tmp_dir, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(f"Error creating singer tmp dir [{tmp_dir}]: {e}") from e

    path = os.path.abspath(os.path.join(tmp_dir, f"{uuid.uuid4().hex}.json"))
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, default=str)
    except (OSError, TypeError, ValueError) as e:
        if os.path.exists(path):
            os.remove(path)
        raise ConfigurationError(f"Error writing singer file to {path}: {e}") from e
    return path


@contextmanager
def temp_json_file(tmp_dir: str, payload: Any) -> Iterator[str]:
    path = save_json_file(tmp_dir, payload)
    try:
        yield path
    finally:
        try:
            os.remove(path)
        except OSError as e:
            error("singer.tmp_file.remove_failed", path=path, error=str(e))


@contextmanager
def materialized_config(tmp_dir: str, config_path: Optional[str], config: Any) -> Iterator[str]:
    """
    Yield a config file path: the given one, or a generated file removed on exit.
    """
    if config_path:
        yield config_path
        return
    if config is None:
        raise ConfigurationError("Singer config or config path is required")
    with temp_json_file(tmp_dir, config) as path:
        yield path


def discover(
    tap: str,
    tap_executable: str,
    tmp_dir: str,
    *,
    config_path: Optional[str] = None,
    config: Any = None,
    timeout_s: float,
    runner: Runner = run_cmd,
) -> RawCatalog:
    """
    Run `<tap> -c <config> --discover` and return the force-selected catalog.
    """
    info("discover.start", tap=tap)
    with materialized_config(tmp_dir, config_path, config) as path:
        try:
            res = runner(tap_executable, ["-c", path, "--discover"], timeout_s=timeout_s, label=CONNECTOR_NAME)
        except ProcessFailedError as e:
            raise SourceConnectionError(f"Error singer --discover for [{tap}]: {e}") from e

    catalog = parse_catalog(res.stdout, res.stderr)
    info("discover.ok", tap=tap, streams=len(catalog.streams))
    return catalog
