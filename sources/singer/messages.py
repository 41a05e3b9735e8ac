from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from sources.runtime.errors import ProtocolError

from .constants import RECORD, SCHEMA, STATE

# Error messages embed the offending line, bounded so a huge record can't flood logs.
MAX_LINE_IN_ERROR = 2000


@dataclass(frozen=True)
class SchemaMessage:
    stream: str
    schema: Dict[str, Any]
    key_properties: List[str] = field(default_factory=list)
    type: str = SCHEMA


@dataclass(frozen=True)
class StateMessage:
    value: Any
    type: str = STATE


@dataclass(frozen=True)
class RecordMessage:
    stream: str
    record: Dict[str, Any]
    type: str = RECORD


Message = Union[SchemaMessage, StateMessage, RecordMessage]


def excerpt(line: str) -> str:
    if len(line) <= MAX_LINE_IN_ERROR:
        return line
    return line[:MAX_LINE_IN_ERROR] + "…"


def decode_line(line: str) -> Message:
    """
    Decode one tap output line into its message variant.

    Anything that is not a JSON object with type SCHEMA, STATE or RECORD and
    the fields that type requires raises ProtocolError.
    """
    try:
        obj = json.loads(line)
    except ValueError as e:
        raise ProtocolError(f"Error unmarshalling singer output line {excerpt(line)} into json: {e}", line) from e

    if not isinstance(obj, dict):
        raise ProtocolError(f"Singer output line must be a json object: {excerpt(line)}", line)

    msg_type = obj.get("type")
    if not msg_type:
        raise ProtocolError(f"Error getting singer object 'type' field from: {excerpt(line)}", line)

    if msg_type == SCHEMA:
        stream = obj.get("stream")
        if not isinstance(stream, str) or not stream:
            raise ProtocolError(f"Error parsing singer schema {excerpt(line)}: 'stream' is missing", line)
        schema = obj.get("schema")
        if not isinstance(schema, dict):
            raise ProtocolError(f"Error parsing singer schema {excerpt(line)}: 'schema' must be a json object", line)
        keys = obj.get("key_properties") or []
        if not isinstance(keys, list):
            raise ProtocolError(f"Error parsing singer schema {excerpt(line)}: 'key_properties' must be a list", line)
        return SchemaMessage(stream=stream, schema=schema, key_properties=[str(k) for k in keys])

    if msg_type == STATE:
        if "value" not in obj:
            raise ProtocolError(
                f"Error parsing singer state line {excerpt(line)}: malformed state line 'value' doesn't exist", line
            )
        return StateMessage(value=obj["value"])

    if msg_type == RECORD:
        if "stream" not in obj:
            raise ProtocolError(
                f"Error parsing singer record line {excerpt(line)}: malformed record line 'stream' doesn't exist", line
            )
        if "record" not in obj:
            raise ProtocolError(
                f"Error parsing singer record line {excerpt(line)}: malformed record line 'record' doesn't exist", line
            )
        record = obj["record"]
        if not isinstance(record, dict):
            raise ProtocolError(
                f"Error parsing singer record line {excerpt(line)}: malformed record line 'record' must be a json object",
                line,
            )
        return RecordMessage(stream=str(obj["stream"]), record=record)

    raise ProtocolError(f"Unknown output line type: {msg_type}", line)
