from __future__ import annotations

from dataclasses import dataclass, field
from typing import IO, Any, Dict, Iterable, Iterator, List, Union

from sources.runtime.errors import ProtocolError
from sources.runtime.schema_drift import diff_fields, summarise

from .constants import MAX_LINE_BYTES
from .events import debug, info, warn
from .messages import RecordMessage, SchemaMessage, StateMessage, decode_line, excerpt
from .schema import CanonicalType, infer_schema_fields

LineSource = Union[IO[bytes], IO[str], Iterable[Union[bytes, str]]]


@dataclass
class StreamRepresentation:
    table_name: str
    fields: Dict[str, CanonicalType]
    key_fields: List[str] = field(default_factory=list)
    objects: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class OutputRepresentation:
    """
    Result of one tap run: last checkpoint + per-stream buffered records,
    keyed by stream name.
    """
    state: Any = None
    streams: Dict[str, StreamRepresentation] = field(default_factory=dict)

    def total_objects(self) -> int:
        return sum(len(s.objects) for s in self.streams.values())


def _decode(raw: Union[bytes, str]) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def _too_long(line: Union[bytes, str], max_line_bytes: int) -> ProtocolError:
    text = _decode(line)
    return ProtocolError(f"Singer output line exceeds {max_line_bytes} bytes: {excerpt(text)}", excerpt(text))


def iter_lines(source: LineSource, max_line_bytes: int = MAX_LINE_BYTES) -> Iterator[str]:
    """
    Yield decoded lines in arrival order, rejecting any longer than the bound.
    Every line is yielded, blank ones included; the newline ending the last
    line does not start another one.
    """
    readline = getattr(source, "readline", None)
    if callable(readline):
        # +2 so a line at the bound still fits together with its "\r\n"
        while True:
            raw = readline(max_line_bytes + 2)
            if not raw:
                return
            body = raw.rstrip(b"\r\n") if isinstance(raw, bytes) else raw.rstrip("\r\n")
            if len(body) > max_line_bytes:
                raise _too_long(body, max_line_bytes)
            yield _decode(body)

    for raw in source:  # type: ignore[union-attr]
        body = raw.rstrip(b"\r\n") if isinstance(raw, bytes) else raw.rstrip("\r\n")
        if len(body) > max_line_bytes:
            raise _too_long(body, max_line_bytes)
        yield _decode(body)


def parse_schema(msg: SchemaMessage) -> StreamRepresentation:
    return StreamRepresentation(
        table_name=msg.stream,
        fields=infer_schema_fields(msg.schema),
        key_fields=list(msg.key_properties),
    )


def parse_output(source: LineSource, *, max_line_bytes: int = MAX_LINE_BYTES) -> OutputRepresentation:
    """
    Consume a tap's stdout and build the canonical per-stream result.

    - SCHEMA: (re)defines a stream; records already buffered for it are kept
    - STATE: replaces the checkpoint (last write wins)
    - RECORD: appended verbatim to its stream; a stream without a preceding
      SCHEMA is a ProtocolError

    Any malformed line aborts the whole parse.
    """
    output = OutputRepresentation()
    lines = 0

    for line in iter_lines(source, max_line_bytes):
        lines += 1
        msg = decode_line(line)

        if isinstance(msg, RecordMessage):
            stream = output.streams.get(msg.stream)
            if stream is None:
                raise ProtocolError(
                    f"Error parsing singer record line {excerpt(line)}: "
                    f"stream [{msg.stream}] has no preceding SCHEMA message",
                    line,
                )
            stream.objects.append(msg.record)

        elif isinstance(msg, SchemaMessage):
            rep = parse_schema(msg)
            previous = output.streams.get(msg.stream)
            if previous is not None:
                rep.objects = previous.objects
                diff = diff_fields(previous.fields, rep.fields)
                (warn if diff.is_breaking else info)(
                    "parser.schema.redefined",
                    stream=msg.stream,
                    buffered=len(previous.objects),
                    drift=summarise(diff),
                )
            else:
                debug("parser.schema", stream=msg.stream, fields=len(rep.fields), keys=",".join(rep.key_fields))
            output.streams[msg.stream] = rep

        elif isinstance(msg, StateMessage):
            output.state = msg.value

    info("parser.done", lines=lines, streams=len(output.streams), count=output.total_objects())
    return output
