#!/usr/bin/env python3
"""
Command-line entry point: `sources <command>`.

  install <tap>       install a Singer tap into its own virtualenv (foreground)
  update <tap>        upgrade an installed tap (needs SOURCES_UPDATE_TAPS)
  discover <tap>      print the force-selected catalog of a tap
  parse [file]        summarise captured Singer output (stdin when no file)
  sync <source.json>  run one collection of a source and write records as JSON lines
"""
from __future__ import annotations

import argparse
import json
import sys
import time
from typing import Any, Dict, IO, List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from .runtime.errors import SourceError
from .runtime.events import RuntimeEvent, set_emitter
from .runtime.loader import create_driver
from .runtime.protocol import Collection, SourceConfig
from .singer.bridge import TapBridge
from .singer.constants import SOURCE_TYPE as SINGER_TYPE
from .singer.parser import OutputRepresentation, parse_output

console = Console(stderr=True)

_LEVEL_STYLE = {"debug": "dim", "warn": "yellow", "error": "red"}

# Seconds between readiness polls while a tap installs in the background
READY_POLL_S = 2.0


def format_event_line(ev: RuntimeEvent) -> str:
    parts: List[str] = []
    if ev.connector:
        parts.append(f"[{ev.connector}]")
    if ev.stream:
        parts.append(f"({ev.stream})")
    parts.append(ev.message)
    if ev.count is not None:
        parts.append(f"count={ev.count}")
    parts.extend(f"{k}={v}" for k, v in ev.fields.items() if v is not None)
    return " ".join(parts)


def _print_event(verbose: bool):
    def _emit(ev: RuntimeEvent) -> None:
        if ev.level == "debug" and not verbose:
            return
        console.print(Text(format_event_line(ev), style=_LEVEL_STYLE.get(ev.level, "")), highlight=False)

    return _emit


def _bridge(args: argparse.Namespace) -> TapBridge:
    overrides: Dict[str, Any] = {}
    if args.venv_dir:
        overrides["venv_dir"] = args.venv_dir
    return TapBridge.from_env(**overrides)


def _read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def render_output(output: OutputRepresentation) -> Table:
    table = Table(title="Singer output")
    table.add_column("Stream")
    table.add_column("Table")
    table.add_column("Fields")
    table.add_column("Keys")
    table.add_column("Records", justify="right")
    for name, rep in output.streams.items():
        fields = ", ".join(f"{field}:{t.value}" for field, t in rep.fields.items())
        table.add_row(name, rep.table_name, fields, ", ".join(rep.key_fields), str(len(rep.objects)))
    return table


# -----------------------------
# Commands
# -----------------------------
def cmd_install(args: argparse.Namespace) -> int:
    with _bridge(args) as bridge:
        bridge.install_tap(args.tap)
    console.print(f"[green]Installed[/green] {args.tap}")
    return 0


def cmd_update(args: argparse.Namespace) -> int:
    with _bridge(args) as bridge:
        if not bridge.settings.update_taps:
            console.print("[yellow]Tap updates are disabled (set SOURCES_UPDATE_TAPS=true).[/yellow]")
            return 0
        bridge.update_tap(args.tap)
    console.print(f"[green]Updated[/green] {args.tap}")
    return 0


def cmd_discover(args: argparse.Namespace) -> int:
    config = _read_json(args.config)
    with _bridge(args) as bridge:
        catalog = bridge.discover(args.tap, config=config)
    print(json.dumps(catalog.to_dict(), indent=2))
    return 0


def cmd_parse(args: argparse.Namespace) -> int:
    if args.file:
        with open(args.file, "rb") as f:
            output = parse_output(f)
    else:
        output = parse_output(sys.stdin.buffer)

    console.print(render_output(output))
    if output.state is not None:
        console.print(f"State: {json.dumps(output.state)}", markup=False)
    return 0


def _wait_ready(drv: Any, timeout_s: float) -> None:
    deadline = time.monotonic() + timeout_s
    while True:
        ready, err = drv.is_ready()
        if ready:
            return
        if err is not None or time.monotonic() >= deadline:
            raise err or SourceError(f"tap {drv.tap} is not ready after {timeout_s:.0f}s")
        console.print(f"[dim]Waiting for {drv.tap} to install...[/dim]")
        time.sleep(READY_POLL_S)


def _write_records(out: IO[str]):
    def _loader(objects: List[Dict[str, Any]], pos: int, total: int, percent: int) -> None:
        for obj in objects:
            out.write(json.dumps(obj, default=str))
            out.write("\n")
        out.flush()
        console.print(f"[cyan]{pos}/{total}[/cyan] ({percent}%)")

    return _loader


def cmd_sync(args: argparse.Namespace) -> int:
    raw = _read_json(args.source)
    source = SourceConfig(source_id=raw.get("source_id", ""), type=raw["type"], config=raw.get("config") or {})

    coll_raw = next((c for c in raw.get("collections", []) if c.get("name") == args.collection), None)
    if coll_raw is None:
        console.print(f"[red]Collection {escape(repr(args.collection))} not found in {escape(args.source)}[/red]")
        return 2
    collection = Collection(
        name=coll_raw["name"],
        type=coll_raw.get("type", ""),
        source_id=source.source_id,
        table_name=coll_raw.get("table_name", ""),
        parameters=coll_raw.get("parameters") or {},
    )

    bridge: Optional[TapBridge] = None
    services: Dict[str, Any] = {}
    if source.type == SINGER_TYPE:
        bridge = _bridge(args)
        services["bridge"] = bridge
        if args.state:
            services["initial_state"] = _read_json(args.state)

    out = open(args.output, "w", encoding="utf-8") if args.output else sys.stdout
    try:
        with create_driver(source, collection, **services) as drv:
            if bridge is not None:
                _wait_ready(drv, args.install_timeout)
            for interval in drv.get_all_available_intervals():
                console.print(f"Syncing {drv.get_collection_table()} ({interval})", markup=False)
                drv.get_objects_for(interval, _write_records(out))
            checkpoint = getattr(drv, "checkpoint", None)
            if checkpoint is not None and args.state_out:
                with open(args.state_out, "w", encoding="utf-8") as f:
                    json.dump(checkpoint, f)
    finally:
        if out is not sys.stdout:
            out.close()
        if bridge is not None:
            bridge.close(wait=False)
    return 0


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sources", description="Firebase and Singer tap extraction drivers.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug events.")
    parser.add_argument("--venv-dir", default=None, help="Tap virtualenv root (default: SOURCES_VENV_DIR).")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("install", help="Install a Singer tap.")
    p.add_argument("tap")
    p.set_defaults(fn=cmd_install)

    p = sub.add_parser("update", help="Upgrade an installed Singer tap.")
    p.add_argument("tap")
    p.set_defaults(fn=cmd_update)

    p = sub.add_parser("discover", help="Print the discovered catalog of a tap.")
    p.add_argument("tap")
    p.add_argument("--config", required=True, help="Tap config JSON file.")
    p.set_defaults(fn=cmd_discover)

    p = sub.add_parser("parse", help="Summarise captured Singer output.")
    p.add_argument("file", nargs="?", default=None)
    p.set_defaults(fn=cmd_parse)

    p = sub.add_parser("sync", help="Sync one collection of a source.")
    p.add_argument("source", help="Source JSON: {source_id, type, config, collections: [...]}")
    p.add_argument("--collection", required=True)
    p.add_argument("--output", default=None, help="JSON lines file (default: stdout).")
    p.add_argument("--state", default=None, help="Singer state file to resume from.")
    p.add_argument("--state-out", default=None, help="Where to write the new Singer state.")
    p.add_argument("--install-timeout", type=float, default=1200.0)
    p.set_defaults(fn=cmd_sync)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    args = _parse_args(list(sys.argv[1:] if argv is None else argv))
    set_emitter(_print_event(args.verbose))
    try:
        code = args.fn(args)
    except SourceError as e:
        console.print(f"[red]{type(e).__name__}:[/red] {escape(str(e))}", highlight=False)
        code = 1
    except KeyboardInterrupt:
        code = 130
    finally:
        set_emitter(None)
    sys.exit(code)


if __name__ == "__main__":
    main()
