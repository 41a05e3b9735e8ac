from __future__ import annotations

from contextlib import ExitStack
from datetime import timedelta
from typing import Any, Callable, ContextManager, IO, List, Optional, Tuple

from sources.runtime.config import parse_config
from sources.runtime.errors import ConfigurationError, InstallError, TapNotReadyError
from sources.runtime.process import stream_cmd
from sources.runtime.protocol import Collection, Driver, ObjectsLoader, SourceConfig, TimeInterval

from .bridge import TapBridge
from .catalog import materialized_config, temp_json_file
from .config import TapSourceConfig
from .constants import CONNECTOR_NAME, REFRESH_WINDOW_HOURS, SOURCE_TYPE
from .events import info
from .parser import OutputRepresentation, parse_output

Streamer = Callable[..., ContextManager[IO[bytes]]]


class TapDriver(Driver):
    """
    Driver backed by a Singer tap running in its own virtualenv.

    The tap has no notion of intervals; every sync is one ALL interval
    resumed from `checkpoint`, which is replaced only after the orchestrator
    accepted every stream.
    """

    type = SOURCE_TYPE

    def __init__(
        self,
        source_config: SourceConfig,
        collection: Collection,
        bridge: TapBridge,
        *,
        streamer: Streamer = stream_cmd,
        initial_state: Any = None,
    ):
        super().__init__(source_config, collection)
        self.config = parse_config(TapSourceConfig, source_config.config, what="singer source")
        self.bridge = bridge
        self.checkpoint: Any = initial_state
        self._streamer = streamer

    @property
    def tap(self) -> str:
        return self.config.tap

    def is_ready(self) -> Tuple[bool, Optional[InstallError]]:
        return self.bridge.is_tap_ready(self.tap)

    def update(self) -> None:
        self.bridge.update_tap(self.tap)

    def get_refresh_window(self) -> timedelta:
        return timedelta(hours=REFRESH_WINDOW_HOURS)

    def get_all_available_intervals(self) -> List[TimeInterval]:
        return [TimeInterval.all()]

    def table_name_for(self, stream: str) -> str:
        mapped = self.config.stream_table_names.get(stream)
        if mapped:
            return mapped
        return f"{self.config.table_name_prefix}{stream}"

    def _catalog_source(self) -> Tuple[str, Optional[str], Any]:
        """(flag, existing_path, inline_payload) for the catalog argument."""
        c = self.config
        if c.properties_path:
            return "--properties", c.properties_path, None
        if c.catalog_path:
            return "--catalog", c.catalog_path, None
        if c.catalog is not None:
            return "--catalog", None, c.catalog
        catalog = self.bridge.discover(self.tap, config_path=c.config_path, config=c.config)
        return "--catalog", None, catalog.to_dict()

    def load(self, state: Any = None) -> OutputRepresentation:
        """
        Run one tap sync and return its parsed output. Generated config,
        catalog and state files are removed whatever happens.
        """
        ready, err = self.is_ready()
        if not ready:
            raise TapNotReadyError(self.tap, err)

        c = self.config
        tmp_dir = self.bridge.tmp_dir
        flag, catalog_path, catalog_payload = self._catalog_source()

        with ExitStack() as stack:
            config_path = stack.enter_context(materialized_config(tmp_dir, c.config_path, c.config))
            if catalog_path is None:
                catalog_path = stack.enter_context(temp_json_file(tmp_dir, catalog_payload))
            args = ["-c", config_path, flag, catalog_path]
            if state is not None:
                args += ["--state", stack.enter_context(temp_json_file(tmp_dir, state))]

            info("sync.start", tap=self.tap, table=self.get_collection_table(), resumed=state is not None)
            stdout = stack.enter_context(
                self._streamer(
                    self.bridge.tap_executable(self.tap),
                    args,
                    timeout_s=self.bridge.settings.sync_timeout_s,
                    label=CONNECTOR_NAME,
                )
            )
            output = parse_output(stdout)

        for name, rep in output.streams.items():
            rep.table_name = self.table_name_for(name)
        return output

    def get_objects_for(self, interval: TimeInterval, objects_loader: ObjectsLoader) -> None:
        output = self.load(self.checkpoint)

        total = output.total_objects()
        pos = 0
        for name, rep in output.streams.items():
            pos += len(rep.objects)
            percent = int(pos * 100 / total) if total else 100
            info("sync.stream.deliver", stream=name, count=len(rep.objects), table=rep.table_name)
            objects_loader(rep.objects, pos, total, percent)

        if output.state is not None:
            self.checkpoint = output.state
        info("sync.done", tap=self.tap, streams=len(output.streams), count=total)


def driver(
    source_config: SourceConfig,
    collection: Collection,
    bridge: Optional[TapBridge] = None,
    **kwargs: Any,
) -> TapDriver:
    if bridge is None:
        raise ConfigurationError("singer sources need a TapBridge (pass bridge=...)")
    return TapDriver(source_config, collection, bridge, **kwargs)


def test_connection(source_config: SourceConfig, bridge: Optional[TapBridge] = None, **_: Any) -> None:
    """
    A tap "connects" when it is installed and its discovery succeeds.
    """
    if bridge is None:
        raise ConfigurationError("singer sources need a TapBridge (pass bridge=...)")
    config = parse_config(TapSourceConfig, source_config.config, what="singer source")
    ready, err = bridge.is_tap_ready(config.tap)
    if not ready:
        raise TapNotReadyError(config.tap, err)
    bridge.discover(config.tap, config_path=config.config_path, config=config.config)


test_connection.__test__ = False  # type: ignore[attr-defined]
