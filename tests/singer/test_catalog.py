import json
import os
import sys
from unittest.mock import MagicMock

import pytest

from sources.runtime.errors import ConfigurationError, ProcessFailedError, ProtocolError, SourceConnectionError
from sources.runtime.process import CmdResult
from sources.singer.catalog import discover, materialized_config, parse_catalog, temp_json_file

CATALOG = {
    "streams": [
        {
            "tap_stream_id": "users",
            "schema": {"properties": {"id": {"type": "integer"}}},
            "metadata": [
                {"breadcrumb": [], "metadata": {"selected": False, "inclusion": "available"}},
                {"breadcrumb": ["properties", "id"]},
            ],
        },
        {
            "tap_stream_id": "orders",
            "schema": {"properties": {}, "selected": False},
            "metadata": [],
        },
    ],
    "version": 2,
}


class TestParseCatalog:
    def test_everything_is_force_selected(self):
        catalog = parse_catalog(json.dumps(CATALOG))
        assert catalog.stream_names() == ["users", "orders"]
        for stream in catalog.streams:
            assert stream["schema"]["selected"] is True
            for entry in stream["metadata"]:
                assert entry["metadata"]["selected"] is True
        # other keys survive untouched
        assert catalog.streams[0]["metadata"][0]["metadata"]["inclusion"] == "available"
        assert catalog.to_dict()["version"] == 2

    def test_invalid_json_includes_stderr(self):
        with pytest.raises(ProtocolError) as exc:
            parse_catalog("Traceback: nope", stderr="ModuleNotFoundError: singer")
        assert "ModuleNotFoundError: singer" in str(exc.value)

    @pytest.mark.parametrize(
        "payload,match",
        [
            ([], "must be a json object"),
            ({"streams": {}}, "'streams' must be a list"),
            ({"streams": [{"metadata": []}]}, "'schema' doesn't exist"),
            ({"streams": [{"schema": [], "metadata": []}]}, "'schema' must be object"),
            ({"streams": [{"schema": {}}]}, "'metadata' doesn't exist"),
            ({"streams": [{"schema": {}, "metadata": {}}]}, "'metadata' must be array"),
            ({"streams": [{"schema": {}, "metadata": ["x"]}]}, "entry must be an object"),
            ({"streams": [{"schema": {}, "metadata": [{"metadata": 1}]}]}, "'metadata.metadata' must be object"),
        ],
    )
    def test_malformed_shapes(self, payload, match):
        with pytest.raises(ProtocolError, match=match):
            parse_catalog(json.dumps(payload))

    def test_empty_streams_is_valid(self):
        assert parse_catalog('{"streams": []}').streams == []


class TestTempFiles:
    def test_temp_json_file_removed_on_exit(self, tmp_path):
        with temp_json_file(str(tmp_path / "tmp"), {"a": 1}) as path:
            with open(path, encoding="utf-8") as f:
                assert json.load(f) == {"a": 1}
        assert not os.path.exists(path)

    def test_temp_json_file_removed_on_error(self, tmp_path):
        with pytest.raises(RuntimeError):
            with temp_json_file(str(tmp_path), {"a": 1}) as path:
                raise RuntimeError("x")
        assert not os.path.exists(path)

    def test_unserialisable_payload(self, tmp_path):
        payload = {}
        payload["self"] = payload
        with pytest.raises(ConfigurationError):
            with temp_json_file(str(tmp_path), payload):
                pass
        assert os.listdir(tmp_path) == []

    def test_materialized_config_prefers_existing_path(self, tmp_path):
        with materialized_config(str(tmp_path), "/etc/tap.json", {"ignored": True}) as path:
            assert path == "/etc/tap.json"
        assert os.listdir(tmp_path) == []

    def test_materialized_config_requires_something(self, tmp_path):
        with pytest.raises(ConfigurationError):
            with materialized_config(str(tmp_path), None, None):
                pass


class TestDiscover:
    def test_runs_discover_and_cleans_up(self, tmp_path):
        seen = {}

        def runner(cmd, args, **kwargs):
            config_path = args[1]
            with open(config_path, encoding="utf-8") as f:
                seen["config"] = json.load(f)
            seen["args"] = args
            seen["timeout_s"] = kwargs["timeout_s"]
            return CmdResult(stdout=json.dumps(CATALOG), stderr="", returncode=0)

        catalog = discover(
            "tap-x", "/venvs/tap-x/bin/tap-x", str(tmp_path), config={"k": "v"}, timeout_s=120, runner=runner
        )

        assert seen["config"] == {"k": "v"}
        assert seen["args"][0] == "-c" and seen["args"][2] == "--discover"
        assert seen["timeout_s"] == 120
        assert len(catalog.streams) == 2
        assert os.listdir(tmp_path) == []

    def test_failed_process_becomes_connection_error(self, tmp_path):
        runner = MagicMock(side_effect=ProcessFailedError(["tap-x"], 1, "auth failed"))
        with pytest.raises(SourceConnectionError, match="auth failed"):
            discover("tap-x", "tap-x", str(tmp_path), config={}, timeout_s=1, runner=runner)
        assert os.listdir(tmp_path) == []


class TestDiscoverWithRealProcess:
    def test_tap_with_non_utf8_stderr(self, tmp_path):
        tap = tmp_path / "tap-fake"
        tap.write_text(
            f"#!{sys.executable}\n"
            "import sys\n"
            "print('{\"streams\": []}')\n"
            "sys.stderr.buffer.write(b'caf\\xe9 warning\\n')\n",
            encoding="utf-8",
        )
        tap.chmod(0o755)

        catalog = discover("tap-fake", str(tap), str(tmp_path / "tmp"), config={"k": 1}, timeout_s=30)
        assert catalog.streams == []
