import json

import pytest

from sources.cli import main


def _run(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


class TestCli:
    def test_parse_prints_stream_summary(self, tmp_path, capsys):
        out = tmp_path / "tap.out"
        out.write_text(
            "\n".join(
                json.dumps(m)
                for m in [
                    {"type": "SCHEMA", "stream": "users", "schema": {"properties": {"id": {"type": "integer"}}}},
                    {"type": "RECORD", "stream": "users", "record": {"id": 1}},
                    {"type": "STATE", "value": {"b": 1}},
                ]
            ),
            encoding="utf-8",
        )
        assert _run(["parse", str(out)]) == 0
        err = capsys.readouterr().err
        assert "users" in err
        assert "id:INT64" in err

    def test_protocol_error_exits_1(self, tmp_path, capsys):
        out = tmp_path / "tap.out"
        out.write_text('{"type": "RECORD", "stream": "x", "record": {}}\n', encoding="utf-8")
        assert _run(["parse", str(out)]) == 1
        assert "ProtocolError" in capsys.readouterr().err

    def test_sync_unknown_collection(self, tmp_path):
        src = tmp_path / "source.json"
        src.write_text(json.dumps({"source_id": "s", "type": "firebase", "collections": []}), encoding="utf-8")
        assert _run(["sync", str(src), "--collection", "nope"]) == 2
