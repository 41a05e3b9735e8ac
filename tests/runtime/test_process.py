import sys
import time

import pytest

from sources.runtime.errors import ProcessFailedError, ProcessTimeoutError, SourceConnectionError
from sources.runtime.process import run_cmd, stream_cmd

PY = sys.executable


class TestRunCmd:
    def test_captures_stdout(self):
        res = run_cmd(PY, ["-c", "print('hello')"], timeout_s=30)
        assert res.returncode == 0
        assert res.stdout.strip() == "hello"

    def test_non_zero_exit_carries_stderr(self):
        code = "import sys; sys.stderr.write('boom\\n'); sys.exit(3)"
        with pytest.raises(ProcessFailedError) as exc:
            run_cmd(PY, ["-c", code], timeout_s=30)
        assert exc.value.returncode == 3
        assert "boom" in exc.value.stderr
        assert isinstance(exc.value, SourceConnectionError)

    def test_timeout_kills_child(self, events):
        started = time.monotonic()
        with pytest.raises(ProcessTimeoutError) as exc:
            run_cmd(PY, ["-c", "import time; time.sleep(30)"], timeout_s=0.5)
        assert time.monotonic() - started < 15
        assert exc.value.timeout_s == 0.5
        assert isinstance(exc.value, TimeoutError)
        assert any(e.message == "process.timeout" for e in events)

    def test_missing_executable(self):
        with pytest.raises(SourceConnectionError):
            run_cmd("/nonexistent/definitely-not-here", timeout_s=5)


class TestStreamCmd:
    def test_yields_stdout_lines(self):
        code = "for i in range(3): print(i)"
        with stream_cmd(PY, ["-c", code], timeout_s=30) as out:
            lines = [l.strip() for l in out]
        assert lines == [b"0", b"1", b"2"]

    def test_non_zero_exit_after_clean_read(self):
        code = "import sys; print('x'); sys.stderr.write('bad things\\n'); sys.exit(2)"
        with pytest.raises(ProcessFailedError) as exc:
            with stream_cmd(PY, ["-c", code], timeout_s=30) as out:
                out.read()
        assert exc.value.returncode == 2
        assert "bad things" in exc.value.stderr

    def test_deadline_covers_whole_block(self):
        code = "import time; print('start', flush=True); time.sleep(30)"
        started = time.monotonic()
        with pytest.raises(ProcessTimeoutError):
            with stream_cmd(PY, ["-c", code], timeout_s=0.5) as out:
                out.read()
        assert time.monotonic() - started < 15

    def test_body_error_terminates_child(self):
        started = time.monotonic()
        with pytest.raises(RuntimeError, match="parser blew up"):
            with stream_cmd(PY, ["-c", "import time; time.sleep(30)"], timeout_s=60):
                raise RuntimeError("parser blew up")
        assert time.monotonic() - started < 15


class TestOutputDecoding:
    def test_non_utf8_stderr_is_replaced(self):
        code = "import sys; print('ok'); sys.stderr.buffer.write(b'caf\\xe9 warning\\n')"
        res = run_cmd(PY, ["-c", code], timeout_s=30)
        assert res.returncode == 0
        assert res.stdout.strip() == "ok"
        assert "caf\ufffd warning" in res.stderr

    def test_non_utf8_stderr_in_failure_message(self):
        code = "import sys; sys.stderr.buffer.write(b'\\xff\\xfe bad\\n'); sys.exit(1)"
        with pytest.raises(ProcessFailedError) as exc:
            run_cmd(PY, ["-c", code], timeout_s=30)
        assert "bad" in exc.value.stderr
