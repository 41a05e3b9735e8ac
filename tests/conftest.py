import pytest

from sources.runtime.events import set_emitter


@pytest.fixture
def events():
    """Capture every runtime event emitted during the test."""
    captured = []
    set_emitter(captured.append)
    yield captured
    set_emitter(None)


@pytest.fixture
def venv_dir(tmp_path):
    """Empty tap runtime root."""
    root = tmp_path / "venvs"
    root.mkdir()
    return str(root)
