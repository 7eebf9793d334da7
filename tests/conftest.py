import pytest
import shutil
import tempfile
import threading
import os
import stat
import sys
from pathlib import Path
from unittest.mock import patch

from editmerge import EditorSurface, DecorationSink, normalize_path

# The package re-exports the config instance under the same name as its module
config_module = sys.modules["editmerge.config"]

# Helper for Windows permission removal
def remove_readonly(func, path, _):
    os.chmod(path, stat.S_IWRITE)
    func(path)

@pytest.fixture
def temp_cwd():
    """Create a temporary directory and change CWD to it."""
    orig_cwd = os.getcwd()
    temp_dir = tempfile.mkdtemp()
    os.chdir(temp_dir)
    yield Path(temp_dir)
    os.chdir(orig_cwd)
    shutil.rmtree(temp_dir, onerror=remove_readonly)

@pytest.fixture(autouse=True)
def mock_app_data(tmp_path):
    """Redirect all AppData writes to a temp directory."""
    temp_app_data = tmp_path / "editmerge_test_appdata"
    temp_app_data.mkdir(parents=True, exist_ok=True)

    with patch.object(config_module, "APP_DATA_DIR", temp_app_data), \
         patch.object(config_module, "LOG_DIR", temp_app_data / "logs"), \
         patch.object(config_module, "SETTINGS_PATH", temp_app_data / "settings.json"):
         yield temp_app_data

def stub_to_diff(text: str, short: bool = False) -> str:
    """
    Convert a safe stub format to the actual diff format used by the tool.

    This allows us to write tests with the tool itself.

    Stub format:
    filename
    [SEARCH]
    code
    [REPLACE]
    code
    [END]

    With short=True the compact three-character markers are produced.
    """

    text = text.strip()

    # Using specific replacements to avoid creating actual diff markers in this source code
    angle = 3 if short else 7
    text = text.replace("[SEARCH]", "<" * angle + " SEARCH")
    text = text.replace("[REPLACE]", "=" * 7)
    text = text.replace("[END]", ">" * angle + " REPLACE")
    return text

def wrap_in_code_block(content: str, info: str = "") -> str:
    """Wrap content in markdown code block."""
    return f"```{info}\n{content}\n```"


class FakeEditor(EditorSurface):
    """Editing surface that records writes.

    Ready for the last opened file once ready_after readiness checks have
    failed. Paths in blocked are never ready. A path in failing raises on write.
    """

    def __init__(self, ready_after: int = 0, blocked=(), failing=()):
        self.ready_after = ready_after
        self.blocked = {normalize_path(p) for p in blocked}
        self.failing = {normalize_path(p) for p in failing}
        self.active_path = None
        self.ready_checks = 0
        self.opened = []
        self.writes = []
        self.buffers = {}

    def open_file(self, path):
        self.active_path = normalize_path(path)
        self.opened.append(self.active_path)

    def is_ready(self, path):
        self.ready_checks += 1
        if normalize_path(path) in self.blocked:
            return False
        if self.ready_checks <= self.ready_after:
            return False
        return self.active_path == normalize_path(path)

    def write(self, path, content):
        path = normalize_path(path)
        if path in self.failing:
            raise IOError(f"Cannot write {path}")
        self.writes.append((path, content))
        self.buffers[path] = content

    @property
    def written_paths(self):
        return [p for p, _ in self.writes]


class GatedEditor(FakeEditor):
    """FakeEditor whose writes wait for the gate to open."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.gate = threading.Event()
        self.entered = threading.Event()

    def write(self, path, content):
        self.entered.set()
        self.gate.wait(5)
        super().write(path, content)


class RecordingSink(DecorationSink):
    def __init__(self):
        self.painted = []
        self.clears = 0

    def paint(self, decorations, zones):
        self.painted.append((list(decorations), list(zones)))

    def clear(self):
        self.clears += 1

    @property
    def last(self):
        return self.painted[-1] if self.painted else ([], [])

@pytest.fixture
def fake_editor():
    return FakeEditor()

@pytest.fixture
def sink():
    return RecordingSink()
