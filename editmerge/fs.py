"""Workspace text source/sink and path helpers."""
import logging
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

def normalize_path(path: str) -> str:
    """Normalize a project-relative path to forward slashes without a leading ./ or /."""
    clean = path.strip().strip('"\'`').replace("\\", "/")
    while clean.startswith("./"):
        clean = clean[2:]
    clean = clean.lstrip("/")
    while "//" in clean:
        clean = clean.replace("//", "/")
    return clean

def paths_match(a: str, b: str) -> bool:
    """True if two paths name the same file, allowing one to be a suffix of the other."""
    na, nb = normalize_path(a), normalize_path(b)
    if not na or not nb:
        return False
    if na == nb:
        return True
    return na.endswith("/" + nb) or nb.endswith("/" + na)

def get_display_name(path: str) -> str:
    normalized = normalize_path(path)
    return normalized.rsplit("/", 1)[-1] or normalized

class Workspace:
    """Files under a root directory, overlaid with unsaved drafts.

    Drafts win over disk content, the same way an editor buffer wins over the
    persisted copy. Missing files read as empty text.
    """

    def __init__(self, root: Path | str | None = None):
        self.root = Path(root) if root is not None else Path.cwd()
        self._drafts: dict[str, str] = {}
        self._lock = threading.Lock()

    def _resolve(self, path: str) -> Path:
        return self.root / normalize_path(path)

    def get_draft(self, path: str) -> str | None:
        with self._lock:
            return self._drafts.get(normalize_path(path))

    def set_draft(self, path: str, content: str) -> None:
        with self._lock:
            self._drafts[normalize_path(path)] = content

    def clear_draft(self, path: str) -> None:
        with self._lock:
            self._drafts.pop(normalize_path(path), None)

    def read(self, path: str) -> str:
        draft = self.get_draft(path)
        if draft is not None:
            return draft

        p = self._resolve(path)
        if not p.is_file():
            return ""
        try:
            with open(p, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read current content of {path}: {e}")
            return ""

    def write(self, path: str, content: str) -> None:
        p = self._resolve(path)
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            with open(p, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            raise IOError(f"Error writing file '{p}': {e}") from e
        self.clear_draft(path)
