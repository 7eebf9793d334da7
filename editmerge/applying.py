"""Serialized application of final text onto an editing surface."""
import logging
import threading
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable

from .config import config
from .errors import EditorNotReadyError, CancelledError
from .fs import Workspace, normalize_path

logger = logging.getLogger(__name__)


class EditorSurface:
    """Where final text lands. Subclasses implement all three methods."""

    def open_file(self, path: str) -> None:
        raise NotImplementedError

    def is_ready(self, path: str) -> bool:
        raise NotImplementedError

    def write(self, path: str, content: str) -> None:
        raise NotImplementedError


class FileEditor(EditorSurface):
    """Editing surface backed by files in a Workspace. Ready for whichever file was opened last."""

    def __init__(self, workspace: Workspace):
        self.workspace = workspace
        self.active_path: str | None = None

    def open_file(self, path: str) -> None:
        self.active_path = normalize_path(path)

    def is_ready(self, path: str) -> bool:
        return self.active_path == normalize_path(path)

    def write(self, path: str, content: str) -> None:
        self.workspace.write(path, content)


@dataclass
class PendingApply:
    file_path: str
    content: str
    future: Future = field(default_factory=Future)


class ApplyQueue:
    """FIFO of writes with at most one in flight.

    Each entry opens its file, waits for the surface to report ready
    (fixed delay, bounded retries), writes, then completes its future.
    A failed entry does not block the ones behind it.
    """

    def __init__(self, editor: EditorSurface, retries: int | None = None, delay: float | None = None,
                 on_written: Callable[[str, str], None] | None = None):
        self.editor = editor
        self.retries = config.editor_ready_retries if retries is None else retries
        self.delay = config.editor_ready_delay if delay is None else delay
        self.on_written = on_written

        self._pending: deque[PendingApply] = deque()
        self._lock = threading.Lock()
        self._processing = False

    @property
    def is_processing(self) -> bool:
        with self._lock:
            return self._processing

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def enqueue(self, path: str, content: str) -> Future:
        entry = PendingApply(normalize_path(path), content)
        with self._lock:
            self._pending.append(entry)
        logger.debug(f"Queued write for {entry.file_path}")
        self._process_next()
        return entry.future

    def clear(self) -> int:
        """Cancel every entry still waiting. The one in flight finishes."""
        with self._lock:
            waiting = list(self._pending)
            self._pending.clear()
        for entry in waiting:
            if entry.future.set_running_or_notify_cancel():
                entry.future.set_exception(CancelledError(f"Write to {entry.file_path} cancelled"))
        if waiting:
            logger.info(f"Cancelled {len(waiting)} queued write(s)")
        return len(waiting)

    def _process_next(self) -> None:
        with self._lock:
            if self._processing or not self._pending:
                return
            self._processing = True
            entry = self._pending.popleft()
        threading.Thread(target=self._run, args=(entry,), daemon=True, name=f"apply:{entry.file_path}").start()

    def _wait_until_ready(self, path: str) -> bool:
        if self.editor.is_ready(path):
            return True
        for attempt in range(self.retries):
            time.sleep(self.delay)
            if self.editor.is_ready(path):
                return True
            logger.debug(f"Editor not ready for {path} (attempt {attempt + 1}/{self.retries})")
        return False

    def _run(self, entry: PendingApply) -> None:
        try:
            if not entry.future.set_running_or_notify_cancel():
                return
            self.editor.open_file(entry.file_path)
            if not self._wait_until_ready(entry.file_path):
                raise EditorNotReadyError(f"Editor not ready for {entry.file_path}")
            self.editor.write(entry.file_path, entry.content)
            logger.info(f"Applied {entry.file_path}")
            if self.on_written:
                try:
                    self.on_written(entry.file_path, entry.content)
                except Exception:
                    logger.exception(f"Write callback failed for {entry.file_path}")
            entry.future.set_result(entry.file_path)
        except Exception as e:
            logger.error(f"Failed to apply {entry.file_path}: {e}")
            entry.future.set_exception(e)
        finally:
            with self._lock:
                self._processing = False
            self._process_next()
