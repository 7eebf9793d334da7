"""Diff sessions: resolvable visualization state per file."""
import logging
import threading
from dataclasses import dataclass, field, replace

from .diffing import (
    ADDED, REMOVED, LF, CRLF, DiffBlock, calculate_diff, detect_eol, normalize_newlines,
    find_partner, block_at_line, build_decorations, action_zones,
)
from .errors import EditorNotReadyError
from .fs import normalize_path

logger = logging.getLogger(__name__)


@dataclass
class DiffSession:
    file_id: str
    original_code: str
    merged_code: str
    combined_text: str
    eol: str = LF
    unresolved_blocks: list[DiffBlock] = field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return not self.unresolved_blocks

    def copy(self) -> "DiffSession":
        return replace(self, unresolved_blocks=list(self.unresolved_blocks))

    def to_dict(self) -> dict:
        return {
            "file_id": self.file_id,
            "original_code": self.original_code,
            "merged_code": self.merged_code,
            "combined_text": self.combined_text,
            "eol": self.eol,
            "unresolved_blocks": [b.to_dict() for b in self.unresolved_blocks],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DiffSession":
        return cls(
            file_id=data["file_id"],
            original_code=data.get("original_code", ""),
            merged_code=data.get("merged_code", ""),
            combined_text=data.get("combined_text", ""),
            eol=data.get("eol", LF),
            unresolved_blocks=[DiffBlock.from_dict(b) for b in data.get("unresolved_blocks", [])],
        )


def create_session(file_id: str, original: str, merged: str, ignore_whitespace: bool = False) -> DiffSession:
    """Build a session from a merge. The combined text is stored with LF endings."""
    diff = calculate_diff(original, merged, ignore_whitespace=ignore_whitespace)
    return DiffSession(
        file_id=file_id,
        original_code=original,
        merged_code=merged,
        combined_text=diff.combined_text,
        eol=detect_eol(original),
        unresolved_blocks=list(diff.blocks),
    )

def _with_eol(text: str, eol: str) -> str:
    return text.replace("\n", "\r\n") if eol == CRLF else text

def _remove_ranges(text: str, ranges: list[DiffBlock]) -> str:
    lines = text.split("\n")
    for block in sorted(ranges, key=lambda b: b.start_line, reverse=True):
        del lines[block.start_line - 1:block.end_line]
    return "\n".join(lines)

def apply_keep_to_session(session: DiffSession) -> str:
    """Text with every unresolved removed range dropped, in the session's EOL."""
    removed = [b for b in session.unresolved_blocks if b.kind == REMOVED]
    return _with_eol(_remove_ranges(session.combined_text, removed), session.eol)

def apply_reject_to_session(session: DiffSession) -> str:
    """Text with every unresolved added range dropped, in the session's EOL."""
    added = [b for b in session.unresolved_blocks if b.kind == ADDED]
    return _with_eol(_remove_ranges(session.combined_text, added), session.eol)

def session_text(session: DiffSession) -> str:
    return _with_eol(session.combined_text, session.eol)

def _resolve_group(session: DiffSession, block: DiffBlock, drop_kind: str) -> DiffSession:
    if block not in session.unresolved_blocks:
        logger.debug(f"{session.file_id}: block {block} is not unresolved")
        return session

    group = [block]
    partner = find_partner(session.unresolved_blocks, block)
    if partner is not None:
        group.append(partner)

    dropped = [b for b in group if b.kind == drop_kind]
    session.combined_text = normalize_newlines(_remove_ranges(session.combined_text, dropped))

    remaining = []
    for other in session.unresolved_blocks:
        if other in group:
            continue
        shift = sum(d.line_count for d in dropped if d.end_line < other.start_line)
        remaining.append(DiffBlock(other.kind, other.start_line - shift, other.end_line - shift))
    session.unresolved_blocks = remaining
    return session

def keep_block(session: DiffSession, block: DiffBlock) -> DiffSession:
    """Accept one block together with its modification partner."""
    return _resolve_group(session, block, REMOVED)

def reject_block(session: DiffSession, block: DiffBlock) -> DiffSession:
    """Reject one block together with its modification partner."""
    return _resolve_group(session, block, ADDED)

def keep_all(session: DiffSession) -> str:
    text = apply_keep_to_session(session)
    session.combined_text = normalize_newlines(text)
    session.unresolved_blocks = []
    return text

def reject_all(session: DiffSession) -> str:
    text = apply_reject_to_session(session)
    session.combined_text = normalize_newlines(text)
    session.unresolved_blocks = []
    return text


class SessionStore:
    """In-memory DiffSessions keyed by normalized path."""

    def __init__(self):
        self._sessions: dict[str, DiffSession] = {}
        self._lock = threading.Lock()

    def get(self, path: str) -> DiffSession | None:
        with self._lock:
            return self._sessions.get(normalize_path(path))

    def save(self, session: DiffSession) -> None:
        with self._lock:
            self._sessions[normalize_path(session.file_id)] = session

    def remove(self, path: str) -> DiffSession | None:
        with self._lock:
            return self._sessions.pop(normalize_path(path), None)

    def has_unresolved(self, path: str) -> bool:
        session = self.get(path)
        return session is not None and not session.is_resolved

    def paths(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class DecorationSink:
    """Receives decorations and action zones to paint. The base class paints nothing."""

    def paint(self, decorations, zones) -> None:
        pass

    def clear(self) -> None:
        pass


class DiffVisualizer:
    """Shows one file's diff on an editing surface and resolves it block by block."""

    def __init__(self, editor, sink: DecorationSink | None = None, store: SessionStore | None = None,
                 ignore_whitespace: bool = False):
        self.editor = editor
        self.sink = sink or DecorationSink()
        self.store = store if store is not None else SessionStore()
        self.ignore_whitespace = ignore_whitespace
        self.session: DiffSession | None = None

    @property
    def active_path(self) -> str | None:
        return self.session.file_id if self.session else None

    def has_active_widgets(self) -> bool:
        return self.session is not None and not self.session.is_resolved

    def _paint(self) -> None:
        blocks = self.session.unresolved_blocks
        self.sink.clear()
        self.sink.paint(build_decorations(blocks), action_zones(blocks))

    def show(self, path: str, original: str, merged: str) -> DiffSession | None:
        session = create_session(path, original, merged, self.ignore_whitespace)
        if session.is_resolved:
            logger.info(f"{path}: no changes to show")
            return None
        self.session = session
        self.store.save(session)
        self.editor.write(path, session_text(session))
        self._paint()
        return session

    def _finish(self, text: str) -> str:
        path = self.session.file_id
        self.editor.write(path, text)
        if self.session.is_resolved:
            self.store.remove(path)
            self.session = None
            self.sink.clear()
        else:
            self._paint()
        return text

    def _act(self, line: int, op) -> str | None:
        if self.session is None:
            return None
        block = block_at_line(self.session.unresolved_blocks, line)
        if block is None:
            return None
        op(self.session, block)
        return self._finish(session_text(self.session))

    def accept(self, line: int) -> str | None:
        return self._act(line, keep_block)

    def reject(self, line: int) -> str | None:
        return self._act(line, reject_block)

    def accept_all(self) -> str | None:
        if self.session is None:
            return None
        return self._finish(keep_all(self.session))

    def reject_all(self) -> str | None:
        if self.session is None:
            return None
        return self._finish(reject_all(self.session))

    def snapshot(self) -> DiffSession | None:
        if not self.has_active_widgets():
            return None
        return self.session.copy()

    def restore(self, session: DiffSession) -> None:
        """Rebuild the visualization from a stored session's combined text."""
        if not self.editor.is_ready(session.file_id):
            raise EditorNotReadyError(f"Editor not ready for {session.file_id}")
        self.editor.write(session.file_id, session_text(session))
        self.session = session
        self._paint()

    def clear_visuals(self) -> None:
        self.sink.clear()
        self.session = None

    def discard(self, path: str) -> None:
        if self.session is not None and normalize_path(self.session.file_id) == normalize_path(path):
            self.clear_visuals()


class DiffSessionManager:
    """Keeps unresolved sessions alive while the active file changes."""

    def __init__(self, visualizer: DiffVisualizer, store: SessionStore | None = None):
        self.visualizer = visualizer
        self.store = store if store is not None else visualizer.store
        self.active_path: str | None = None

    def switch_to(self, path: str) -> DiffSession | None:
        previous = self.active_path
        if previous is not None and normalize_path(previous) != normalize_path(path):
            snapshot = self.visualizer.snapshot()
            if snapshot is not None:
                self.store.save(snapshot)
            self.visualizer.clear_visuals()

        self.active_path = path
        open_file = getattr(self.visualizer.editor, "open_file", None)
        if open_file:
            open_file(path)

        session = self.store.get(path)
        if session is None:
            return None
        if session.is_resolved:
            self.store.remove(path)
            return None
        try:
            self.visualizer.restore(session)
        except Exception as e:
            logger.warning(f"Failed to restore diff session for {path}: {e}")
            return None
        return session
