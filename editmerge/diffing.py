"""Line-level diff between original and merged text."""
import difflib
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

ADDED = "added"
REMOVED = "removed"
CONTEXT = "context"

LF = "LF"
CRLF = "CRLF"


@dataclass(frozen=True)
class DiffBlock:
    """A maximal run of added or removed lines, 1-based and inclusive."""
    kind: str
    start_line: int
    end_line: int

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def contains(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line

    def to_dict(self) -> dict:
        return {"kind": self.kind, "start_line": self.start_line, "end_line": self.end_line}

    @classmethod
    def from_dict(cls, data: dict) -> "DiffBlock":
        return cls(data["kind"], int(data["start_line"]), int(data["end_line"]))


@dataclass(frozen=True)
class Decoration:
    line: int
    kind: str


@dataclass(frozen=True)
class ActionZone:
    """Accept/reject controls for one block or modification pair."""
    anchor_line: int
    blocks: tuple[DiffBlock, ...]


@dataclass
class DiffResult:
    combined_lines: list[str] = field(default_factory=list)
    line_kinds: list[str] = field(default_factory=list)
    decorations: list[Decoration] = field(default_factory=list)
    blocks: list[DiffBlock] = field(default_factory=list)

    @property
    def combined_text(self) -> str:
        return "\n".join(self.combined_lines)

    @property
    def has_changes(self) -> bool:
        return bool(self.blocks)


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")

def detect_eol(text: str) -> str:
    return CRLF if "\r\n" in text else LF

def split_lines(text: str) -> list[str]:
    """Split normalized text into lines. Empty text has no lines."""
    if not text:
        return []
    return normalize_newlines(text).split("\n")

def _collapse_whitespace(line: str) -> str:
    return " ".join(line.split())

def _append_run(result: DiffResult, lines: list[str], kind: str) -> None:
    if not lines:
        return
    start = len(result.combined_lines) + 1
    result.combined_lines.extend(lines)
    result.line_kinds.extend([kind] * len(lines))
    if kind == CONTEXT:
        return
    for offset in range(len(lines)):
        result.decorations.append(Decoration(start + offset, kind))
    result.blocks.append(DiffBlock(kind, start, start + len(lines) - 1))

def calculate_diff(original: str, merged: str, ignore_whitespace: bool = False) -> DiffResult:
    """Interleave original and merged lines and tag the changed runs.

    Removed lines come before the added lines that replace them. With
    ignore_whitespace, lines differing only in whitespace count as unchanged
    and the original's text is kept for them.
    """
    a = split_lines(original)
    b = split_lines(merged)

    if ignore_whitespace:
        matcher = difflib.SequenceMatcher(None, [_collapse_whitespace(x) for x in a],
                                          [_collapse_whitespace(x) for x in b], autojunk=False)
    else:
        matcher = difflib.SequenceMatcher(None, a, b, autojunk=False)

    result = DiffResult()
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            _append_run(result, a[i1:i2], CONTEXT)
            continue
        if tag in ("replace", "delete"):
            _append_run(result, a[i1:i2], REMOVED)
        if tag in ("replace", "insert"):
            _append_run(result, b[j1:j2], ADDED)

    logger.debug(f"Diff: {len(result.blocks)} block(s) over {len(result.combined_lines)} combined line(s)")
    return result

def find_partner(blocks: list[DiffBlock], block: DiffBlock) -> DiffBlock | None:
    """The opposite-kind block directly adjacent to block, if any.

    A removed run followed immediately by an added run is one modification.
    """
    if block.kind == REMOVED:
        target_line, target_kind = block.end_line + 1, ADDED
        for other in blocks:
            if other.kind == target_kind and other.start_line == target_line:
                return other
    elif block.kind == ADDED:
        target_line, target_kind = block.start_line - 1, REMOVED
        for other in blocks:
            if other.kind == target_kind and other.end_line == target_line:
                return other
    return None

def block_at_line(blocks: list[DiffBlock], line: int) -> DiffBlock | None:
    for block in blocks:
        if block.contains(line):
            return block
    return None

def build_decorations(blocks: list[DiffBlock]) -> list[Decoration]:
    decorations = []
    for block in blocks:
        for line in range(block.start_line, block.end_line + 1):
            decorations.append(Decoration(line, block.kind))
    return decorations

def action_zones(blocks: list[DiffBlock]) -> list[ActionZone]:
    zones = []
    for block in blocks:
        partner = find_partner(blocks, block)
        if partner is None:
            zones.append(ActionZone(block.end_line, (block,)))
        elif block.kind == REMOVED:
            zones.append(ActionZone(block.end_line, (block, partner)))
        # The added half of a pair shares the removed block's zone
    return zones

def render_combined(result: DiffResult) -> str:
    """Plain-text rendering of the combined view with +/- gutters."""
    prefixes = {ADDED: "+", REMOVED: "-", CONTEXT: " "}
    return "\n".join(f"{prefixes[kind]} {line}" for line, kind in zip(result.combined_lines, result.line_kinds))
