"""Applying SEARCH/REPLACE blocks to file text."""
import logging
from dataclasses import dataclass, field
from typing import Callable

from .diffing import CRLF, detect_eol, normalize_newlines
from .parsing import EditBlock, parse_edit_blocks, group_blocks_by_file
from .fs import paths_match

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeResult:
    original_code: str
    merged_code: str

    @property
    def changed(self) -> bool:
        return self.original_code != self.merged_code


@dataclass
class MergeOutcome:
    """Merged text plus which blocks were applied and which were skipped."""
    merged: str
    applied: list[EditBlock] = field(default_factory=list)
    skipped: list[EditBlock] = field(default_factory=list)


def find_block_location(lines: list[str], search_lines: list[str] | tuple[str, ...]) -> tuple[int, int] | None:
    """Locate search_lines in lines, exactly first, then ignoring edge whitespace.

    Returns a half-open (start, end) line range, or None.
    """
    n = len(search_lines)
    if n == 0 or n > len(lines):
        return None

    search = list(search_lines)
    for i in range(len(lines) - n + 1):
        if lines[i:i + n] == search:
            return i, i + n

    stripped_search = [s.strip() for s in search]
    stripped_lines = [line.strip() for line in lines]
    for i in range(len(lines) - n + 1):
        if stripped_lines[i:i + n] == stripped_search:
            logger.debug(f"Whitespace-tolerant match at line {i + 1}")
            return i, i + n

    return None

def _indentation_map(search_lines, matched_lines: list[str]) -> dict[str, str]:
    indents: dict[str, str] = {}
    for search_line, original in zip(search_lines, matched_lines):
        key = search_line.strip()
        if key and key not in indents:
            indents[key] = original[:len(original) - len(original.lstrip())]
    return indents

def _log_indent_drift(block: EditBlock, indents: dict[str, str]) -> None:
    for line in block.replace_lines:
        key = line.strip()
        if not key or key not in indents:
            continue
        own = line[:len(line) - len(line.lstrip())]
        if own != indents[key]:
            logger.debug(f"{block.file_path}: replace line {key!r} indented {own!r}, original {indents[key]!r}")

def apply_blocks(original: str, blocks: list[EditBlock]) -> MergeOutcome:
    """Apply blocks to original in reverse order and report what happened.

    Unmatched blocks are skipped. A creation block against blank text yields
    exactly its replace lines and stops; against non-blank text it is ignored.
    Matching runs on LF text and the original line ending is restored.
    """
    outcome = MergeOutcome(merged=original)
    if not blocks:
        return outcome

    eol = detect_eol(original)
    result = normalize_newlines(original)
    for block in reversed(blocks):
        if block.is_creation:
            if not result.strip():
                result = "\n".join(block.replace_lines)
                outcome.applied.append(block)
                break
            logger.warning(f"{block.file_path}: creation block ignored, file already has content")
            outcome.skipped.append(block)
            continue

        lines = result.split("\n")
        location = find_block_location(lines, block.search_lines)
        if location is None:
            logger.warning(f"{block.file_path}: search text not found, skipping block starting {block.search_lines[0]!r}")
            outcome.skipped.append(block)
            continue

        start, end = location
        if logger.isEnabledFor(logging.DEBUG):
            _log_indent_drift(block, _indentation_map(block.search_lines, lines[start:end]))

        # Empty before/after segments contribute no separator
        result = "\n".join(lines[:start] + list(block.replace_lines) + lines[end:])
        outcome.applied.append(block)

    if outcome.applied:
        outcome.merged = result.replace("\n", "\r\n") if eol == CRLF else result
    # Reported in source order
    outcome.applied.reverse()
    outcome.skipped.reverse()
    return outcome

def merge_blocks(original: str, blocks: list[EditBlock]) -> str:
    return apply_blocks(original, blocks).merged

def blocks_for_file(blocks: list[EditBlock], file_path: str) -> list[EditBlock]:
    return [b for b in blocks if paths_match(b.file_path, file_path)]

def merge_response(original: str, text: str, file_path: str) -> MergeOutcome:
    """Parse text and apply only the blocks that target file_path."""
    blocks = parse_edit_blocks(text, default_path=file_path)
    return apply_blocks(original, blocks_for_file(blocks, file_path))

def merge_all(text: str, read_file: Callable[[str], str], default_path: str | None = None) -> dict[str, MergeResult]:
    """Merge every file a response edits, keyed by the block's file path."""
    results: dict[str, MergeResult] = {}
    for path, blocks in group_blocks_by_file(parse_edit_blocks(text, default_path)).items():
        original = read_file(path)
        outcome = apply_blocks(original, blocks)
        if outcome.skipped:
            logger.info(f"{path}: {len(outcome.applied)} block(s) applied, {len(outcome.skipped)} skipped")
        results[path] = MergeResult(original, outcome.merged)
    return results
