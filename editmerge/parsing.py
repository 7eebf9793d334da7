"""SEARCH/REPLACE block parsing."""
import hashlib
import logging
from dataclasses import dataclass

from pattern import (
    MARKER_PAIRS, MARKER_PREFIXES, KNOWN_EXTENSIONS, SEPARATOR,
    SEARCH_MARKER, SEARCH_MARKER_SHORT, REPLACE_MARKER, REPLACE_MARKER_SHORT,
    file_label_pattern, new_file_note_pattern, fence_pattern, code_block_pattern,
    label_path_pattern,
)
from .fs import normalize_path, get_display_name

logger = logging.getLogger(__name__)

UNKNOWN_PATH = "unknown"

_PATH_FORBIDDEN = set("<>|{};=,?")


@dataclass(frozen=True)
class EditBlock:
    """One parsed SEARCH/REPLACE instruction for a single file."""
    file_path: str
    search_lines: tuple[str, ...]
    replace_lines: tuple[str, ...]

    @property
    def is_creation(self) -> bool:
        return not self.search_lines

    @property
    def is_deletion(self) -> bool:
        return bool(self.search_lines) and not self.replace_lines

    def to_dict(self) -> dict:
        return {
            "file_path": self.file_path,
            "search_lines": list(self.search_lines),
            "replace_lines": list(self.replace_lines),
        }


@dataclass
class GeneratedFile:
    """A file referenced by one assistant response."""
    id: str
    name: str
    path: str
    code: str | None = None


def _opens_pair(stripped: str) -> bool:
    return stripped.startswith((SEARCH_MARKER, SEARCH_MARKER_SHORT))

def _closes_pair(stripped: str) -> bool:
    return stripped.startswith((REPLACE_MARKER, REPLACE_MARKER_SHORT))

def clean_file_path(line: str) -> str | None:
    """Return the path named by a line, or None if the line does not look like one."""
    s = line.strip()
    if not s or s.startswith("```") or s.startswith(MARKER_PREFIXES):
        return None

    candidate = file_label_pattern.sub("", s)
    candidate = new_file_note_pattern.sub("", candidate)
    candidate = candidate.strip().strip("*").strip().strip('"\'`').strip()

    if not candidate: return None
    if any(ch.isspace() for ch in candidate): return None
    if candidate.endswith(":"): return None
    if "://" in candidate: return None
    if candidate.startswith(("//", "#")): return None
    if any(ch in _PATH_FORBIDDEN for ch in candidate): return None

    has_separator = "/" in candidate or "\\" in candidate
    if not has_separator and not candidate.lower().endswith(KNOWN_EXTENSIONS):
        return None

    return normalize_path(candidate) or None

def _strip_blank_edges(text: str) -> list[str]:
    lines = text.split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return lines

def _find_search_marker(content: str, pos: int) -> tuple[int, str, str] | None:
    best = None
    for search_marker, replace_marker in MARKER_PAIRS:
        idx = content.find(search_marker, pos)
        if idx != -1 and (best is None or idx < best[0]):
            best = (idx, search_marker, replace_marker)
    return best

def parse_region(content: str) -> list[tuple[list[str], list[str]]]:
    """Extract every (search_lines, replace_lines) pair from one file's region.

    Stops at the first unterminated SEARCH or missing separator and returns
    what was found before it.
    """
    pairs = []
    pos = 0

    while pos < len(content):
        found = _find_search_marker(content, pos)
        if found is None:
            break
        start, search_marker, replace_marker = found

        sep = content.find(SEPARATOR, start + len(search_marker))
        if sep == -1:
            logger.debug(f"SEARCH at offset {start} has no separator; stopping")
            break

        end = content.find(replace_marker, sep + len(SEPARATOR))
        if end == -1:
            logger.debug(f"SEARCH at offset {start} has no {replace_marker!r}; stopping")
            break

        search_lines = _strip_blank_edges(content[start + len(search_marker):sep])
        replace_lines = _strip_blank_edges(content[sep + len(SEPARATOR):end])

        if search_lines or replace_lines:
            pairs.append((search_lines, replace_lines))

        pos = end + len(replace_marker)

    return pairs

def parse_edit_blocks(text: str, default_path: str | None = None) -> list[EditBlock]:
    """Parse assistant output into EditBlocks, in source order.

    A file-path line (optionally labelled ``File:``) names the file for the
    fenced or unfenced region that follows. Regions without a path fall back
    to ``default_path`` and then to ``"unknown"``. Never raises on malformed
    input.
    """
    trimmed = text.replace("\r\n", "\n").strip()
    blocks: list[EditBlock] = []

    current_path: str | None = None
    region: list[str] = []
    in_region = False
    fenced = False
    inside_pair = False

    def flush():
        if region:
            path = current_path or default_path or UNKNOWN_PATH
            for search_lines, replace_lines in parse_region("\n".join(region)):
                blocks.append(EditBlock(path, tuple(search_lines), tuple(replace_lines)))
        region.clear()

    for line in trimmed.split("\n"):
        stripped = line.strip()

        if inside_pair:
            # Fences between SEARCH and REPLACE are file content
            region.append(line)
            if _closes_pair(stripped):
                inside_pair = False
            continue

        if fence_pattern.match(line):
            if in_region:
                flush()
                in_region = fenced = False
            else:
                in_region = fenced = True
                for token in reversed(stripped.lstrip("`").split()):
                    info_path = clean_file_path(token)
                    if info_path:
                        current_path = info_path
                        break
            continue

        # Outside a SEARCH/REPLACE pair a path line switches the target file
        path = clean_file_path(line)
        if path:
            if in_region:
                flush()
                if not fenced:
                    in_region = False
            current_path = path
            continue

        if in_region:
            region.append(line)
            if _opens_pair(stripped):
                inside_pair = not _closes_pair(stripped)
            continue

        if _opens_pair(stripped):
            # Bare markers without a fence open an implicit region
            in_region = True
            fenced = False
            inside_pair = True
            region.append(line)

    flush()

    if not blocks and (SEARCH_MARKER in trimmed or SEARCH_MARKER_SHORT in trimmed):
        path = default_path or UNKNOWN_PATH
        for search_lines, replace_lines in parse_region(trimmed):
            blocks.append(EditBlock(path, tuple(search_lines), tuple(replace_lines)))

    logger.debug(f"Parsed {len(blocks)} edit block(s)")
    return blocks

def group_blocks_by_file(blocks: list[EditBlock]) -> dict[str, list[EditBlock]]:
    grouped: dict[str, list[EditBlock]] = {}
    for block in blocks:
        grouped.setdefault(block.file_path, []).append(block)
    return grouped

def make_source_key(text: str) -> str:
    """Stable identity for one assistant response."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:16]

def extract_generated_files(markdown: str) -> list[GeneratedFile]:
    """List the files an assistant response edits, with their fenced code.

    The path of a code block is taken from its first line, the last line
    before it, or its info string, in that order. Blocks for the same path are
    concatenated. Without any fenced file, ``File:`` labels give paths only.
    """
    if not markdown:
        return []

    text = markdown.replace("\r\n", "\n")
    by_path: dict[str, GeneratedFile] = {}
    previous_end = 0

    for match in code_block_pattern.finditer(text):
        code = match.group(1)
        before = text[previous_end:match.start()]
        previous_end = match.end()
        if not code.strip():
            continue

        first_line, _, rest = code.partition("\n")
        info = text[match.start():text.find("\n", match.start())].lstrip("`")
        before_lines = [ln for ln in before.split("\n") if ln.strip()]

        candidates = [(first_line, rest)]
        if before_lines:
            candidates.append((before_lines[-1], code))
        if info.strip():
            candidates.append((info.split()[-1], code))

        path = None
        body = code
        for candidate, candidate_body in candidates:
            path = clean_file_path(candidate)
            if path:
                body = candidate_body
                break
        if not path:
            continue

        body = body.rstrip("\n")
        existing = by_path.get(path)
        if existing:
            existing.code = f"{existing.code}\n{body}"
        else:
            by_path[path] = GeneratedFile(id=path, name=get_display_name(path), path=path, code=body)

    if by_path:
        return list(by_path.values())

    files = []
    seen = set()
    for match in label_path_pattern.finditer(text):
        path = clean_file_path(match.group(1))
        if path and path not in seen:
            seen.add(path)
            files.append(GeneratedFile(id=path, name=get_display_name(path), path=path))
    return files

def compute_batch_key(files: list[GeneratedFile], source_key: str | None = None) -> str | None:
    """Content-derived key for a batch: the source key plus id:length per file."""
    fingerprints = "|".join(f"{f.id}:{len(f.code or '')}" for f in files)
    if source_key:
        return f"{source_key}|{fingerprints}"
    if not files:
        return None
    return fingerprints
