from pattern import (
    MARKER_PAIRS, SEARCH_MARKER, SEARCH_MARKER_SHORT, REPLACE_MARKER, REPLACE_MARKER_SHORT,
    file_label_pattern, new_file_note_pattern, fence_pattern, code_block_pattern, label_path_pattern,
    diff_example,
)
from tests.conftest import stub_to_diff, wrap_in_code_block

def test_marker_pairs_longest_first():
    assert MARKER_PAIRS[0] == (SEARCH_MARKER, REPLACE_MARKER)
    assert MARKER_PAIRS[1] == (SEARCH_MARKER_SHORT, REPLACE_MARKER_SHORT)

def test_short_search_marker_is_suffix_of_long():
    # The long marker contains the short one four characters in
    assert SEARCH_MARKER.find(SEARCH_MARKER_SHORT) == 4
    assert REPLACE_MARKER.find(REPLACE_MARKER_SHORT) == 4

def test_stub_helper_produces_both_vocabularies():
    stub = """
[SEARCH]
old
[REPLACE]
new
[END]
"""
    long_form = stub_to_diff(stub)
    short_form = stub_to_diff(stub, short=True)
    assert long_form.startswith(SEARCH_MARKER)
    assert long_form.endswith(REPLACE_MARKER)
    assert short_form.startswith(SEARCH_MARKER_SHORT)
    assert short_form.endswith(REPLACE_MARKER_SHORT)
    assert "\n=======\n" in short_form

def test_file_label_pattern():
    assert file_label_pattern.sub("", "File: src/a.py") == "src/a.py"
    assert file_label_pattern.sub("", "  filename:src/a.py") == "src/a.py"
    assert file_label_pattern.sub("", "src/file.py") == "src/file.py"

def test_new_file_note_pattern():
    assert new_file_note_pattern.sub("", "src/new.ts (new file)") == "src/new.ts"
    assert new_file_note_pattern.sub("", "src/new.ts (New File) ") == "src/new.ts"

def test_fence_pattern():
    assert fence_pattern.match("```")
    assert fence_pattern.match("  ```python")
    assert not fence_pattern.match("code ```")

def test_code_block_pattern_captures_body():
    text = "intro\n" + wrap_in_code_block("line1\nline2", info="python") + "\noutro"
    match = code_block_pattern.search(text)
    assert match
    assert match.group(1) == "line1\nline2\n"

def test_label_path_pattern():
    matches = [m.group(1) for m in label_path_pattern.finditer("File: a.py\ntext\nfile: b/c.ts")]
    assert matches == ["a.py", "b/c.ts"]

def test_diff_example_uses_long_markers():
    assert SEARCH_MARKER in diff_example
    assert REPLACE_MARKER in diff_example
