import re
# Marker literals live only here. Tests build them with stub_to_diff.

SEARCH_MARKER = "<<<<<<< SEARCH"
SEPARATOR = "======="
REPLACE_MARKER = ">>>>>>> REPLACE"

SEARCH_MARKER_SHORT = "<<< SEARCH"
REPLACE_MARKER_SHORT = ">>> REPLACE"

# (search, replace) pairs, longest first
MARKER_PAIRS = (
    (SEARCH_MARKER, REPLACE_MARKER),
    (SEARCH_MARKER_SHORT, REPLACE_MARKER_SHORT),
)

MARKER_PREFIXES = ("<<<<<<<", "=======", ">>>>>>>", "<<<", ">>>")

KNOWN_EXTENSIONS = (
    ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".html", ".css", ".scss",
    ".json", ".py", ".md", ".vue", ".svelte", ".go", ".rs", ".java", ".kt",
    ".rb", ".php", ".c", ".h", ".cpp", ".hpp", ".cs", ".sh", ".sql",
    ".yml", ".yaml", ".toml", ".txt", ".xml",
)

file_label_pattern = re.compile(r"^\s*(?:file|filename)\s*:\s*", re.IGNORECASE)

new_file_note_pattern = re.compile(r"\s*\(new file\)\s*$", re.IGNORECASE)

fence_pattern = re.compile(r"^\s*```")

code_block_pattern = re.compile(r"```[^\n]*\n(.*?)```", re.DOTALL)

label_path_pattern = re.compile(r"File:\s*([^\n]+)", re.IGNORECASE)

diff_example = """```
dir/filename.ext
<<<<<<< SEARCH
exact original text
=======
new text
>>>>>>> REPLACE
```"""
