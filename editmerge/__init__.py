"""Facade for editmerge."""

from .config import (
    config, API_KEY, API_BASE_URL, APP_DATA_DIR, LOG_DIR, SETTINGS_PATH,
    MERGE_STRATEGIES, EditMergeConfig, update_core_settings, load_json_file, save_json_file,
)

from .errors import EditMergeError, MergeServiceError, EditorNotReadyError, CancelledError

from .fs import Workspace, normalize_path, paths_match, get_display_name

from .parsing import (
    EditBlock, GeneratedFile, parse_edit_blocks, parse_region, clean_file_path,
    group_blocks_by_file, extract_generated_files, compute_batch_key, make_source_key,
)

from .merging import (
    MergeResult, MergeOutcome, apply_blocks, merge_blocks, merge_response, merge_all,
    find_block_location, blocks_for_file,
)

from .diffing import (
    ADDED, REMOVED, CONTEXT, LF, CRLF, DiffBlock, Decoration, ActionZone, DiffResult,
    calculate_diff, find_partner, block_at_line, build_decorations, action_zones, render_combined,
)

from .sessions import (
    DiffSession, SessionStore, DecorationSink, DiffVisualizer, DiffSessionManager, create_session,
    apply_keep_to_session, apply_reject_to_session, keep_block, reject_block, keep_all, reject_all,
)

from .applying import EditorSurface, FileEditor, PendingApply, ApplyQueue

from .llm import LLMMergeService

from .workflow import MergeOrchestrator, MergeState, IDLE, PENDING, READY, ERROR, APPLIED, REJECTED
