"""CLI implementation for editmerge."""
import argparse
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from editmerge import (
    config, update_core_settings, Workspace, FileEditor, ApplyQueue, MergeOrchestrator,
    LLMMergeService, GeneratedFile, MergeServiceError, parse_edit_blocks, group_blocks_by_file,
    extract_generated_files, make_source_key, calculate_diff, render_combined, MERGE_STRATEGIES,
)

logger = logging.getLogger(__name__)

def setup_logging(verbose: bool = False):
    """Configure application logging to a rotating file and stderr."""
    # Resolved at call time so tests can redirect the log directory
    log_dir = sys.modules["editmerge.config"].LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "editmerge.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Silence noisy libraries
    for lib in ["urllib3", "httpcore", "httpx", "openai"]:
        logging.getLogger(lib).setLevel(logging.WARNING)

    # Remove existing handlers to avoid duplicates on re-entry
    for h in root_logger.handlers[:]:
        root_logger.removeHandler(h)

    file_handler = RotatingFileHandler(log_file, maxBytes=1024*1024*5, backupCount=3, encoding='utf-8')
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    root_logger.addHandler(file_handler)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    root_logger.addHandler(console)

def _read_response(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    p = Path(source)
    if not p.is_file():
        print(f"Error: Response file not found: {source}", file=sys.stderr)
        sys.exit(1)
    return p.read_text(encoding="utf-8")

def _collect_files(text: str, default_path: str | None) -> list[GeneratedFile]:
    """Files to merge: fenced files first, then parsed block paths, then the --file target."""
    files = extract_generated_files(text)
    if any(f.code for f in files):
        return [f for f in files if f.code]

    grouped = group_blocks_by_file(parse_edit_blocks(text, default_path))
    if grouped:
        return [GeneratedFile(id=p, name=Path(p).name, path=p, code=text) for p in grouped]

    if default_path:
        return [GeneratedFile(id=default_path, name=Path(default_path).name, path=default_path, code=text)]
    return []

def _build_orchestrator(workspace: Workspace) -> MergeOrchestrator:
    editor = FileEditor(workspace)
    queue = ApplyQueue(editor)

    service = None
    core_cfg = sys.modules["editmerge.config"]
    if config.merge_strategy != "local" and core_cfg.API_KEY:
        service = LLMMergeService()
    return MergeOrchestrator(workspace.read, queue, merge_service=service)

def _cmd_parse(args):
    text = _read_response(args.response)
    blocks = parse_edit_blocks(text, args.file)
    print(json.dumps([b.to_dict() for b in blocks], indent=2))

def _cmd_diff(args, workspace: Workspace):
    text = _read_response(args.response)
    files = _collect_files(text, args.file)
    if not files:
        print("No edits found in response.", file=sys.stderr)
        sys.exit(1)

    orchestrator = _build_orchestrator(workspace)
    try:
        orchestrator.begin_batch(files, make_source_key(text))
        orchestrator.precompute()
        for f in orchestrator.files():
            result = orchestrator.resolve(f.path)
            diff = calculate_diff(result.original_code, result.merged_code, ignore_whitespace=config.ignore_whitespace)
            print(f"--- {f.path}")
            if diff.has_changes:
                print(render_combined(diff))
            else:
                print("  (no changes)")
    finally:
        orchestrator.shutdown()

def _cmd_apply(args, workspace: Workspace):
    text = _read_response(args.response)
    files = _collect_files(text, args.file)
    if not files:
        print("No edits found in response.", file=sys.stderr)
        sys.exit(1)

    orchestrator = _build_orchestrator(workspace)
    failures = 0
    try:
        orchestrator.begin_batch(files, make_source_key(text))
        orchestrator.precompute()

        if args.dry_run:
            print("[Dry Run] Proposed changes:")
            for f in orchestrator.files():
                result = orchestrator.resolve(f.path)
                if not result.original_code and result.merged_code:
                    status = "Created"
                elif result.changed:
                    diff = calculate_diff(result.original_code, result.merged_code)
                    status = f"{len(diff.blocks)} changed block(s)"
                else:
                    status = "No changes"
                print(f"  {f.path}: {status}")
            return

        outcomes = orchestrator.reject_all() if args.reject else orchestrator.keep_all()
        for path, outcome in outcomes.items():
            try:
                status = outcome.result()
                print(f"{path}: {status}")
            except Exception as e:
                failures += 1
                print(f"{path}: failed ({e})", file=sys.stderr)
    finally:
        orchestrator.shutdown()

    if failures:
        sys.exit(1)

def _cmd_config(args):
    if args.merge_model:
        config.set_merge_model(args.merge_model)
        print(f"Merge model: {args.merge_model}")
    if args.strategy:
        config.set_merge_strategy(args.strategy)
        print(f"Merge strategy: {args.strategy}")
    if args.api_key or args.base_url:
        core_cfg = sys.modules["editmerge.config"]
        update_core_settings(args.api_key or core_cfg.API_KEY, args.base_url or core_cfg.API_BASE_URL)
        print("Updated merge service credentials.")
    if args.path:
        print(str(sys.modules["editmerge.config"].APP_DATA_DIR))

def run_cli(argv: list[str] | None = None):
    """Run in CLI mode with subcommands."""
    parser = argparse.ArgumentParser(
        prog="editmerge",
        description="editmerge - apply SEARCH/REPLACE edits from assistant responses",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subcommands:
  parse     Print the edit blocks found in a response
  diff      Show the combined diff of every edited file
  apply     Merge and write every edited file
  config    Manage configuration

Examples:
  editmerge parse response.md
  editmerge diff response.md --file src/app.py
  editmerge apply response.md --dry-run
  cat response.md | editmerge apply -
"""
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")
    parser.add_argument("-C", "--cwd", help="Project root (defaults to the current directory)")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    parse_parser = subparsers.add_parser("parse", help="Print parsed edit blocks as JSON")
    parse_parser.add_argument("response", help="Response file, or - for stdin")
    parse_parser.add_argument("-f", "--file", help="Default path for blocks without one")

    diff_parser = subparsers.add_parser("diff", help="Show the combined diff per file")
    diff_parser.add_argument("response", help="Response file, or - for stdin")
    diff_parser.add_argument("-f", "--file", help="Default path for blocks without one")

    apply_parser = subparsers.add_parser("apply", help="Merge and write files")
    apply_parser.add_argument("response", help="Response file, or - for stdin")
    apply_parser.add_argument("-f", "--file", help="Default path for blocks without one")
    apply_parser.add_argument("--reject", action="store_true", help="Write the original text back instead")
    apply_parser.add_argument("--dry-run", action="store_true", help="Report what would change and exit")

    config_parser = subparsers.add_parser("config", help="Manage configuration")
    config_parser.add_argument("--merge-model", help="Model used by the merge service")
    config_parser.add_argument("--strategy", choices=MERGE_STRATEGIES, help="Merge strategy")
    config_parser.add_argument("--api-key", help="API key for the merge service")
    config_parser.add_argument("--base-url", help="Base URL for the merge service")
    config_parser.add_argument("--path", action="store_true", help="Print the AppData folder path")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    setup_logging(verbose=args.verbose)
    workspace = Workspace(args.cwd)

    try:
        if args.command == "parse":
            _cmd_parse(args)
        elif args.command == "diff":
            _cmd_diff(args, workspace)
        elif args.command == "apply":
            _cmd_apply(args, workspace)
        elif args.command == "config":
            _cmd_config(args)
    except KeyboardInterrupt:
        print("\nCancelled", file=sys.stderr)
        sys.exit(130)
    except (MergeServiceError, IOError, ValueError) as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)

def main():
    """Main entry point."""
    run_cli()

if __name__ == "__main__":
    main()
