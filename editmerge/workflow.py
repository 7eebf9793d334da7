"""Per-file merge states, batches, and keep/reject resolution."""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from typing import Callable

from .applying import ApplyQueue
from .config import config
from .errors import MergeServiceError, CancelledError
from .fs import normalize_path, get_display_name
from .merging import MergeResult, apply_blocks, blocks_for_file
from .parsing import GeneratedFile, parse_edit_blocks, compute_batch_key
from .sessions import SessionStore, apply_keep_to_session, apply_reject_to_session

logger = logging.getLogger(__name__)

IDLE = "idle"
PENDING = "pending"
READY = "ready"
ERROR = "error"

APPLIED = "applied"
REJECTED = "rejected"


@dataclass(frozen=True)
class MergeState:
    status: str = IDLE
    result: MergeResult | None = None
    message: str | None = None

    @classmethod
    def pending(cls) -> "MergeState":
        return cls(PENDING)

    @classmethod
    def ready(cls, result: MergeResult) -> "MergeState":
        return cls(READY, result=result)

    @classmethod
    def failed(cls, message: str) -> "MergeState":
        return cls(ERROR, message=message)


@dataclass
class _Job:
    batch_id: int
    future: Future


class MergeOrchestrator:
    """Precomputes merges for one batch of generated files and resolves them.

    Merge jobs run on a thread pool, one per path. A job's result only lands
    if its batch is still current and it is still the active job for its path.
    Writes go through the ApplyQueue in submission order.
    """

    def __init__(self, read_file: Callable[[str], str], queue: ApplyQueue, store: SessionStore | None = None,
                 merge_service=None, strategy: str | None = None, pending_timeout: float | None = None,
                 executor: ThreadPoolExecutor | None = None, visualizer=None,
                 on_resolved: Callable[[str, str], None] | None = None):
        self.read_file = read_file
        self.queue = queue
        self.store = store if store is not None else SessionStore()
        self.merge_service = merge_service
        self.strategy = strategy or config.merge_strategy
        self.pending_timeout = config.pending_merge_timeout if pending_timeout is None else pending_timeout
        self.visualizer = visualizer
        self.on_resolved = on_resolved

        self._executor = executor or ThreadPoolExecutor(max_workers=config.merge_workers, thread_name_prefix="merge")
        self._lock = threading.Lock()
        self._states: dict[str, MergeState] = {}
        self._jobs: dict[str, _Job] = {}
        self._files: dict[str, GeneratedFile] = {}
        self._batch_id = 0
        self._batch_identity: str | None = None
        self.batch_key: str | None = None
        self.resolved: dict[str, str] = {}

    # --- Batches ---

    @property
    def batch_id(self) -> int:
        with self._lock:
            return self._batch_id

    def begin_batch(self, files: list[GeneratedFile], source_key: str | None = None) -> bool:
        """Register the files of a response. Returns True if this started a new batch."""
        key = compute_batch_key(files, source_key)
        identity = source_key or key

        with self._lock:
            is_new = identity != self._batch_identity
            if is_new:
                self._batch_identity = identity
                self._batch_id += 1
                self._states.clear()
                self._jobs.clear()
                self._files.clear()
                self.resolved.clear()
                logger.info(f"New batch {self._batch_id} with {len(files)} file(s)")
            self.batch_key = key

            for f in files:
                path = normalize_path(f.path)
                self._files[path] = f
                self._states.setdefault(path, MergeState())
        return is_new

    def files(self) -> list[GeneratedFile]:
        with self._lock:
            return list(self._files.values())

    def unresolved_paths(self) -> list[str]:
        with self._lock:
            return [p for p in self._files if p not in self.resolved]

    def state(self, path: str) -> MergeState:
        with self._lock:
            return self._states.get(normalize_path(path), MergeState())

    # --- Merge jobs ---

    def compute_merge(self, path: str, code: str) -> MergeResult:
        """Merge code into the current text of path. Runs on a worker thread."""
        original = self.read_file(path)

        if self.strategy != "remote" or self.merge_service is None:
            blocks = blocks_for_file(parse_edit_blocks(code, default_path=path), path)
            if blocks:
                outcome = apply_blocks(original, blocks)
                if outcome.skipped:
                    logger.warning(f"{path}: {len(outcome.skipped)} of {len(blocks)} block(s) did not match")
                return MergeResult(original, outcome.merged)

        if self.strategy != "local" and self.merge_service is not None:
            try:
                merged = self.merge_service.compute_merge(code, original, get_display_name(path))
            except MergeServiceError:
                raise
            except Exception as e:
                raise MergeServiceError(f"Merge service failed for {path}: {e}") from e
            return MergeResult(original, merged)

        # No blocks and no service: the code is the whole new file
        return MergeResult(original, code)

    def _start_job(self, path: str, code: str) -> Future:
        with self._lock:
            job = self._jobs.get(path)
            if job is not None:
                return job.future
            batch_id = self._batch_id
            future = self._executor.submit(self.compute_merge, path, code)
            self._jobs[path] = _Job(batch_id, future)
            self._states[path] = MergeState.pending()
        future.add_done_callback(lambda f: self._on_job_done(path, batch_id, f))
        return future

    def _on_job_done(self, path: str, batch_id: int, future: Future) -> None:
        with self._lock:
            job = self._jobs.get(path)
            if batch_id != self._batch_id or job is None or job.future is not future:
                logger.debug(f"Ignoring superseded merge for {path}")
                return
            del self._jobs[path]

            if future.cancelled():
                self._states[path] = MergeState()
                return
            error = future.exception()
            if error is not None:
                logger.warning(f"Merge failed for {path}: {error}")
                self._states[path] = MergeState.failed(str(error) or "Failed to prepare merge")
            else:
                self._states[path] = MergeState.ready(future.result())

    def precompute(self) -> dict[str, Future]:
        """Start a merge for every idle or errored file that has code."""
        with self._lock:
            candidates = [
                (path, f.code) for path, f in self._files.items()
                if f.code and path not in self._jobs
                and self._states.get(path, MergeState()).status in (IDLE, ERROR)
            ]
        return {path: self._start_job(path, code) for path, code in candidates}

    def _code_for(self, path: str, code: str | None) -> str:
        if code is not None:
            return code
        with self._lock:
            f = self._files.get(path)
        if f is None or f.code is None:
            raise KeyError(f"No generated code for {path}")
        return f.code

    def _fresh_merge(self, path: str, code: str) -> MergeResult:
        try:
            return self.compute_merge(path, code)
        except MergeServiceError as e:
            logger.warning(f"{e}; using the generated code as-is")
            return MergeResult(self.read_file(path), code)

    def resolve(self, path: str, code: str | None = None) -> MergeResult:
        """Best available merge for path.

        A ready result is served only while the live text still equals its
        original. A pending job is awaited up to pending_timeout. Errors
        degrade to the raw code.
        """
        path = normalize_path(path)
        code = self._code_for(path, code)
        state = self.state(path)

        if state.status == READY:
            if self.read_file(path) == state.result.original_code:
                return state.result
            logger.info(f"{path}: cached merge is stale, recomputing")
            with self._lock:
                if self._states.get(path) is state:
                    self._states[path] = MergeState()

        elif state.status == ERROR:
            logger.warning(f"{path}: {state.message}; using the generated code as-is")
            return MergeResult(self.read_file(path), code)

        future = self._start_job(path, code)
        try:
            result = future.result(timeout=self.pending_timeout)
        except FuturesTimeout:
            logger.warning(f"{path}: merge still pending after {self.pending_timeout}s, computing fresh")
            return self._fresh_merge(path, code)
        except Exception as e:
            logger.warning(f"{path}: {e}; using the generated code as-is")
            return MergeResult(self.read_file(path), code)

        if self.read_file(path) != result.original_code:
            logger.info(f"{path}: file changed during merge, recomputing")
            return self._fresh_merge(path, code)
        return result

    # --- Keep / reject ---

    def _final_content(self, path: str, keep: bool, code: str | None) -> str:
        session = self.store.get(path)
        if session is not None and not session.is_resolved:
            content = apply_keep_to_session(session) if keep else apply_reject_to_session(session)
            self.store.remove(path)
            if self.visualizer is not None:
                self.visualizer.discard(path)
            return content

        result = self.resolve(path, code)
        return result.merged_code if keep else result.original_code

    def _on_written(self, path: str, status: str, written: Future, outcome: Future) -> None:
        if written.cancelled():
            outcome.set_exception(CancelledError(f"Write to {path} cancelled"))
            return
        error = written.exception()
        if error is not None:
            outcome.set_exception(error)
            return

        with self._lock:
            self.resolved[path] = status
        if self.on_resolved:
            try:
                self.on_resolved(path, status)
            except Exception:
                logger.exception(f"Resolution callback failed for {path}")
        outcome.set_result(status)

    def _apply(self, path: str, keep: bool, code: str | None = None, outcome: Future | None = None) -> Future:
        path = normalize_path(path)
        status = APPLIED if keep else REJECTED
        if outcome is None:
            outcome = Future()
            outcome.set_running_or_notify_cancel()

        try:
            content = self._final_content(path, keep, code)
            written = self.queue.enqueue(path, content)
        except Exception as e:
            logger.error(f"Failed to {'keep' if keep else 'reject'} {path}: {e}")
            outcome.set_exception(e)
            return outcome

        written.add_done_callback(lambda f: self._on_written(path, status, f, outcome))
        return outcome

    def keep_file(self, path: str, code: str | None = None) -> Future:
        """Write the merged text (or the session's kept text) for one file."""
        return self._apply(path, True, code)

    def reject_file(self, path: str, code: str | None = None) -> Future:
        """Write the original text (or the session's rejected text) for one file."""
        return self._apply(path, False, code)

    def _apply_all(self, keep: bool) -> dict[str, Future]:
        with self._lock:
            candidates = [(p, f) for p, f in self._files.items() if p not in self.resolved]
        paths = []
        for path, f in candidates:
            if f.code:
                paths.append(path)
            else:
                logger.info(f"{path}: no generated code, skipping")

        self.precompute()
        outcomes = {}
        for path in paths:
            outcome = Future()
            outcome.set_running_or_notify_cancel()
            outcomes[path] = outcome

        def drain():
            for path in paths:
                self._apply(path, keep, outcome=outcomes[path])

        threading.Thread(target=drain, daemon=True, name="keep-all" if keep else "reject-all").start()
        return outcomes

    def keep_all(self) -> dict[str, Future]:
        return self._apply_all(True)

    def reject_all(self) -> dict[str, Future]:
        return self._apply_all(False)

    def preview(self, path: str, code: str | None = None):
        """Resolve a merge and show it on the visualizer, if there is one."""
        result = self.resolve(path, code)
        if self.visualizer is None:
            return result
        return self.visualizer.show(normalize_path(path), result.original_code, result.merged_code)

    def shutdown(self) -> None:
        self.queue.clear()
        self._executor.shutdown(wait=False, cancel_futures=True)
