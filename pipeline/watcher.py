"""
Directory watcher that feeds dropped design files into the pipeline.

Monitors the active directory with watchdog, waits until each file has
stopped changing, then applies the eligibility filter, the live
auto-process toggle and the dedup registry before handing the file to a
bounded worker pool that runs DraftPipeline.process().
"""

import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from db.log_operations import ActionLogRepository
from db.models import LogOutcome
from db.operations import ItemRepository
from db.settings_operations import SettingsRepository
from pipeline.dedup_registry import DedupRegistry
from pipeline.file_scanner import FileScanner, is_eligible_name
from pipeline.processor import DraftPipeline, ProcessingResult, ensure_directories

logger = logging.getLogger(__name__)

DEFAULT_STABILITY_SECONDS = 2.0
DEFAULT_POLL_SECONDS = 0.1
DEFAULT_MAX_WORKERS = 4


class DesignEventHandler(FileSystemEventHandler):
    """Watchdog handler that hands new or changed files to the watcher."""

    def __init__(self, watcher: "DirectoryWatcher"):
        super().__init__()
        self.watcher = watcher

    def dispatch(self, event: FileSystemEvent) -> None:
        try:
            super().dispatch(event)
        except Exception as e:
            self.watcher.report_error(e)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.track(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        # Directory modifications are noise; the file events carry the paths
        if not event.is_directory:
            self.watcher.track(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        dest = getattr(event, "dest_path", None)
        # Moves out of the directory (e.g. into the archive) are ignored
        if dest and not event.is_directory and self.watcher.is_watched(dest):
            self.watcher.track(dest)


class DirectoryWatcher:
    """
    Watches one directory and dispatches stable design files.

    Each stable file is checked in this order:
    1. Extension allow-list and hidden-file filter
    2. Live auto_process setting (disabled: file left untouched)
    3. DedupRegistry.claim (already claimed: skipped)
    Claimed files are processed on a ThreadPoolExecutor so the observer
    thread is never blocked and in-flight runs are bounded.
    """

    def __init__(
        self,
        pipeline: DraftPipeline,
        watch_dir: str | Path,
        archive_dir: str | Path,
        registry: DedupRegistry | None = None,
        settings: SettingsRepository | None = None,
        items: ItemRepository | None = None,
        action_log: ActionLogRepository | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        stability_threshold: float = DEFAULT_STABILITY_SECONDS,
        poll_interval: float = DEFAULT_POLL_SECONDS,
    ):
        """
        Initialize the watcher.

        Args:
            pipeline: Engine that processes claimed files.
            watch_dir: Active directory to observe.
            archive_dir: Where completed files are moved.
            registry: Dedup registry. If None, a fresh one is created.
            settings: Source of the auto_process toggle.
            items: Item store used to seed the registry.
            action_log: Where process-level errors are recorded.
            max_workers: Maximum concurrent pipeline runs.
            stability_threshold: Seconds a file must stay unchanged.
            poll_interval: Seconds between stability checks.
        """
        self.pipeline = pipeline
        self.watch_dir = Path(watch_dir)
        self.archive_dir = Path(archive_dir)
        self.registry = registry or DedupRegistry()
        self.settings = settings or SettingsRepository()
        self.items = items or ItemRepository()
        self.action_log = action_log or ActionLogRepository()
        self.stability_threshold = stability_threshold
        self.poll_interval = poll_interval
        self.max_workers = max_workers

        self.scanner = FileScanner()
        self.executor = self._new_executor()
        self._executor_closed = False

        # path -> (size, mtime_ns, monotonic time the signature was first seen)
        self._pending: dict[Path, tuple[int, int, float]] = {}
        self._pending_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._settle_thread: threading.Thread | None = None
        self._observer: Observer | None = None
        self.event_handler = DesignEventHandler(self)

    # ────────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ────────────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        """
        Create directories, seed the registry and start observing.

        A stopped watcher can be started again; it gets a fresh worker pool.
        """
        ensure_directories(self.watch_dir, self.archive_dir)

        if self._executor_closed:
            self.executor = self._new_executor()
            self._executor_closed = False

        self.registry.seed(self.items.get_claimed_filenames())

        self._start_observer()

        self._stop_event.clear()
        self._settle_thread = threading.Thread(
            target=self._settle_loop, name="watcher-settle", daemon=True
        )
        self._settle_thread.start()

        # Files already sitting in the directory are evaluated like new ones
        for path in self.scanner.scan(self.watch_dir):
            self.track(path)

        logger.info(f"Folder watcher started on: {self.watch_dir}")

    def stop(self, wait: bool = True) -> None:
        """Stop observing and wait for in-flight runs to finish."""
        self._stop_event.set()

        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None

        if self._settle_thread is not None:
            self._settle_thread.join()
            self._settle_thread = None

        self.executor.shutdown(wait=wait)
        self._executor_closed = True
        logger.info("Folder watcher stopped")

    def run_forever(self) -> None:
        """Run until interrupted."""
        self.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Stopping folder watcher...")
        finally:
            self.stop()

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="pipeline")

    def _start_observer(self) -> None:
        observer = Observer()
        observer.schedule(self.event_handler, str(self.watch_dir), recursive=False)
        observer.start()
        self._observer = observer

    # ────────────────────────────────────────────────────────────────────────────
    # Detection
    # ────────────────────────────────────────────────────────────────────────────

    def is_watched(self, path: str | Path) -> bool:
        """True if path sits directly in the watched directory."""
        return Path(path).parent.resolve() == self.watch_dir.resolve()

    def track(self, path: str | Path) -> None:
        """
        Start (or restart) the stability window for a path.

        Ineligible names are dropped immediately.
        """
        path = Path(path)
        if not is_eligible_name(path.name):
            logger.debug(f"Skipping non-image file: {path.name}")
            return

        signature = _stat_signature(path)
        if signature is None:
            return

        with self._pending_lock:
            self._pending[path] = (*signature, time.monotonic())

    def poll_pending(self, now: float | None = None) -> list[Path]:
        """
        Check tracked files once and dispatch the ones that are stable.

        Args:
            now: Monotonic timestamp to compare against (defaults to now).

        Returns:
            Paths that became stable during this check.
        """
        now = time.monotonic() if now is None else now
        stable: list[Path] = []

        with self._pending_lock:
            for path, (size, mtime_ns, since) in list(self._pending.items()):
                signature = _stat_signature(path)
                if signature is None:
                    del self._pending[path]
                elif signature != (size, mtime_ns):
                    self._pending[path] = (*signature, now)
                elif now - since >= self.stability_threshold:
                    del self._pending[path]
                    stable.append(path)

        for path in stable:
            self.handle_stable(path)
        return stable

    def handle_stable(self, path: str | Path) -> Future | None:
        """
        Decide whether a stable file is submitted to the pipeline.

        Returns:
            Future of the pipeline run, or None if the file was skipped.
        """
        path = Path(path)
        filename = path.name

        if not is_eligible_name(filename):
            logger.debug(f"Skipping non-image file: {filename}")
            return None

        if not self.settings.auto_process_enabled():
            logger.info(f"Auto-process disabled, skipping: {filename}")
            return None

        if not self.registry.claim(filename):
            logger.info(f"Already processed: {filename}")
            return None

        logger.info(f"New image detected: {filename}")
        return self.executor.submit(self._run, path)

    def _run(self, path: Path) -> ProcessingResult | None:
        try:
            return self.pipeline.process(path, self.archive_dir)
        except Exception as e:
            logger.exception(f"Pipeline run for {path.name} crashed")
            self.report_error(e)
            return None

    def _settle_loop(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            try:
                self._check_observer()
                self.poll_pending()
            except Exception as e:
                self.report_error(e)

    def _check_observer(self) -> None:
        if self._observer is None or self._observer.is_alive() or self._stop_event.is_set():
            return

        self.report_error(RuntimeError("File system observer stopped unexpectedly"))
        ensure_directories(self.watch_dir)
        self._start_observer()

    # ────────────────────────────────────────────────────────────────────────────
    # Errors
    # ────────────────────────────────────────────────────────────────────────────

    def report_error(self, error: BaseException) -> None:
        """Record a watcher-level error in the action log and keep running."""
        message = str(error) or type(error).__name__
        logger.error(f"Watcher error: {message}")
        try:
            self.action_log.append(None, "watcher_error", LogOutcome.ERROR, message)
        except Exception:
            logger.exception("Could not record watcher error in the action log")


def _stat_signature(path: Path) -> tuple[int, int] | None:
    try:
        stat = path.stat()
    except OSError:
        return None
    if not path.is_file():
        return None
    return stat.st_size, stat.st_mtime_ns


def build_watcher(pipeline: DraftPipeline, watch_dir: Path, archive_dir: Path,
                  max_workers: int | None = None) -> DirectoryWatcher:
    """Create a watcher with timing and pool size from the environment."""
    return DirectoryWatcher(
        pipeline,
        watch_dir,
        archive_dir,
        max_workers=max_workers or int(os.getenv("PIPELINE_MAX_WORKERS", str(DEFAULT_MAX_WORKERS))),
        stability_threshold=float(os.getenv("WATCH_STABILITY_SECONDS", str(DEFAULT_STABILITY_SECONDS))),
        poll_interval=float(os.getenv("WATCH_POLL_SECONDS", str(DEFAULT_POLL_SECONDS))),
    )
