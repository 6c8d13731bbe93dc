"""
Design-to-draft pipeline orchestrator.

Drives one file through the stage sequence:
1. Create   - insert (or reopen) the item, status processing
2. Analyze  - read bytes, generate listing content
3. Upload   - host the image on the catalog
4. Draft    - create the catalog draft, status completed, archive file
5. Fail     - any stage failure: status error with the stage's message

Stages run strictly in order and a failing stage ends the run, so the
draft (the only side effect that must not be duplicated) is only ever
attempted after every earlier stage succeeded in the same run. A retry
always starts again from Analyze.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Protocol

from db.log_operations import ActionLogRepository
from db.models import ItemStatus, LogOutcome
from db.operations import ItemRepository
from pipeline.analyzer import DesignAnalysis
from pipeline.errors import (
    AnalysisError,
    DraftError,
    FileSystemError,
    ItemNotFoundError,
    PipelineError,
    SourceFileNotFoundError,
    UploadError,
)

logger = logging.getLogger(__name__)

DEFAULT_ACTIVE_DIR = "data/uploads"
DEFAULT_ARCHIVE_DIR = "data/processed"

# Columns cleared when an existing item is run again
RESULT_FIELDS = (
    "title", "description", "bullets", "tags", "theme", "style",
    "remote_image_id", "remote_product_id", "error_message",
)


class Analyzer(Protocol):
    def analyze(self, image_bytes: bytes) -> DesignAnalysis: ...


class Catalog(Protocol):
    def upload(self, image_bytes: bytes, filename: str) -> str: ...

    def create_draft(self, image_id: str, content: dict[str, Any]) -> str: ...


@dataclass
class StageResult:
    """Outcome of one stage call: either a value or a typed error."""
    stage: str
    value: Any = None
    error: PipelineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ProcessingResult:
    """Result of processing a single file."""
    filepath: Path
    success: bool
    item_id: int | None = None
    error: str | None = None
    archived_path: Path | None = None
    processing_time: float = 0.0

    def to_dict(self) -> dict:
        data = {"success": self.success, "item_id": self.item_id}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class PipelineStats:
    """Statistics for a batch of pipeline runs."""
    total_found: int = 0
    processed: int = 0
    failed: int = 0
    start_time: datetime = field(default_factory=datetime.utcnow)
    end_time: datetime | None = None
    results: list[ProcessingResult] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Get total duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0

    def add(self, result: ProcessingResult) -> None:
        self.results.append(result)
        if result.success:
            self.processed += 1
        else:
            self.failed += 1

    def summary(self) -> str:
        """Generate summary string."""
        lines = [
            "=" * 50,
            "Pipeline Processing Complete",
            "=" * 50,
            f"Total files: {self.total_found}",
            f"Drafts created: {self.processed}",
            f"Failed: {self.failed}",
            f"Duration: {self.duration_seconds:.1f} seconds",
        ]

        if self.failed > 0:
            lines.append("")
            lines.append("Failed files:")
            for r in self.results:
                if not r.success:
                    lines.append(f"  - {r.filepath.name} (item {r.item_id}): {r.error}")

        return "\n".join(lines)


class DraftPipeline:
    """
    Pipeline engine that turns one design file into a catalog draft.

    The engine owns all writes to an item and its action log entries while
    a run is in flight. Failures are recorded on the item and returned in
    the ProcessingResult; they are never raised to the caller.
    """

    def __init__(
        self,
        analyzer: Analyzer,
        catalog: Catalog,
        items: ItemRepository | None = None,
        action_log: ActionLogRepository | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            analyzer: Produces DesignAnalysis from image bytes.
            catalog: Uploads images and creates drafts.
            items: Item store. If None, creates a new repository.
            action_log: Action log. If None, creates a new repository.
        """
        self.analyzer = analyzer
        self.catalog = catalog
        self.items = items or ItemRepository()
        self.action_log = action_log or ActionLogRepository()

    def process(
        self,
        file_path: str | Path,
        archive_dir: str | Path | None = None,
        item_id: int | None = None,
    ) -> ProcessingResult:
        """
        Run the full stage sequence for one file.

        Args:
            file_path: Path to the source image.
            archive_dir: Where to move the file after the draft is created.
                         If None the file stays where it is.
            item_id: Existing item to reuse (retry). If None a new item
                     is created.

        Returns:
            ProcessingResult with success flag, item id and error message.
        """
        start_time = time.time()
        filepath = Path(file_path)
        filename = filepath.name

        item_id = self._begin(filename, item_id)
        result = ProcessingResult(filepath=filepath, success=False, item_id=item_id)

        # Each stage persists its own result, so a failed write is that stage's failure
        analyzed = self._run_stage("analyze", AnalysisError, self._analyze, item_id, filepath)
        if not analyzed.ok:
            return self._fail(result, analyzed, start_time)
        image_bytes, analysis = analyzed.value

        uploaded = self._run_stage("upload", UploadError, self._upload, item_id, image_bytes, filename)
        if not uploaded.ok:
            return self._fail(result, uploaded, start_time)

        drafted = self._run_stage(
            "create_draft", DraftError, self._create_draft, item_id, uploaded.value, analysis
        )
        if not drafted.ok:
            return self._fail(result, drafted, start_time)

        # The draft exists remotely now; an archive failure cannot undo it
        if archive_dir is not None:
            result.archived_path = self._archive(item_id, filepath, Path(archive_dir))

        result.success = True
        result.processing_time = time.time() - start_time
        logger.info(
            f"Processed: {filename} (item {item_id}, product {drafted.value}, "
            f"{result.processing_time:.2f}s)"
        )
        return result

    def retry(
        self,
        item_id: int,
        active_dir: str | Path,
        archive_dir: str | Path,
    ) -> ProcessingResult:
        """
        Re-run the pipeline for an existing item.

        The source file is looked up in the active directory first, then
        in the archive directory. The dedup registry is not consulted.

        Raises:
            ItemNotFoundError: If no item has this id.
            SourceFileNotFoundError: If the source file cannot be found.
        """
        item = self.items.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(f"Item not found: {item_id}")

        source = locate_source_file(item.filename, active_dir, archive_dir)

        self.items.reset_for_retry(item_id)
        self._log(item_id, "retry_requested", LogOutcome.INFO,
                  f"Retrying {item.filename} from {source.parent}")
        logger.info(f"Retrying item {item_id} ({item.filename})")

        return self.process(source, archive_dir, item_id=item_id)

    def process_files(
        self,
        paths: list[Path],
        archive_dir: str | Path | None = None,
        progress_callback: Callable[[int, int, str], None] | None = None,
    ) -> PipelineStats:
        """
        Process several files one after another.

        Returns:
            PipelineStats with per-file results.
        """
        stats = PipelineStats(total_found=len(paths))

        for i, path in enumerate(paths, 1):
            if progress_callback:
                progress_callback(i, len(paths), Path(path).name)
            stats.add(self.process(path, archive_dir))

        stats.end_time = datetime.utcnow()
        logger.info(stats.summary())
        return stats

    # ────────────────────────────────────────────────────────────────────────────
    # Stage helpers
    # ────────────────────────────────────────────────────────────────────────────

    def _begin(self, filename: str, item_id: int | None) -> int:
        if item_id is None:
            item_id = self.items.create_item(filename)
        else:
            cleared = {name: None for name in RESULT_FIELDS}
            if self.items.update_item(item_id, status=ItemStatus.PROCESSING, **cleared) is None:
                raise ItemNotFoundError(f"Item not found: {item_id}")

        self._log(item_id, "processing_started", LogOutcome.INFO,
                  f"Started processing {filename}")
        return item_id

    def _analyze(self, item_id: int, filepath: Path) -> tuple[bytes, DesignAnalysis]:
        self._log(item_id, "analyzing", LogOutcome.INFO, "Analyzing image with AI")
        try:
            image_bytes = filepath.read_bytes()
        except OSError as e:
            raise AnalysisError(f"Could not read {filepath.name}: {e}") from e

        logger.debug(f"Read image: {filepath.name} ({len(image_bytes)} bytes)")
        analysis = self.analyzer.analyze(image_bytes)

        self.items.update_item(
            item_id,
            title=analysis.title,
            description=analysis.description,
            bullets=analysis.bullets,
            tags=analysis.tags,
            theme=analysis.theme,
            style=analysis.style,
        )
        self._log(item_id, "analysis_complete", LogOutcome.SUCCESS,
                  f"Generated title: {analysis.title}")
        return image_bytes, analysis

    def _upload(self, item_id: int, image_bytes: bytes, filename: str) -> str:
        self._log(item_id, "uploading", LogOutcome.INFO, "Uploading image to catalog")
        remote_image_id = self.catalog.upload(image_bytes, filename)

        self.items.update_item(item_id, remote_image_id=remote_image_id)
        self._log(item_id, "upload_complete", LogOutcome.SUCCESS, f"Image ID: {remote_image_id}")
        return remote_image_id

    def _create_draft(self, item_id: int, remote_image_id: str, analysis: DesignAnalysis) -> str:
        self._log(item_id, "creating_draft", LogOutcome.INFO, "Creating catalog product draft")
        remote_product_id = self.catalog.create_draft(remote_image_id, analysis.listing_content())

        self.items.mark_completed(item_id, remote_product_id)
        self._log(item_id, "draft_created", LogOutcome.SUCCESS, f"Product ID: {remote_product_id}")
        return remote_product_id

    def _run_stage(
        self,
        stage: str,
        error_type: type[PipelineError],
        func: Callable[..., Any],
        *args: Any,
    ) -> StageResult:
        """Call a stage, converting any failure into that stage's error type."""
        try:
            return StageResult(stage, value=func(*args))
        except PipelineError as e:
            return StageResult(stage, error=e)
        except Exception as e:
            logger.exception(f"Unexpected error in {stage} stage")
            return StageResult(stage, error=error_type(str(e) or type(e).__name__))

    def _fail(self, result: ProcessingResult, stage: StageResult, start_time: float) -> ProcessingResult:
        error_message = str(stage.error) or type(stage.error).__name__
        logger.error(f"Error processing {result.filepath.name} in {stage.stage}: {error_message}")

        self.items.mark_error(result.item_id, error_message)
        self._log(result.item_id, "error", LogOutcome.ERROR, error_message)

        result.error = error_message
        result.processing_time = time.time() - start_time
        return result

    def _archive(self, item_id: int, filepath: Path, archive_dir: Path) -> Path | None:
        destination = archive_dir / filepath.name
        try:
            archive_dir.mkdir(parents=True, exist_ok=True)
            if filepath.resolve() != destination.resolve():
                os.replace(filepath, destination)
        except OSError as e:
            error = FileSystemError(f"Could not move {filepath.name} to archive: {e}")
            logger.error(str(error))
            self._log(item_id, "archive_failed", LogOutcome.ERROR, str(error))
            return None

        logger.debug(f"Moved to archive: {destination}")
        return destination

    def _log(self, item_id: int | None, stage: str, outcome: LogOutcome, message: str) -> None:
        self.action_log.append(item_id, stage, outcome, message)


# ────────────────────────────────────────────────────────────────────────────────
# Directories and construction
# ────────────────────────────────────────────────────────────────────────────────

def get_active_dir() -> Path:
    """Directory new designs are dropped into (WATCH_DIR)."""
    return Path(os.getenv("WATCH_DIR", DEFAULT_ACTIVE_DIR))


def get_archive_dir() -> Path:
    """Directory completed designs are moved to (ARCHIVE_DIR)."""
    return Path(os.getenv("ARCHIVE_DIR", DEFAULT_ARCHIVE_DIR))


def ensure_directories(*directories: str | Path) -> None:
    """Create each directory if it does not exist yet."""
    for directory in directories:
        Path(directory).mkdir(parents=True, exist_ok=True)


def locate_source_file(filename: str, active_dir: str | Path, archive_dir: str | Path) -> Path:
    """
    Find an item's source file in the active or the archive directory.

    Raises:
        SourceFileNotFoundError: If it is in neither.
    """
    for directory in (Path(active_dir), Path(archive_dir)):
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    raise SourceFileNotFoundError(f"Image file not found: {filename}")


def build_pipeline() -> DraftPipeline:
    """Create a pipeline wired to the configured analyzer and Printify."""
    from catalog_integrations.printify import PrintifyClient
    from pipeline.analyzer import build_analyzer

    return DraftPipeline(analyzer=build_analyzer(), catalog=PrintifyClient())
