import pytest

import design_analyzer

from db.log_operations import ActionLogRepository
from db.models import ItemStatus, LogOutcome
from db.operations import ItemRepository
from pipeline.analyzer import DesignAnalysis, DesignAnalyzer
from pipeline.errors import (
    AnalysisError,
    DraftError,
    ItemNotFoundError,
    SourceFileNotFoundError,
    UploadError,
)
from pipeline.processor import DraftPipeline, locate_source_file


def stages_for(item_id):
    return [(e.stage, e.outcome) for e in ActionLogRepository().get_for_item(item_id)]


def error_entries(item_id):
    return [e for e in ActionLogRepository().get_for_item(item_id) if e.outcome == LogOutcome.ERROR]


def test_successful_run_completes_item_and_archives_file(pipeline, catalog, design_file, dirs, png_bytes):
    _, archive = dirs

    result = pipeline.process(design_file, archive)

    assert result.success
    assert result.error is None
    item = ItemRepository().get_item(result.item_id)
    assert item.status == ItemStatus.COMPLETED
    assert item.filename == "design1.png"
    assert item.title == "Sunset Tee"
    assert len(item.bullets) == 5
    assert len(item.tags) == 10
    assert item.remote_image_id == "img_123"
    assert item.remote_product_id == "prod_456"
    assert item.error_message is None

    assert not design_file.exists()
    assert (archive / "design1.png").read_bytes() == png_bytes
    assert result.archived_path == archive / "design1.png"

    assert catalog.uploads == [(png_bytes, "design1.png")]
    image_id, content = catalog.drafts[0]
    assert image_id == "img_123"
    assert content["title"] == "Sunset Tee"
    assert content["bullets"][0] == "Soft cotton"


def test_successful_run_logs_stages_in_order(pipeline, design_file, dirs):
    result = pipeline.process(design_file, dirs[1])

    assert stages_for(result.item_id) == [
        ("processing_started", LogOutcome.INFO),
        ("analyzing", LogOutcome.INFO),
        ("analysis_complete", LogOutcome.SUCCESS),
        ("uploading", LogOutcome.INFO),
        ("upload_complete", LogOutcome.SUCCESS),
        ("creating_draft", LogOutcome.INFO),
        ("draft_created", LogOutcome.SUCCESS),
    ]


def test_analyzer_failure_stops_before_upload(pipeline, analyzer, catalog, design_file, dirs):
    _, archive = dirs
    analyzer.error = AnalysisError("rate limited")

    result = pipeline.process(design_file, archive)

    assert not result.success
    assert result.error == "rate limited"
    item = ItemRepository().get_item(result.item_id)
    assert item.status == ItemStatus.ERROR
    assert item.error_message == "rate limited"

    errors = error_entries(result.item_id)
    assert len(errors) == 1
    assert errors[0].stage == "error"
    assert errors[0].message == "rate limited"

    assert catalog.uploads == []
    assert catalog.drafts == []
    assert design_file.exists()
    assert not (archive / "design1.png").exists()


def test_upload_failure_never_creates_draft(pipeline, catalog, design_file, dirs):
    catalog.upload_error = UploadError("quota exceeded")

    result = pipeline.process(design_file, dirs[1])

    assert not result.success
    item = ItemRepository().get_item(result.item_id)
    assert item.status == ItemStatus.ERROR
    assert item.error_message == "quota exceeded"
    assert item.title == "Sunset Tee"
    assert item.remote_image_id is None
    assert catalog.drafts == []
    assert design_file.exists()


def test_draft_failure_keeps_image_handle_and_file(pipeline, catalog, design_file, dirs):
    catalog.draft_error = DraftError("blueprint not found")

    result = pipeline.process(design_file, dirs[1])

    item = ItemRepository().get_item(result.item_id)
    assert item.status == ItemStatus.ERROR
    assert item.error_message == "blueprint not found"
    assert item.remote_image_id == "img_123"
    assert item.remote_product_id is None
    assert design_file.exists()


def test_unexpected_exception_is_wrapped_as_stage_failure(pipeline, analyzer, catalog, design_file, dirs):
    analyzer.error = RuntimeError("connection reset")

    result = pipeline.process(design_file, dirs[1])

    assert not result.success
    assert result.error == "connection reset"
    assert ItemRepository().get_item(result.item_id).status == ItemStatus.ERROR
    assert catalog.uploads == []


def test_unreadable_file_fails_analysis(pipeline, analyzer, dirs):
    active, archive = dirs

    result = pipeline.process(active / "missing.png", archive)

    assert not result.success
    assert "missing.png" in result.error
    assert analyzer.calls == []
    assert ItemRepository().get_item(result.item_id).status == ItemStatus.ERROR


def test_archive_failure_keeps_completed_status(pipeline, design_file, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    result = pipeline.process(design_file, blocker / "archive")

    assert result.success
    assert result.archived_path is None
    assert design_file.exists()
    item = ItemRepository().get_item(result.item_id)
    assert item.status == ItemStatus.COMPLETED
    assert item.error_message is None
    assert ("archive_failed", LogOutcome.ERROR) in stages_for(result.item_id)


def test_without_archive_dir_file_stays(pipeline, design_file):
    result = pipeline.process(design_file)

    assert result.success
    assert design_file.exists()


def test_retry_completed_item_overwrites_results(pipeline, analyzer, catalog, design_file, dirs):
    active, archive = dirs
    first = pipeline.process(design_file, archive)

    analyzer.analysis = DesignAnalysis(
        title="Moonlight Tee", description="Night sky.", bullets=["Glows"], tags=["moon"],
        theme="Night", style="Minimal",
    )
    catalog.image_id = "img_789"
    catalog.product_id = "prod_999"

    result = pipeline.retry(first.item_id, active, archive)

    assert result.success
    assert result.item_id == first.item_id
    assert ItemRepository().count() == 1

    item = ItemRepository().get_item(first.item_id)
    assert item.status == ItemStatus.COMPLETED
    assert item.title == "Moonlight Tee"
    assert item.bullets == ["Glows"]
    assert item.remote_image_id == "img_789"
    assert item.remote_product_id == "prod_999"

    # Source was read from the archive and stays there
    assert (archive / "design1.png").exists()
    assert ("retry_requested", LogOutcome.INFO) in stages_for(first.item_id)


def test_retry_of_failed_item_clears_error_and_archives(pipeline, analyzer, design_file, dirs):
    active, archive = dirs
    analyzer.error = AnalysisError("rate limited")
    first = pipeline.process(design_file, archive)

    analyzer.error = None
    result = pipeline.retry(first.item_id, active, archive)

    assert result.success
    item = ItemRepository().get_item(first.item_id)
    assert item.status == ItemStatus.COMPLETED
    assert item.error_message is None
    assert not design_file.exists()
    assert (archive / "design1.png").exists()


def test_failed_retry_does_not_keep_previous_handles(pipeline, analyzer, design_file, dirs):
    active, archive = dirs
    first = pipeline.process(design_file, archive)

    analyzer.error = AnalysisError("model overloaded")
    result = pipeline.retry(first.item_id, active, archive)

    assert not result.success
    item = ItemRepository().get_item(first.item_id)
    assert item.status == ItemStatus.ERROR
    assert item.error_message == "model overloaded"
    assert item.title is None
    assert item.remote_product_id is None


def test_retry_unknown_item_raises(pipeline, dirs):
    with pytest.raises(ItemNotFoundError):
        pipeline.retry(999, *dirs)


def test_retry_without_source_file_raises(pipeline, dirs):
    item_id = ItemRepository().create_item("gone.png")

    with pytest.raises(SourceFileNotFoundError):
        pipeline.retry(item_id, *dirs)

    assert ItemRepository().get_item(item_id).status == ItemStatus.PROCESSING


def test_process_files_collects_stats(pipeline, design_file, dirs):
    active, archive = dirs
    second = active / "design2.jpg"
    second.write_bytes(b"\xff\xd8\xff\xe0" + b"\x00" * 32)

    stats = pipeline.process_files([design_file, second, active / "nope.png"], archive)

    assert stats.total_found == 3
    assert stats.processed == 2
    assert stats.failed == 1
    assert "nope.png" in stats.summary()


def test_locate_source_file_prefers_active_dir(dirs):
    active, archive = dirs
    (active / "a.png").write_bytes(b"active")
    (archive / "a.png").write_bytes(b"archived")
    (archive / "b.png").write_bytes(b"archived")

    assert locate_source_file("a.png", active, archive) == active / "a.png"
    assert locate_source_file("b.png", active, archive) == archive / "b.png"
    with pytest.raises(SourceFileNotFoundError):
        locate_source_file("c.png", active, archive)


def test_failed_analysis_write_is_recorded_as_stage_failure(pipeline, analyzer, catalog, design_file, dirs):
    analyzer.analysis.theme = ["retro", "surf"]

    result = pipeline.process(design_file, dirs[1])

    assert not result.success
    item = ItemRepository().get_item(result.item_id)
    assert item.status == ItemStatus.ERROR
    assert item.error_message
    assert len(error_entries(result.item_id)) == 1
    assert catalog.uploads == []
    assert design_file.exists()


def test_failed_upload_write_never_creates_draft(pipeline, catalog, design_file, dirs):
    catalog.image_id = ["img_123"]

    result = pipeline.process(design_file, dirs[1])

    assert not result.success
    assert ItemRepository().get_item(result.item_id).status == ItemStatus.ERROR
    assert catalog.drafts == []
    assert [e.stage for e in error_entries(result.item_id)] == ["error"]


def test_keyword_list_theme_from_model_is_stored_as_text(database, catalog, design_file, dirs, monkeypatch):
    reply = (
        '{"theme": ["retro", "surf"], "style": "Vintage", "title": "Sunset Tee", '
        '"description": "Warm.", "bullets": ["Soft"], "tags": ["sunset"]}'
    )
    monkeypatch.setattr(
        design_analyzer, "analyze_design",
        lambda image_bytes, **kwargs: design_analyzer.parse_analysis(reply),
    )

    result = DraftPipeline(DesignAnalyzer(), catalog).process(design_file, dirs[1])

    assert result.success
    assert ItemRepository().get_item(result.item_id).theme == "retro, surf"
