import pytest

from db.database import dispose_engine, init_db
from db.settings_operations import SettingsRepository
from pipeline.analyzer import DesignAnalysis
from pipeline.processor import DraftPipeline

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def sunset_analysis() -> DesignAnalysis:
    return DesignAnalysis(
        title="Sunset Tee",
        description="A warm retro sunset over the ocean.",
        bullets=["Soft cotton", "Retro colors", "Unisex fit", "Great gift", "Printed to order"],
        tags=["sunset", "retro", "beach", "ocean", "summer",
              "vintage", "surf", "tee", "gift", "graphic"],
        theme="Beach",
        style="Retro",
    )


class FakeAnalyzer:
    def __init__(self):
        self.analysis = sunset_analysis()
        self.error: Exception | None = None
        self.calls: list[bytes] = []

    def analyze(self, image_bytes: bytes) -> DesignAnalysis:
        self.calls.append(image_bytes)
        if self.error is not None:
            raise self.error
        return self.analysis


class FakeCatalog:
    def __init__(self):
        self.image_id = "img_123"
        self.product_id = "prod_456"
        self.upload_error: Exception | None = None
        self.draft_error: Exception | None = None
        self.uploads: list[tuple[bytes, str]] = []
        self.drafts: list[tuple[str, dict]] = []

    def upload(self, image_bytes: bytes, filename: str) -> str:
        self.uploads.append((image_bytes, filename))
        if self.upload_error is not None:
            raise self.upload_error
        return self.image_id

    def create_draft(self, image_id: str, content: dict) -> str:
        self.drafts.append((image_id, content))
        if self.draft_error is not None:
            raise self.draft_error
        return self.product_id

    def get_shops(self) -> list[dict]:
        return [{"id": 1, "title": "Test Shop"}]


@pytest.fixture
def database(tmp_path, monkeypatch):
    """Fresh SQLite database with default settings."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    dispose_engine()
    assert init_db()
    SettingsRepository().seed_defaults()
    yield
    dispose_engine()


@pytest.fixture
def dirs(tmp_path):
    active = tmp_path / "uploads"
    archive = tmp_path / "processed"
    active.mkdir()
    archive.mkdir()
    return active, archive


@pytest.fixture
def png_bytes():
    return PNG_BYTES


@pytest.fixture
def design_file(dirs):
    path = dirs[0] / "design1.png"
    path.write_bytes(PNG_BYTES)
    return path


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def pipeline(database, analyzer, catalog):
    return DraftPipeline(analyzer=analyzer, catalog=catalog)
