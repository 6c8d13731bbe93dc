import io

import pytest

from db.models import ItemStatus
from db.operations import ItemRepository
from pipeline.dedup_registry import DedupRegistry
from pipeline.errors import AnalysisError, DraftError
from web.app import app, stored_name


@pytest.fixture
def client(pipeline, dirs, monkeypatch):
    active, archive = dirs
    monkeypatch.setitem(app.config, "TESTING", True)
    monkeypatch.setitem(app.config, "PIPELINE", pipeline)
    monkeypatch.setitem(app.config, "REGISTRY", None)
    monkeypatch.setitem(app.config, "WATCH_DIR", str(active))
    monkeypatch.setitem(app.config, "ARCHIVE_DIR", str(archive))
    return app.test_client()


def upload(client, data, filename="sunset design.png", content_type="image/png", url="/api/upload"):
    return client.post(
        url,
        data={"image": (io.BytesIO(data), filename, content_type)},
        content_type="multipart/form-data",
    )


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_upload_processes_and_archives(client, dirs, png_bytes):
    active, archive = dirs

    response = upload(client, png_bytes)

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    product = body["product"]
    assert product["status"] == "completed"
    assert product["remote_product_id"] == "prod_456"
    assert product["filename"].endswith("-sunset_design.png")
    assert (archive / product["filename"]).exists()
    assert list(active.iterdir()) == []


def test_upload_claims_filename_in_shared_registry(client, monkeypatch, png_bytes):
    registry = DedupRegistry()
    monkeypatch.setitem(app.config, "REGISTRY", registry)

    product = upload(client, png_bytes).get_json()["product"]

    assert registry.is_claimed(product["filename"])


def test_upload_failure_returns_500(client, analyzer, dirs, png_bytes):
    analyzer.error = AnalysisError("rate limited")

    response = upload(client, png_bytes)

    assert response.status_code == 500
    body = response.get_json()
    assert body["success"] is False
    assert body["error"] == "rate limited"
    assert ItemRepository().get_item(body["item_id"]).status == ItemStatus.ERROR
    assert len(list(dirs[0].iterdir())) == 1


@pytest.mark.parametrize("filename, content_type", [
    ("notes.txt", "text/plain"),
    ("design.gif", "image/gif"),
    ("design.png", "application/octet-stream"),
])
def test_upload_rejects_non_images(client, png_bytes, filename, content_type):
    response = upload(client, png_bytes, filename, content_type)

    assert response.status_code == 400
    assert ItemRepository().count() == 0


def test_upload_requires_image_field(client):
    response = client.post("/api/upload", data={}, content_type="multipart/form-data")

    assert response.status_code == 400


def test_analyze_does_not_store_anything(client, png_bytes):
    response = upload(client, png_bytes, url="/api/analyze")

    assert response.status_code == 200
    assert response.get_json()["analysis"]["title"] == "Sunset Tee"
    assert ItemRepository().count() == 0


def test_products_are_paginated(client):
    items = ItemRepository()
    for i in range(3):
        items.create_item(f"design{i}.png")

    body = client.get("/api/products?limit=2").get_json()

    assert body["total"] == 3
    assert body["pages"] == 2
    assert [p["filename"] for p in body["data"]] == ["design2.png", "design1.png"]


def test_product_detail_and_logs(client, png_bytes):
    product = upload(client, png_bytes).get_json()["product"]

    detail = client.get(f"/api/products/{product['id']}").get_json()
    logs = client.get(f"/api/products/{product['id']}/logs").get_json()

    assert detail["title"] == "Sunset Tee"
    assert logs[0]["stage"] == "processing_started"
    assert logs[-1]["stage"] == "draft_created"


def test_unknown_product_is_404(client):
    assert client.get("/api/products/999").status_code == 404
    assert client.get("/api/products/999/logs").status_code == 404


def test_retry_unknown_item_is_404(client):
    response = client.post("/api/products/999/retry")

    assert response.status_code == 404
    assert response.get_json()["success"] is False


def test_retry_missing_file_is_404(client):
    item_id = ItemRepository().create_item("gone.png")

    response = client.post(f"/api/products/{item_id}/retry")

    assert response.status_code == 404
    assert "gone.png" in response.get_json()["error"]


def test_retry_reprocesses_failed_upload(client, analyzer, png_bytes):
    analyzer.error = AnalysisError("rate limited")
    item_id = upload(client, png_bytes).get_json()["item_id"]

    analyzer.error = None
    response = client.post(f"/api/products/{item_id}/retry")

    assert response.get_json() == {"success": True, "item_id": item_id}
    assert ItemRepository().get_item(item_id).status == ItemStatus.COMPLETED


def test_stats(client, analyzer, png_bytes):
    upload(client, png_bytes)
    analyzer.error = AnalysisError("rate limited")
    upload(client, png_bytes, filename="other.png")

    stats = client.get("/api/stats").get_json()

    assert stats["totalProducts"] == 2
    assert stats["draftProducts"] == 1
    assert stats["errorProducts"] == 1
    assert stats["errorLogs"] == 1


def test_settings_round_trip(client):
    assert client.get("/api/settings").get_json()["blueprint_id"] == "145"

    response = client.put("/api/settings", json={"auto_process": False, "variant_ids": [1, 2]})

    settings = response.get_json()["settings"]
    assert settings["auto_process"] == "false"
    assert settings["variant_ids"] == "[1, 2]"


def test_settings_require_json_object(client):
    assert client.put("/api/settings", json=["auto_process"]).status_code == 400


def test_printify_shops(client):
    assert client.get("/api/printify/shops").get_json() == [{"id": 1, "title": "Test Shop"}]


def test_failed_retry_reports_error_in_body(client, analyzer, png_bytes):
    item_id = upload(client, png_bytes).get_json()["product"]["id"]

    analyzer.error = AnalysisError("model overloaded")
    response = client.post(f"/api/products/{item_id}/retry")

    assert response.status_code == 200
    assert response.get_json() == {"success": False, "item_id": item_id, "error": "model overloaded"}
    assert ItemRepository().get_item(item_id).status == ItemStatus.ERROR


def test_upload_with_non_ascii_name_keeps_extension(client, dirs, png_bytes):
    response = upload(client, png_bytes, filename="日本.png")

    assert response.status_code == 200
    product = response.get_json()["product"]
    assert product["filename"].endswith("-design.png")
    assert (dirs[1] / product["filename"]).exists()


@pytest.mark.parametrize("original, expected", [
    ("sunset design.png", "sunset_design.png"),
    ("日本.png", "design.png"),
    ("写真.JPG", "design.jpg"),
    ("../../etc/tee.jpeg", "etc_tee.jpeg"),
])
def test_stored_name(original, expected):
    assert stored_name(original) == expected


def test_create_draft_from_uploaded_image(client, catalog):
    response = client.post("/api/create-draft", json={
        "imageId": "img_777",
        "title": "Moonlight Tee",
        "description": "Night sky.",
        "bullets": ["Glows"],
        "tags": ["moon"],
    })

    assert response.status_code == 200
    assert response.get_json() == {"success": True, "product": {"id": "prod_456"}}
    assert catalog.drafts == [("img_777", {
        "title": "Moonlight Tee",
        "description": "Night sky.",
        "bullets": ["Glows"],
        "tags": ["moon"],
    })]
    assert ItemRepository().count() == 0


def test_create_draft_defaults_optional_content(client, catalog):
    client.post("/api/create-draft", json={"imageId": "img_777", "title": "Moonlight Tee"})

    _, content = catalog.drafts[0]
    assert content == {"title": "Moonlight Tee", "description": "", "bullets": [], "tags": []}


@pytest.mark.parametrize("payload", [
    {"title": "Moonlight Tee"},
    {"imageId": "img_777"},
    {"imageId": "", "title": "Moonlight Tee"},
    ["img_777", "Moonlight Tee"],
])
def test_create_draft_requires_image_and_title(client, catalog, payload):
    response = client.post("/api/create-draft", json=payload)

    assert response.status_code == 400
    assert response.get_json()["success"] is False
    assert catalog.drafts == []


def test_create_draft_failure_returns_500(client, catalog):
    catalog.draft_error = DraftError("blueprint not found")

    response = client.post("/api/create-draft", json={"imageId": "img_777", "title": "Moonlight Tee"})

    assert response.status_code == 500
    assert response.get_json() == {"success": False, "error": "blueprint not found"}
