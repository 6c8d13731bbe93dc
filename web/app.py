"""
Flask JSON API for the design draft pipeline.

Exposes manual upload and draft creation, retry, item and log listing,
stats and the live settings used by the watcher and the catalog client.
"""

import os
import time
from datetime import datetime, timezone
from pathlib import Path

from flask import Flask, jsonify, request
from werkzeug.utils import secure_filename

from db.log_operations import ActionLogRepository
from db.models import ItemStatus, LogOutcome
from db.operations import ItemRepository
from db.settings_operations import SettingsRepository
from pipeline.analyzer import DEFAULT_MAX_BYTES
from pipeline.errors import (
    AnalysisError,
    ConfigurationError,
    DraftError,
    ItemNotFoundError,
    PipelineError,
    SourceFileNotFoundError,
)
from pipeline.file_scanner import is_eligible_name
from pipeline.processor import build_pipeline, ensure_directories, get_active_dir, get_archive_dir

ALLOWED_CONTENT_TYPES = {"image/png", "image/jpeg", "image/jpg"}

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = int(os.getenv("MAX_UPLOAD_BYTES", str(DEFAULT_MAX_BYTES)))


def get_pipeline():
    """Pipeline set by the host process, or one built from the environment."""
    if app.config.get("PIPELINE") is None:
        app.config["PIPELINE"] = build_pipeline()
    return app.config["PIPELINE"]


def get_directories() -> tuple[Path, Path]:
    active = Path(app.config.get("WATCH_DIR") or get_active_dir())
    archive = Path(app.config.get("ARCHIVE_DIR") or get_archive_dir())
    return active, archive


def error_response(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


@app.errorhandler(ItemNotFoundError)
def handle_item_not_found(error):
    return error_response(str(error), 404)


@app.errorhandler(SourceFileNotFoundError)
def handle_source_not_found(error):
    return error_response(str(error), 404)


@app.errorhandler(ConfigurationError)
def handle_configuration_error(error):
    return error_response(str(error), 500)


@app.errorhandler(413)
def handle_too_large(error):
    return error_response("Image is larger than the upload limit", 413)


# ────────────────────────────────────────────────────────────────────────────────
# Health and stats
# ────────────────────────────────────────────────────────────────────────────────

@app.route("/api/health")
def health():
    return jsonify({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})


@app.route("/api/stats")
def stats():
    """Item and log totals for the dashboard."""
    items = ItemRepository()
    logs = ActionLogRepository()
    return jsonify({
        "totalProducts": items.count(),
        "draftProducts": items.count(ItemStatus.COMPLETED),
        "errorProducts": items.count(ItemStatus.ERROR),
        "totalLogs": logs.count(),
        "errorLogs": logs.count(LogOutcome.ERROR),
    })


# ────────────────────────────────────────────────────────────────────────────────
# Items
# ────────────────────────────────────────────────────────────────────────────────

@app.route("/api/products")
def list_products():
    """Paginated items, newest first."""
    page = max(request.args.get("page", 1, type=int) or 1, 1)
    limit = min(max(request.args.get("limit", 20, type=int) or 20, 1), 100)

    items = ItemRepository()
    total = items.count()
    rows = items.get_all(limit=limit, offset=(page - 1) * limit)

    return jsonify({
        "data": [item.to_dict() for item in rows],
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit,
    })


@app.route("/api/products/<int:item_id>")
def product_detail(item_id):
    item = ItemRepository().get_item(item_id)
    if not item:
        return error_response("Product not found", 404)
    return jsonify(item.to_dict())


@app.route("/api/products/<int:item_id>/logs")
def product_logs(item_id):
    if not ItemRepository().get_item(item_id):
        return error_response("Product not found", 404)
    entries = ActionLogRepository().get_for_item(item_id)
    return jsonify([entry.to_dict() for entry in entries])


@app.route("/api/logs")
def recent_logs():
    limit = min(max(request.args.get("limit", 100, type=int) or 100, 1), 1000)
    return jsonify([entry.to_dict() for entry in ActionLogRepository().get_recent(limit)])


@app.route("/api/products/<int:item_id>/retry", methods=["POST"])
def retry_product(item_id):
    """Reprocess an existing item from its active or archived file."""
    active, archive = get_directories()
    result = get_pipeline().retry(item_id, active, archive)
    # A failed run is reported in the body; the item already records the error
    return jsonify(result.to_dict())


# ────────────────────────────────────────────────────────────────────────────────
# Upload and analysis
# ────────────────────────────────────────────────────────────────────────────────

def _get_uploaded_image():
    upload = request.files.get("image")
    if upload is None or not upload.filename:
        return None, error_response("No image uploaded", 400)

    if not is_eligible_name(upload.filename) or upload.mimetype not in ALLOWED_CONTENT_TYPES:
        return None, error_response("Only PNG and JPG images are allowed", 400)

    return upload, None


def stored_name(original: str) -> str:
    """
    Filesystem-safe version of an uploaded name.

    secure_filename() drops non-ASCII characters, which can leave nothing
    but the bare extension; such names fall back to "design<suffix>".
    """
    safe = secure_filename(original)
    if is_eligible_name(safe) and Path(safe).stem:
        return safe
    return f"design{Path(original).suffix.lower()}"


@app.route("/api/upload", methods=["POST"])
def upload_image():
    """Save an uploaded design into the active directory and process it."""
    upload, error = _get_uploaded_image()
    if error:
        return error

    active, archive = get_directories()
    ensure_directories(active, archive)

    filename = f"{int(time.time() * 1000)}-{stored_name(upload.filename)}"

    # Keep a watcher in the same process from picking the file up as well
    registry = app.config.get("REGISTRY")
    if registry is not None:
        registry.claim(filename)

    path = active / filename
    upload.save(path)

    result = get_pipeline().process(path, archive)
    if not result.success:
        return jsonify(result.to_dict()), 500

    item = ItemRepository().get_item(result.item_id)
    return jsonify({"success": True, "product": item.to_dict()})


@app.route("/api/analyze", methods=["POST"])
def analyze_image():
    """Run the analyzer on an uploaded image without storing anything."""
    upload, error = _get_uploaded_image()
    if error:
        return error

    try:
        analysis = get_pipeline().analyzer.analyze(upload.read())
    except AnalysisError as e:
        return error_response(str(e), 500)

    return jsonify({"success": True, "analysis": analysis.to_dict()})


@app.route("/api/create-draft", methods=["POST"])
def create_draft():
    """Create a catalog draft from an already uploaded image and given content."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get("imageId") or not data.get("title"):
        return error_response("Missing required fields", 400)

    content = {
        "title": data["title"],
        "description": data.get("description") or "",
        "bullets": data.get("bullets") or [],
        "tags": data.get("tags") or [],
    }

    try:
        product_id = get_pipeline().catalog.create_draft(str(data["imageId"]), content)
    except DraftError as e:
        return error_response(str(e), 500)

    return jsonify({"success": True, "product": {"id": product_id}})


# ────────────────────────────────────────────────────────────────────────────────
# Settings and catalog
# ────────────────────────────────────────────────────────────────────────────────

@app.route("/api/settings", methods=["GET"])
def get_settings():
    return jsonify(SettingsRepository().get_all())


@app.route("/api/settings", methods=["PUT"])
def update_settings():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return error_response("Expected a JSON object of settings", 400)

    settings = SettingsRepository()
    for key, value in data.items():
        settings.set(key, value)

    return jsonify({"success": True, "settings": settings.get_all()})


@app.route("/api/printify/shops")
def printify_shops():
    from catalog_integrations.printify import PrintifyError

    try:
        return jsonify(get_pipeline().catalog.get_shops())
    except (PrintifyError, PipelineError) as e:
        return error_response(str(e), 500)


def run_server(host: str = "127.0.0.1", port: int | None = None) -> None:
    """Serve the API with Flask's built-in server."""
    port = port or int(os.getenv("PORT", "3001"))
    app.run(host=host, port=port, debug=False, use_reloader=False, threaded=True)


if __name__ == "__main__":
    from db.database import init_db

    init_db()
    SettingsRepository().seed_defaults()
    print("Starting design draft API...")
    print(f"Open http://127.0.0.1:{os.getenv('PORT', '3001')}/api/health in your browser")
    run_server()
