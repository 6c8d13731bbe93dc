#!/usr/bin/env python3
"""
CLI entry point for the design draft pipeline.

Modes:
    Default:      Watch the active directory and process new designs
    --serve:      Also serve the HTTP API from the same process
    FILE...:      Process the given files once and exit
    --retry ID:   Re-run the pipeline for an existing item

Usage:
    python run_pipeline.py
    python run_pipeline.py --serve --port 3001
    python run_pipeline.py data/uploads/design1.png
    python run_pipeline.py --retry 42 -v
"""

import argparse
import logging
import sys
import threading
from pathlib import Path

from db.database import dispose_engine, init_db, verify_connection
from db.settings_operations import SettingsRepository
from pipeline.errors import PipelineError
from pipeline.processor import build_pipeline, ensure_directories, get_active_dir, get_archive_dir
from pipeline.watcher import build_watcher


def setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    """Configure logging for the pipeline run."""
    level = logging.DEBUG if verbose else logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers
    )


def print_progress(current: int, total: int, filename: str) -> None:
    """Print progress to console."""
    pct = (current / total) * 100 if total > 0 else 0
    print(f"[{current:4d}/{total:4d}] ({pct:5.1f}%) {filename}")


def run_files(args: argparse.Namespace, active_dir: Path, archive_dir: Path) -> int:
    """Process explicit files once."""
    paths = [Path(p) for p in args.files]
    missing = [p for p in paths if not p.is_file()]
    if missing:
        for path in missing:
            print(f"ERROR: File does not exist: {path}")
        return 1

    pipeline = build_pipeline()
    stats = pipeline.process_files(
        paths,
        archive_dir=None if args.no_archive else archive_dir,
        progress_callback=print_progress if args.verbose else None,
    )
    print("\n" + stats.summary())
    return 0 if stats.failed == 0 else 1


def run_retry(args: argparse.Namespace, active_dir: Path, archive_dir: Path) -> int:
    """Retry one item."""
    pipeline = build_pipeline()
    try:
        result = pipeline.retry(args.retry, active_dir, archive_dir)
    except PipelineError as e:
        print(f"ERROR: {e}")
        return 1

    if result.success:
        print(f"Item {result.item_id} completed.")
        return 0

    print(f"Item {result.item_id} failed: {result.error}")
    return 1


def run_watcher(args: argparse.Namespace, active_dir: Path, archive_dir: Path) -> int:
    """Watch the active directory until interrupted."""
    pipeline = build_pipeline()
    watcher = build_watcher(pipeline, active_dir, archive_dir, max_workers=args.workers)

    print("Pipeline Configuration:")
    print(f"  Watching: {active_dir}")
    print(f"  Archive: {archive_dir}")
    print(f"  Max concurrent runs: {watcher.max_workers}")
    print(f"  Auto-process: {SettingsRepository().auto_process_enabled()}")
    print()

    if args.serve:
        from web.app import app, run_server

        app.config.update(
            PIPELINE=pipeline,
            REGISTRY=watcher.registry,
            WATCH_DIR=str(active_dir),
            ARCHIVE_DIR=str(archive_dir),
        )
        server = threading.Thread(
            target=run_server, kwargs={"port": args.port}, name="api", daemon=True
        )
        server.start()
        print(f"API listening on port {args.port or 'PORT'}")

    watcher.run_forever()
    return 0


def run(args: argparse.Namespace) -> int:
    """Prepare the database and directories, then dispatch on mode."""
    print("Verifying database connection...")
    if not verify_connection():
        print("ERROR: Could not connect to database.")
        print("Please check DATABASE_URL in your .env configuration.")
        return 1

    if not init_db():
        print("ERROR: Could not create database tables.")
        return 1
    SettingsRepository().seed_defaults()

    active_dir = Path(args.watch_dir) if args.watch_dir else get_active_dir()
    archive_dir = Path(args.archive_dir) if args.archive_dir else get_archive_dir()
    ensure_directories(active_dir, archive_dir)

    if args.retry is not None:
        return run_retry(args, active_dir, archive_dir)
    if args.files:
        return run_files(args, active_dir, archive_dir)
    return run_watcher(args, active_dir, archive_dir)


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Turn design images into catalog drafts: analyze, upload, create draft.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_pipeline.py                          # Watch WATCH_DIR
  python run_pipeline.py --serve                  # Watch and serve the API
  python run_pipeline.py designs/a.png b.jpg      # Process files once
  python run_pipeline.py --retry 42               # Retry item 42
        """
    )

    parser.add_argument(
        "files",
        nargs="*",
        help="Design files to process once (default: watch the active directory)"
    )
    parser.add_argument(
        "--retry",
        type=int,
        metavar="ID",
        help="Re-run the pipeline for an existing item"
    )
    parser.add_argument(
        "--watch-dir",
        help="Active directory (default: WATCH_DIR or data/uploads)"
    )
    parser.add_argument(
        "--archive-dir",
        help="Archive directory (default: ARCHIVE_DIR or data/processed)"
    )
    parser.add_argument(
        "--no-archive",
        action="store_true",
        help="Leave processed files in place (file mode only)"
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Maximum concurrent pipeline runs (default: PIPELINE_MAX_WORKERS or 4)"
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Serve the HTTP API alongside the watcher"
    )
    parser.add_argument(
        "--port",
        type=int,
        help="API port (default: PORT or 3001)"
    )

    # Output options
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show detailed progress output"
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to file"
    )

    args = parser.parse_args()

    if args.retry is not None and args.files:
        parser.error("--retry cannot be combined with files")

    setup_logging(args.verbose, args.log_file)

    try:
        return run(args)
    except KeyboardInterrupt:
        print("\n\nPipeline interrupted by user.")
        return 130
    except Exception as e:
        print(f"\nERROR: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1
    finally:
        dispose_engine()


if __name__ == "__main__":
    sys.exit(main())
