#!/usr/bin/env python3
"""
Database initialization script for the design draft pipeline.

This script:
1. Verifies database connection
2. Creates all tables defined in models
3. Seeds default settings (existing values are kept)

Usage:
    python init_db.py [--verbose] [--check-only]
"""

import argparse
import logging
import sys

from db.database import (
    dispose_engine,
    get_db_info,
    init_db,
    verify_connection,
)
from db.models import ItemStatus
from db.settings_operations import SettingsRepository

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    """Initialize the database."""
    parser = argparse.ArgumentParser(
        description="Initialize the design draft pipeline database"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show detailed output including connection info"
    )
    parser.add_argument(
        "--check-only",
        action="store_true",
        help="Only verify connection, don't create tables"
    )
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    print("=" * 60)
    print("Design Draft Pipeline - Database Initialization")
    print("=" * 60)
    print()

    # Show connection info (with password masked)
    if args.verbose:
        print("Connection Settings:")
        for key, value in get_db_info().items():
            print(f"  {key}: {value}")
        print()

    print("[1/3] Verifying database connection...")
    if not verify_connection():
        print()
        print("ERROR: Could not connect to database!")
        print()
        print("Please check DATABASE_URL in your .env file.")
        print("The default is a SQLite file under data/.")
        print()
        dispose_engine()
        sys.exit(1)

    print("  -> Connection successful!")
    print()

    if args.check_only:
        print("Check-only mode: Skipping table creation.")
        dispose_engine()
        sys.exit(0)

    print("[2/3] Creating database tables...")
    if not init_db():
        print()
        print("ERROR: Failed to create tables!")
        print("Check the logs above for details.")
        dispose_engine()
        sys.exit(1)

    print("  -> Tables created successfully!")
    print()

    print("[3/3] Seeding default settings...")
    added = SettingsRepository().seed_defaults()
    print(f"  -> {added} new setting(s) added")
    print()

    print("=" * 60)
    print("Database initialization complete!")
    print("=" * 60)
    print()
    print("Tables created:")
    print("  - products (pipeline items, indexed on filename and status)")
    print("  - logs (per-stage action log)")
    print("  - settings (live key/value configuration)")
    print()
    print("Item statuses available:")
    for status in ItemStatus:
        print(f"  - {status.value}")
    print()
    print("Next steps:")
    print("  1. Set OPENAI_API_KEY, PRINTIFY_API_KEY and PRINTIFY_SHOP_ID in .env")
    print("  2. Run: python run_pipeline.py --serve")
    print()

    dispose_engine()


if __name__ == "__main__":
    main()
