"""
Database CRUD operations for pipeline items.

Provides ItemRepository class with methods for:
- Creating item records when a run begins
- Reading/querying items
- Partial updates and status transitions
- Filename lookups used to seed the dedup registry
"""

import logging
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.database import session_scope
from db.models import Item, ItemStatus

logger = logging.getLogger(__name__)

# Columns a caller may change through update_item()
UPDATABLE_FIELDS = {
    "status", "title", "description", "bullets", "tags", "theme", "style",
    "remote_image_id", "remote_product_id", "error_message",
}


class ItemRepository:
    """
    Repository for Item database operations.

    Provides CRUD operations and queries for the products table.
    Can be used with a provided session or create its own.
    """

    def __init__(self, session: Session | None = None):
        """
        Initialize repository with optional session.

        Args:
            session: SQLAlchemy session. If None, operations will
                    create their own sessions using session_scope().
        """
        self._session = session

    # ────────────────────────────────────────────────────────────────────────────
    # Create Operations
    # ────────────────────────────────────────────────────────────────────────────

    def create(
        self,
        filename: str,
        status: ItemStatus = ItemStatus.PROCESSING,
    ) -> Item:
        """
        Create a new item record.

        Args:
            filename: Base name of the source file.
            status: Initial status. Items are only created once work
                    begins, so this is normally PROCESSING.

        Returns:
            Created Item instance.
        """
        item = Item(filename=filename, status=status)

        if self._session:
            self._session.add(item)
            self._session.flush()  # Get the ID
        else:
            with session_scope() as session:
                session.add(item)
                session.flush()
                # Refresh to get all defaults
                session.refresh(item)

        logger.debug(f"Created item record: {item}")
        return item

    def create_item(self, filename: str) -> int:
        """Create a PROCESSING item and return its id."""
        return self.create(filename).id

    # ────────────────────────────────────────────────────────────────────────────
    # Read Operations
    # ────────────────────────────────────────────────────────────────────────────

    def get_item(self, item_id: int) -> Item | None:
        """
        Get item by ID.

        Args:
            item_id: Primary key of the item.

        Returns:
            Item instance or None if not found.
        """
        if self._session:
            return self._session.get(Item, item_id)

        with session_scope() as session:
            return session.get(Item, item_id)

    def get_by_filename(self, filename: str) -> list[Item]:
        """
        Get all items with a specific filename.

        Args:
            filename: Source file base name.

        Returns:
            List of Item instances, oldest first.
        """
        stmt = select(Item).where(Item.filename == filename).order_by(Item.id)

        if self._session:
            return list(self._session.execute(stmt).scalars().all())

        with session_scope() as session:
            return list(session.execute(stmt).scalars().all())

    def get_filenames_by_status(self, statuses: Iterable[ItemStatus]) -> set[str]:
        """
        Get the distinct filenames of items in any of the given statuses.

        Args:
            statuses: Statuses to match.

        Returns:
            Set of filenames.
        """
        stmt = select(Item.filename).where(Item.status.in_(list(statuses))).distinct()

        if self._session:
            return set(self._session.execute(stmt).scalars().all())

        with session_scope() as session:
            return set(session.execute(stmt).scalars().all())

    def get_claimed_filenames(self) -> set[str]:
        """Filenames that count as already handled by the watcher."""
        return self.get_filenames_by_status(
            [ItemStatus.PROCESSING, ItemStatus.COMPLETED]
        )

    def get_all(
        self,
        limit: int | None = None,
        offset: int | None = None,
        status: ItemStatus | None = None,
    ) -> list[Item]:
        """
        Get all items with optional filtering and pagination.

        Args:
            limit: Maximum number of items to return.
            offset: Number of items to skip.
            status: Filter by status.

        Returns:
            List of Item instances, newest first.
        """
        stmt = select(Item).order_by(Item.created_at.desc(), Item.id.desc())

        if status:
            stmt = stmt.where(Item.status == status)
        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)

        if self._session:
            return list(self._session.execute(stmt).scalars().all())

        with session_scope() as session:
            return list(session.execute(stmt).scalars().all())

    def count(self, status: ItemStatus | None = None) -> int:
        """
        Count items, optionally filtered by status.

        Args:
            status: Filter by status.

        Returns:
            Number of items.
        """
        stmt = select(func.count(Item.id))

        if status:
            stmt = stmt.where(Item.status == status)

        if self._session:
            return self._session.execute(stmt).scalar() or 0

        with session_scope() as session:
            return session.execute(stmt).scalar() or 0

    # ────────────────────────────────────────────────────────────────────────────
    # Update Operations
    # ────────────────────────────────────────────────────────────────────────────

    def update_item(self, item_id: int, **fields) -> Item | None:
        """
        Apply a partial update to an item record.

        Args:
            item_id: Primary key of the item.
            **fields: Columns to set. Must be in UPDATABLE_FIELDS.

        Returns:
            Updated Item instance or None if not found.

        Raises:
            ValueError: If an unknown field is passed.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update item fields: {sorted(unknown)}")

        if self._session:
            item = self._session.get(Item, item_id)
            if item:
                for key, value in fields.items():
                    setattr(item, key, value)
                self._session.flush()
            return item

        with session_scope() as session:
            item = session.get(Item, item_id)
            if item:
                for key, value in fields.items():
                    setattr(item, key, value)
                session.flush()
                session.refresh(item)
            return item

    def mark_completed(self, item_id: int, remote_product_id: str) -> Item | None:
        """Record the draft handle and mark the item completed."""
        return self.update_item(
            item_id,
            remote_product_id=remote_product_id,
            status=ItemStatus.COMPLETED,
        )

    def mark_error(self, item_id: int, error_message: str) -> Item | None:
        """Mark item as failed with error message."""
        return self.update_item(
            item_id, status=ItemStatus.ERROR, error_message=error_message
        )

    def reset_for_retry(self, item_id: int) -> Item | None:
        """Put an item back to PENDING and clear its error."""
        return self.update_item(
            item_id, status=ItemStatus.PENDING, error_message=None
        )
