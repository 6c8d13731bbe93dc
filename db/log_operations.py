"""
Database operations for the append-only action log.

Provides ActionLogRepository class with methods for:
- Appending pipeline events (item-scoped or process-level)
- Querying the audit trail of an item
- Recent activity and error counts for the dashboard
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.database import session_scope
from db.models import LogEntry, LogOutcome

logger = logging.getLogger(__name__)


class ActionLogRepository:
    """
    Repository for LogEntry database operations.

    Entries are only ever inserted; there are no update or delete
    operations. Can be used with a provided session or create its own.
    """

    def __init__(self, session: Session | None = None):
        """
        Initialize repository with optional session.

        Args:
            session: SQLAlchemy session. If None, operations will
                    create their own sessions using session_scope().
        """
        self._session = session

    def append(
        self,
        item_id: int | None,
        stage: str,
        outcome: LogOutcome | str,
        message: str | None = None,
    ) -> LogEntry:
        """
        Append a log entry.

        Args:
            item_id: Owning item, or None for process-level events.
            stage: Pipeline action name.
            outcome: info, success or error.
            message: Free-text detail.

        Returns:
            Created LogEntry instance.
        """
        entry = LogEntry(
            item_id=item_id,
            stage=stage,
            outcome=LogOutcome(outcome),
            message=message,
        )

        if self._session:
            self._session.add(entry)
            self._session.flush()
        else:
            with session_scope() as session:
                session.add(entry)
                session.flush()
                session.refresh(entry)

        logger.debug(f"Appended log entry: {entry}")
        return entry

    def get_for_item(self, item_id: int) -> list[LogEntry]:
        """
        Get all log entries for an item in the order they were written.

        Args:
            item_id: ID of the item.

        Returns:
            List of LogEntry instances.
        """
        stmt = select(LogEntry).where(LogEntry.item_id == item_id).order_by(LogEntry.id)

        if self._session:
            return list(self._session.execute(stmt).scalars().all())

        with session_scope() as session:
            return list(session.execute(stmt).scalars().all())

    def get_recent(self, limit: int = 100) -> list[LogEntry]:
        """
        Get the most recent log entries, newest first.

        Args:
            limit: Maximum number of entries.

        Returns:
            List of LogEntry instances.
        """
        stmt = select(LogEntry).order_by(LogEntry.id.desc()).limit(limit)

        if self._session:
            return list(self._session.execute(stmt).scalars().all())

        with session_scope() as session:
            return list(session.execute(stmt).scalars().all())

    def count(self, outcome: LogOutcome | None = None) -> int:
        """
        Count log entries, optionally filtered by outcome.

        Args:
            outcome: Filter by outcome.

        Returns:
            Number of entries.
        """
        stmt = select(func.count(LogEntry.id))

        if outcome:
            stmt = stmt.where(LogEntry.outcome == outcome)

        if self._session:
            return self._session.execute(stmt).scalar() or 0

        with session_scope() as session:
            return session.execute(stmt).scalar() or 0
