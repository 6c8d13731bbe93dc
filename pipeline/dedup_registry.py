"""
Filename deduplication for watcher-triggered runs.

Keeps the set of filenames already claimed for processing during the
lifetime of one watcher. The set is seeded from the database at startup
and entries are never evicted; the manual retry path does not consult it.
"""

import logging
import threading
from typing import Iterable

logger = logging.getLogger(__name__)


class DedupRegistry:
    """
    Thread-safe registry of claimed source filenames.

    Example:
        registry = DedupRegistry()
        registry.seed(repository.get_claimed_filenames())
        if registry.claim("design1.png"):
            ...  # first claim, process it
    """

    def __init__(self, filenames: Iterable[str] | None = None):
        self._claimed: set[str] = set(filenames or ())
        self._lock = threading.Lock()

    def seed(self, filenames: Iterable[str]) -> None:
        """
        Mark filenames as already handled.

        Args:
            filenames: Names of items that are processing or completed.
        """
        with self._lock:
            before = len(self._claimed)
            self._claimed.update(filenames)
            added = len(self._claimed) - before

        logger.info(f"Dedup registry seeded with {added} filename(s)")

    def claim(self, filename: str) -> bool:
        """
        Atomically claim a filename.

        Args:
            filename: Base name of the source file.

        Returns:
            True if this call claimed it, False if it was already claimed.
        """
        with self._lock:
            if filename in self._claimed:
                return False
            self._claimed.add(filename)
            return True

    def is_claimed(self, filename: str) -> bool:
        with self._lock:
            return filename in self._claimed

    def __len__(self) -> int:
        with self._lock:
            return len(self._claimed)
