"""
Eligibility filter for design files.

Shared by the watcher and the upload endpoint. FileScanner lists the
eligible files already sitting in the active directory when the watcher
starts, so they are evaluated like newly dropped ones.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Compared against the lowercased suffix
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg"}


def is_eligible_name(filename: str, extensions: set[str] | None = None) -> bool:
    """
    Check a filename against the extension allow-list.

    Hidden (dot-prefixed) files are never eligible.
    """
    name = Path(filename).name
    if not name or name.startswith("."):
        return False
    return Path(name).suffix.lower() in (extensions or IMAGE_EXTENSIONS)


class FileScanner:
    """
    Lists eligible design files directly inside one directory.

    Subdirectories are not descended into; the watched directory is flat.
    """

    def __init__(self, extensions: set[str] | None = None):
        self.extensions = extensions or IMAGE_EXTENSIONS

    def scan(self, directory: str | Path) -> list[Path]:
        """
        Scan a directory for design files.

        Args:
            directory: Directory to scan.

        Returns:
            Eligible regular files, sorted case-insensitively by name.

        Raises:
            ValueError: If directory doesn't exist or isn't a directory.
        """
        directory = Path(directory)

        if not directory.exists():
            raise ValueError(f"Directory does not exist: {directory}")
        if not directory.is_dir():
            raise ValueError(f"Path is not a directory: {directory}")

        try:
            found = [p for p in directory.iterdir() if self.is_eligible(p)]
        except PermissionError as e:
            logger.warning(f"Permission denied: {e}")
            return []

        found.sort(key=lambda p: p.name.lower())
        logger.info(f"Found {len(found)} design file(s) in {directory}")
        return found

    def is_eligible(self, path: Path) -> bool:
        """True if path is a regular file with an allowed, non-hidden name."""
        return path.is_file() and is_eligible_name(path.name, self.extensions)
