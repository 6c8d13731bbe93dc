"""
Exception types for the design draft pipeline.

Stage errors carry the collaborator's human-readable message; str(error)
is what ends up in the item's error_message and the action log.
"""


class PipelineError(Exception):
    """Base exception for pipeline failures."""
    pass


class AnalysisError(PipelineError):
    """Image analysis failed or returned unusable content."""
    pass


class UploadError(PipelineError):
    """Uploading the image to the catalog failed."""
    pass


class DraftError(PipelineError):
    """Creating the catalog draft failed."""
    pass


class FileSystemError(PipelineError):
    """Moving a processed file into the archive directory failed."""
    pass


class ConfigurationError(PipelineError):
    """A collaborator is missing required configuration."""
    pass


class ItemNotFoundError(PipelineError):
    """No item exists with the requested id."""
    pass


class SourceFileNotFoundError(PipelineError):
    """The source file of an item is in neither the active nor the archive directory."""
    pass
