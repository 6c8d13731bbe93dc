"""
Design-to-draft processing pipeline.

This module provides:
- Detection of stable design files in a watched directory
- Filename deduplication for watcher-triggered runs
- AI listing analysis of each design
- Upload and draft creation on the catalog
- Durable status and action logging, retry, and archiving
"""

from pipeline.errors import (
    PipelineError,
    AnalysisError,
    UploadError,
    DraftError,
    FileSystemError,
    ConfigurationError,
    ItemNotFoundError,
    SourceFileNotFoundError,
)
from pipeline.file_scanner import FileScanner, is_eligible_name
from pipeline.dedup_registry import DedupRegistry
from pipeline.analyzer import DesignAnalysis, DesignAnalyzer, BasicAnalyzer
from pipeline.processor import DraftPipeline, ProcessingResult
from pipeline.watcher import DirectoryWatcher

__all__ = [
    "PipelineError",
    "AnalysisError",
    "UploadError",
    "DraftError",
    "FileSystemError",
    "ConfigurationError",
    "ItemNotFoundError",
    "SourceFileNotFoundError",
    "FileScanner",
    "is_eligible_name",
    "DedupRegistry",
    "DesignAnalysis",
    "DesignAnalyzer",
    "BasicAnalyzer",
    "DraftPipeline",
    "ProcessingResult",
    "DirectoryWatcher",
]
