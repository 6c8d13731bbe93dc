"""
Design analysis module for the pipeline.

Wraps the design_analyzer module to provide:
- Consistent interface for the pipeline (bytes in, DesignAnalysis out)
- Translation of every backend failure into AnalysisError
- Size ceiling enforcement
- An offline backend for running without a vision API
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any

from openai import OpenAIError

import design_analyzer
from pipeline.errors import AnalysisError, ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 50 * 1024 * 1024


@dataclass
class DesignAnalysis:
    """Structured listing content produced by the analyze stage."""
    title: str
    description: str
    bullets: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    theme: str | None = None
    style: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DesignAnalysis":
        """
        Build from analyzer output, checking the types stored on the item.

        Raises:
            ValueError: If a field has the wrong type.
        """
        title = data.get("title")
        description = data.get("description")
        if not isinstance(title, str) or not title.strip():
            raise ValueError("Analysis title must be a non-empty string")
        if not isinstance(description, str):
            raise ValueError("Analysis description must be a string")

        for name in ("theme", "style"):
            if data.get(name) is not None and not isinstance(data[name], str):
                raise ValueError(f"Analysis {name} must be a string")

        bullets = data.get("bullets") or []
        tags = data.get("tags") or []
        if not isinstance(bullets, list) or not isinstance(tags, list):
            raise ValueError("Analysis bullets and tags must be lists")

        return cls(
            title=title,
            description=description,
            bullets=[str(b) for b in bullets],
            tags=[str(t) for t in tags],
            theme=data.get("theme"),
            style=data.get("style"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def listing_content(self) -> dict[str, Any]:
        """Fields the catalog needs to create a draft."""
        return {
            "title": self.title,
            "description": self.description,
            "bullets": list(self.bullets),
            "tags": list(self.tags),
        }


class DesignAnalyzer:
    """
    AI-powered design analysis using OpenAI Vision API.

    Wraps the existing design_analyzer module for pipeline integration.
    """

    def __init__(
        self,
        model: str = design_analyzer.DEFAULT_MODEL,
        detail: str = "high",
        timeout: float = 60.0,
        max_bytes: int = DEFAULT_MAX_BYTES,
    ):
        """
        Initialize the analyzer.

        Args:
            model: OpenAI model to use (gpt-4o-mini, gpt-4o, etc.)
            detail: Image detail level for API ("low", "high", "auto").
            timeout: Request timeout in seconds.
            max_bytes: Largest image accepted.
        """
        self.model = model
        self.detail = detail
        self.timeout = timeout
        self.max_bytes = max_bytes

    def analyze(self, image_bytes: bytes) -> DesignAnalysis:
        """
        Generate listing content for an image.

        Args:
            image_bytes: Raw PNG or JPEG bytes.

        Returns:
            DesignAnalysis for the image.

        Raises:
            AnalysisError: If the image is rejected or analysis fails.
            ConfigurationError: If no API key is configured.
        """
        self._check_size(image_bytes)

        try:
            data = design_analyzer.analyze_design(
                image_bytes,
                model=self.model,
                detail=self.detail,
                timeout=self.timeout,
            )
        except ValueError as e:
            if "not configured" in str(e):
                raise ConfigurationError(str(e)) from e
            raise AnalysisError(str(e)) from e
        except OpenAIError as e:
            raise AnalysisError(str(e)) from e

        try:
            return DesignAnalysis.from_dict(data)
        except ValueError as e:
            raise AnalysisError(str(e)) from e

    def _check_size(self, image_bytes: bytes) -> None:
        if not image_bytes:
            raise AnalysisError("Image is empty")
        if len(image_bytes) > self.max_bytes:
            raise AnalysisError(
                f"Image is {len(image_bytes)} bytes, larger than the "
                f"{self.max_bytes} byte limit"
            )


class BasicAnalyzer(DesignAnalyzer):
    """Offline analyzer that returns the generic listing for every image."""

    def analyze(self, image_bytes: bytes) -> DesignAnalysis:
        self._check_size(image_bytes)
        return DesignAnalysis.from_dict(design_analyzer.basic_analysis())


def build_analyzer() -> DesignAnalyzer:
    """
    Create the analyzer selected by ANALYZER_BACKEND.

    Returns:
        DesignAnalyzer ("openai", the default) or BasicAnalyzer ("basic").
    """
    backend = os.getenv("ANALYZER_BACKEND", "openai").lower()
    settings = {
        "model": os.getenv("ANALYZER_MODEL", design_analyzer.DEFAULT_MODEL),
        "timeout": float(os.getenv("ANALYZER_TIMEOUT", "60")),
        "max_bytes": int(os.getenv("MAX_UPLOAD_BYTES", str(DEFAULT_MAX_BYTES))),
    }

    if backend == "basic":
        logger.info("Using basic analyzer (no vision API)")
        return BasicAnalyzer(**settings)

    if backend != "openai":
        raise ConfigurationError(f"Unknown ANALYZER_BACKEND: {backend}")

    return DesignAnalyzer(**settings)
