#!/usr/bin/env python3
"""
AI-powered design analysis using the OpenAI Vision API.
Turns a design image into listing content: title, description,
bullet points, tags, theme and style.
"""

import base64
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from openai import OpenAI

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
REQUIRED_FIELDS = ("title", "description", "bullets", "tags", "theme", "style")

SYSTEM_PROMPT = (
    "You are an expert e-commerce product listing specialist. "
    "You write compelling, SEO optimized listings for print-on-demand "
    "apparel based on the artwork provided."
)

USER_PROMPT = """Analyze this design image and generate a compelling SEO optimized listing.

Return ONLY valid JSON in this format:

{
  "theme": "",
  "style": "",
  "title": "",
  "description": "",
  "bullets": ["", "", "", "", ""],
  "tags": ["", "", "", "", "", "", "", "", "", ""]
}
"""

# Generic listing used when no vision backend is configured
BASIC_ANALYSIS = {
    "theme": "General Design",
    "style": "Modern Graphic",
    "title": "Unique Graphic Design T-Shirt",
    "description": "Express yourself with this unique graphic design.",
    "bullets": [
        "Original artwork",
        "High quality print",
        "Perfect gift",
        "Stylish design",
        "Comfortable wear",
    ],
    "tags": [
        "graphic", "design", "tshirt", "modern", "gift",
        "fashion", "art", "trendy", "unique", "print",
    ],
}

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

# Lazily created so importing this module never needs an API key
_client: Optional[OpenAI] = None


def get_client(timeout: float | None = None) -> OpenAI:
    """Get or create the shared OpenAI client (uses OPENAI_API_KEY env var)."""
    global _client

    if _client is None:
        if not os.getenv("OPENAI_API_KEY"):
            raise ValueError("OPENAI_API_KEY not configured")
        _client = OpenAI(timeout=timeout or float(os.getenv("ANALYZER_TIMEOUT", "60")))

    return _client


def detect_mime_type(image_bytes: bytes) -> str:
    """Sniff PNG/JPEG from magic bytes, defaulting to PNG."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    return "image/png"


def parse_analysis(raw: str) -> dict[str, Any]:
    """
    Extract the listing JSON object from a model response.

    Args:
        raw: Model output, possibly wrapped in prose or code fences.

    Returns:
        Dictionary with all REQUIRED_FIELDS.

    Raises:
        ValueError: If no JSON object is found or fields are missing.
    """
    match = _JSON_OBJECT.search(raw or "")
    if not match:
        raise ValueError("No JSON returned from analyzer")

    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Analyzer JSON is not an object")

    missing = [f for f in REQUIRED_FIELDS if f not in data]
    if missing:
        raise ValueError(f"Analyzer JSON missing fields: {', '.join(missing)}")

    for text_field in ("title", "description"):
        value = data[text_field]
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Analyzer field '{text_field}' must be a non-empty string")
        data[text_field] = value.strip()

    # Models sometimes answer theme/style with a list of keywords
    for label_field in ("theme", "style"):
        value = data[label_field]
        if isinstance(value, list):
            value = ", ".join(str(v).strip() for v in value if str(v).strip())
        elif value is not None and not isinstance(value, str):
            raise ValueError(f"Analyzer field '{label_field}' must be a string")
        data[label_field] = value.strip() if value else None

    for list_field in ("bullets", "tags"):
        if not isinstance(data[list_field], list):
            raise ValueError(f"Analyzer field '{list_field}' must be a list")
        data[list_field] = [str(v).strip() for v in data[list_field] if str(v).strip()]

    return data


def analyze_design(
    image_bytes: bytes,
    *,
    model: str = DEFAULT_MODEL,
    detail: str = "high",
    timeout: float | None = None,
) -> dict[str, Any]:
    """
    Return listing content for a design image using an OpenAI vision model.

    Args:
        image_bytes: Raw PNG or JPEG bytes
        model: OpenAI model to use (gpt-4o-mini, gpt-4o, etc.)
        detail: Image detail level ("low", "high", "auto")
        timeout: Request timeout in seconds

    Returns:
        Dictionary with theme, style, title, description, bullets, tags

    Example:
        >>> listing = analyze_design(Path('design.png').read_bytes())
        >>> listing['title']
        'Retro Sunset Surf Graphic Tee'
    """
    client = get_client(timeout)

    data_url = (
        f"data:{detect_mime_type(image_bytes)};base64,"
        + base64.b64encode(image_bytes).decode()
    )

    logger.info(f"Analyzing design ({len(image_bytes)} bytes) with {model}...")

    response = client.chat.completions.create(
        model=model,
        max_tokens=800,
        temperature=0.4,
        response_format={"type": "json_object"},
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": USER_PROMPT},
                    {
                        "type": "image_url",
                        "image_url": {"url": data_url, "detail": detail},
                    },
                ],
            },
        ],
    )

    raw = response.choices[0].message.content
    analysis = parse_analysis(raw)

    logger.info(f"Generated listing: {analysis['title']}")
    return analysis


def basic_analysis() -> dict[str, Any]:
    """Return a copy of the generic fallback listing."""
    return json.loads(json.dumps(BASIC_ANALYSIS))


def main():
    """Demo CLI for testing."""
    import sys

    if len(sys.argv) < 2:
        print("Usage: python design_analyzer.py <image_file>")
        sys.exit(1)

    logging.basicConfig(level=logging.INFO)

    image_path = Path(sys.argv[1])
    listing = analyze_design(image_path.read_bytes())

    print(f"\nListing for {image_path.name}:")
    print(json.dumps(listing, indent=2))


if __name__ == "__main__":
    main()
