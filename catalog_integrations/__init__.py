"""
Catalog integrations module for the design draft pipeline.

Provides clients for hosting design images and creating draft listings.
"""

from catalog_integrations.printify import (
    PrintifyClient,
    PrintifyError,
    PrintifyAuthError,
    PrintifyRateLimitError,
    format_description,
)

__all__ = [
    "PrintifyClient",
    "PrintifyError",
    "PrintifyAuthError",
    "PrintifyRateLimitError",
    "format_description",
]
