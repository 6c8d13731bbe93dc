"""
Printify catalog integration using API token authentication.

This module provides functionality to:
- Upload design images to the Printify media library
- Create product drafts from an uploaded image and listing content
- Resolve available variants for a blueprint/print provider pair
- List shops and products

Listing template parameters (blueprint, print provider, price and
variant selection) are read from the live settings table on every draft.
"""

import base64
import logging
import os
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from dotenv import load_dotenv

from db.settings_operations import SettingsRepository
from pipeline.errors import ConfigurationError, DraftError, UploadError

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.printify.com/v1"
MAX_AUTO_VARIANTS = 100


# ────────────────────────────────────────────────────────────────────────────────
# Exceptions
# ────────────────────────────────────────────────────────────────────────────────

class PrintifyError(Exception):
    """Base exception for Printify API errors."""
    pass


class PrintifyAuthError(PrintifyError):
    """Authentication failure - API token invalid or expired."""
    pass


class PrintifyRateLimitError(PrintifyError):
    """Rate limit exceeded."""
    pass


# ────────────────────────────────────────────────────────────────────────────────
# Helpers
# ────────────────────────────────────────────────────────────────────────────────

def format_description(description: str, bullets: list[str]) -> str:
    """Description, a blank line, then one bullet-prefixed line per bullet."""
    return "\n".join([description, "", *(f"• {b}" for b in bullets)])


# ────────────────────────────────────────────────────────────────────────────────
# Client Implementation
# ────────────────────────────────────────────────────────────────────────────────

class PrintifyClient:
    """
    Client for Printify catalog operations.

    Usage:
        client = PrintifyClient()  # Uses PRINTIFY_API_KEY / PRINTIFY_SHOP_ID
        image_id = client.upload(data, "design.png")
        product_id = client.create_draft(image_id, {"title": ..., ...})
    """

    def __init__(
        self,
        api_key: str | None = None,
        shop_id: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
        max_retries: int = 3,
        settings: SettingsRepository | None = None,
    ):
        """
        Initialize Printify client.

        Args:
            api_key: API token. If None, reads PRINTIFY_API_KEY.
            shop_id: Shop to create products in. If None, reads PRINTIFY_SHOP_ID.
            api_url: Base API URL. If None, reads PRINTIFY_API_URL.
            timeout: Request timeout in seconds. If None, reads PRINTIFY_TIMEOUT.
            max_retries: Transport retries for idempotent requests.
            settings: Settings repository for listing template parameters.
        """
        self.api_key = api_key or os.getenv("PRINTIFY_API_KEY")
        self.shop_id = shop_id or os.getenv("PRINTIFY_SHOP_ID")
        self.api_url = (api_url or os.getenv("PRINTIFY_API_URL", DEFAULT_API_URL)).rstrip("/")
        self.timeout = timeout or float(os.getenv("PRINTIFY_TIMEOUT", "60"))
        self.settings = settings or SettingsRepository()

        if not self.api_key:
            logger.warning(
                "No Printify API key provided. Set PRINTIFY_API_KEY env var "
                "or pass api_key parameter."
            )

        # Setup requests session with connection pooling. urllib3 only
        # retries idempotent methods, so uploads and drafts are sent once.
        self._session = requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=1,
            status_forcelist=[500, 502, 503, 504],
        )
        adapter = HTTPAdapter(
            pool_connections=5,
            pool_maxsize=10,
            max_retries=retry_strategy,
        )
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("PRINTIFY_API_KEY not configured")
        return self.api_key

    def _require_shop_id(self) -> str:
        if not self.shop_id:
            raise ConfigurationError("PRINTIFY_SHOP_ID not configured")
        return self.shop_id

    def _get_headers(self) -> dict[str, str]:
        """Get request headers with authentication."""
        return {
            "Authorization": f"Bearer {self._require_api_key()}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        Make an authenticated API request and decode the JSON body.

        Args:
            method: HTTP method (GET, POST, ...)
            endpoint: Path below the API URL, e.g. "/shops.json"
            **kwargs: Additional arguments passed to requests

        Returns:
            Decoded JSON response.

        Raises:
            PrintifyAuthError: If the token is rejected
            PrintifyRateLimitError: If rate limited
            PrintifyError: For other HTTP or transport errors
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        kwargs.setdefault("headers", self._get_headers())
        kwargs.setdefault("timeout", self.timeout)

        try:
            response = self._session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise PrintifyError(f"Printify request failed: {e}") from e

        if response.status_code == 401:
            raise PrintifyAuthError("Printify API token expired or invalid.")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "60")
            raise PrintifyRateLimitError(
                f"Rate limited. Retry after {retry_after} seconds."
            )

        if not response.ok:
            raise PrintifyError(
                f"Printify API error: {response.status_code} - {response.text}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise PrintifyError(f"Printify returned invalid JSON: {e}") from e

    # ────────────────────────────────────────────────────────────────────────────
    # Pipeline operations
    # ────────────────────────────────────────────────────────────────────────────

    def upload(self, image_bytes: bytes, filename: str) -> str:
        """
        Upload an image to the Printify media library.

        Args:
            image_bytes: Raw image bytes.
            filename: Name to store the image under.

        Returns:
            Printify image id.

        Raises:
            UploadError: If the upload fails.
        """
        try:
            result = self._request(
                "POST",
                "/uploads/images.json",
                json={
                    "file_name": filename,
                    "contents": base64.b64encode(image_bytes).decode(),
                },
            )
        except (PrintifyError, ConfigurationError) as e:
            raise UploadError(str(e)) from e

        image_id = result.get("id") if isinstance(result, dict) else None
        if not image_id:
            raise UploadError("Printify upload response did not include an image id")

        logger.info(f"Uploaded {filename} to Printify (image {image_id})")
        return str(image_id)

    def create_draft(self, image_id: str, content: dict[str, Any]) -> str:
        """
        Create an unpublished product from an uploaded image.

        Args:
            image_id: Printify image id from upload().
            content: Listing content with title, description, bullets, tags.

        Returns:
            Printify product id.

        Raises:
            DraftError: If the draft cannot be created.
        """
        try:
            payload = self.build_product_payload(image_id, content)
            result = self._request(
                "POST",
                f"/shops/{self._require_shop_id()}/products.json",
                json=payload,
            )
        except (PrintifyError, ConfigurationError) as e:
            raise DraftError(str(e)) from e

        product_id = result.get("id") if isinstance(result, dict) else None
        if not product_id:
            raise DraftError("Printify product response did not include a product id")

        logger.info(f"Created Printify draft {product_id} for image {image_id}")
        return str(product_id)

    def build_product_payload(self, image_id: str, content: dict[str, Any]) -> dict[str, Any]:
        """
        Build the product creation payload from the live template settings.

        An empty variant_ids setting enables up to MAX_AUTO_VARIANTS of the
        blueprint's variants for the configured print provider.
        """
        blueprint_id = self.settings.get_int("blueprint_id", 145)
        print_provider_id = self.settings.get_int("print_provider_id", 99)
        price = self.settings.get_int("default_price", 1999)
        variant_ids = [int(v) for v in self.settings.get_json("variant_ids", [])]

        if not variant_ids:
            variant_ids = self.get_available_variants(blueprint_id, print_provider_id)
            variant_ids = variant_ids[:MAX_AUTO_VARIANTS]

        return {
            "title": content["title"],
            "description": format_description(
                content.get("description", ""), content.get("bullets") or []
            ),
            "blueprint_id": blueprint_id,
            "print_provider_id": print_provider_id,
            "variants": [
                {"id": variant_id, "price": price, "is_enabled": True}
                for variant_id in variant_ids
            ],
            "print_areas": [
                {
                    "variant_ids": variant_ids,
                    "placeholders": [
                        {
                            "position": "front",
                            "images": [
                                {"id": image_id, "x": 0.5, "y": 0.5, "scale": 1, "angle": 0},
                            ],
                        },
                    ],
                },
            ],
            "tags": list(content.get("tags") or []),
        }

    # ────────────────────────────────────────────────────────────────────────────
    # Catalog queries
    # ────────────────────────────────────────────────────────────────────────────

    def get_available_variants(self, blueprint_id: int, print_provider_id: int) -> list[int]:
        """
        Get variant ids offered by a print provider for a blueprint.

        Returns:
            List of variant ids in catalog order.
        """
        result = self._request(
            "GET",
            f"/catalog/blueprints/{blueprint_id}/print_providers/"
            f"{print_provider_id}/variants.json",
        )
        return [v["id"] for v in result.get("variants", [])]

    def get_shops(self) -> list[dict[str, Any]]:
        """List shops available to the API token."""
        return self._request("GET", "/shops.json")

    def get_product(self, product_id: str) -> dict[str, Any]:
        """Fetch a single product from the configured shop."""
        return self._request(
            "GET", f"/shops/{self._require_shop_id()}/products/{product_id}.json"
        )

    def list_products(self, page: int = 1, limit: int = 20) -> dict[str, Any]:
        """List products in the configured shop."""
        return self._request(
            "GET",
            f"/shops/{self._require_shop_id()}/products.json",
            params={"page": page, "limit": limit},
        )

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()
        logger.debug("Printify session closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
