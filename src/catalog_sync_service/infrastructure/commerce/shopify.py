"""Shopify Admin REST API client."""

import asyncio
import re
from typing import Any

import httpx
import structlog

from catalog_sync_service.config import get_settings
from catalog_sync_service.infrastructure.commerce.schemas import SourceItem, SourcePage
from catalog_sync_service.infrastructure.database.models import ItemStatus
from catalog_sync_service.services.errors import SourceFetchError

logger = structlog.get_logger()

HTML_TAG_PATTERN = re.compile(r"<[^>]*>")
DEFAULT_CATEGORY = "General"


def strip_html(value: str | None) -> str:
    return HTML_TAG_PATTERN.sub("", value or "")


def normalize_product(product: dict[str, Any], domain: str) -> SourceItem:
    """Map a raw Shopify product onto a ``SourceItem``.

    Price, inventory and tracking come from the first variant; the image is
    the first listed image.
    """
    variants = product.get("variants") or []
    first_variant = variants[0] if variants else {}
    images = product.get("images") or []
    handle = product.get("handle")
    raw_tags = product.get("tags") or ""
    if isinstance(raw_tags, str):
        tags = [tag.strip() for tag in raw_tags.split(",") if tag.strip()]
    else:
        tags = [str(tag).strip() for tag in raw_tags if str(tag).strip()]

    try:
        item_status = ItemStatus(product.get("status") or ItemStatus.DRAFT.value)
    except ValueError:
        item_status = ItemStatus.DRAFT

    return SourceItem(
        external_item_id=str(product["id"]),
        title=product.get("title") or "",
        handle=handle,
        url=f"https://{domain}/products/{handle}" if handle else None,
        image_url=images[0].get("src") if images else None,
        price=str(first_variant.get("price") or "0"),
        category=product.get("product_type") or DEFAULT_CATEGORY,
        tags=tags,
        description=strip_html(product.get("body_html")),
        item_status=item_status,
        inventory_quantity=first_variant.get("inventory_quantity") or 0,
        inventory_tracked=first_variant.get("inventory_management") == "shopify",
    )


class ShopifyClient:
    """Paginated, rate-limit aware reader of a shop's products.

    Use as an async context manager, or call ``aclose()`` when done.
    """

    def __init__(
        self,
        domain: str,
        access_token: str,
        *,
        api_version: str | None = None,
        product_status: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.domain = domain
        self.product_status = product_status or settings.commerce_product_status
        self.max_retries = max_retries or settings.commerce_max_retries
        version = api_version or settings.commerce_api_version
        self._client = httpx.AsyncClient(
            base_url=f"https://{domain}/admin/api/{version}",
            headers={
                "X-Shopify-Access-Token": access_token,
                "Content-Type": "application/json",
            },
            timeout=timeout or settings.external_call_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ShopifyClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _status_params(self) -> dict[str, str]:
        if self.product_status == "any":
            return {}
        return {"status": self.product_status}

    async def count_items(self) -> int:
        """Total number of products matching the configured status."""
        response = await self._get("/products/count.json", params=self._status_params())
        return int(response.json().get("count", 0))

    async def list_items(self, page_size: int, cursor: str | None = None) -> SourcePage:
        """Fetch one page of products.

        ``cursor`` is the ``page_info`` token of a previous page. Shopify
        rejects filters on cursor requests, so only ``limit`` is sent then.
        """
        params: dict[str, Any] = {"limit": page_size}
        if cursor:
            params["page_info"] = cursor
        else:
            params.update(self._status_params())

        response = await self._get("/products.json", params=params)
        products = response.json().get("products", [])
        items = [normalize_product(product, self.domain) for product in products]

        next_url = response.links.get("next", {}).get("url")
        next_cursor = httpx.URL(next_url).params.get("page_info") if next_url else None
        return SourcePage(items=items, next_cursor=next_cursor)

    async def _get(self, path: str, params: dict[str, Any]) -> httpx.Response:
        backoff = 1.0
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.get(path, params=params)
            except httpx.HTTPError as e:
                raise SourceFetchError(f"Commerce source unreachable: {e}") from e

            if response.status_code == 429:
                retry_after = self._parse_retry_after(response)
                wait = retry_after if retry_after is not None else backoff
                logger.warning(
                    "Commerce source rate limited",
                    domain=self.domain,
                    attempt=attempt,
                    max_attempts=self.max_retries,
                    wait_seconds=wait,
                )
                await asyncio.sleep(wait)
                backoff *= 2
                continue

            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise SourceFetchError(
                    f"Commerce source returned {response.status_code} for {path}",
                    status_code=response.status_code,
                ) from e
            return response

        raise SourceFetchError(
            f"Commerce source request {path} failed after {self.max_retries} attempts "
            "due to rate limiting",
            status_code=429,
        )

    @staticmethod
    def _parse_retry_after(response: httpx.Response) -> float | None:
        """Seconds from the Retry-After header, or None if absent or invalid."""
        header = response.headers.get("Retry-After")
        if header is None:
            return None
        try:
            return float(header)
        except (TypeError, ValueError):
            return None
