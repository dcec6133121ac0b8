"""Unit tests for the Shopify client and product normalization."""

import httpx
import pytest

from catalog_sync_service.infrastructure.commerce.shopify import (
    ShopifyClient,
    normalize_product,
    strip_html,
)
from catalog_sync_service.infrastructure.database.models import ItemStatus
from catalog_sync_service.services.errors import SourceFetchError

DOMAIN = "shop.example.com"


def make_product(product_id: int, **overrides) -> dict:
    product = {
        "id": product_id,
        "title": f"Shirt {product_id}",
        "handle": f"shirt-{product_id}",
        "body_html": "<p>Soft <strong>cotton</strong> shirt</p>",
        "product_type": "Shirts",
        "tags": "cotton, summer ,",
        "status": "active",
        "images": [{"src": f"https://cdn.example.com/{product_id}.jpg"}],
        "variants": [
            {"price": "24.50", "inventory_quantity": 7, "inventory_management": "shopify"}
        ],
    }
    product.update(overrides)
    return product


def make_client(handler, max_retries: int = 3) -> ShopifyClient:
    return ShopifyClient(
        DOMAIN,
        "shpat_test",
        api_version="2023-10",
        product_status="active",
        max_retries=max_retries,
        transport=httpx.MockTransport(handler),
    )


class TestNormalizeProduct:
    def test_maps_first_variant_and_image(self) -> None:
        item = normalize_product(make_product(42), DOMAIN)

        assert item.external_item_id == "42"
        assert item.title == "Shirt 42"
        assert item.url == "https://shop.example.com/products/shirt-42"
        assert item.image_url == "https://cdn.example.com/42.jpg"
        assert item.price == "24.50"
        assert item.category == "Shirts"
        assert item.tags == ["cotton", "summer"]
        assert item.description == "Soft cotton shirt"
        assert item.item_status == ItemStatus.ACTIVE
        assert item.inventory_quantity == 7
        assert item.inventory_tracked is True

    def test_missing_fields_get_defaults(self) -> None:
        product = make_product(
            7,
            handle=None,
            body_html=None,
            product_type="",
            tags="",
            status="unknown",
            images=[],
            variants=[],
        )

        item = normalize_product(product, DOMAIN)

        assert item.url is None
        assert item.image_url is None
        assert item.price == "0"
        assert item.category == "General"
        assert item.tags == []
        assert item.description == ""
        assert item.item_status == ItemStatus.DRAFT
        assert item.inventory_quantity == 0
        assert item.inventory_tracked is False

    def test_untracked_inventory(self) -> None:
        product = make_product(
            3, variants=[{"price": "5", "inventory_quantity": None, "inventory_management": None}]
        )

        item = normalize_product(product, DOMAIN)

        assert item.inventory_quantity == 0
        assert item.inventory_tracked is False

    def test_strip_html(self) -> None:
        assert strip_html("<p>a <br/>b</p>") == "a b"
        assert strip_html(None) == ""


class TestShopifyClient:
    @pytest.mark.asyncio
    async def test_count_items(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/admin/api/2023-10/products/count.json"
            assert request.url.params["status"] == "active"
            assert request.headers["X-Shopify-Access-Token"] == "shpat_test"
            return httpx.Response(200, json={"count": 12})

        async with make_client(handler) as client:
            assert await client.count_items() == 12

    @pytest.mark.asyncio
    async def test_follows_link_header(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if "page_info" not in request.url.params:
                next_url = f"https://{DOMAIN}/admin/api/2023-10/products.json?limit=2&page_info=abc"
                return httpx.Response(
                    200,
                    json={"products": [make_product(1), make_product(2)]},
                    headers={"Link": f'<{next_url}>; rel="next"'},
                )
            return httpx.Response(200, json={"products": [make_product(3)]})

        async with make_client(handler) as client:
            first = await client.list_items(page_size=2)
            second = await client.list_items(page_size=2, cursor=first.next_cursor)

        assert [i.external_item_id for i in first.items] == ["1", "2"]
        assert first.next_cursor == "abc"
        assert [i.external_item_id for i in second.items] == ["3"]
        assert second.next_cursor is None
        assert requests[0].url.params["status"] == "active"
        assert "status" not in requests[1].url.params
        assert requests[1].url.params["limit"] == "2"

    @pytest.mark.asyncio
    async def test_retries_rate_limited_requests(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                return httpx.Response(429, headers={"Retry-After": "0"})
            return httpx.Response(200, json={"count": 3})

        async with make_client(handler) as client:
            assert await client.count_items() == 3
        assert calls == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "0"})

        async with make_client(handler, max_retries=2) as client:
            with pytest.raises(SourceFetchError) as exc_info:
                await client.count_items()
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_http_error_becomes_source_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"errors": "Invalid API key"})

        async with make_client(handler) as client:
            with pytest.raises(SourceFetchError) as exc_info:
                await client.list_items(page_size=10)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_network_error_becomes_source_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(SourceFetchError):
                await client.count_items()
