"""Tests for the product catalogue."""

import pytest

from conftest import OWNER_ID, make_product


class TestCreateProduct:
    @pytest.mark.asyncio
    async def test_defaults(self, store):
        product = await make_product(store)
        assert product["status"] == "active"
        assert product["category"] == "course"
        assert product["totalSales"] == 0
        assert product["metadata"]["fileCount"] == 0
        assert len(product["productId"]) == 32

    @pytest.mark.asyncio
    async def test_stock_defaults_when_missing(self, store):
        result = await store.products.create_product({
            "name": "Icon Pack",
            "description": "Two hundred hand drawn icons.",
            "price": 15000,
            "category": "PHOTO",
            "sellerId": OWNER_ID,
        })
        assert result["product"]["stock"] == 999
        assert result["product"]["category"] == "photo"

    @pytest.mark.asyncio
    async def test_validation_errors(self, store):
        result = await store.products.create_product({
            "name": "X",
            "description": "short",
            "price": 50,
            "category": "weapons",
            "sellerId": OWNER_ID,
        })
        assert result["ok"] is False
        assert "Field 'name'" in result["message"]
        assert "Field 'category'" in result["message"]

    @pytest.mark.asyncio
    async def test_negative_stock(self, store):
        result = await store.products.create_product({
            "name": "Icon Pack",
            "description": "Two hundred hand drawn icons.",
            "price": 15000,
            "category": "photo",
            "sellerId": OWNER_ID,
            "stock": -1,
        })
        assert result == {"ok": False, "message": "Stock must be a non-negative whole number"}

    @pytest.mark.asyncio
    async def test_name_is_sanitized(self, store):
        product = await make_product(store, name="<script>x</script>Clean Name")
        assert product["name"] == "Clean Name"


class TestCatalogue:
    @pytest.mark.asyncio
    async def test_filters_and_sorting(self, store):
        cheap = await make_product(store, price=1000, name="Cheap Course")
        pricey = await make_product(store, price=90000, name="Pricey Course")
        await store.products.update_product(pricey["productId"], {"status": "inactive"})

        active = await store.products.get_all_products({"status": "active"})
        assert [p["productId"] for p in active] == [cheap["productId"]]

        by_price = await store.products.get_all_products({"sortBy": "price_desc"})
        assert by_price[0]["productId"] == pricey["productId"]
        assert await store.products.get_all_products({"minPrice": 5000, "maxPrice": 100000}) == [
            await store.products.get_product(pricey["productId"])
        ]

    @pytest.mark.asyncio
    async def test_search_only_active(self, store):
        await make_product(store, name="Django Course")
        hidden = await make_product(store, name="Flask Course")
        await store.products.update_product(hidden["productId"], {"status": "inactive"})

        assert [p["name"] for p in await store.products.search_products("django")] == ["Django Course"]
        assert await store.products.search_products("flask") == []

    @pytest.mark.asyncio
    async def test_categories(self, store):
        await make_product(store)
        await make_product(store, name="Second Course")
        assert await store.products.get_categories() == [{"name": "course", "count": 2}]

    @pytest.mark.asyncio
    async def test_delete(self, store):
        product = await make_product(store)
        assert await store.products.delete_product(product["productId"]) is True
        assert await store.products.get_product(product["productId"]) is None


class TestCounters:
    @pytest.mark.asyncio
    async def test_views_and_sales(self, store):
        product = await make_product(store, stock=1)
        await store.products.increment_view_count(product["productId"])
        await store.products.increment_sales_count(product["productId"])
        await store.products.increment_sales_count(product["productId"])

        stats = await store.products.get_product_stats(product["productId"])
        assert stats["totalViews"] == 1
        assert stats["totalSales"] == 2
        assert stats["stock"] == 0

    @pytest.mark.asyncio
    async def test_update_stock(self, store):
        product = await make_product(store, stock=5)
        pid = product["productId"]
        assert (await store.products.update_stock(pid, 3, "add"))["new_stock"] == 8
        assert (await store.products.update_stock(pid, 20, "subtract"))["new_stock"] == 0
        assert (await store.products.update_stock(pid, 7))["new_stock"] == 7
        assert (await store.products.update_stock(pid, 1, "multiply"))["ok"] is False
        assert await store.products.check_stock(pid, 7)
        assert not await store.products.check_stock(pid, 8)
