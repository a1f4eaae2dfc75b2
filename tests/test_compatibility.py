"""
Tests for CompatibilityMiddleware and CompatibilityPerformanceMonitor.

Covers:
- where / order / select rewrites
- Legacy aliasing of results until the entity is migrated
- Query, create and update wrappers against the in-memory store
- Operation timing statistics
"""

import pytest

from schemabridge.services.compatibility import CompatibilityMiddleware
from schemabridge.services.performance import CompatibilityPerformanceMonitor
from schemabridge.services.status_store import complete_migration
from schemabridge.store.memory import InMemoryDocumentStore


@pytest.fixture
def middleware(registry, status_store):
    store = InMemoryDocumentStore({
        "products": [
            {"id": "p1", "title": "Ring", "storeId": "s1", "createdAt": "2023-01-01"},
            {"id": "p2", "title": "Chain", "storeId": "s2", "createdAt": "2023-02-01"},
        ],
    })
    return CompatibilityMiddleware(registry, status_store, store=store)


class TestQueryRewrite:
    def test_where(self, middleware):
        where = middleware.transform_where("products", {"name": "Ring", "storeId": "s1"})
        assert where == {"title": "Ring", "storeId": "s1"}

    def test_where_canonical_wins(self, middleware):
        where = middleware.transform_where("products", {"name": "Old", "title": "New"})
        assert where == {"title": "New"}

    @pytest.mark.parametrize(
        "order,expected",
        [
            ("createdat", "createdAt"),
            ({"createdat": "desc"}, {"createdAt": "desc"}),
            (["name", "price"], ["title", "price"]),
            ([{"updatedat": "asc"}, "name"], [{"updatedAt": "asc"}, "title"]),
        ],
    )
    def test_order_forms(self, middleware, order, expected):
        assert middleware.transform_order("products", order) == expected

    def test_select(self, middleware):
        fields = middleware.transform_select_clause("products", ["name", "title", "price"])
        assert fields == ["title", "price"]

    def test_full_query(self, middleware):
        query = {"$": {"where": {"referid": "r1"}, "order": {"createdat": "desc"}, "limit": 5}}
        assert middleware.transform_query("orders", query) == {
            "$": {"where": {"referenceId": "r1"}, "order": {"createdAt": "desc"}, "limit": 5},
        }

    def test_input_untouched(self, middleware):
        where = {"name": "Ring"}
        middleware.transform_query("products", {"where": where})
        assert where == {"name": "Ring"}


class TestResults:
    def test_aliases_added_until_migrated(self, middleware, status_store):
        records = [{"id": "1", "title": "Ring", "createdAt": "2023-01-01"}]

        aliased = middleware.transform_results("products", records)
        assert aliased[0]["name"] == "Ring"
        assert aliased[0]["createdat"] == "2023-01-01"
        assert "name" not in records[0]

        complete_migration(status_store, "products")
        assert middleware.transform_results("products", records) == records
        assert middleware.should_apply_middleware("products") is False

    def test_existing_legacy_value_kept(self, middleware):
        records = [{"id": "1", "title": "New", "name": "Old"}]
        assert middleware.transform_results("products", records)[0]["name"] == "Old"

    def test_no_status_means_apply(self, middleware):
        assert middleware.should_apply_middleware("orders") is True

    def test_prepare_write(self, middleware):
        data = middleware.prepare_write("products", {"name": "Ring", "brand": "Acme", "price": 5})
        assert data == {"title": "Ring", "brand": "Acme", "price": 5}

    def test_prepare_write_drops_name_beside_id(self, middleware):
        data = middleware.prepare_write("products", {"title": "Ring", "brand": "Acme", "brandId": "b1"})
        assert data == {"title": "Ring", "brandId": "b1"}


class TestStoreWrappers:
    @pytest.mark.asyncio
    async def test_query_with_legacy_names(self, middleware):
        records = await middleware.query("products", where={"name": "Ring"})
        assert [r["id"] for r in records] == ["p1"]
        assert records[0]["name"] == "Ring"

    @pytest.mark.asyncio
    async def test_query_order_and_limit(self, middleware):
        records = await middleware.query(
            "products", order={"createdat": "desc"}, limit=1, include_legacy_fields=False
        )
        assert [r["id"] for r in records] == ["p2"]
        assert "name" not in records[0]

    @pytest.mark.asyncio
    async def test_create_record(self, middleware):
        record_id = await middleware.create_record("products", {"name": "Pin", "storeId": "s1"})
        stored = middleware.store.get("products", record_id)
        assert stored["title"] == "Pin"
        assert "name" not in stored

    @pytest.mark.asyncio
    async def test_update_record_drops_stale_legacy_key(self, middleware):
        middleware.store.seed("products", [{"id": "p9", "name": "Old", "title": "Old"}])
        await middleware.update_record("products", "p9", {"name": "New"})
        assert middleware.store.get("products", "p9") == {"id": "p9", "title": "New"}

    @pytest.mark.asyncio
    async def test_operations_timed(self, middleware):
        await middleware.query("products")
        await middleware.create_record("products", {"title": "Pin", "storeId": "s1"})

        stats = middleware.monitor.get_statistics()
        assert stats["totalOperations"] == 2
        assert set(stats["operationBreakdown"]) == {"query:products", "create:products"}

    @pytest.mark.asyncio
    async def test_failed_operation_recorded(self, registry, status_store):
        store = InMemoryDocumentStore(fail_on=lambda ops: True)
        middleware = CompatibilityMiddleware(registry, status_store, store=store)

        with pytest.raises(RuntimeError):
            await middleware.update_record("products", "p1", {"title": "x"})

        assert middleware.monitor.get_statistics()["successRate"] == 0.0


class TestPerformanceMonitor:
    def test_empty(self):
        stats = CompatibilityPerformanceMonitor().get_statistics()
        assert stats["totalOperations"] == 0
        assert stats["successRate"] == 1.0

    def test_breakdown(self):
        monitor = CompatibilityPerformanceMonitor()
        for success in (True, True, False, True):
            monitor.end_timing(monitor.start_timing("query:products"), success=success)

        stats = monitor.get_statistics()
        assert stats["successRate"] == 0.75
        assert stats["operationBreakdown"]["query:products"]["count"] == 4

    def test_unknown_timing_id(self):
        assert CompatibilityPerformanceMonitor().end_timing("nope") is None

    def test_bounded_history(self):
        monitor = CompatibilityPerformanceMonitor(max_operations=3)
        for _ in range(5):
            monitor.end_timing(monitor.start_timing("op"))
        assert monitor.get_statistics()["totalOperations"] == 3

    def test_reset(self):
        monitor = CompatibilityPerformanceMonitor()
        monitor.end_timing(monitor.start_timing("op"), success=False)
        monitor.reset()
        assert monitor.get_statistics()["successRate"] == 1.0
