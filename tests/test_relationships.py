"""
Tests for RelationshipResolver.
"""

import pytest

from schemabridge.services.relationships import RelationshipResolver
from schemabridge.store.memory import InMemoryDocumentStore


class FailingStore(InMemoryDocumentStore):
    async def query(self, shape):
        raise RuntimeError("store offline")


class TestLookups:
    @pytest.mark.asyncio
    async def test_build_lookups(self, store, registry):
        resolver = RelationshipResolver(store, registry)
        lookups = await resolver.build_lookups("s1")

        assert lookups["brands"] == {"Acme": "b1"}
        assert lookups["categories"] == {"Jewelry": "c1"}
        assert lookups["vendors"] == {}

    @pytest.mark.asyncio
    async def test_scope_filters_lookups(self, store, registry):
        resolver = RelationshipResolver(store, registry)
        lookups = await resolver.build_lookups("other-store")
        assert lookups["brands"] == {}

    @pytest.mark.asyncio
    async def test_single_query(self, store, registry):
        resolver = RelationshipResolver(store, registry)
        await resolver.build_lookups()
        assert len(store.queries) == 1

    @pytest.mark.asyncio
    async def test_query_failure_gives_empty_tables(self, registry):
        resolver = RelationshipResolver(FailingStore(), registry)
        lookups = await resolver.build_lookups()
        assert all(table == {} for table in lookups.values())


class TestResolve:
    def test_hit_replaces_name(self, store, registry):
        resolver = RelationshipResolver(store, registry)
        record = {"id": "p1", "brand": "Acme", "category": "Jewelry"}

        resolved = resolver.resolve("products", record, {"brands": {"Acme": "b1"}, "categories": {"Jewelry": "c1"}})

        assert resolved == {"id": "p1", "brandId": "b1", "categoryId": "c1"}
        assert record == {"id": "p1", "brand": "Acme", "category": "Jewelry"}

    def test_miss_leaves_record(self, store, registry):
        resolver = RelationshipResolver(store, registry)
        record = {"id": "p1", "brand": "Nobody"}

        resolved = resolver.resolve("products", record, {"brands": {"Acme": "b1"}})

        assert resolved == record
        assert resolver.unresolved("products", resolved) == ["brand"]

    def test_existing_id_kept(self, store, registry):
        resolver = RelationshipResolver(store, registry)
        record = {"id": "p1", "brand": "Acme", "brandId": "b9"}
        resolved = resolver.resolve("products", record, {"brands": {"Acme": "b1"}})
        assert resolved["brandId"] == "b9"
        assert "brand" not in resolved
        assert resolver.unresolved("products", resolved) == []

    def test_entity_without_relationships(self, store, registry):
        resolver = RelationshipResolver(store, registry)
        record = {"id": "o1", "brand": "Acme"}
        assert resolver.resolve("orders", record, {"brands": {"Acme": "b1"}}) == record
