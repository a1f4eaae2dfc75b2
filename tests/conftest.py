"""
Pytest configuration and shared fixtures for schemabridge tests.
"""

import pytest

from schemabridge.config import EngineConfig
from schemabridge.orchestrator import MigrationOrchestrator
from schemabridge.services.schema_registry import FieldMapRegistry
from schemabridge.services.status_store import MigrationStatusStore
from schemabridge.store.memory import InMemoryDocumentStore


@pytest.fixture
def registry():
    """Registry with the built-in field maps."""
    return FieldMapRegistry()


@pytest.fixture
def status_store():
    return MigrationStatusStore()


@pytest.fixture
def legacy_products():
    """Products in the legacy layout, one per legacy quirk."""
    return [
        {
            "id": "p1",
            "name": "Ring",
            "storeId": "s1",
            "price": 120,
            "sku": "RING-1",
            "brand": "Acme",
            "createdat": "2023-01-01T10:00:00Z",
            "seo": '{"title": "Gold ring"}',
        },
        {
            "id": "p2",
            "name": "Necklace",
            "storeId": "s1",
            "price": 80,
            "sku": "NECK-1",
            "category": "Jewelry",
            "createdat": "2023-02-01",
        },
        {
            "id": "p3",
            "title": "Bracelet",
            "storeId": "s1",
            "price": 45,
            "sku": "BRAC-1",
            "brand": "Unknown Brand",
        },
    ]


@pytest.fixture
def orders():
    """Orders already in the canonical layout."""
    return [
        {"id": "o1", "storeId": "s1", "orderNumber": "1001", "referenceId": "r1", "subtotal": 10, "total": 11},
        {"id": "o2", "storeId": "s1", "orderNumber": "1002", "referenceId": "r2", "subtotal": 20, "total": 22},
        {"id": "o3", "storeId": "s1", "orderNumber": "1003", "referenceId": "r3", "subtotal": 30, "total": 33},
    ]


@pytest.fixture
def lookup_data():
    """Brand and category tables used for relationship resolution."""
    return {
        "brands": [{"id": "b1", "name": "Acme", "storeId": "s1"}],
        "categories": [{"id": "c1", "name": "Jewelry", "storeId": "s1"}],
    }


@pytest.fixture
def store(legacy_products, orders, lookup_data):
    """In-memory store seeded with products, orders and lookup tables."""
    return InMemoryDocumentStore({
        "products": legacy_products,
        "orders": orders,
        **lookup_data,
    })


@pytest.fixture
def config():
    return EngineConfig(batch_size=2, max_concurrent_batches=2)


@pytest.fixture
def orchestrator(config, store, registry, status_store):
    return MigrationOrchestrator(config, store=store, registry=registry, status_store=status_store)
