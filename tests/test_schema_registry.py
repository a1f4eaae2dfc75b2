"""
Tests for FieldMapRegistry.
"""

import json

import pytest

from schemabridge.errors import ConfigurationError
from schemabridge.models.schema import EntityFieldMap, FieldMapping
from schemabridge.services.schema_registry import FieldMapRegistry


class TestDefaults:
    def test_entities(self, registry):
        for entity in ("products", "orders", "orderitems", "customers", "items"):
            assert registry.has_entity(entity)

    def test_mappings_are_ordered(self, registry):
        legacy = [m.legacy_key for m in registry.mappings("products")]
        assert legacy[:3] == ["createdat", "updatedat", "name"]

    def test_lookup_tables(self, registry):
        assert registry.legacy_to_canonical("orders")["referid"] == "referenceId"
        assert registry.canonical_to_legacy("orderitems")["lineTotal"] == "total"
        assert registry.canonical_name("products", "name") == "title"
        assert registry.canonical_name("products", "price") == "price"

    def test_rules(self, registry):
        rules = registry.rules("orders")
        assert rules.required == ("storeId", "orderNumber", "referenceId", "subtotal", "total")
        assert "paid" in rules.enums["paymentStatus"]
        assert registry.rules("orderitems").positive == ("quantity",)

    def test_relationships(self, registry):
        relationships = registry.relationship_fields("products")
        assert [r.name_field for r in relationships] == ["brand", "category", "type", "vendor", "collection"]
        assert registry.is_relationship_field("products", "brand")
        assert not registry.is_relationship_field("orders", "brand")

    def test_unknown_entity(self, registry):
        assert list(registry.mappings("widgets")) == []
        assert registry.rules("widgets").required == ()

    def test_read_only(self, registry):
        with pytest.raises(TypeError):
            registry.legacy_to_canonical("products")["x"] = "y"


class TestDuplicateKeys:
    def test_duplicate_canonical_key(self):
        field_map = EntityFieldMap(
            entity="things",
            mappings=(FieldMapping("a", "x"), FieldMapping("b", "x")),
        )
        with pytest.raises(ConfigurationError):
            FieldMapRegistry({"things": field_map})

    def test_duplicate_legacy_key(self):
        field_map = EntityFieldMap(
            entity="things",
            mappings=(FieldMapping("a", "x"), FieldMapping("a", "y")),
        )
        with pytest.raises(ConfigurationError):
            FieldMapRegistry({"things": field_map})


class TestOverrides:
    def test_override_file(self, tmp_path):
        path = tmp_path / "maps.json"
        path.write_text(json.dumps({
            "entities": {
                "vendors": {
                    "mappings": {"vendorname": "name"},
                    "rules": {"required": ["name"]},
                },
            },
        }))

        registry = FieldMapRegistry(overrides_file=str(path))

        assert registry.legacy_to_canonical("vendors") == {"vendorname": "name"}
        assert registry.rules("vendors").required == ("name",)
        assert registry.has_entity("products")

    def test_missing_override_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            FieldMapRegistry(overrides_file=str(tmp_path / "missing.json"))
