"""Tests for the static field type registry."""

import pytest

from gravity_mcp.fields.registry import FieldType, FieldTypeRegistry, get_registry


@pytest.fixture
def registry() -> FieldTypeRegistry:
    return get_registry()


class TestLookup:
    def test_every_field_type_is_registered(self, registry):
        assert len(registry) == len(FieldType)
        for field_type in FieldType:
            assert field_type.value in registry

    def test_unknown_tag_yields_none(self, registry):
        assert registry.get("hologram") is None
        assert "hologram" not in registry
        assert FieldType.resolve("hologram") is None

    def test_lookup_is_case_insensitive(self, registry):
        assert registry.get("EMAIL").type is FieldType.EMAIL
        assert FieldType.resolve(" Address ") is FieldType.ADDRESS

    def test_compound_types(self, registry):
        compound = {d.type.value for d in registry if d.is_compound}
        assert compound == {"name", "address", "creditcard", "consent"}
        assert registry.is_compound("name")
        assert not registry.is_compound("text")


class TestDefinitions:
    def test_default_properties_are_copies(self, registry):
        page = registry.get("page")
        defaults = page.default_properties()
        defaults["nextButton"]["text"] = "Changed"
        assert page.default_properties()["nextButton"]["text"] == "Next"

    def test_variant_defaults(self, registry):
        assert registry.get("name").default_properties() == {"nameFormat": "advanced"}
        assert registry.get("address").default_properties() == {"addressType": "us"}

    def test_layout_types_do_not_store_data(self, registry):
        for tag in ("html", "section", "page"):
            definition = registry.get(tag)
            assert not definition.stores_data
            assert not definition.supports_required

    def test_page_is_page_break(self, registry):
        assert registry.get("page").is_page_break
        assert not registry.get("section").is_page_break

    def test_supports_features(self, registry):
        assert registry.get("select").supports("choices")
        assert registry.get("checkbox").supports("array")
        assert not registry.get("hidden").supports("conditional_logic")
        assert not registry.get("text").supports("teleport")


class TestListTypes:
    def test_unfiltered_lists_everything(self, registry):
        assert len(registry.list_types()) == len(FieldType)

    def test_category_filter(self, registry):
        listed = registry.list_types(category="pricing")
        assert {item["type"] for item in listed} == {
            "product",
            "quantity",
            "option",
            "shipping",
            "total",
            "creditcard",
        }

    def test_feature_filter(self, registry):
        listed = registry.list_types(feature="compound")
        assert {item["type"] for item in listed} == {"name", "address", "creditcard", "consent"}

    def test_search_matches_label(self, registry):
        listed = registry.list_types(search="paragraph")
        assert [item["type"] for item in listed] == ["textarea"]

    def test_variants_only_when_requested(self, registry):
        plain = registry.list_types(search="address")
        assert "variants" not in plain[0]
        detailed = registry.list_types(search="address", include_variants=True)
        names = [variant["name"] for variant in detailed[0]["variants"]]
        assert "international" in names

    def test_categories_are_unique_and_ordered(self, registry):
        categories = registry.categories()
        assert categories[0] == "standard"
        assert len(categories) == len(set(categories))


class TestDetectVariant:
    def test_detects_matching_variant(self, registry):
        field = {"type": "address", "addressType": "international"}
        assert registry.detect_variant(field) == "international"

    def test_unknown_type_has_no_variant(self, registry):
        assert registry.detect_variant({"type": "hologram"}) is None
