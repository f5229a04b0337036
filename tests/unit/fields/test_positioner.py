"""Tests for insertion index calculation."""

import pytest

from gravity_mcp.fields.positioner import PositionEngine


@pytest.fixture
def engine() -> PositionEngine:
    return PositionEngine()


@pytest.fixture
def flat_fields():
    return [{"id": i, "type": "text"} for i in (1, 2, 3)]


class TestPageModel:
    def test_total_pages(self, engine, paged_form):
        assert engine.get_total_pages(paged_form["fields"]) == 3
        assert engine.get_total_pages([]) == 1

    def test_page_boundaries(self, engine, paged_form):
        assert [f["id"] for f in engine.get_page_boundaries(paged_form["fields"])] == [3, 6]

    def test_fields_for_page_excludes_sentinels(self, engine, paged_form):
        fields = paged_form["fields"]
        assert [f["id"] for f in engine.get_fields_for_page(fields, 1)] == [1, 2]
        assert [f["id"] for f in engine.get_fields_for_page(fields, 2)] == [4, 5]
        assert [f["id"] for f in engine.get_fields_for_page(fields, 3)] == [7]

    def test_field_page(self, engine, paged_form):
        fields = paged_form["fields"]
        assert engine.get_field_page({"id": 5}, fields) == 2
        assert engine.get_field_page({"id": "7"}, fields) == 3
        assert engine.get_field_page({"id": 99}, fields) is None


class TestFlatPositions:
    def test_default_is_append(self, engine, flat_fields):
        assert engine.calculate_position(flat_fields) == 3
        assert engine.calculate_position(flat_fields, {"mode": "append"}) == 3

    def test_prepend(self, engine, flat_fields):
        assert engine.calculate_position(flat_fields, {"mode": "prepend"}) == 0

    def test_after_and_before(self, engine, flat_fields):
        assert engine.calculate_position(flat_fields, {"mode": "after", "reference": 1}) == 1
        assert engine.calculate_position(flat_fields, {"mode": "before", "reference": "3"}) == 2

    def test_missing_reference_id_appends(self, engine, flat_fields):
        assert engine.calculate_position(flat_fields, {"mode": "after", "reference": 42}) == 3
        assert engine.calculate_position(flat_fields, {"mode": "before", "reference": 42}) == 3

    def test_no_reference(self, engine, flat_fields):
        assert engine.calculate_position(flat_fields, {"mode": "after"}) == 3
        assert engine.calculate_position(flat_fields, {"mode": "before"}) == 0

    @pytest.mark.parametrize(
        "reference,expected", [(1, 1), (-5, 0), (50, 3), ("2", 2), ("x", 3)]
    )
    def test_index_is_clamped(self, engine, flat_fields, reference, expected):
        position = {"mode": "index", "reference": reference}
        assert engine.calculate_position(flat_fields, position) == expected

    def test_page_ignored_when_not_page_aware(self, engine, paged_form):
        position = {"mode": "prepend", "page": 2}
        assert engine.calculate_position(paged_form["fields"], position) == 0


class TestPagePositions:
    def test_append_to_page(self, engine, paged_form):
        fields = paged_form["fields"]
        assert engine.calculate_position(fields, {"mode": "append", "page": 1}, True) == 2
        assert engine.calculate_position(fields, {"mode": "append", "page": 2}, True) == 5
        assert engine.calculate_position(fields, {"mode": "append", "page": 3}, True) == 7

    def test_prepend_to_page(self, engine, paged_form):
        fields = paged_form["fields"]
        assert engine.calculate_position(fields, {"mode": "prepend", "page": 1}, True) == 0
        assert engine.calculate_position(fields, {"mode": "prepend", "page": 2}, True) == 3
        assert engine.calculate_position(fields, {"mode": "prepend", "page": 3}, True) == 6

    def test_empty_page(self, engine):
        fields = [
            {"id": 1, "type": "text"},
            {"id": 2, "type": "page"},
            {"id": 3, "type": "page"},
            {"id": 4, "type": "text"},
        ]
        assert engine.calculate_position(fields, {"mode": "append", "page": 2}, True) == 2
        assert engine.calculate_position(fields, {"mode": "prepend", "page": 2}, True) == 2

    def test_after_reference_on_page(self, engine, paged_form):
        fields = paged_form["fields"]
        position = {"mode": "after", "reference": 4, "page": 2}
        assert engine.calculate_position(fields, position, True) == 4

    def test_reference_on_other_page_falls_back(self, engine, paged_form):
        fields = paged_form["fields"]
        after = {"mode": "after", "reference": 1, "page": 2}
        before = {"mode": "before", "reference": 1, "page": 2}
        assert engine.calculate_position(fields, after, True) == 5
        assert engine.calculate_position(fields, before, True) == 3

    def test_index_is_offset_within_page(self, engine, paged_form):
        fields = paged_form["fields"]
        assert engine.calculate_position(fields, {"mode": "index", "reference": 1, "page": 2}, True) == 4
        assert engine.calculate_position(fields, {"mode": "index", "reference": 9, "page": 2}, True) == 5

    @pytest.mark.parametrize("page", [0, -1, 4, "x"])
    def test_out_of_range_page_appends(self, engine, paged_form, page):
        fields = paged_form["fields"]
        assert engine.calculate_position(fields, {"mode": "prepend", "page": page}, True) == 7


class TestValidatePositionConfig:
    def test_empty_position_is_valid(self, engine, flat_fields):
        assert engine.validate_position_config(None, flat_fields) == {
            "valid": True,
            "errors": [],
            "warnings": [],
        }

    def test_invalid_mode(self, engine, flat_fields):
        result = engine.validate_position_config({"mode": "sideways"}, flat_fields)
        assert not result["valid"]
        assert "Invalid position mode" in result["errors"][0]

    def test_non_integer_index(self, engine, flat_fields):
        result = engine.validate_position_config({"mode": "index", "reference": "abc"}, flat_fields)
        assert not result["valid"]

    @pytest.mark.parametrize("page", [0, -2, "x", 1.5, True])
    def test_bad_page(self, engine, flat_fields, page):
        result = engine.validate_position_config({"page": page}, flat_fields)
        assert not result["valid"]

    def test_reference_warnings(self, engine, flat_fields):
        missing = engine.validate_position_config({"mode": "after"}, flat_fields)
        assert missing["valid"]
        assert "without reference" in missing["warnings"][0]

        unknown = engine.validate_position_config({"mode": "before", "reference": 42}, flat_fields)
        assert unknown["valid"]
        assert "not found" in unknown["warnings"][0]

    @pytest.mark.parametrize("page", [2, "2", " 2 ", 2.0])
    def test_page_accepts_what_calculation_accepts(self, engine, paged_form, page):
        fields = paged_form["fields"]
        position = {"mode": "prepend", "page": page}
        assert engine.validate_position_config(position, fields)["valid"]
        assert engine.calculate_position(fields, position, True) == 3

    def test_reference_on_other_page_warns(self, engine, paged_form):
        fields = paged_form["fields"]
        for mode in ("after", "before"):
            result = engine.validate_position_config(
                {"mode": mode, "reference": 1, "page": 2}, fields
            )
            assert result["valid"]
            assert result["warnings"] == ["Reference field 1 is not on page 2"]

    def test_reference_on_same_page_has_no_warning(self, engine, paged_form):
        result = engine.validate_position_config(
            {"mode": "after", "reference": "4", "page": "2"}, paged_form["fields"]
        )
        assert result == {"valid": True, "errors": [], "warnings": []}

    def test_page_beyond_total_warns(self, engine, paged_form):
        result = engine.validate_position_config({"page": 5}, paged_form["fields"])
        assert result["valid"]
        assert "exceeds total pages (3)" in result["warnings"][0]

    def test_validation_is_idempotent(self, engine, flat_fields):
        position = {"mode": "after", "reference": 42, "page": 9}
        first = engine.validate_position_config(position, flat_fields)
        assert engine.validate_position_config(position, flat_fields) == first


class TestPositionSummary:
    def test_summary_after_insert(self, engine, paged_form):
        fields = paged_form["fields"]
        new_field = {"id": 8, "type": "text"}
        fields.insert(5, new_field)
        summary = engine.get_position_summary(fields, 5, new_field)
        assert summary == {
            "total_fields": 8,
            "total_pages": 3,
            "inserted_at": 5,
            "on_page": 2,
            "after_field": 5,
            "before_field": 6,
        }

    def test_summary_at_edges(self, engine):
        new_field = {"id": 1, "type": "text"}
        summary = engine.get_position_summary([new_field], 0, new_field)
        assert summary["after_field"] is None
        assert summary["before_field"] is None
