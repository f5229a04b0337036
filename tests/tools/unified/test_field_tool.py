"""Tests for the unified field tool."""

from contextlib import contextmanager
from unittest.mock import MagicMock, patch

import httpx
import pytest

from gravity_mcp.config import GravityFormsConfig, ServerConfig
from gravity_mcp.core.form_store import FormStoreError, GravityFormsClient
from gravity_mcp.tools.unified.field import (
    _dispatch_field_action,
    register_unified_field_tool,
)


@pytest.fixture
def config():
    return ServerConfig()


@pytest.fixture
def use_store(form_store):
    """Route the field tool at the in-memory Form Store."""

    @contextmanager
    def _open(_config):
        yield form_store

    with patch("gravity_mcp.tools.unified.field.open_form_store", _open):
        yield form_store


def _call(config, action, **payload):
    return _dispatch_field_action(action=action, payload=payload, config=config)


class TestAdd:
    def test_appends_with_defaults(self, use_store, config):
        result = _call(config, "add", form_id=1, field_type="email", properties={"label": "Work Email"})

        assert result["success"] is True
        assert result["meta"]["version"] == "response-v2"
        assert result["meta"]["request_id"]
        assert "duration_ms" in result["meta"]["telemetry"]
        field = result["data"]["field"]
        assert field["id"] == 7
        assert field["type"] == "email"
        assert field["label"] == "Work Email"
        assert result["data"]["position"]["index"] == 6
        assert use_store.fetch_form(1)["fields"][-1]["id"] == 7

    def test_page_aware_append(self, use_store, config):
        result = _call(config, "add", form_id=2, field_type="text", position={"page": 2})

        assert result["success"] is True
        assert result["data"]["position"]["page"] == 2
        ids = [f["id"] for f in use_store.fetch_form(2)["fields"]]
        assert ids == [1, 2, 3, 4, 5, 8, 6, 7]

    def test_default_position_mode_from_config(self, use_store):
        config = ServerConfig()
        config.fields.default_position_mode = "prepend"
        result = _call(config, "add", form_id=1, field_type="text")

        assert result["data"]["position"]["index"] == 0
        assert use_store.fetch_form(1)["fields"][0]["id"] == 7

    def test_compound_type_gets_inputs(self, use_store, config):
        result = _call(config, "add", form_id=1, field_type="name")
        inputs = result["data"]["field"]["inputs"]
        assert [i["id"] for i in inputs][0] == "7.2"

    def test_unknown_type(self, use_store, config):
        result = _call(config, "add", form_id=1, field_type="hologram")

        assert result["success"] is False
        assert result["data"]["error_code"] == "UNKNOWN_FIELD_TYPE"
        assert result["data"]["details"]["field_type"] == "hologram"
        assert use_store.replace_count == 0

    def test_missing_form_id(self, use_store, config):
        result = _call(config, "add", field_type="text")

        assert result["success"] is False
        assert result["data"]["error_code"] == "MISSING_REQUIRED"
        assert result["data"]["details"]["field"] == "form_id"

    def test_missing_field_type(self, use_store, config):
        result = _call(config, "add", form_id=1)
        assert result["data"]["error_code"] == "MISSING_REQUIRED"
        assert result["data"]["details"]["field"] == "field_type"

    def test_non_numeric_form_id(self, use_store, config):
        result = _call(config, "add", form_id="contact", field_type="text")
        assert result["data"]["error_code"] == "INVALID_FORMAT"

    def test_invalid_position_writes_nothing(self, use_store, config):
        result = _call(config, "add", form_id=1, field_type="text", position={"mode": "sideways"})

        assert result["success"] is False
        assert result["data"]["error_code"] == "INVALID_POSITION"
        assert "Invalid position mode" in result["data"]["errors"][0]
        assert use_store.replace_count == 0

    def test_missing_reference_is_a_warning(self, use_store, config):
        result = _call(
            config, "add", form_id=1, field_type="text", position={"mode": "after", "reference": 99}
        )

        assert result["success"] is True
        assert "Reference field 99 not found in form" in result["meta"]["warnings"]
        assert result["data"]["position"]["index"] == 6

    def test_form_not_found(self, use_store, config):
        result = _call(config, "add", form_id=404, field_type="text")

        assert result["success"] is False
        assert result["data"]["error_code"] == "FORM_NOT_FOUND"


class TestUpdate:
    def test_merges_and_reports_dependencies(self, use_store, config):
        result = _call(config, "update", form_id=1, field_id=5, properties={"label": "Qty"})

        assert result["success"] is True
        assert result["data"]["changes"]["changed_keys"] == ["label"]
        assert result["data"]["field"]["label"] == "Qty"
        assert result["data"]["warnings"]["dependencies"]["calculations"]
        assert result["meta"]["warnings"][0] == result["data"]["warnings"]["dependency_summary"]

    def test_empty_properties_rejected(self, use_store, config):
        result = _call(config, "update", form_id=1, field_id=5, properties={})
        assert result["data"]["error_code"] == "MISSING_REQUIRED"

    def test_properties_must_be_object(self, use_store, config):
        result = _call(config, "update", form_id=1, field_id=5, properties=["label"])
        assert result["data"]["error_code"] == "INVALID_FORMAT"

    def test_field_not_found(self, use_store, config):
        result = _call(config, "update", form_id=1, field_id=99, properties={"label": "x"})

        assert result["success"] is False
        assert result["data"]["error_code"] == "FIELD_NOT_FOUND"

    def test_unknown_type_change(self, use_store, config):
        result = _call(config, "update", form_id=1, field_id=1, properties={"type": "hologram"})
        assert result["data"]["error_code"] == "UNKNOWN_FIELD_TYPE"
        assert use_store.replace_count == 0


class TestDelete:
    def test_blocked_by_conditional_logic(self, use_store, config):
        result = _call(config, "delete", form_id=1, field_id=3)

        assert result["success"] is False
        assert result["data"]["error_code"] == "DEPENDENCY_BLOCKED"
        assert result["data"]["dependencies"]["conditionalLogic"]
        assert result["data"]["field"]["label"] == "Contact Preference"
        assert "force=true" in result["data"]["remediation"]
        assert use_store.replace_count == 0

    def test_force_and_cascade(self, use_store, config):
        result = _call(config, "delete", form_id=1, field_id=3, force=True, cascade=True)

        assert result["success"] is True
        assert result["data"]["deleted_field"]["id"] == 3
        assert result["data"]["actions_taken"]
        fields = use_store.fetch_form(1)["fields"]
        assert 3 not in [f["id"] for f in fields]
        phone = next(f for f in fields if f["id"] == 4)
        assert not phone["conditionalLogic"]["rules"]

    def test_force_without_cascade_warns(self, use_store, config):
        result = _call(config, "delete", form_id=1, field_id=3, force=True)

        assert result["success"] is True
        assert result["data"]["actions_taken"] == []
        assert "remaining references may now be broken" in result["meta"]["warnings"][0]

    def test_merge_tags_do_not_block(self, use_store, config):
        result = _call(config, "delete", form_id=1, field_id=1)
        assert result["success"] is True
        assert result["data"]["dependencies"]["mergeTags"]

    def test_force_must_be_boolean(self, use_store, config):
        result = _call(config, "delete", form_id=1, field_id=3, force="yes")
        assert result["data"]["error_code"] == "VALIDATION_ERROR"

    def test_field_not_found(self, use_store, config):
        result = _call(config, "delete", form_id=1, field_id=42)
        assert result["data"]["error_code"] == "FIELD_NOT_FOUND"


class TestQueries:
    def test_dependencies(self, use_store, config):
        result = _call(config, "deps", form_id=1, field_id=3)

        assert result["success"] is True
        assert result["data"]["has_breaking_dependencies"] is True
        assert result["data"]["total"] == 1
        assert use_store.replace_count == 0

    def test_list_types_needs_no_store(self, config):
        with patch("gravity_mcp.tools.unified.field.open_form_store") as opener:
            result = _call(config, "list_types", category="advanced")

        opener.assert_not_called()
        assert result["success"] is True
        assert result["data"]["total"] == len(result["data"]["field_types"])
        assert all(t["category"] == "advanced" for t in result["data"]["field_types"])

    def test_list_types_rejects_non_string_filter(self, config):
        result = _call(config, "list-types", search=5)
        assert result["data"]["error_code"] == "VALIDATION_ERROR"

    def test_validate_position(self, use_store, config):
        result = _call(
            config, "validate-position", form_id=1, position={"mode": "after", "reference": 2}
        )

        assert result["success"] is True
        assert result["data"]["valid"] is True
        assert result["data"]["resolved_index"] == 2
        assert result["data"]["total_pages"] == 1

    def test_validate_position_invalid_is_reported_not_raised(self, use_store, config):
        result = _call(config, "validate-position", form_id=2, position={"page": 0})

        assert result["success"] is True
        assert result["data"]["valid"] is False
        assert "resolved_index" not in result["data"]
        assert result["data"]["total_pages"] == 3


class TestDispatch:
    def test_unknown_action_lists_allowed(self, config):
        result = _call(config, "rename")

        assert result["success"] is False
        assert result["data"]["error_code"] == "VALIDATION_ERROR"
        assert "add, update, delete, dependencies, list-types, validate-position" in result["error"]

    def test_unconfigured_store(self, config):
        result = _call(config, "add", form_id=1, field_type="text")

        assert result["success"] is False
        assert result["data"]["error_code"] == "UNAVAILABLE"
        assert "GRAVITY_FORMS_BASE_URL" in result["data"]["remediation"]

    def test_upstream_client_error(self, config):
        store = MagicMock()
        store.fetch_form.side_effect = FormStoreError("Bad request", status_code=400)

        @contextmanager
        def _open(_config):
            yield store

        with patch("gravity_mcp.tools.unified.field.open_form_store", _open):
            result = _call(config, "dependencies", form_id=1, field_id=1)

        assert result["data"]["error_code"] == "UPSTREAM_ERROR"
        assert result["data"]["details"]["status_code"] == 400

    def test_unexpected_error_is_sanitized(self, config):
        store = MagicMock()
        store.fetch_form.side_effect = RuntimeError("/srv/secret/path exploded")

        @contextmanager
        def _open(_config):
            yield store

        with patch("gravity_mcp.tools.unified.field.open_form_store", _open):
            result = _call(config, "dependencies", form_id=1, field_id=1)

        assert result["data"]["error_code"] == "INTERNAL_ERROR"
        assert "/srv/secret/path" not in result["error"]

    def test_non_json_body_is_upstream_error(self, config):
        client = GravityFormsClient(
            GravityFormsConfig(
                base_url="https://forms.example.com",
                consumer_key="ck_test",
                consumer_secret="cs_test",
            ),
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, text="<html>maintenance</html>")
            ),
        )

        @contextmanager
        def _open(_config):
            yield client

        with patch("gravity_mcp.tools.unified.field.open_form_store", _open):
            result = _call(config, "add", form_id=1, field_type="text")

        assert result["success"] is False
        assert result["data"]["error_code"] == "UPSTREAM_ERROR"
        assert "not configured" not in result["error"]
        assert "non-JSON" in result["error"]

    def test_value_error_is_internal_not_unconfigured(self, config):
        store = MagicMock()
        store.fetch_form.side_effect = ValueError("bad literal")

        @contextmanager
        def _open(_config):
            yield store

        with patch("gravity_mcp.tools.unified.field.open_form_store", _open):
            result = _call(config, "dependencies", form_id=1, field_id=1)

        assert result["data"]["error_code"] == "INTERNAL_ERROR"
        assert "not configured" not in result["error"]


class TestRegistration:
    def test_registered_tool_returns_minified_envelope(self, use_store, config, parse_response):
        registered = {}
        mcp = MagicMock()

        def _tool(name, **_kwargs):
            def _register(func):
                registered[name] = func
                return func

            return _register

        mcp.tool.side_effect = _tool
        register_unified_field_tool(mcp, config)

        result = parse_response(
            registered["field"](action="add", form_id=1, field_type="hidden", properties={"label": "Source"})
        )
        assert result["success"] is True
        assert result["data"]["field"]["id"] == 7
        assert result["meta"]["request_id"].startswith("tool_")
