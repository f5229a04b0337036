"""Unified form tool: form-level reads and writes against the Form Store."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict
from typing import Any, Dict, Optional, Tuple

from mcp.server.fastmcp import FastMCP

from gravity_mcp.config import ServerConfig
from gravity_mcp.core.context import generate_correlation_id, get_correlation_id
from gravity_mcp.core.naming import canonical_tool
from gravity_mcp.core.observability import audit_log, get_metrics
from gravity_mcp.core.responses import (
    ErrorCode,
    ErrorType,
    error_response,
    success_response,
    validation_error,
)
from gravity_mcp.fields import PositionEngine
from gravity_mcp.tools.unified.router import (
    ActionDefinition,
    ActionRouter,
    ActionRouterError,
)
from gravity_mcp.tools.unified.store_helpers import (
    metric_status,
    open_form_store,
    operation_error_response,
)

logger = logging.getLogger(__name__)
_metrics = get_metrics()

_MAX_PER_PAGE = 100

_ACTION_SUMMARY = {
    "get": "Fetch a complete form schema with a field/page outline",
    "list": "List forms (paged)",
    "test-connection": "Check Form Store credentials and reachability",
    "create": "Create a form from properties (title required)",
    "update": "Merge top-level properties into an existing form",
    "delete": "Trash a form, or delete it permanently with force",
}


def _metric_name(action: str) -> str:
    return f"form.{action.replace('-', '_')}"


def _request_id() -> str:
    return get_correlation_id() or generate_correlation_id(prefix="form")


def _validation_error(
    *,
    action: str,
    field: str,
    message: str,
    request_id: str,
    remediation: Optional[str] = None,
    code: ErrorCode = ErrorCode.VALIDATION_ERROR,
) -> dict:
    return asdict(
        validation_error(
            f"Invalid field '{field}' for form.{action}: {message}",
            field=field,
            details={"action": f"form.{action}"},
            remediation=remediation,
            request_id=request_id,
            error_code=code,
        )
    )


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, int) and value > 0:
        return value
    return None


def _require_form_id(
    form_id: Any, *, action: str, request_id: str
) -> Tuple[Optional[int], Optional[dict]]:
    if form_id is None:
        return None, _validation_error(
            action=action,
            field="form_id",
            message="Provide form_id",
            remediation='Call form(action="list") to find a form_id',
            request_id=request_id,
            code=ErrorCode.MISSING_REQUIRED,
        )
    form_key = _positive_int(form_id)
    if form_key is None:
        return None, _validation_error(
            action=action,
            field="form_id",
            message="form_id must be a positive integer",
            request_id=request_id,
            code=ErrorCode.INVALID_FORMAT,
        )
    return form_key, None


def _outline(form: Dict[str, Any]) -> Dict[str, Any]:
    """Compact field listing with page numbers."""
    fields = form.get("fields") or []
    positioner = PositionEngine()
    return {
        "field_count": sum(1 for f in fields if f.get("type") != "page"),
        "total_pages": positioner.get_total_pages(fields),
        "fields": [
            {
                "id": f.get("id"),
                "type": f.get("type"),
                "label": f.get("label"),
                "page": positioner.get_field_page(f, fields),
            }
            for f in fields
        ],
    }


def _handle_get(*, config: ServerConfig, form_id: Any = None, **_: Any) -> dict:
    action = "get"
    request_id = _request_id()

    form_key, error = _require_form_id(form_id, action=action, request_id=request_id)
    if error:
        return error

    audit_log("resource_access", tool="form", action=action, form_id=form_key)

    start = time.perf_counter()
    try:
        with open_form_store(config) as store:
            form = store.fetch_form(form_key)
    except Exception as exc:
        _metrics.counter(_metric_name(action), labels={"status": metric_status(exc)})
        return operation_error_response(exc, tool="form", action=action, request_id=request_id)

    elapsed_ms = (time.perf_counter() - start) * 1000
    _metrics.counter(_metric_name(action), labels={"status": "success"})
    return asdict(
        success_response(
            data={"form": form, "outline": _outline(form)},
            telemetry={"duration_ms": round(elapsed_ms, 2)},
            request_id=request_id,
        )
    )


def _handle_list(
    *,
    config: ServerConfig,
    page: Any = None,
    per_page: Any = None,
    **_: Any,
) -> dict:
    action = "list"
    request_id = _request_id()

    for name, value in (("page", page), ("per_page", per_page)):
        if value is not None and _positive_int(value) is None:
            return _validation_error(
                action=action,
                field=name,
                message=f"{name} must be a positive integer",
                request_id=request_id,
                code=ErrorCode.INVALID_FORMAT,
            )
    page_number = _positive_int(page) if page is not None else None
    page_size = min(_positive_int(per_page), _MAX_PER_PAGE) if per_page is not None else None

    start = time.perf_counter()
    try:
        with open_form_store(config) as store:
            result = store.list_forms(page=page_number, per_page=page_size)
    except Exception as exc:
        _metrics.counter(_metric_name(action), labels={"status": metric_status(exc)})
        return operation_error_response(exc, tool="form", action=action, request_id=request_id)

    elapsed_ms = (time.perf_counter() - start) * 1000
    _metrics.counter(_metric_name(action), labels={"status": "success"})
    current = result["current_page"]
    return asdict(
        success_response(
            data={"forms": result["forms"], "count": len(result["forms"])},
            pagination={
                "page": current,
                "total_pages": result["total_pages"],
                "total_count": result["total_count"],
                "has_more": current < result["total_pages"],
            },
            telemetry={"duration_ms": round(elapsed_ms, 2)},
            request_id=request_id,
        )
    )


def _handle_test_connection(*, config: ServerConfig, **_: Any) -> dict:
    action = "test-connection"
    request_id = _request_id()

    try:
        with open_form_store(config) as store:
            result = store.test_connection()
    except Exception as exc:
        _metrics.counter(_metric_name(action), labels={"status": metric_status(exc)})
        return operation_error_response(exc, tool="form", action=action, request_id=request_id)

    _metrics.counter(_metric_name(action), labels={"status": "success"})
    return asdict(success_response(data=result, request_id=request_id))


def _check_properties(
    properties: Any, *, action: str, request_id: str
) -> Optional[dict]:
    if not isinstance(properties, dict) or not properties:
        return _validation_error(
            action=action,
            field="properties",
            message="Provide a non-empty properties object",
            request_id=request_id,
            code=ErrorCode.MISSING_REQUIRED if not properties else ErrorCode.INVALID_FORMAT,
        )
    return None


def _handle_create(*, config: ServerConfig, properties: Any = None, **_: Any) -> dict:
    action = "create"
    request_id = _request_id()

    error = _check_properties(properties, action=action, request_id=request_id)
    if error:
        return error
    title = properties.get("title")
    if not isinstance(title, str) or not title.strip():
        return _validation_error(
            action=action,
            field="properties.title",
            message="A form needs a non-empty title",
            request_id=request_id,
            code=ErrorCode.MISSING_REQUIRED,
        )
    new_form = {key: value for key, value in properties.items() if key != "id"}
    new_form.setdefault("fields", [])

    audit_log("tool_invocation", tool="form", action=action, title=title.strip())

    start = time.perf_counter()
    try:
        with open_form_store(config) as store:
            created = store.create_form(new_form)
    except Exception as exc:
        _metrics.counter(_metric_name(action), labels={"status": metric_status(exc)})
        return operation_error_response(exc, tool="form", action=action, request_id=request_id)

    elapsed_ms = (time.perf_counter() - start) * 1000
    _metrics.counter(_metric_name(action), labels={"status": "success"})
    return asdict(
        success_response(
            data={"form_id": created["id"], "form": created},
            telemetry={"duration_ms": round(elapsed_ms, 2)},
            request_id=request_id,
        )
    )


def _handle_update(
    *,
    config: ServerConfig,
    form_id: Any = None,
    properties: Any = None,
    **_: Any,
) -> dict:
    action = "update"
    request_id = _request_id()

    form_key, error = _require_form_id(form_id, action=action, request_id=request_id)
    if error:
        return error
    error = _check_properties(properties, action=action, request_id=request_id)
    if error:
        return error

    warnings = []
    if "id" in properties:
        warnings.append("Ignored properties.id; a form's id cannot change")
    if "fields" in properties:
        warnings.append(
            "properties.fields replaced the whole field list; use the field tool "
            "for per-field edits with dependency checks"
        )
    changes = {key: value for key, value in properties.items() if key != "id"}

    audit_log(
        "tool_invocation",
        tool="form",
        action=action,
        form_id=form_key,
        keys=sorted(changes),
    )

    start = time.perf_counter()
    try:
        with open_form_store(config) as store:
            existing = store.fetch_form(form_key)
            merged = {**existing, **changes, "id": existing.get("id", form_key)}
            updated = store.replace_form(form_key, merged)
    except Exception as exc:
        _metrics.counter(_metric_name(action), labels={"status": metric_status(exc)})
        return operation_error_response(exc, tool="form", action=action, request_id=request_id)

    elapsed_ms = (time.perf_counter() - start) * 1000
    _metrics.counter(_metric_name(action), labels={"status": "success"})
    changed = sorted(key for key in changes if existing.get(key) != changes[key])
    return asdict(
        success_response(
            data={"form_id": form_key, "form": updated, "changed_keys": changed},
            warnings=warnings or None,
            telemetry={"duration_ms": round(elapsed_ms, 2)},
            request_id=request_id,
        )
    )


def _handle_delete(
    *,
    config: ServerConfig,
    form_id: Any = None,
    force: Any = None,
    **_: Any,
) -> dict:
    action = "delete"
    request_id = _request_id()

    form_key, error = _require_form_id(form_id, action=action, request_id=request_id)
    if error:
        return error
    if force is not None and not isinstance(force, bool):
        return _validation_error(
            action=action,
            field="force",
            message="force must be a boolean",
            request_id=request_id,
            code=ErrorCode.INVALID_FORMAT,
        )
    if not config.gravity_forms.allow_delete:
        _metrics.counter(_metric_name(action), labels={"status": "forbidden"})
        return asdict(
            error_response(
                "Form deletion is disabled",
                error_code=ErrorCode.FORBIDDEN,
                error_type=ErrorType.AUTHORIZATION,
                details={"form_id": form_key, "action": f"form.{action}"},
                remediation="Set GRAVITY_FORMS_ALLOW_DELETE=true to enable form deletion",
                request_id=request_id,
            )
        )

    audit_log(
        "tool_invocation",
        tool="form",
        action=action,
        form_id=form_key,
        force=bool(force),
    )

    start = time.perf_counter()
    try:
        with open_form_store(config) as store:
            result = store.delete_form(form_key, force=bool(force))
    except Exception as exc:
        _metrics.counter(_metric_name(action), labels={"status": metric_status(exc)})
        return operation_error_response(exc, tool="form", action=action, request_id=request_id)

    elapsed_ms = (time.perf_counter() - start) * 1000
    _metrics.counter(_metric_name(action), labels={"status": "success"})
    return asdict(
        success_response(
            data=result,
            telemetry={"duration_ms": round(elapsed_ms, 2)},
            request_id=request_id,
        )
    )


_FORM_ROUTER = ActionRouter(
    tool_name="form",
    actions=[
        ActionDefinition(name="get", handler=_handle_get, summary=_ACTION_SUMMARY["get"]),
        ActionDefinition(name="list", handler=_handle_list, summary=_ACTION_SUMMARY["list"]),
        ActionDefinition(
            name="test-connection",
            handler=_handle_test_connection,
            summary=_ACTION_SUMMARY["test-connection"],
            aliases=("test_connection", "ping"),
        ),
        ActionDefinition(name="create", handler=_handle_create, summary=_ACTION_SUMMARY["create"]),
        ActionDefinition(name="update", handler=_handle_update, summary=_ACTION_SUMMARY["update"]),
        ActionDefinition(name="delete", handler=_handle_delete, summary=_ACTION_SUMMARY["delete"]),
    ],
)


def _dispatch_form_action(
    *, action: str, payload: Dict[str, Any], config: ServerConfig
) -> dict:
    try:
        return _FORM_ROUTER.dispatch(action=action, config=config, **payload)
    except ActionRouterError as exc:
        allowed = ", ".join(exc.allowed_actions)
        return asdict(
            error_response(
                f"Unsupported form action '{action}'. Allowed actions: {allowed}",
                error_code=ErrorCode.VALIDATION_ERROR,
                error_type=ErrorType.VALIDATION,
                remediation=f"Use one of: {allowed}",
                request_id=_request_id(),
            )
        )


def register_unified_form_tool(mcp: FastMCP, config: ServerConfig) -> None:
    """Register the consolidated form tool."""

    @canonical_tool(mcp, canonical_name="form")
    def form(
        action: str,
        form_id: Optional[int] = None,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
        properties: Optional[Dict[str, Any]] = None,
        force: Optional[bool] = None,
    ) -> dict:
        payload = {
            "form_id": form_id,
            "page": page,
            "per_page": per_page,
            "properties": properties,
            "force": force,
        }
        return _dispatch_form_action(action=action, payload=payload, config=config)

    logger.debug("Registered unified form tool")


__all__ = [
    "register_unified_form_tool",
]
