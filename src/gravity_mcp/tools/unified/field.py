"""Unified field tool backed by ActionRouter and the field operations engine."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict
from typing import Any, Callable, Dict, Optional, Tuple

from mcp.server.fastmcp import FastMCP

from gravity_mcp.config import ServerConfig
from gravity_mcp.core.context import generate_correlation_id, get_correlation_id
from gravity_mcp.core.naming import canonical_tool
from gravity_mcp.core.observability import audit_log, get_metrics
from gravity_mcp.core.responses import (
    ErrorCode,
    ErrorType,
    dependency_blocked_error,
    error_response,
    success_response,
    validation_error,
)
from gravity_mcp.fields import FieldManager, create_field_operations
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

_ACTION_SUMMARY = {
    "add": "Add a field with type defaults at a position (append/prepend/after/before/index, optional page)",
    "update": "Merge properties into an existing field; dependencies are reported as warnings",
    "delete": "Delete a field unless conditional logic depends on it (force/cascade to override)",
    "dependencies": "Report conditional logic, calculation, merge tag and population references to a field",
    "list-types": "List supported field types with optional category/feature/search filters",
    "validate-position": "Check a position against a form and resolve its insertion index",
}


def _metric_name(action: str) -> str:
    return f"field.{action.replace('-', '_')}"


def _request_id() -> str:
    return get_correlation_id() or generate_correlation_id(prefix="field")


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
            f"Invalid field '{field}' for field.{action}: {message}",
            field=field,
            details={"action": f"field.{action}"},
            remediation=remediation,
            request_id=request_id,
            error_code=code,
        )
    )


def _coerce_id(value: Any) -> Optional[int]:
    """Positive integer id from an int or digit string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


def _require_id(
    value: Any, *, name: str, action: str, request_id: str
) -> Tuple[Optional[int], Optional[dict]]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, _validation_error(
            action=action,
            field=name,
            message=f"Provide {name}",
            remediation=f"Pass a positive integer {name}",
            request_id=request_id,
            code=ErrorCode.MISSING_REQUIRED,
        )
    parsed = _coerce_id(value)
    if parsed is None:
        return None, _validation_error(
            action=action,
            field=name,
            message=f"{name} must be a positive integer",
            request_id=request_id,
            code=ErrorCode.INVALID_FORMAT,
        )
    return parsed, None


def _check_mapping(
    value: Any, *, name: str, action: str, request_id: str
) -> Optional[dict]:
    if value is not None and not isinstance(value, dict):
        return _validation_error(
            action=action,
            field=name,
            message=f"{name} must be an object",
            request_id=request_id,
            code=ErrorCode.INVALID_FORMAT,
        )
    return None


def _check_bool(value: Any, *, name: str, action: str, request_id: str) -> Optional[dict]:
    if value is not None and not isinstance(value, bool):
        return _validation_error(
            action=action,
            field=name,
            message=f"{name} must be boolean",
            request_id=request_id,
        )
    return None


def _execute(
    config: ServerConfig,
    *,
    action: str,
    request_id: str,
    operation: Callable[[FieldManager], Dict[str, Any]],
) -> Tuple[Optional[Dict[str, Any]], Optional[dict], float]:
    """Run ``operation`` against a fresh Form Store.

    Returns:
        ``(result, error_envelope, elapsed_ms)``; exactly one of the first two is set
    """
    start = time.perf_counter()
    try:
        with open_form_store(config) as store:
            result = operation(create_field_operations(store, config.fields))
    except Exception as exc:
        _metrics.counter(_metric_name(action), labels={"status": metric_status(exc)})
        return None, operation_error_response(
            exc, tool="field", action=action, request_id=request_id
        ), (time.perf_counter() - start) * 1000
    return result, None, (time.perf_counter() - start) * 1000


def _handle_add(
    *,
    config: ServerConfig,
    form_id: Any = None,
    field_type: Optional[str] = None,
    properties: Optional[Dict[str, Any]] = None,
    position: Optional[Dict[str, Any]] = None,
    **_: Any,
) -> dict:
    action = "add"
    request_id = _request_id()

    form_key, error = _require_id(form_id, name="form_id", action=action, request_id=request_id)
    if error:
        return error

    if not isinstance(field_type, str) or not field_type.strip():
        return _validation_error(
            action=action,
            field="field_type",
            message="Provide the field type tag",
            remediation='Call field(action="list-types") for the supported type tags',
            request_id=request_id,
            code=ErrorCode.MISSING_REQUIRED,
        )

    for name, value in (("properties", properties), ("position", position)):
        error = _check_mapping(value, name=name, action=action, request_id=request_id)
        if error:
            return error

    if not position and config.fields.default_position_mode != "append":
        position = {"mode": config.fields.default_position_mode}

    audit_log(
        "tool_invocation",
        tool="field",
        action=action,
        form_id=form_key,
        field_type=field_type.strip(),
    )

    result, error, elapsed_ms = _execute(
        config,
        action=action,
        request_id=request_id,
        operation=lambda manager: manager.add_field(
            form_key, field_type.strip(), properties, position
        ),
    )
    if error:
        return error

    _metrics.counter(_metric_name(action), labels={"status": "success"})
    warnings = list(result["position"]["warnings"]) + list(result["warnings"])
    return asdict(
        success_response(
            data=result,
            warnings=warnings or None,
            telemetry={"duration_ms": round(elapsed_ms, 2)},
            request_id=request_id,
        )
    )


def _handle_update(
    *,
    config: ServerConfig,
    form_id: Any = None,
    field_id: Any = None,
    properties: Optional[Dict[str, Any]] = None,
    **_: Any,
) -> dict:
    action = "update"
    request_id = _request_id()

    form_key, error = _require_id(form_id, name="form_id", action=action, request_id=request_id)
    if error:
        return error
    field_key, error = _require_id(field_id, name="field_id", action=action, request_id=request_id)
    if error:
        return error

    error = _check_mapping(properties, name="properties", action=action, request_id=request_id)
    if error:
        return error
    if not properties:
        return _validation_error(
            action=action,
            field="properties",
            message="Provide at least one property to update",
            request_id=request_id,
            code=ErrorCode.MISSING_REQUIRED,
        )

    audit_log(
        "tool_invocation",
        tool="field",
        action=action,
        form_id=form_key,
        field_id=field_key,
        properties=sorted(properties),
    )

    result, error, elapsed_ms = _execute(
        config,
        action=action,
        request_id=request_id,
        operation=lambda manager: manager.update_field(form_key, field_key, properties),
    )
    if error:
        return error

    _metrics.counter(_metric_name(action), labels={"status": "success"})
    warnings = list(result["warnings"]["validation"])
    if any(result["warnings"]["dependencies"].values()):
        warnings.insert(0, result["warnings"]["dependency_summary"])
    return asdict(
        success_response(
            data=result,
            warnings=warnings or None,
            telemetry={"duration_ms": round(elapsed_ms, 2)},
            request_id=request_id,
        )
    )


def _handle_delete(
    *,
    config: ServerConfig,
    form_id: Any = None,
    field_id: Any = None,
    force: Optional[bool] = False,
    cascade: Optional[bool] = False,
    **_: Any,
) -> dict:
    action = "delete"
    request_id = _request_id()

    form_key, error = _require_id(form_id, name="form_id", action=action, request_id=request_id)
    if error:
        return error
    field_key, error = _require_id(field_id, name="field_id", action=action, request_id=request_id)
    if error:
        return error
    for name, value in (("force", force), ("cascade", cascade)):
        error = _check_bool(value, name=name, action=action, request_id=request_id)
        if error:
            return error

    audit_log(
        "tool_invocation",
        tool="field",
        action=action,
        form_id=form_key,
        field_id=field_key,
        force=bool(force),
        cascade=bool(cascade),
    )

    result, error, elapsed_ms = _execute(
        config,
        action=action,
        request_id=request_id,
        operation=lambda manager: manager.delete_field(
            form_key, field_key, force=bool(force), cascade=bool(cascade)
        ),
    )
    if error:
        return error

    if not result["success"]:
        _metrics.counter(_metric_name(action), labels={"status": "blocked"})
        return asdict(
            dependency_blocked_error(
                field_key,
                dependencies=result["dependencies"],
                summary=result["summary"],
                field=result["field"],
                remediation=result["suggestion"],
                request_id=request_id,
            )
        )

    _metrics.counter(_metric_name(action), labels={"status": "success"})
    warnings = None
    if any(result["dependencies"].values()) and not result["actions_taken"]:
        warnings = [f"{result['summary']}; remaining references may now be broken"]
    return asdict(
        success_response(
            data=result,
            warnings=warnings,
            telemetry={"duration_ms": round(elapsed_ms, 2)},
            request_id=request_id,
        )
    )


def _handle_dependencies(
    *,
    config: ServerConfig,
    form_id: Any = None,
    field_id: Any = None,
    **_: Any,
) -> dict:
    action = "dependencies"
    request_id = _request_id()

    form_key, error = _require_id(form_id, name="form_id", action=action, request_id=request_id)
    if error:
        return error
    field_key, error = _require_id(field_id, name="field_id", action=action, request_id=request_id)
    if error:
        return error

    result, error, elapsed_ms = _execute(
        config,
        action=action,
        request_id=request_id,
        operation=lambda manager: manager.get_dependencies(form_key, field_key),
    )
    if error:
        return error

    _metrics.counter(_metric_name(action), labels={"status": "success"})
    return asdict(
        success_response(
            data=result,
            telemetry={"duration_ms": round(elapsed_ms, 2)},
            request_id=request_id,
        )
    )


def _handle_list_types(
    *,
    config: ServerConfig,
    category: Optional[str] = None,
    feature: Optional[str] = None,
    search: Optional[str] = None,
    include_variants: Optional[bool] = False,
    **_: Any,
) -> dict:
    action = "list-types"
    request_id = _request_id()

    for name, value in (("category", category), ("feature", feature), ("search", search)):
        if value is not None and not isinstance(value, str):
            return _validation_error(
                action=action,
                field=name,
                message=f"{name} must be a string",
                request_id=request_id,
            )
    error = _check_bool(include_variants, name="include_variants", action=action, request_id=request_id)
    if error:
        return error

    manager = create_field_operations(None, config.fields)
    result = manager.list_field_types(
        category=category or None,
        feature=feature or None,
        search=search or None,
        include_variants=bool(include_variants),
    )
    _metrics.counter(_metric_name(action), labels={"status": "success"})
    return asdict(success_response(data=result, request_id=request_id))


def _handle_validate_position(
    *,
    config: ServerConfig,
    form_id: Any = None,
    position: Optional[Dict[str, Any]] = None,
    **_: Any,
) -> dict:
    action = "validate-position"
    request_id = _request_id()

    form_key, error = _require_id(form_id, name="form_id", action=action, request_id=request_id)
    if error:
        return error
    error = _check_mapping(position, name="position", action=action, request_id=request_id)
    if error:
        return error

    result, error, elapsed_ms = _execute(
        config,
        action=action,
        request_id=request_id,
        operation=lambda manager: manager.validate_position(form_key, position),
    )
    if error:
        return error

    _metrics.counter(_metric_name(action), labels={"status": "success"})
    return asdict(
        success_response(
            data={"form_id": form_key, "position": position or {"mode": "append"}, **result},
            warnings=result["warnings"] or None,
            telemetry={"duration_ms": round(elapsed_ms, 2)},
            request_id=request_id,
        )
    )


_FIELD_ROUTER = ActionRouter(
    tool_name="field",
    actions=[
        ActionDefinition(name="add", handler=_handle_add, summary=_ACTION_SUMMARY["add"]),
        ActionDefinition(name="update", handler=_handle_update, summary=_ACTION_SUMMARY["update"]),
        ActionDefinition(name="delete", handler=_handle_delete, summary=_ACTION_SUMMARY["delete"]),
        ActionDefinition(
            name="dependencies",
            handler=_handle_dependencies,
            summary=_ACTION_SUMMARY["dependencies"],
            aliases=("deps",),
        ),
        ActionDefinition(
            name="list-types",
            handler=_handle_list_types,
            summary=_ACTION_SUMMARY["list-types"],
            aliases=("list_types", "types"),
        ),
        ActionDefinition(
            name="validate-position",
            handler=_handle_validate_position,
            summary=_ACTION_SUMMARY["validate-position"],
            aliases=("validate_position",),
        ),
    ],
)


def _dispatch_field_action(
    *, action: str, payload: Dict[str, Any], config: ServerConfig
) -> dict:
    try:
        return _FIELD_ROUTER.dispatch(action=action, config=config, **payload)
    except ActionRouterError as exc:
        request_id = _request_id()
        allowed = ", ".join(exc.allowed_actions)
        return asdict(
            error_response(
                f"Unsupported field action '{action}'. Allowed actions: {allowed}",
                error_code=ErrorCode.VALIDATION_ERROR,
                error_type=ErrorType.VALIDATION,
                remediation=f"Use one of: {allowed}",
                request_id=request_id,
            )
        )


def register_unified_field_tool(mcp: FastMCP, config: ServerConfig) -> None:
    """Register the consolidated field tool."""

    @canonical_tool(mcp, canonical_name="field")
    def field(
        action: str,
        form_id: Optional[int] = None,
        field_id: Optional[int] = None,
        field_type: Optional[str] = None,
        properties: Optional[Dict[str, Any]] = None,
        position: Optional[Dict[str, Any]] = None,
        force: Optional[bool] = False,
        cascade: Optional[bool] = False,
        category: Optional[str] = None,
        feature: Optional[str] = None,
        search: Optional[str] = None,
        include_variants: Optional[bool] = False,
    ) -> dict:
        """Add, update, delete and inspect form fields.

        ``position`` is ``{mode, reference, page}`` with mode one of
        append, prepend, after, before, index.
        """
        payload = {
            "form_id": form_id,
            "field_id": field_id,
            "field_type": field_type,
            "properties": properties,
            "position": position,
            "force": force,
            "cascade": cascade,
            "category": category,
            "feature": feature,
            "search": search,
            "include_variants": include_variants,
        }
        return _dispatch_field_action(action=action, payload=payload, config=config)

    logger.debug("Registered unified field tool")


__all__ = [
    "register_unified_field_tool",
]
