"""
Observability utilities for gravity-mcp.

Provides log-based metrics, audit logging and credential redaction for MCP
tools. Tool handlers registered through ``canonical_tool`` are wrapped with
``mcp_tool`` automatically; handlers may add their own audit entries:

    from gravity_mcp.core.observability import audit_log, get_metrics

    audit_log("tool_invocation", tool="field", action="delete", form_id=3)
    get_metrics().counter("field.delete", labels={"status": "blocked"})
"""

import asyncio
import functools
import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Final, List, Optional, Tuple, TypeVar, Union

from gravity_mcp.core.context import (
    generate_correlation_id,
    get_client_id,
    get_correlation_id,
    sync_request_context,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Sensitive Data Patterns for Redaction
# =============================================================================

SENSITIVE_PATTERNS: Final[List[Tuple[str, str]]] = [
    # Gravity Forms REST API consumer credentials
    (r"\bck_[a-f0-9]{20,}\b", "CONSUMER_KEY"),
    (r"\bcs_[a-f0-9]{20,}\b", "CONSUMER_SECRET"),
    (r"(?i)(consumer[_-]?(?:key|secret))\s*[:=]\s*['\"]?([^\s'\"]{8,})['\"]?", "CONSUMER_CREDENTIAL"),
    (r"(?i)basic\s+([a-zA-Z0-9+/]{8,}={0,2})", "BASIC_AUTH"),
    (r"(?i)bearer\s+([a-zA-Z0-9_\-\.]+)", "BEARER_TOKEN"),
    (r"(?i)(api[_-]?key|apikey)\s*[:=]\s*['\"]?([a-zA-Z0-9_\-]{20,})['\"]?", "API_KEY"),
    (r"(?i)(password|passwd|pwd)\s*[:=]\s*['\"]?([^\s'\"]{4,})['\"]?", "PASSWORD"),
    (r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----", "PRIVATE_KEY"),
]
"""Patterns for detecting sensitive data that should be redacted.

Each tuple holds a regex and the label used in the redaction marker.
"""

_SENSITIVE_KEYS: Final = frozenset(
    {
        "password",
        "passwd",
        "pwd",
        "secret",
        "token",
        "api_key",
        "apikey",
        "consumer_key",
        "consumer_secret",
        "access_token",
        "private_key",
        "auth",
        "authorization",
        "credential",
        "credentials",
    }
)


def redact_sensitive_data(
    data: Any,
    *,
    patterns: Optional[List[Tuple[str, str]]] = None,
    redaction_format: str = "[REDACTED:{label}]",
    max_depth: int = 10,
) -> Any:
    """Recursively redact sensitive data from strings, dicts, and lists.

    Values stored under well-known credential keys are replaced wholesale;
    strings are scanned against ``SENSITIVE_PATTERNS``.

    Args:
        data: The data to redact (string, dict, list, or nested structure)
        patterns: Custom patterns to use (default: SENSITIVE_PATTERNS)
        redaction_format: Format string for redaction markers (uses {label})
        max_depth: Maximum recursion depth

    Returns:
        A copy of the data with sensitive values redacted
    """
    if max_depth <= 0:
        return "[MAX_DEPTH_EXCEEDED]"

    check_patterns = patterns if patterns is not None else SENSITIVE_PATTERNS

    if isinstance(data, str):
        result = data
        for pattern, label in check_patterns:
            result = re.sub(pattern, redaction_format.format(label=label), result)
        return result

    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            key_lower = str(key).lower().replace("-", "_")
            if key_lower in _SENSITIVE_KEYS:
                redacted[key] = f"[REDACTED:{key_lower.upper()}]"
            else:
                redacted[key] = redact_sensitive_data(
                    value,
                    patterns=check_patterns,
                    redaction_format=redaction_format,
                    max_depth=max_depth - 1,
                )
        return redacted

    if isinstance(data, (list, tuple)):
        items = [
            redact_sensitive_data(
                item,
                patterns=check_patterns,
                redaction_format=redaction_format,
                max_depth=max_depth - 1,
            )
            for item in data
        ]
        return tuple(items) if isinstance(data, tuple) else items

    return data


def redact_for_logging(data: Any) -> str:
    """Redact and serialize data for logging."""
    redacted = redact_sensitive_data(data)
    try:
        return json.dumps(redacted, default=str)
    except (TypeError, ValueError):
        return str(redacted)


T = TypeVar("T")


class MetricType(Enum):
    """Types of metrics that can be emitted."""

    COUNTER = "counter"
    TIMER = "timer"


class AuditEventType(Enum):
    """Types of audit events."""

    AUTH_FAILURE = "auth_failure"
    RATE_LIMIT = "rate_limit"
    RESOURCE_ACCESS = "resource_access"
    TOOL_INVOCATION = "tool_invocation"
    SCHEMA_MUTATION = "schema_mutation"
    CONFIG_CHANGE = "config_change"


@dataclass
class Metric:
    """Structured metric data."""

    name: str
    value: Union[int, float]
    metric_type: MetricType
    labels: Dict[str, str] = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "type": self.metric_type.value,
            "labels": self.labels,
            "timestamp": self.timestamp,
        }


@dataclass
class AuditEvent:
    """Structured audit event."""

    event_type: AuditEventType
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None
    client_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.correlation_id is None:
            self.correlation_id = get_correlation_id() or None
        if self.client_id is None:
            ctx_client = get_client_id()
            if ctx_client and ctx_client != "anonymous":
                self.client_id = ctx_client

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "details": redact_sensitive_data(self.details),
        }
        if self.correlation_id:
            result["correlation_id"] = self.correlation_id
        if self.client_id:
            result["client_id"] = self.client_id
        return result


class MetricsCollector:
    """
    Collects and emits metrics to the standard logger.

    Metrics are logged as structured records under the
    ``gravity_mcp.core.observability.metrics`` logger so they can be
    filtered by log aggregation.
    """

    def __init__(self, prefix: str = "gravity_mcp"):
        self.prefix = prefix
        self._logger = logging.getLogger(f"{__name__}.metrics")

    def emit(self, metric: Metric) -> None:
        self._logger.info(
            f"METRIC: {self.prefix}.{metric.name}", extra={"metric": metric.to_dict()}
        )

    def counter(
        self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None
    ) -> None:
        """Emit a counter metric."""
        self.emit(
            Metric(
                name=name,
                value=value,
                metric_type=MetricType.COUNTER,
                labels=labels or {},
            )
        )

    def timer(
        self, name: str, duration_ms: float, labels: Optional[Dict[str, str]] = None
    ) -> None:
        """Emit a timer metric (duration in milliseconds)."""
        self.emit(
            Metric(
                name=name,
                value=duration_ms,
                metric_type=MetricType.TIMER,
                labels=labels or {},
            )
        )


_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return _metrics


class AuditLogger:
    """
    Structured audit logging for tool calls and schema mutations.

    Audit logs are written to a separate logger for easy filtering.
    """

    def __init__(self):
        self._logger = logging.getLogger(f"{__name__}.audit")

    def log(self, event: AuditEvent) -> None:
        self._logger.info(
            f"AUDIT: {event.event_type.value}", extra={"audit": event.to_dict()}
        )

    def auth_failure(self, reason: str, **details: Any) -> None:
        """Log credentials rejected by the Form Store."""
        self.log(
            AuditEvent(
                event_type=AuditEventType.AUTH_FAILURE,
                details={"reason": reason, **details},
            )
        )

    def tool_invocation(
        self,
        tool_name: str,
        success: bool = True,
        duration_ms: Optional[float] = None,
        correlation_id: Optional[str] = None,
        **details: Any,
    ) -> None:
        self.log(
            AuditEvent(
                event_type=AuditEventType.TOOL_INVOCATION,
                correlation_id=correlation_id,
                details={
                    "tool": tool_name,
                    "success": success,
                    "duration_ms": duration_ms,
                    **details,
                },
            )
        )

    def schema_mutation(
        self, form_id: Any, operation: str, field_id: Any = None, **details: Any
    ) -> None:
        """Record a write of a form schema back to the Form Store."""
        self.log(
            AuditEvent(
                event_type=AuditEventType.SCHEMA_MUTATION,
                details={
                    "form_id": form_id,
                    "operation": operation,
                    "field_id": field_id,
                    **details,
                },
            )
        )


_audit = AuditLogger()


def get_audit_logger() -> AuditLogger:
    """Get the global audit logger."""
    return _audit


def audit_log(event_type: str, **details: Any) -> None:
    """
    Convenience function for audit logging.

    Args:
        event_type: Type of event (auth_failure, rate_limit, resource_access,
                    tool_invocation, schema_mutation, config_change)
        **details: Additional details to include in the audit log
    """
    try:
        event_enum = AuditEventType(event_type)
    except ValueError:
        event_enum = AuditEventType.TOOL_INVOCATION
        details["original_event_type"] = event_type

    _audit.log(AuditEvent(event_type=event_enum, details=details))


def mcp_tool(
    tool_name: Optional[str] = None, emit_metrics: bool = True, audit: bool = True
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for MCP tool handlers with observability.

    Establishes a request context when none is active, then emits latency
    and status metrics and a tool_invocation audit entry per call.

    Args:
        tool_name: Override tool name (defaults to function name)
        emit_metrics: Whether to emit metrics
        audit: Whether to create audit log entries
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = tool_name or func.__name__

        def _record(
            _tool_name: str,
            _corr_id: str,
            _success: bool,
            _error_msg: Optional[str],
            _duration_ms: float,
            _kwargs: dict,
        ) -> None:
            action = _kwargs.get("action") if isinstance(_kwargs.get("action"), str) else None
            if emit_metrics:
                labels = {"tool": _tool_name, "status": "success" if _success else "error"}
                if action:
                    labels["action"] = action
                _metrics.counter("tool.invocations", labels=labels)
                _metrics.timer("tool.latency", _duration_ms, labels={"tool": _tool_name})
            if audit:
                _audit.tool_invocation(
                    tool_name=_tool_name,
                    success=_success,
                    duration_ms=round(_duration_ms, 2),
                    error=_error_msg,
                    correlation_id=_corr_id,
                    action=action,
                )

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            existing_corr_id = get_correlation_id()
            corr_id = existing_corr_id or generate_correlation_id(prefix="tool")
            if not existing_corr_id:
                with sync_request_context(correlation_id=corr_id):
                    return await _async_tool_impl(corr_id, args, kwargs)
            return await _async_tool_impl(corr_id, args, kwargs)

        async def _async_tool_impl(_corr_id: str, _args: tuple, _kwargs: dict) -> T:
            start = time.perf_counter()
            success = True
            error_msg = None
            try:
                return await func(*_args, **_kwargs)
            except Exception as e:
                success = False
                error_msg = str(e)
                raise
            finally:
                duration_ms = (time.perf_counter() - start) * 1000
                _record(name, _corr_id, success, error_msg, duration_ms, _kwargs)

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> T:
            existing_corr_id = get_correlation_id()
            corr_id = existing_corr_id or generate_correlation_id(prefix="tool")
            if not existing_corr_id:
                with sync_request_context(correlation_id=corr_id):
                    return _sync_tool_impl(corr_id, args, kwargs)
            return _sync_tool_impl(corr_id, args, kwargs)

        def _sync_tool_impl(_corr_id: str, _args: tuple, _kwargs: dict) -> T:
            # Underscore-prefixed parameters avoid clashing with tool kwargs.
            start = time.perf_counter()
            success = True
            error_msg = None
            try:
                return func(*_args, **_kwargs)
            except Exception as e:
                success = False
                error_msg = str(e)
                raise
            finally:
                duration_ms = (time.perf_counter() - start) * 1000
                _record(name, _corr_id, success, error_msg, duration_ms, _kwargs)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
