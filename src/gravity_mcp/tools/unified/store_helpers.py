"""Shared Form Store plumbing for the unified field and form tools."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any, Iterator

from gravity_mcp.config import ServerConfig
from gravity_mcp.core.form_store import (
    AuthenticationError,
    FormNotFoundError,
    FormStore,
    FormStoreError,
    FormStoreNotConfigured,
    GravityFormsClient,
    RateLimitError,
)
from gravity_mcp.core.responses import (
    ErrorCode,
    ErrorType,
    error_response,
    internal_error,
    invalid_position_error,
    not_found_error,
    rate_limit_error,
    sanitize_error_message,
    unauthorized_error,
    unavailable_error,
)
from gravity_mcp.fields import FieldNotFound, InvalidPosition, UnknownFieldType

logger = logging.getLogger(__name__)

_CONFIGURE_REMEDIATION = (
    "Set GRAVITY_FORMS_BASE_URL, GRAVITY_FORMS_CONSUMER_KEY and "
    "GRAVITY_FORMS_CONSUMER_SECRET (or the [gravity_forms] TOML section)"
)


@contextmanager
def open_form_store(config: ServerConfig) -> Iterator[FormStore]:
    """Yield a Form Store client for one tool call and close it afterwards.

    Raises:
        FormStoreNotConfigured: If the connection settings are missing
    """
    client = GravityFormsClient(config.gravity_forms)
    try:
        yield client
    finally:
        client.close()


def operation_error_response(
    exc: Exception, *, tool: str, action: str, request_id: str
) -> dict:
    """Map a field operation or Form Store failure to an error envelope."""
    if isinstance(exc, UnknownFieldType):
        return asdict(
            error_response(
                str(exc),
                error_code=ErrorCode.UNKNOWN_FIELD_TYPE,
                error_type=ErrorType.VALIDATION,
                details={"field_type": exc.type_tag, "action": f"{tool}.{action}"},
                remediation='Call field(action="list-types") for the supported type tags',
                request_id=request_id,
            )
        )
    if isinstance(exc, FieldNotFound):
        return asdict(
            not_found_error(
                "Field",
                exc.field_id,
                error_code=ErrorCode.FIELD_NOT_FOUND,
                remediation=f'Call form(action="get", form_id={exc.form_id}) to list field ids',
                request_id=request_id,
            )
        )
    if isinstance(exc, InvalidPosition):
        return asdict(
            invalid_position_error(exc.errors, warnings=exc.warnings, request_id=request_id)
        )
    if isinstance(exc, FormNotFoundError):
        return asdict(
            not_found_error(
                "Form",
                exc.form_id,
                error_code=ErrorCode.FORM_NOT_FOUND,
                remediation='Call form(action="list") to find a valid form_id',
                request_id=request_id,
            )
        )
    if isinstance(exc, FormStoreNotConfigured):
        return asdict(
            error_response(
                f"Form Store is not configured: {exc}",
                error_code=ErrorCode.UNAVAILABLE,
                error_type=ErrorType.UNAVAILABLE,
                remediation=_CONFIGURE_REMEDIATION,
                request_id=request_id,
            )
        )
    if isinstance(exc, AuthenticationError):
        return asdict(unauthorized_error(str(exc), request_id=request_id))
    if isinstance(exc, RateLimitError):
        return asdict(rate_limit_error(exc.retry_after, request_id=request_id))
    if isinstance(exc, FormStoreError):
        if exc.retryable or exc.status_code is None or exc.status_code >= 500:
            return asdict(unavailable_error(str(exc), request_id=request_id))
        return asdict(
            error_response(
                str(exc),
                error_code=ErrorCode.UPSTREAM_ERROR,
                error_type=ErrorType.VALIDATION,
                details={"status_code": exc.status_code, "action": f"{tool}.{action}"},
                remediation="Check the request against the Gravity Forms REST API",
                request_id=request_id,
            )
        )
    logger.exception(f"Unexpected error in {tool}.{action}")
    return asdict(
        internal_error(
            sanitize_error_message(exc, context=f"{tool}.{action}"),
            request_id=request_id,
        )
    )


def metric_status(exc: Any) -> str:
    """Metric label for a failed operation."""
    if isinstance(exc, (UnknownFieldType, InvalidPosition)):
        return "invalid"
    if isinstance(exc, FormStoreNotConfigured):
        return "unconfigured"
    if isinstance(exc, (FieldNotFound, FormNotFoundError)):
        return "not_found"
    if isinstance(exc, FormStoreError):
        return "upstream_error"
    return "exception"
