"""Form Store access for the Gravity Forms REST API v2.

The field operations engine needs exactly two calls from the platform:
fetch a complete form schema and replace it wholesale. ``FormStore`` names
that narrow interface. ``GravityFormsClient`` implements it over httpx and
adds the form-level calls used by the form tool (list, create, delete,
connection test).

Example:
    from gravity_mcp.config import GravityFormsConfig
    from gravity_mcp.core.form_store import GravityFormsClient

    config = GravityFormsConfig(
        base_url="https://example.com",
        consumer_key="ck_...",
        consumer_secret="cs_...",
    )
    with GravityFormsClient(config) as client:
        form = client.fetch_form(3)
        form["title"] = "Renamed"
        client.replace_form(3, form)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx

from gravity_mcp.config import GravityFormsConfig, timed
from gravity_mcp.core.observability import (
    get_audit_logger,
    get_metrics,
    redact_for_logging,
)

logger = logging.getLogger(__name__)

USER_AGENT = "gravity-mcp"


class FormStoreError(Exception):
    """Base exception for Form Store failures.

    Attributes:
        status_code: HTTP status returned by the platform, if any
        retryable: Whether a later retry may succeed
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
        self.original_error = original_error


class FormNotFoundError(FormStoreError):
    """Raised when the requested form does not exist."""

    def __init__(self, form_id: Any):
        super().__init__(f"Form {form_id} not found", status_code=404)
        self.form_id = form_id


class FormStoreNotConfigured(FormStoreError):
    """Raised when connection settings are missing or unusable."""


class AuthenticationError(FormStoreError):
    """Raised on 401/403 responses."""


class RateLimitError(FormStoreError):
    """Raised when 429 responses persist after all retries."""

    def __init__(self, retry_after: Optional[float] = None):
        super().__init__(
            "Rate limit exceeded. Please wait before retrying.",
            status_code=429,
            retryable=True,
        )
        self.retry_after = retry_after


@runtime_checkable
class FormStore(Protocol):
    """Narrow interface the field operations engine depends on."""

    def fetch_form(self, form_id: Any) -> Dict[str, Any]: ...

    def replace_form(self, form_id: Any, form: Dict[str, Any]) -> Dict[str, Any]: ...


class GravityFormsClient:
    """Synchronous Gravity Forms REST API v2 client.

    Authenticates with HTTP Basic auth (consumer key/secret) and retries
    timeouts, transport errors, 429 and 5xx responses with exponential
    backoff. 4xx responses other than 429 fail immediately.
    """

    def __init__(
        self,
        config: GravityFormsConfig,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not config.base_url:
            raise FormStoreNotConfigured("GRAVITY_FORMS_BASE_URL is required")
        if not config.base_url.startswith(("http://", "https://")):
            raise FormStoreNotConfigured("GRAVITY_FORMS_BASE_URL must start with http:// or https://")
        if not config.base_url.startswith("https://") and not config.allow_insecure:
            raise FormStoreNotConfigured(
                "Basic authentication requires an https:// GRAVITY_FORMS_BASE_URL"
            )
        if not config.consumer_key or not config.consumer_secret:
            raise FormStoreNotConfigured(
                "GRAVITY_FORMS_CONSUMER_KEY and GRAVITY_FORMS_CONSUMER_SECRET are required"
            )

        self._config = config
        self._max_retries = max(1, config.max_retries)
        self._client = httpx.Client(
            base_url=config.api_url,
            auth=httpx.BasicAuth(config.consumer_key, config.consumer_secret),
            timeout=config.timeout_seconds,
            verify=config.verify_ssl,
            headers={
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            },
            transport=transport,
        )
        if not config.verify_ssl:
            logger.warning("TLS certificate verification disabled for Form Store")

    def __enter__(self) -> "GravityFormsClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    @timed("form_store.fetch_form")
    def fetch_form(self, form_id: Any) -> Dict[str, Any]:
        """Return the complete schema of one form.

        Raises:
            FormNotFoundError: If the form does not exist
            AuthenticationError: If credentials are rejected
            RateLimitError: If rate limiting persists after retries
            FormStoreError: For other API failures
        """
        response = self._request("GET", f"/forms/{form_id}", form_id=form_id)
        form = _decode_json(response)
        if not isinstance(form, dict):
            raise FormStoreError(
                f"Unexpected payload for form {form_id}", status_code=response.status_code
            )
        form.setdefault("fields", [])
        return form

    @timed("form_store.replace_form")
    def replace_form(self, form_id: Any, form: Dict[str, Any]) -> Dict[str, Any]:
        """Replace a form's schema with ``form`` (full PUT, no partial update)."""
        response = self._request(
            "PUT", f"/forms/{form_id}", form_id=form_id, json=form
        )
        get_audit_logger().schema_mutation(
            form_id=form_id, operation="replace_form", field_count=len(form.get("fields", []))
        )
        if not response.content:
            return form
        body = _decode_json(response)
        return body if isinstance(body, dict) else form

    @timed("form_store.create_form")
    def create_form(self, form: Dict[str, Any]) -> Dict[str, Any]:
        """Create a form and return it with its assigned id."""
        response = self._request("POST", "/forms", json=form)
        body = _decode_json(response)
        if not isinstance(body, dict) or body.get("id") is None:
            raise FormStoreError(
                "Unexpected payload for created form", status_code=response.status_code
            )
        get_audit_logger().schema_mutation(
            form_id=body["id"], operation="create_form", field_count=len(form.get("fields", []))
        )
        return body

    @timed("form_store.delete_form")
    def delete_form(self, form_id: Any, *, force: bool = False) -> Dict[str, Any]:
        """Move a form to the trash, or delete it permanently with ``force``."""
        self._request(
            "DELETE",
            f"/forms/{form_id}",
            form_id=form_id,
            params={"force": "true"} if force else None,
        )
        get_audit_logger().schema_mutation(
            form_id=form_id, operation="delete_form", permanently=force
        )
        return {"form_id": form_id, "deleted": True, "permanently": force}

    def list_forms(
        self, *, page: Optional[int] = None, per_page: Optional[int] = None
    ) -> Dict[str, Any]:
        """List forms with the platform's pagination headers."""
        params: Dict[str, Any] = {}
        if page is not None:
            params["paging[current_page]"] = page
        if per_page is not None:
            params["paging[page_size]"] = per_page

        response = self._request("GET", "/forms", params=params or None)
        data = _decode_json(response)
        if isinstance(data, dict):
            forms: List[Dict[str, Any]] = [
                {"id": key, **value} if isinstance(value, dict) else {"id": key}
                for key, value in data.items()
            ]
        else:
            forms = list(data or [])

        return {
            "forms": forms,
            "total_count": _header_int(response, "x-wp-total", len(forms)),
            "total_pages": _header_int(response, "x-wp-totalpages", 1),
            "current_page": page or 1,
        }

    def test_connection(self) -> Dict[str, Any]:
        """Check credentials and reachability with a one-item list request."""
        start = time.perf_counter()
        self._request("GET", "/forms", params={"paging[page_size]": 1})
        return {
            "connected": True,
            "api_url": self._config.api_url,
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        form_id: Any = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute a request with exponential backoff retry."""
        last_error: Optional[Exception] = None
        metrics = get_metrics()

        for attempt in range(self._max_retries):
            try:
                response = self._client.request(method, path, **kwargs)
            except httpx.TimeoutException as e:
                last_error = e
                if attempt < self._max_retries - 1:
                    wait_time = 2**attempt
                    logger.warning(
                        f"Form Store request timeout, retrying in {wait_time}s "
                        f"(attempt {attempt + 1}/{self._max_retries})"
                    )
                    time.sleep(wait_time)
                    continue
                break
            except httpx.RequestError as e:
                last_error = e
                if attempt < self._max_retries - 1:
                    wait_time = 2**attempt
                    logger.warning(
                        f"Form Store request error: {type(e).__name__}, retrying in "
                        f"{wait_time}s (attempt {attempt + 1}/{self._max_retries})"
                    )
                    time.sleep(wait_time)
                    continue
                break

            metrics.counter(
                "form_store.requests",
                labels={"method": method, "status": str(response.status_code)},
            )

            if response.status_code in (401, 403):
                get_audit_logger().auth_failure(
                    reason=f"HTTP {response.status_code}", api_url=self._config.api_url
                )
                raise AuthenticationError(
                    _status_message(response),
                    status_code=response.status_code,
                )

            if response.status_code == 404 and form_id is not None:
                raise FormNotFoundError(form_id)

            if response.status_code == 429:
                retry_after = _parse_retry_after(response)
                if attempt < self._max_retries - 1:
                    wait_time = retry_after or (2**attempt)
                    logger.warning(
                        f"Form Store rate limit hit, waiting {wait_time}s "
                        f"(attempt {attempt + 1}/{self._max_retries})"
                    )
                    time.sleep(wait_time)
                    continue
                raise RateLimitError(retry_after=retry_after)

            if response.status_code >= 500:
                last_error = FormStoreError(
                    _status_message(response),
                    status_code=response.status_code,
                    retryable=True,
                )
                if attempt < self._max_retries - 1:
                    wait_time = 2**attempt
                    logger.warning(
                        f"Form Store returned {response.status_code}, retrying in "
                        f"{wait_time}s (attempt {attempt + 1}/{self._max_retries})"
                    )
                    time.sleep(wait_time)
                    continue
                raise last_error

            if response.status_code >= 400:
                logger.warning(
                    f"Form Store rejected {method} {path} ({response.status_code}): "
                    f"{redact_for_logging(response.text[:500])}"
                )
                raise FormStoreError(
                    _status_message(response),
                    status_code=response.status_code,
                )

            return response

        raise FormStoreError(
            f"Request failed after {self._max_retries} attempts",
            retryable=True,
            original_error=last_error,
        )


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    retry_after = response.headers.get("Retry-After")
    if retry_after:
        try:
            return float(retry_after)
        except ValueError:
            return None
    return None


def _extract_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] if response.text else "Unknown error"
    if isinstance(data, dict):
        return str(data.get("message") or data.get("code") or response.text[:200])
    return response.text[:200]


def _status_message(response: httpx.Response) -> str:
    """Map a failed response to a message with platform-specific guidance."""
    message = _extract_error_message(response)
    status = response.status_code
    if status == 401:
        return f"Authentication failed: {message}. Please check your Consumer Key and Secret."
    if status == 403:
        return f"Access forbidden: {message}. Please check user permissions in Gravity Forms."
    if status == 404:
        return f"Resource not found: {message}"
    if status >= 500:
        return f"Server error: {message}. Please check your Gravity Forms installation."
    return f"API error {status}: {message}"


def _decode_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise FormStoreError(
            f"Form Store returned a non-JSON body ({response.status_code}): "
            f"{response.text[:100]!r}",
            status_code=response.status_code,
            original_error=e,
        ) from e


def _header_int(response: httpx.Response, name: str, default: int) -> int:
    value = response.headers.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name} header: {value!r}")
        return default
