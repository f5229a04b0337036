"""
Server configuration for gravity-mcp.

Supports configuration via:
1. Environment variables (highest priority)
2. TOML config file (gravity-mcp.toml)
3. Default values (lowest priority)

Environment variables:
- GRAVITY_FORMS_BASE_URL: WordPress site URL (REST API lives at {base}/wp-json/gf/v2)
- GRAVITY_FORMS_CONSUMER_KEY: REST API consumer key
- GRAVITY_FORMS_CONSUMER_SECRET: REST API consumer secret
- GRAVITY_FORMS_TIMEOUT: Request timeout in milliseconds (default: 30000)
- GRAVITY_FORMS_MAX_RETRIES: Attempts per Form Store request (default: 3)
- GRAVITY_FORMS_ALLOW_INSECURE: Allow plain http base URLs (true/false)
- GRAVITY_FORMS_ALLOW_DELETE: Enable the form delete action (true/false)
- MCP_ALLOW_SELF_SIGNED_CERTS: Skip TLS certificate verification (true/false)
- GRAVITY_MCP_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
- GRAVITY_MCP_STRUCTURED_LOGGING: JSON log lines when true (default: true)
- GRAVITY_MCP_PAGE_AWARE: Enable page-aware field positioning (default: true)
- GRAVITY_MCP_CONFIG_FILE: Path to TOML config file

Credential Handling:
- Consumer key and secret are sent with HTTP Basic auth, so the base URL must
  be https unless GRAVITY_FORMS_ALLOW_INSECURE is set for local development
- Credentials never appear in logs; see core.observability.redact_sensitive_data
"""

import functools
import logging
import os
import time
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_package_version
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from gravity_mcp.core.logging_config import configure_logging

logger = logging.getLogger(__name__)


def _get_version() -> str:
    """Get package version from metadata (single source of truth: pyproject.toml)."""
    try:
        return get_package_version("gravity-mcp")
    except PackageNotFoundError:
        return "0.4.0"  # Fallback for dev without install


_PACKAGE_VERSION = _get_version()

T = TypeVar("T")


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


@dataclass
class GravityFormsConfig:
    """Connection settings for the Gravity Forms REST API v2.

    Attributes:
        base_url: WordPress site URL (without /wp-json)
        consumer_key: REST API consumer key
        consumer_secret: REST API consumer secret
        timeout_ms: Request timeout in milliseconds
        max_retries: Attempts per request for retryable failures
        allow_insecure: Permit http:// base URLs
        verify_ssl: Verify TLS certificates
        allow_delete: Permit the form delete action
    """

    base_url: str = ""
    consumer_key: str = ""
    consumer_secret: str = ""
    timeout_ms: int = 30000
    max_retries: int = 3
    allow_insecure: bool = False
    verify_ssl: bool = True
    allow_delete: bool = False

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "GravityFormsConfig":
        """Create config from TOML dict (typically [gravity_forms] section).

        Args:
            data: Dict from TOML parsing

        Returns:
            GravityFormsConfig instance
        """
        return cls(
            base_url=str(data.get("base_url", "")).rstrip("/"),
            consumer_key=str(data.get("consumer_key", "")),
            consumer_secret=str(data.get("consumer_secret", "")),
            timeout_ms=int(data.get("timeout_ms", 30000)),
            max_retries=int(data.get("max_retries", 3)),
            allow_insecure=_parse_bool(data.get("allow_insecure", False)),
            verify_ssl=_parse_bool(data.get("verify_ssl", True)),
            allow_delete=_parse_bool(data.get("allow_delete", False)),
        )

    @property
    def api_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/wp-json/gf/v2"

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.consumer_key and self.consumer_secret)


@dataclass
class FieldOperationsConfig:
    """Settings for the field operations engine.

    Attributes:
        page_aware: Resolve ``position.page`` against page-break fields
        default_position_mode: Mode used when a call gives no position
    """

    page_aware: bool = True
    default_position_mode: str = "append"

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "FieldOperationsConfig":
        return cls(
            page_aware=_parse_bool(data.get("page_aware", True)),
            default_position_mode=str(data.get("default_position_mode", "append")),
        )


@dataclass
class ServerConfig:
    """Server configuration with support for env vars and TOML overrides."""

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = True

    # Server configuration
    server_name: str = "gravity-mcp"
    server_version: str = field(default_factory=lambda: _PACKAGE_VERSION)

    # Form Store connection
    gravity_forms: GravityFormsConfig = field(default_factory=GravityFormsConfig)

    # Field operations engine
    fields: FieldOperationsConfig = field(default_factory=FieldOperationsConfig)

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "ServerConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. TOML config file
        3. Default values
        """
        config = cls()

        toml_path = config_file or os.environ.get("GRAVITY_MCP_CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            for default_path in ["gravity-mcp.toml", ".gravity-mcp.toml"]:
                if Path(default_path).exists():
                    config._load_toml(Path(default_path))
                    break

        config._load_env()

        return config

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error(f"Error loading config file {path}: {e}")
            return

        if "logging" in data:
            log = data["logging"]
            if "level" in log:
                self.log_level = str(log["level"]).upper()
            if "structured" in log:
                self.structured_logging = _parse_bool(log["structured"])

        if "server" in data:
            srv = data["server"]
            if "name" in srv:
                self.server_name = srv["name"]
            if "version" in srv:
                self.server_version = srv["version"]

        if "gravity_forms" in data:
            self.gravity_forms = GravityFormsConfig.from_toml_dict(
                data["gravity_forms"]
            )

        if "fields" in data:
            self.fields = FieldOperationsConfig.from_toml_dict(data["fields"])

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        gf = self.gravity_forms

        if base_url := os.environ.get("GRAVITY_FORMS_BASE_URL"):
            gf.base_url = base_url.strip().rstrip("/")
        if key := os.environ.get("GRAVITY_FORMS_CONSUMER_KEY"):
            gf.consumer_key = key.strip()
        if secret := os.environ.get("GRAVITY_FORMS_CONSUMER_SECRET"):
            gf.consumer_secret = secret.strip()
        if timeout := os.environ.get("GRAVITY_FORMS_TIMEOUT"):
            try:
                gf.timeout_ms = int(timeout)
            except ValueError:
                logger.warning(f"Ignoring non-integer GRAVITY_FORMS_TIMEOUT: {timeout}")
        if retries := os.environ.get("GRAVITY_FORMS_MAX_RETRIES"):
            try:
                gf.max_retries = max(1, int(retries))
            except ValueError:
                logger.warning(
                    f"Ignoring non-integer GRAVITY_FORMS_MAX_RETRIES: {retries}"
                )
        if insecure := os.environ.get("GRAVITY_FORMS_ALLOW_INSECURE"):
            gf.allow_insecure = _parse_bool(insecure)
        if allow_delete := os.environ.get("GRAVITY_FORMS_ALLOW_DELETE"):
            gf.allow_delete = _parse_bool(allow_delete)
        if self_signed := os.environ.get("MCP_ALLOW_SELF_SIGNED_CERTS"):
            gf.verify_ssl = not _parse_bool(self_signed)

        if level := os.environ.get("GRAVITY_MCP_LOG_LEVEL"):
            self.log_level = level.upper()
        if structured := os.environ.get("GRAVITY_MCP_STRUCTURED_LOGGING"):
            self.structured_logging = _parse_bool(structured)

        if page_aware := os.environ.get("GRAVITY_MCP_PAGE_AWARE"):
            self.fields.page_aware = _parse_bool(page_aware)

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        level = getattr(logging, self.log_level, logging.INFO)
        configure_logging(
            level=level,
            format="structured" if self.structured_logging else "human",
        )


# Global configuration instance
_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def set_config(config: ServerConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def timed(
    metric_name: Optional[str] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to measure and log function execution time.

    Args:
        metric_name: Optional metric name (defaults to function name)
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = metric_name or func.__name__
        log = logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                elapsed = time.perf_counter() - start
                log.debug(
                    f"Timer: {name}",
                    extra={
                        "metric": name,
                        "duration_ms": round(elapsed * 1000, 2),
                        "success": True,
                    },
                )
                return result
            except Exception as e:
                elapsed = time.perf_counter() - start
                log.debug(
                    f"Timer: {name}",
                    extra={
                        "metric": name,
                        "duration_ms": round(elapsed * 1000, 2),
                        "success": False,
                        "error": str(e),
                    },
                )
                raise

        return wrapper

    return decorator
