"""Field Operations Engine: add, update and delete fields in a form schema."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from gravity_mcp.fields.dependencies import DependencyTracker
from gravity_mcp.fields.manager import (
    FieldManager,
    FieldNotFound,
    FieldOperationError,
    InvalidPosition,
    UnknownFieldType,
    create_field,
    generate_field_id,
)
from gravity_mcp.fields.positioner import PositionEngine
from gravity_mcp.fields.registry import FieldType, FieldTypeRegistry, get_registry
from gravity_mcp.fields.sub_inputs import generate_sub_inputs
from gravity_mcp.fields.validation import FieldValidator

if TYPE_CHECKING:  # pragma: no cover - import-time typing only
    from gravity_mcp.config import FieldOperationsConfig
    from gravity_mcp.core.form_store import FormStore


def create_field_operations(
    store: Optional["FormStore"], config: Optional["FieldOperationsConfig"] = None
) -> FieldManager:
    """Build a FieldManager wired to the shared registry.

    ``store`` may be None for registry-only queries such as ``list_field_types``.
    """
    page_aware = config.page_aware if config is not None else True
    return FieldManager(store, registry=get_registry(), page_aware=page_aware)


__all__ = [
    "DependencyTracker",
    "FieldManager",
    "FieldNotFound",
    "FieldOperationError",
    "FieldType",
    "FieldTypeRegistry",
    "FieldValidator",
    "InvalidPosition",
    "PositionEngine",
    "UnknownFieldType",
    "create_field",
    "create_field_operations",
    "generate_field_id",
    "generate_sub_inputs",
    "get_registry",
]
