"""Field add/update/delete against a Form Store.

Every mutation follows the same cycle: fetch the full form schema, change an
in-memory copy of its ``fields`` array, and write the whole schema back with
one ``replace_form`` call. The REST API has no partial field update, so a
concurrent edit to the same form between fetch and replace is overwritten.
"""

from __future__ import annotations

import copy
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from gravity_mcp.core.form_store import FormStore
from gravity_mcp.core.observability import get_audit_logger
from gravity_mcp.fields.dependencies import DependencyTracker
from gravity_mcp.fields.positioner import PAGE_BREAK_TYPE, PositionEngine
from gravity_mcp.fields.registry import FieldType, FieldTypeRegistry, TypeDefinition, get_registry
from gravity_mcp.fields.sub_inputs import generate_sub_inputs
from gravity_mcp.fields.validation import FieldValidator

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

DEFAULT_CHOICES = ("First Choice", "Second Choice", "Third Choice")


class FieldOperationError(Exception):
    """Base exception for field operations."""


class UnknownFieldType(FieldOperationError):
    """Raised when a type tag is not in the registry."""

    def __init__(self, type_tag: Any):
        super().__init__(f"Unknown field type: {type_tag}")
        self.type_tag = type_tag


class FieldNotFound(FieldOperationError):
    """Raised when a field id does not exist in the form."""

    def __init__(self, form_id: Any, field_id: Any):
        super().__init__(f"Field {field_id} not found in form {form_id}")
        self.form_id = form_id
        self.field_id = field_id


class InvalidPosition(FieldOperationError):
    """Raised when a position config fails validation; nothing is written."""

    def __init__(self, errors: Sequence[str], warnings: Sequence[str] = ()):
        super().__init__(f"Invalid position: {'; '.join(errors)}")
        self.errors = list(errors)
        self.warnings = list(warnings)


def _parse_field_id(value: Any) -> int:
    """Integer value of a field id; 0 when it has none."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    return 0


def generate_field_id(fields: Sequence[Mapping[str, Any]]) -> int:
    """Next free field id: one more than the largest parseable id.

    Non-numeric or missing ids count as 0; booleans are not ids.
    """
    if not fields:
        return 1
    highest = max((_parse_field_id(field.get("id")) for field in fields), default=0)
    return max(highest, 0) + 1


def _same_id(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return False
    return str(left) == str(right)


def _find_index(fields: Sequence[Mapping[str, Any]], field_id: Any) -> Optional[int]:
    for index, field in enumerate(fields):
        if _same_id(field.get("id"), field_id):
            return index
    return None


def _type_specific_defaults(definition: TypeDefinition) -> Dict[str, Any]:
    defaults: Dict[str, Any] = {}
    if definition.has_choices:
        defaults["choices"] = [
            {"text": text, "value": text, "isSelected": False} for text in DEFAULT_CHOICES
        ]
    if definition.type is FieldType.DATE:
        defaults["dateFormat"] = "mdy"
        defaults["dateType"] = "datepicker"
    if definition.type is FieldType.TIME:
        defaults["timeFormat"] = "12"
    return defaults


def create_field(
    field_id: int,
    type_tag: Any,
    properties: Optional[Mapping[str, Any]],
    type_definition: Optional[TypeDefinition],
) -> Dict[str, Any]:
    """Build a new field dict from layered defaults.

    Layers, later wins: base defaults and registry defaults, type-specific
    structural defaults, caller ``properties``, then the forced ``id`` and
    ``type``. Compound types get freshly generated ``inputs``.

    Raises:
        UnknownFieldType: If ``type_definition`` is None
    """
    if type_definition is None:
        raise UnknownFieldType(type_tag)

    field: Dict[str, Any] = {
        "label": type_definition.label,
        "adminLabel": "",
        "isRequired": False,
        "size": "medium",
        "errorMessage": "",
        "visibility": "visible",
        "cssClass": "",
    }
    field.update(type_definition.default_properties())
    field.update(_type_specific_defaults(type_definition))
    field.update(copy.deepcopy(dict(properties or {})))
    field["id"] = field_id
    field["type"] = type_definition.type.value

    if type_definition.is_compound:
        field["inputs"] = generate_sub_inputs(field)

    return field


class FieldManager:
    """Orchestrates field operations over a Form Store.

    Args:
        store: Form Store providing ``fetch_form`` and ``replace_form``
        registry: Field type registry (defaults to the global registry)
        position_engine: Insertion index calculator
        dependency_tracker: Reference scanner
        validator: Advisory field validator
        page_aware: Resolve ``position.page`` on paginated forms
    """

    def __init__(
        self,
        store: FormStore,
        *,
        registry: Optional[FieldTypeRegistry] = None,
        position_engine: Optional[PositionEngine] = None,
        dependency_tracker: Optional[DependencyTracker] = None,
        validator: Optional[FieldValidator] = None,
        page_aware: bool = True,
    ):
        self.store = store
        self.registry = registry or get_registry()
        self.positioner = position_engine or PositionEngine()
        self.dependencies = dependency_tracker or DependencyTracker()
        self.validator = validator or FieldValidator(self.registry)
        self.page_aware = page_aware

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    def list_field_types(
        self,
        *,
        category: Optional[str] = None,
        feature: Optional[str] = None,
        search: Optional[str] = None,
        include_variants: bool = False,
    ) -> Dict[str, Any]:
        field_types = self.registry.list_types(
            category=category,
            feature=feature,
            search=search,
            include_variants=include_variants,
        )
        return {
            "field_types": field_types,
            "total": len(field_types),
            "categories": self.registry.categories(),
        }

    def get_dependencies(self, form_id: Any, field_id: Any) -> Dict[str, Any]:
        """Dependency report for one field without changing the form."""
        form = self.store.fetch_form(form_id)
        fields = form.get("fields") or []
        index = _find_index(fields, field_id)
        if index is None:
            raise FieldNotFound(form_id, field_id)

        deps = self.dependencies.scan_form_dependencies(form, field_id)
        field = fields[index]
        return {
            "form_id": form_id,
            "field": {"id": field.get("id"), "type": field.get("type"), "label": field.get("label")},
            "dependencies": deps,
            "total": self.dependencies.count_dependencies(deps),
            "has_breaking_dependencies": self.dependencies.has_breaking_dependencies(deps),
            "summary": self.dependencies.generate_dependency_summary(deps),
        }

    def validate_position(self, form_id: Any, position: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        form = self.store.fetch_form(form_id)
        fields = form.get("fields") or []
        result = self.positioner.validate_position_config(position, fields)
        if result["valid"]:
            result["resolved_index"] = self.positioner.calculate_position(
                fields, position, self._is_page_aware(form)
            )
        result["total_pages"] = self.positioner.get_total_pages(fields)
        return result

    # -----------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------

    def add_field(
        self,
        form_id: Any,
        type_tag: Any,
        properties: Optional[Mapping[str, Any]] = None,
        position: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Create a field with defaults and insert it into the form.

        Raises:
            UnknownFieldType: Before any Form Store call if the type is unknown
            InvalidPosition: If ``position`` fails validation (no write occurs)
        """
        definition = self.registry.get(type_tag)
        if definition is None:
            raise UnknownFieldType(type_tag)

        form = self.store.fetch_form(form_id)
        fields: List[Dict[str, Any]] = list(form.get("fields") or [])

        field_id = generate_field_id(fields)
        field = create_field(field_id, type_tag, properties, definition)

        check = self.positioner.validate_position_config(position, fields)
        if not check["valid"]:
            raise InvalidPosition(check["errors"], check["warnings"])
        index = self.positioner.calculate_position(fields, position, self._is_page_aware(form))

        fields.insert(index, field)
        form["fields"] = fields
        self.store.replace_form(form_id, form)

        get_audit_logger().schema_mutation(
            form_id=form_id, operation="add_field", field_id=field_id, field_type=field["type"]
        )
        logger.info(f"Added {field['type']} field {field_id} to form {form_id} at index {index}")

        return {
            "success": True,
            "form_id": form_id,
            "field": field,
            "position": {
                "index": index,
                "page": self.positioner.get_field_page(field, fields),
                "summary": self.positioner.get_position_summary(fields, index, field),
                "warnings": check["warnings"],
            },
            "warnings": self.validator.get_warnings(field),
        }

    def update_field(
        self,
        form_id: Any,
        field_id: Any,
        properties: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Merge ``properties`` into an existing field; the id never changes.

        Dependencies are scanned against the form as it was before the
        update and reported as warnings; they never block the update.

        Raises:
            FieldNotFound: If the field does not exist
            UnknownFieldType: If ``properties`` changes the type to an unknown tag
        """
        updates = copy.deepcopy(dict(properties or {}))

        form = self.store.fetch_form(form_id)
        fields: List[Dict[str, Any]] = list(form.get("fields") or [])
        index = _find_index(fields, field_id)
        if index is None:
            raise FieldNotFound(form_id, field_id)

        if "type" in updates:
            new_definition = self.registry.get(updates["type"])
            if new_definition is None:
                raise UnknownFieldType(updates["type"])
            updates["type"] = new_definition.type.value

        deps = self.dependencies.scan_form_dependencies(form, field_id)

        before = copy.deepcopy(fields[index])
        updated = {**before, **updates, "id": before.get("id")}

        definition = self.registry.get(updated.get("type"))
        if definition is not None and definition.is_compound:
            updated["inputs"] = generate_sub_inputs(updated)
        elif updated.get("type") != before.get("type") and "inputs" not in updates:
            updated.pop("inputs", None)

        fields[index] = updated
        form["fields"] = fields
        self.store.replace_form(form_id, form)

        changed_keys = sorted(
            key
            for key in set(before) | set(updated)
            if before.get(key) != updated.get(key)
        )
        get_audit_logger().schema_mutation(
            form_id=form_id, operation="update_field", field_id=before.get("id"), changed=changed_keys
        )
        logger.info(f"Updated field {field_id} in form {form_id}: {', '.join(changed_keys) or 'no changes'}")

        return {
            "success": True,
            "form_id": form_id,
            "field": updated,
            "changes": {"before": before, "after": updated, "changed_keys": changed_keys},
            "warnings": {
                "dependencies": deps,
                "dependency_summary": self.dependencies.generate_dependency_summary(deps),
                "validation": self.validator.get_warnings(updated),
            },
        }

    def delete_field(
        self,
        form_id: Any,
        field_id: Any,
        *,
        force: bool = False,
        cascade: bool = False,
    ) -> Dict[str, Any]:
        """Remove a field unless conditional logic elsewhere still depends on it.

        A refused delete is returned as ``success: False`` with the dependency
        record; nothing is written. ``force`` deletes anyway; ``cascade`` also
        strips conditional logic rules that reference the field.

        Raises:
            FieldNotFound: If the field does not exist
        """
        form = self.store.fetch_form(form_id)
        fields: List[Dict[str, Any]] = list(form.get("fields") or [])
        index = _find_index(fields, field_id)
        if index is None:
            raise FieldNotFound(form_id, field_id)

        field = fields[index]
        descriptor = {"id": field.get("id"), "type": field.get("type"), "label": field.get("label")}
        deps = self.dependencies.scan_form_dependencies(form, field_id)
        summary = self.dependencies.generate_dependency_summary(deps)

        if self.dependencies.has_breaking_dependencies(deps) and not force:
            logger.info(f"Refused delete of field {field_id} in form {form_id}: {summary}")
            return {
                "success": False,
                "form_id": form_id,
                "error": f"Field {field_id} has dependencies that would break",
                "deleted_field": None,
                "field": descriptor,
                "dependencies": deps,
                "summary": summary,
                "suggestion": "Retry with force=true to delete anyway, "
                "or force=true and cascade=true to also clean up conditional logic rules",
            }

        actions_taken: List[Dict[str, Any]] = []
        if cascade:
            actions_taken = self.dependencies.strip_conditional_logic_references(fields, field_id)

        del fields[index]
        form["fields"] = fields
        self.store.replace_form(form_id, form)

        get_audit_logger().schema_mutation(
            form_id=form_id,
            operation="delete_field",
            field_id=descriptor["id"],
            forced=force,
            cascade=cascade,
        )
        logger.info(f"Deleted field {field_id} from form {form_id}")

        return {
            "success": True,
            "form_id": form_id,
            "deleted_field": descriptor,
            "dependencies": deps,
            "summary": summary,
            "actions_taken": actions_taken,
        }

    def _is_page_aware(self, form: Mapping[str, Any]) -> bool:
        if not self.page_aware:
            return False
        if form.get("pagination"):
            return True
        return any(
            isinstance(field, Mapping) and field.get("type") == PAGE_BREAK_TYPE
            for field in form.get("fields") or []
        )
