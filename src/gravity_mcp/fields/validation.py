"""Advisory field-level checks.

Warnings never block an operation; they are returned next to a successful
result so the caller can correct the field in a follow-up update.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from gravity_mcp.fields.registry import FieldTypeRegistry, get_registry


class FieldValidator:
    """Produce human-readable warnings for a single field."""

    def __init__(self, registry: Optional[FieldTypeRegistry] = None):
        self._registry = registry or get_registry()

    def get_warnings(self, field: Mapping[str, Any]) -> List[str]:
        warnings: List[str] = []
        field_type = field.get("type")
        definition = self._registry.get(field_type)
        if definition is None:
            warnings.append(f"Unknown field type '{field_type}'")
            return warnings

        label = field.get("label")
        if definition.stores_data and not (isinstance(label, str) and label.strip()):
            warnings.append("Field has no label")

        if field.get("isRequired") and not definition.supports_required:
            warnings.append(
                f"Field type '{definition.type.value}' does not support required validation"
            )

        logic = field.get("conditionalLogic")
        if (
            isinstance(logic, Mapping)
            and logic.get("enabled")
            and not definition.supports_conditional_logic
        ):
            warnings.append(
                f"Field type '{definition.type.value}' does not support conditional logic"
            )

        if definition.has_choices:
            choices = field.get("choices")
            if not choices:
                warnings.append(f"Field type '{definition.type.value}' has no choices")
            elif isinstance(choices, list):
                values = [
                    choice.get("value")
                    for choice in choices
                    if isinstance(choice, Mapping)
                ]
                duplicates = sorted({str(v) for v in values if values.count(v) > 1})
                if duplicates:
                    warnings.append(f"Duplicate choice values: {', '.join(duplicates)}")

        if field.get("enableCalculation") and not field.get("calculationFormula"):
            warnings.append("Calculation enabled without a calculationFormula")

        if field.get("allowsPrepopulate") and not field.get("inputName"):
            warnings.append("Dynamic population enabled without an inputName parameter")

        return warnings
