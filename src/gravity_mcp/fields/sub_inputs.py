"""Sub-input layouts for compound field types.

A compound field (address, name, credit card, consent) stores its value in
several inputs addressed as ``"{field_id}.{index}"``. The layouts are fixed
per type and variant; the variant is read from the field itself
(``addressType`` / ``nameFormat``) and falls back to the type's default
variant when absent or unrecognized.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

from gravity_mcp.fields.registry import FieldType

Layout = Tuple[Tuple[int, str], ...]

_ADDRESS_DOMESTIC: Layout = (
    (1, "Street Address"),
    (2, "Address Line 2"),
    (3, "City"),
    (4, "State"),
    (5, "ZIP Code"),
    (6, "Country"),
)

_ADDRESS_INTERNATIONAL: Layout = (
    (1, "Street Address"),
    (2, "Address Line 2"),
    (3, "City"),
    (4, "State / Province"),
    (5, "ZIP / Postal Code"),
    (6, "Country"),
)

_NAME_ADVANCED: Layout = (
    (2, "Prefix"),
    (3, "First"),
    (4, "Middle"),
    (6, "Last"),
    (8, "Suffix"),
)

_NAME_SIMPLE: Layout = (
    (3, "First"),
    (6, "Last"),
)

_CREDIT_CARD: Layout = (
    (1, "Card Number"),
    (2, "Expiration Date"),
    (3, "Security Code"),
    (4, "Cardholder Name"),
    (5, "Card Type"),
)

_CONSENT: Layout = (
    (1, "Consent"),
    (2, "Text"),
    (3, "Description"),
)

# (discriminator property, default variant, variant -> layout)
_LAYOUTS: Dict[FieldType, Tuple[Optional[str], str, Dict[str, Layout]]] = {
    FieldType.ADDRESS: (
        "addressType",
        "us",
        {
            "us": _ADDRESS_DOMESTIC,
            "canadian": _ADDRESS_DOMESTIC,
            "international": _ADDRESS_INTERNATIONAL,
        },
    ),
    FieldType.NAME: (
        "nameFormat",
        "advanced",
        {"advanced": _NAME_ADVANCED, "simple": _NAME_SIMPLE},
    ),
    FieldType.CREDITCARD: (None, "default", {"default": _CREDIT_CARD}),
    FieldType.CONSENT: (None, "default", {"default": _CONSENT}),
}


def resolve_layout(type_tag: Any, variant: Optional[str] = None) -> Optional[Layout]:
    """Return the ``(index, label)`` layout for a type and variant.

    Returns None for non-compound or unknown types.
    """
    field_type = FieldType.resolve(type_tag)
    if field_type is None or field_type not in _LAYOUTS:
        return None
    _, default_variant, variants = _LAYOUTS[field_type]
    if variant is None or variant not in variants:
        variant = default_variant
    return variants[variant]


def generate_sub_inputs(field_data: Mapping[str, Any]) -> Optional[List[Dict[str, Any]]]:
    """Build the ``inputs`` array for a compound field.

    Args:
        field_data: The field, carrying at least ``id`` and ``type``

    Returns:
        List of ``{id, label, name}`` dicts, or None for non-compound types
    """
    field_type = FieldType.resolve(field_data.get("type"))
    if field_type is None or field_type not in _LAYOUTS:
        return None

    discriminator = _LAYOUTS[field_type][0]
    variant = field_data.get(discriminator) if discriminator else None
    layout = resolve_layout(field_type, variant if isinstance(variant, str) else None)

    field_id = field_data.get("id")
    return [
        {"id": f"{field_id}.{index}", "label": label, "name": ""}
        for index, label in layout or ()
    ]
