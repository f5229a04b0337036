"""Static registry of Gravity Forms field types.

The registry is a read-only lookup table: each known type tag maps to a
``TypeDefinition`` describing its category, capability flags, variants and
the default properties a new field of that type starts with. Lookups of an
unregistered tag return ``None``; callers decide whether that is an error.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


class FieldType(str, Enum):
    """Known Gravity Forms field type tags."""

    # Standard
    TEXT = "text"
    TEXTAREA = "textarea"
    EMAIL = "email"
    NUMBER = "number"
    PHONE = "phone"
    WEBSITE = "website"
    HIDDEN = "hidden"
    HTML = "html"
    SECTION = "section"
    PAGE = "page"

    # Choice
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    MULTISELECT = "multiselect"

    # Advanced
    NAME = "name"
    ADDRESS = "address"
    DATE = "date"
    TIME = "time"
    FILEUPLOAD = "fileupload"
    LIST = "list"
    CONSENT = "consent"
    SIGNATURE = "signature"
    CAPTCHA = "captcha"
    FORM = "form"
    REPEATER = "repeater"
    CHAINEDSELECT = "chainedselect"

    # Post
    POST_TITLE = "post_title"
    POST_BODY = "post_body"
    POST_EXCERPT = "post_excerpt"
    POST_CATEGORY = "post_category"
    POST_TAGS = "post_tags"
    POST_IMAGE = "post_image"
    POST_CUSTOM_FIELD = "post_custom_field"

    # Pricing
    PRODUCT = "product"
    QUANTITY = "quantity"
    OPTION = "option"
    SHIPPING = "shipping"
    TOTAL = "total"
    CREDITCARD = "creditcard"

    # Add-ons
    QUIZ = "quiz"
    POLL = "poll"
    SURVEY_LIKERT = "survey_likert"
    SURVEY_RANK = "survey_rank"
    SURVEY_RATING = "survey_rating"

    @classmethod
    def resolve(cls, tag: Any) -> Optional["FieldType"]:
        """Return the member for ``tag``, or None for an unknown tag."""
        if isinstance(tag, cls):
            return tag
        try:
            return cls(str(tag).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class FieldVariant:
    """A named configuration of a type (e.g. address ``international``)."""

    name: str
    label: str
    settings: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "label": self.label, "settings": dict(self.settings)}


@dataclass(frozen=True)
class TypeDefinition:
    """Static metadata for one field type."""

    type: FieldType
    label: str
    category: str
    supports_required: bool = True
    supports_conditional_logic: bool = True
    storage: str = "string"
    has_choices: bool = False
    is_compound: bool = False
    is_array: bool = False
    stores_data: bool = True
    is_page_break: bool = False
    is_sensitive: bool = False
    variants: Tuple[FieldVariant, ...] = ()
    defaults: Mapping[str, Any] = field(default_factory=dict)

    def default_properties(self) -> Dict[str, Any]:
        """Deep copy of the type's default properties."""
        return copy.deepcopy(dict(self.defaults))

    def supports(self, feature: str) -> bool:
        """Check a capability by its public feature name."""
        flags = {
            "required": self.supports_required,
            "conditional": self.supports_conditional_logic,
            "conditional_logic": self.supports_conditional_logic,
            "choices": self.has_choices,
            "compound": self.is_compound,
            "array": self.is_array,
            "stores_data": self.stores_data,
            "variants": bool(self.variants),
        }
        return flags.get(feature.strip().lower(), False)

    def to_dict(self, include_variants: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type.value,
            "label": self.label,
            "category": self.category,
            "supports": {
                "required": self.supports_required,
                "conditional": self.supports_conditional_logic,
                "choices": self.has_choices,
            },
            "compound": self.is_compound,
            "array": self.is_array,
            "stores_data": self.stores_data,
            "storage": self.storage,
        }
        if include_variants and self.variants:
            data["variants"] = [variant.to_dict() for variant in self.variants]
        return data


def _variants(*items: Tuple[str, str, Dict[str, Any]]) -> Tuple[FieldVariant, ...]:
    return tuple(FieldVariant(name, label, settings) for name, label, settings in items)


_INPUT_TYPE_VARIANTS = _variants(
    ("dropdown", "Dropdown", {"inputType": "select"}),
    ("radio", "Radio Buttons", {"inputType": "radio"}),
    ("checkbox", "Checkboxes", {"inputType": "checkbox"}),
)

_DEFINITIONS: Tuple[TypeDefinition, ...] = (
    # Standard
    TypeDefinition(
        FieldType.TEXT,
        "Single Line Text",
        "standard",
        variants=_variants(
            ("default", "Default Text", {}),
            ("password", "Password Input", {"enablePasswordInput": True}),
        ),
    ),
    TypeDefinition(
        FieldType.TEXTAREA,
        "Paragraph Text",
        "standard",
        variants=_variants(
            ("default", "Default", {}),
            ("richtext", "Rich Text Editor", {"useRichTextEditor": True}),
        ),
    ),
    TypeDefinition(FieldType.EMAIL, "Email", "standard"),
    TypeDefinition(
        FieldType.NUMBER,
        "Number",
        "standard",
        storage="number",
        variants=_variants(
            ("default", "Default", {}),
            ("currency", "Currency", {"numberFormat": "currency"}),
            ("decimal", "Decimal", {"numberFormat": "decimal"}),
        ),
        defaults={"numberFormat": "decimal_dot"},
    ),
    TypeDefinition(
        FieldType.PHONE,
        "Phone",
        "standard",
        variants=_variants(
            ("standard", "Standard", {"phoneFormat": "standard"}),
            ("international", "International", {"phoneFormat": "international"}),
        ),
        defaults={"phoneFormat": "standard"},
    ),
    TypeDefinition(FieldType.WEBSITE, "Website", "standard"),
    TypeDefinition(
        FieldType.HIDDEN,
        "Hidden",
        "standard",
        supports_required=False,
        supports_conditional_logic=False,
    ),
    TypeDefinition(
        FieldType.HTML,
        "HTML",
        "standard",
        supports_required=False,
        storage="none",
        stores_data=False,
        defaults={"content": "", "disableMargins": False},
    ),
    TypeDefinition(
        FieldType.SECTION,
        "Section Break",
        "standard",
        supports_required=False,
        storage="none",
        stores_data=False,
    ),
    TypeDefinition(
        FieldType.PAGE,
        "Page Break",
        "standard",
        supports_required=False,
        storage="none",
        stores_data=False,
        is_page_break=True,
        defaults={
            "nextButton": {"type": "text", "text": "Next"},
            "previousButton": {"type": "text", "text": "Previous"},
        },
    ),
    # Choice
    TypeDefinition(
        FieldType.SELECT,
        "Dropdown",
        "choice",
        has_choices=True,
        variants=_variants(
            ("default", "Default", {}),
            ("enhanced", "Enhanced UI", {"enableEnhancedUI": True}),
        ),
    ),
    TypeDefinition(
        FieldType.RADIO,
        "Radio Buttons",
        "choice",
        has_choices=True,
        variants=_variants(
            ("default", "Default", {}),
            ("otherChoice", "With Other Option", {"enableOtherChoice": True}),
        ),
    ),
    TypeDefinition(
        FieldType.CHECKBOX,
        "Checkboxes",
        "choice",
        storage="array",
        has_choices=True,
        is_array=True,
    ),
    TypeDefinition(
        FieldType.MULTISELECT,
        "Multi Select",
        "choice",
        storage="array",
        has_choices=True,
        is_array=True,
        variants=_variants(
            ("default", "Default", {}),
            ("enhanced", "Enhanced UI", {"enableEnhancedUI": True}),
        ),
    ),
    # Advanced
    TypeDefinition(
        FieldType.NAME,
        "Name",
        "advanced",
        storage="compound",
        is_compound=True,
        variants=_variants(
            ("advanced", "Advanced", {"nameFormat": "advanced"}),
            ("simple", "Simple", {"nameFormat": "simple"}),
        ),
        defaults={"nameFormat": "advanced"},
    ),
    TypeDefinition(
        FieldType.ADDRESS,
        "Address",
        "advanced",
        storage="compound",
        is_compound=True,
        variants=_variants(
            ("us", "US Address", {"addressType": "us"}),
            ("canadian", "Canadian Address", {"addressType": "canadian"}),
            ("international", "International", {"addressType": "international"}),
        ),
        defaults={"addressType": "us"},
    ),
    TypeDefinition(
        FieldType.DATE,
        "Date",
        "advanced",
        variants=_variants(
            ("datefield", "Date Field", {"dateType": "datefield"}),
            ("datepicker", "Date Picker", {"dateType": "datepicker"}),
            ("datedropdown", "Date Dropdown", {"dateType": "datedropdown"}),
        ),
    ),
    TypeDefinition(
        FieldType.TIME,
        "Time",
        "advanced",
        variants=_variants(
            ("hour12", "12 Hour", {"timeFormat": "12"}),
            ("hour24", "24 Hour", {"timeFormat": "24"}),
        ),
    ),
    TypeDefinition(
        FieldType.FILEUPLOAD,
        "File Upload",
        "advanced",
        storage="mixed",
        variants=_variants(
            ("single", "Single File", {"multipleFiles": False}),
            ("multiple", "Multiple Files", {"multipleFiles": True}),
        ),
        defaults={"multipleFiles": False},
    ),
    TypeDefinition(
        FieldType.LIST,
        "List",
        "advanced",
        storage="array",
        is_array=True,
        variants=_variants(
            ("single", "Single Column", {"enableColumns": False}),
            ("multi", "Multiple Columns", {"enableColumns": True}),
        ),
    ),
    TypeDefinition(
        FieldType.CONSENT,
        "Consent",
        "advanced",
        storage="compound",
        is_compound=True,
        defaults={"checkboxLabel": "I agree to the privacy policy."},
    ),
    TypeDefinition(FieldType.SIGNATURE, "Signature", "advanced"),
    TypeDefinition(
        FieldType.CAPTCHA,
        "CAPTCHA",
        "advanced",
        supports_required=False,
        supports_conditional_logic=False,
        storage="none",
        stores_data=False,
    ),
    TypeDefinition(
        FieldType.FORM, "Nested Form", "advanced", storage="array", is_array=True
    ),
    TypeDefinition(
        FieldType.REPEATER, "Repeater", "advanced", storage="array", is_array=True
    ),
    TypeDefinition(
        FieldType.CHAINEDSELECT, "Chained Select", "advanced", has_choices=True
    ),
    # Post
    TypeDefinition(FieldType.POST_TITLE, "Post Title", "post"),
    TypeDefinition(FieldType.POST_BODY, "Post Body", "post"),
    TypeDefinition(FieldType.POST_EXCERPT, "Post Excerpt", "post"),
    TypeDefinition(
        FieldType.POST_CATEGORY,
        "Post Category",
        "post",
        variants=_variants(
            ("dropdown", "Dropdown", {"displayAllCategories": False}),
            ("checkboxes", "Checkboxes", {"displayAllCategories": True}),
        ),
    ),
    TypeDefinition(FieldType.POST_TAGS, "Post Tags", "post"),
    TypeDefinition(FieldType.POST_IMAGE, "Post Image", "post"),
    TypeDefinition(FieldType.POST_CUSTOM_FIELD, "Post Custom Field", "post"),
    # Pricing
    TypeDefinition(
        FieldType.PRODUCT,
        "Product",
        "pricing",
        variants=_variants(
            ("singleproduct", "Single Product", {"inputType": "singleproduct"}),
            ("dropdown", "Dropdown", {"inputType": "select"}),
            ("radio", "Radio Buttons", {"inputType": "radio"}),
            ("calculation", "Calculation", {"inputType": "calculation"}),
            ("price", "User Defined Price", {"inputType": "price"}),
            ("hiddenproduct", "Hidden", {"inputType": "hiddenproduct"}),
        ),
        defaults={"inputType": "singleproduct"},
    ),
    TypeDefinition(FieldType.QUANTITY, "Quantity", "pricing", storage="number"),
    TypeDefinition(
        FieldType.OPTION,
        "Option",
        "pricing",
        variants=_INPUT_TYPE_VARIANTS,
        defaults={"inputType": "select"},
    ),
    TypeDefinition(
        FieldType.SHIPPING,
        "Shipping",
        "pricing",
        variants=_variants(
            ("singleshipping", "Single Method", {"inputType": "singleshipping"}),
            ("dropdown", "Dropdown", {"inputType": "select"}),
            ("radio", "Radio Buttons", {"inputType": "radio"}),
        ),
        defaults={"inputType": "singleshipping"},
    ),
    TypeDefinition(
        FieldType.TOTAL,
        "Total",
        "pricing",
        supports_required=False,
        supports_conditional_logic=False,
        storage="number",
    ),
    TypeDefinition(
        FieldType.CREDITCARD,
        "Credit Card",
        "pricing",
        storage="compound",
        is_compound=True,
        is_sensitive=True,
    ),
    # Add-ons
    TypeDefinition(
        FieldType.QUIZ, "Quiz", "quiz", has_choices=True, variants=_INPUT_TYPE_VARIANTS
    ),
    TypeDefinition(
        FieldType.POLL, "Poll", "poll", has_choices=True, variants=_INPUT_TYPE_VARIANTS
    ),
    TypeDefinition(
        FieldType.SURVEY_LIKERT,
        "Likert",
        "survey",
        storage="compound",
        has_choices=True,
    ),
    TypeDefinition(FieldType.SURVEY_RANK, "Rank", "survey", has_choices=True),
    TypeDefinition(FieldType.SURVEY_RATING, "Rating", "survey", has_choices=True),
)


class FieldTypeRegistry:
    """Read-only lookup table of field type definitions."""

    def __init__(self, definitions: Iterable[TypeDefinition] = _DEFINITIONS):
        self._types: Dict[FieldType, TypeDefinition] = {
            definition.type: definition for definition in definitions
        }

    def get(self, type_tag: Any) -> Optional[TypeDefinition]:
        """Return the definition for ``type_tag`` or None if unknown."""
        field_type = FieldType.resolve(type_tag)
        if field_type is None:
            return None
        return self._types.get(field_type)

    def __contains__(self, type_tag: Any) -> bool:
        return self.get(type_tag) is not None

    def __len__(self) -> int:
        return len(self._types)

    def __iter__(self):
        return iter(self._types.values())

    def is_compound(self, type_tag: Any) -> bool:
        definition = self.get(type_tag)
        return bool(definition and definition.is_compound)

    def categories(self) -> List[str]:
        """Categories in registry order, without duplicates."""
        seen: List[str] = []
        for definition in self._types.values():
            if definition.category not in seen:
                seen.append(definition.category)
        return seen

    def list_types(
        self,
        *,
        category: Optional[str] = None,
        feature: Optional[str] = None,
        search: Optional[str] = None,
        include_variants: bool = False,
    ) -> List[Dict[str, Any]]:
        """List type summaries, optionally filtered.

        Args:
            category: Keep only types in this category
            feature: Keep only types supporting this feature
                (required, conditional, choices, compound, array, variants)
            search: Case-insensitive substring match on tag or label
            include_variants: Include each type's variants
        """
        results = []
        needle = search.strip().lower() if search else None
        for definition in self._types.values():
            if category and definition.category != category:
                continue
            if feature and not definition.supports(feature):
                continue
            if needle and needle not in definition.type.value and needle not in definition.label.lower():
                continue
            results.append(definition.to_dict(include_variants=include_variants))
        return results

    def detect_variant(self, field_data: Mapping[str, Any]) -> Optional[str]:
        """Name of the variant whose settings all match ``field_data``."""
        definition = self.get(field_data.get("type"))
        if definition is None or not definition.variants:
            return None
        for variant in definition.variants:
            if variant.settings and all(
                field_data.get(key) == value for key, value in variant.settings.items()
            ):
                return variant.name
        return definition.variants[0].name


_registry = FieldTypeRegistry()


def get_registry() -> FieldTypeRegistry:
    """Get the global field type registry."""
    return _registry
