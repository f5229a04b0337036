"""Discovery of references to a field elsewhere in a form.

A field can be referenced four ways:

- conditional logic rules on other fields (``rules[].fieldId``)
- calculation formulas (``{Label:5}`` merge tags inside ``calculationFormula``)
- merge tags in notifications, confirmations and field text
- dynamic population (``{inputName}`` placeholders fed by a URL parameter)

All scans are pure: they read the form and never modify it.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Pattern, Tuple

NOTIFICATION_PROPERTIES = ("subject", "message", "to", "from", "fromName", "replyTo", "cc", "bcc")
CONFIRMATION_PROPERTIES = ("message", "url", "queryString")
FIELD_TEXT_PROPERTIES = ("defaultValue", "description", "content")

DEPENDENCY_CATEGORIES = ("conditionalLogic", "calculations", "mergeTags", "dynamicPopulation")

_SUMMARY_LABELS = {
    "conditionalLogic": "conditional logic rule(s)",
    "calculations": "calculation formula(s)",
    "mergeTags": "merge tag reference(s)",
    "dynamicPopulation": "dynamic population reference(s)",
}


def merge_tag_pattern(field_id: Any) -> Pattern[str]:
    """Regex matching merge tags that reference ``field_id``.

    Matches ``{Label:5}``, ``{:5}``, ``{Label:5.3}`` and ``{Label:5:value}``,
    never ``{Label:50}`` for id 5.
    """
    target = re.escape(str(field_id))
    return re.compile(r"\{[^{}]*:" + target + r"(?:\.\d+)?(?::[^{}]*)?\}")


def find_merge_tags(text: Any, field_id: Any) -> List[str]:
    """Distinct merge tags in ``text`` referencing ``field_id``, in order of appearance."""
    if not isinstance(text, str) or not text:
        return []
    matches: List[str] = []
    for match in merge_tag_pattern(field_id).finditer(text):
        if match.group(0) not in matches:
            matches.append(match.group(0))
    return matches


def _same_id(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return False
    return str(left) == str(right)


def _field_label(field: Mapping[str, Any]) -> str:
    return field.get("label") or f"Field {field.get('id')}"


def _iter_collection(collection: Any) -> Iterator[Tuple[Any, Mapping[str, Any]]]:
    """Yield ``(id, item)`` from a dict keyed by id or from a list of items."""
    if isinstance(collection, Mapping):
        for key, item in collection.items():
            if isinstance(item, Mapping):
                yield item.get("id", key), item
    elif isinstance(collection, list):
        for index, item in enumerate(collection):
            if isinstance(item, Mapping):
                yield item.get("id", index), item


def empty_dependencies() -> Dict[str, List[Dict[str, Any]]]:
    return {category: [] for category in DEPENDENCY_CATEGORIES}


class DependencyTracker:
    """Stateless analyzer of field references within a form schema."""

    def scan_form_dependencies(
        self, form: Mapping[str, Any], field_id: Any
    ) -> Dict[str, List[Dict[str, Any]]]:
        """Run every scan and return the combined dependency record."""
        return {
            "conditionalLogic": self.scan_conditional_logic(form, field_id),
            "calculations": self.scan_calculations(form, field_id),
            "mergeTags": self.scan_merge_tags(form, field_id),
            "dynamicPopulation": self.scan_dynamic_population(form, field_id),
        }

    def scan_conditional_logic(
        self, form: Mapping[str, Any], field_id: Any
    ) -> List[Dict[str, Any]]:
        """Fields whose conditional logic rules test ``field_id``."""
        results = []
        for field in _fields(form):
            if _same_id(field.get("id"), field_id):
                continue
            logic = field.get("conditionalLogic")
            if not isinstance(logic, Mapping):
                continue
            rules = [
                rule
                for rule in logic.get("rules") or []
                if isinstance(rule, Mapping) and _same_id(rule.get("fieldId"), field_id)
            ]
            if rules:
                results.append(
                    {
                        "field_id": field.get("id"),
                        "field_label": _field_label(field),
                        "field_type": field.get("type"),
                        "rule_count": len(rules),
                        "rules": [
                            {"operator": rule.get("operator"), "value": rule.get("value")}
                            for rule in rules
                        ],
                    }
                )
        return results

    def scan_calculations(
        self, form: Mapping[str, Any], field_id: Any
    ) -> List[Dict[str, Any]]:
        """Calculated fields whose formula references ``field_id``."""
        results = []
        for field in _fields(form):
            if not field.get("enableCalculation"):
                continue
            formula = field.get("calculationFormula")
            matches = find_merge_tags(formula, field_id)
            if matches:
                results.append(
                    {
                        "field_id": field.get("id"),
                        "field_label": _field_label(field),
                        "field_type": field.get("type"),
                        "formula": formula,
                        "matches": matches,
                    }
                )
        return results

    def scan_merge_tags(
        self, form: Mapping[str, Any], field_id: Any
    ) -> List[Dict[str, Any]]:
        """Merge tags referencing ``field_id`` in notifications, confirmations and field text."""
        results: List[Dict[str, Any]] = []

        for notification_id, notification in _iter_collection(form.get("notifications")):
            for prop in NOTIFICATION_PROPERTIES:
                matches = find_merge_tags(notification.get(prop), field_id)
                if matches:
                    results.append(
                        {
                            "location": "notification",
                            "id": notification_id,
                            "name": notification.get("name") or "Unnamed Notification",
                            "field": prop,
                            "matches": matches,
                        }
                    )

        for confirmation_id, confirmation in _iter_collection(form.get("confirmations")):
            for prop in CONFIRMATION_PROPERTIES:
                matches = find_merge_tags(confirmation.get(prop), field_id)
                if matches:
                    results.append(
                        {
                            "location": "confirmation",
                            "id": confirmation_id,
                            "name": confirmation.get("name") or "Default Confirmation",
                            "type": confirmation.get("type"),
                            "field": prop,
                            "matches": matches,
                        }
                    )

        for field in _fields(form):
            for prop in FIELD_TEXT_PROPERTIES:
                matches = find_merge_tags(field.get(prop), field_id)
                if matches:
                    results.append(
                        {
                            "location": "field",
                            "field_id": field.get("id"),
                            "field_label": _field_label(field),
                            "field": prop,
                            "matches": matches,
                        }
                    )

        return results

    def scan_dynamic_population(
        self, form: Mapping[str, Any], field_id: Any
    ) -> List[Dict[str, Any]]:
        """Consumers of the target's population parameter, plus the target itself."""
        target = find_field(form, field_id)
        if target is None:
            return []
        parameter = target.get("inputName")
        if not target.get("allowsPrepopulate") or not parameter:
            return []

        placeholder = "{" + str(parameter) + "}"
        results = []
        for field in _fields(form):
            if _same_id(field.get("id"), field_id):
                continue
            default_value = field.get("defaultValue")
            if isinstance(default_value, str) and placeholder in default_value:
                results.append(
                    {
                        "field_id": field.get("id"),
                        "field_label": _field_label(field),
                        "parameter": parameter,
                        "usage": "default_value",
                    }
                )

        results.append(
            {
                "field_id": target.get("id"),
                "field_label": _field_label(target),
                "parameter": parameter,
                "usage": "accepts_population",
            }
        )
        return results

    def has_breaking_dependencies(self, dependencies: Mapping[str, Any]) -> bool:
        """True when deleting the field would leave broken conditional logic.

        Calculation, merge tag and dynamic population references are reported
        but do not block a delete.
        """
        return bool(dependencies.get("conditionalLogic"))

    def count_dependencies(self, dependencies: Mapping[str, Any]) -> int:
        return sum(len(dependencies.get(category) or []) for category in DEPENDENCY_CATEGORIES)

    def generate_dependency_summary(self, dependencies: Mapping[str, Any]) -> str:
        parts = [
            f"{len(dependencies[category])} {_SUMMARY_LABELS[category]}"
            for category in DEPENDENCY_CATEGORIES
            if dependencies.get(category)
        ]
        if not parts:
            return "No dependencies found"
        return f"Field has dependencies: {', '.join(parts)}"

    def strip_conditional_logic_references(
        self, fields: Iterable[Dict[str, Any]], field_id: Any
    ) -> List[Dict[str, Any]]:
        """Remove rules testing ``field_id`` from every other field, in place.

        A field left with no rules has its conditional logic disabled.

        Returns:
            One action record per modified field
        """
        actions = []
        for field in fields:
            if _same_id(field.get("id"), field_id):
                continue
            logic = field.get("conditionalLogic")
            if not isinstance(logic, dict) or not logic.get("rules"):
                continue
            kept = [
                rule
                for rule in logic["rules"]
                if not (isinstance(rule, Mapping) and _same_id(rule.get("fieldId"), field_id))
            ]
            removed = len(logic["rules"]) - len(kept)
            if not removed:
                continue
            logic["rules"] = kept
            action: Dict[str, Any] = {
                "action": "removed_conditional_logic_rules",
                "field_id": field.get("id"),
                "rules_removed": removed,
            }
            if not kept:
                logic["enabled"] = False
                action["conditional_logic_disabled"] = True
            actions.append(action)
        return actions


def _fields(form: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    return [field for field in form.get("fields") or [] if isinstance(field, Mapping)]


def find_field(form: Mapping[str, Any], field_id: Any) -> Optional[Mapping[str, Any]]:
    """The field whose id loosely equals ``field_id``, or None."""
    for field in _fields(form):
        if _same_id(field.get("id"), field_id):
            return field
    return None
