"""
Root pytest configuration and shared fixtures.

Provides sample form schemas and common test utilities.
"""

import copy
import json
from typing import Any, Dict, Optional, Union

import pytest
from mcp.types import TextContent

from gravity_mcp.core.form_store import FormNotFoundError

# Response contract version from responses.py
RESPONSE_CONTRACT_VERSION = "response-v2"


def extract_response_dict(result: Union[Dict[str, Any], TextContent]) -> Dict[str, Any]:
    """Extract dict from tool result, handling both dict and TextContent.

    Tools wrapped with canonical_tool return TextContent with minified JSON.
    This helper extracts the dict for test assertions.
    """
    if isinstance(result, dict):
        return result
    if isinstance(result, TextContent):
        return json.loads(result.text)
    raise TypeError(
        f"Expected dict or TextContent, got {type(result).__name__}"
    )


class InMemoryFormStore:
    """Dict-backed Form Store with the client's interface.

    Forms are deep-copied on the way in and out, so tests never share state
    with the store.
    """

    def __init__(self, forms: Optional[Dict[Any, Dict[str, Any]]] = None):
        self._forms: Dict[str, Dict[str, Any]] = {}
        self.fetch_count = 0
        self.replace_count = 0
        for form_id, form in (forms or {}).items():
            self._forms[str(form_id)] = copy.deepcopy(form)

    def fetch_form(self, form_id: Any) -> Dict[str, Any]:
        self.fetch_count += 1
        try:
            return copy.deepcopy(self._forms[str(form_id)])
        except KeyError:
            raise FormNotFoundError(form_id) from None

    def replace_form(self, form_id: Any, form: Dict[str, Any]) -> Dict[str, Any]:
        if str(form_id) not in self._forms:
            raise FormNotFoundError(form_id)
        self.replace_count += 1
        self._forms[str(form_id)] = copy.deepcopy(form)
        return copy.deepcopy(form)

    def create_form(self, form: Dict[str, Any]) -> Dict[str, Any]:
        next_id = max((int(key) for key in self._forms if key.isdigit()), default=0) + 1
        created = {**copy.deepcopy(form), "id": next_id}
        created.setdefault("fields", [])
        self._forms[str(next_id)] = created
        return copy.deepcopy(created)

    def delete_form(self, form_id: Any, *, force: bool = False) -> Dict[str, Any]:
        if str(form_id) not in self._forms:
            raise FormNotFoundError(form_id)
        if force:
            del self._forms[str(form_id)]
        else:
            self._forms[str(form_id)]["is_trash"] = True
        return {"form_id": form_id, "deleted": True, "permanently": force}

    def list_forms(self, **_: Any) -> Dict[str, Any]:
        forms = [
            {"id": form.get("id", key), "title": form.get("title", "")}
            for key, form in self._forms.items()
        ]
        return {
            "forms": forms,
            "total_count": len(forms),
            "total_pages": 1,
            "current_page": 1,
        }


_CONTACT_FORM: Dict[str, Any] = {
    "id": 1,
    "title": "Contact",
    "fields": [
        {"id": 1, "type": "text", "label": "Full Name", "isRequired": True},
        {"id": 2, "type": "email", "label": "Email", "isRequired": True},
        {
            "id": 3,
            "type": "radio",
            "label": "Contact Preference",
            "choices": [
                {"text": "Email", "value": "email"},
                {"text": "Phone", "value": "phone"},
            ],
        },
        {
            "id": 4,
            "type": "phone",
            "label": "Phone",
            "conditionalLogic": {
                "enabled": True,
                "actionType": "show",
                "logicType": "all",
                "rules": [{"fieldId": 3, "operator": "is", "value": "phone"}],
            },
        },
        {
            "id": 5,
            "type": "number",
            "label": "Quantity",
        },
        {
            "id": 6,
            "type": "number",
            "label": "Total",
            "enableCalculation": True,
            "calculationFormula": "{Quantity:5} * 10",
        },
    ],
    "notifications": {
        "n1": {
            "id": "n1",
            "name": "Admin Notification",
            "subject": "New contact from {Full Name:1}",
            "message": "Email: {Email:2}\nQuantity: {Quantity:5}",
            "to": "{admin_email}",
        }
    },
    "confirmations": {
        "c1": {
            "id": "c1",
            "name": "Default Confirmation",
            "type": "message",
            "message": "Thanks {Full Name:1}!",
        }
    },
}

_PAGED_FORM: Dict[str, Any] = {
    "id": 2,
    "title": "Application",
    "pagination": {"type": "percentage", "pages": ["Personal", "Work", "Review"]},
    "fields": [
        {"id": 1, "type": "text", "label": "First Name"},
        {"id": 2, "type": "text", "label": "Last Name"},
        {"id": 3, "type": "page", "label": "Page Break"},
        {"id": 4, "type": "text", "label": "Employer"},
        {"id": 5, "type": "text", "label": "Job Title"},
        {"id": 6, "type": "page", "label": "Page Break"},
        {"id": 7, "type": "textarea", "label": "Comments"},
    ],
}


@pytest.fixture
def contact_form() -> Dict[str, Any]:
    """Single-page form with conditional logic, calculations and merge tags."""
    return copy.deepcopy(_CONTACT_FORM)


@pytest.fixture
def paged_form() -> Dict[str, Any]:
    """Three-page form: fields 1-2, 4-5 and 7 separated by page breaks 3 and 6."""
    return copy.deepcopy(_PAGED_FORM)


@pytest.fixture
def make_form_store():
    """Factory for in-memory Form Stores: ``make_form_store({id: form, ...})``."""
    return InMemoryFormStore


@pytest.fixture
def form_store(contact_form, paged_form, make_form_store) -> InMemoryFormStore:
    """In-memory Form Store holding the contact (1) and paged (2) forms."""
    return make_form_store({1: contact_form, 2: paged_form})


@pytest.fixture
def parse_response():
    """The extract_response_dict helper, for tests that call registered tools."""
    return extract_response_dict
