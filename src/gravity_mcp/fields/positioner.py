"""Insertion-index calculation for new fields.

A form's ``fields`` array is the rendering order. Fields of type ``"page"``
are page-break sentinels: they carry no data and split the sequence into
1-indexed pages. ``PositionEngine`` turns a position config
(``{mode, reference, page}``) into a concrete insertion index.

Modes:
    append   end of the form (or of ``page``)
    prepend  start of the form (or of ``page``)
    after    immediately after the field whose id equals ``reference``
    before   immediately before the field whose id equals ``reference``
    index    ``reference`` is a 0-based index, clamped to the valid range

A relative reference that cannot be found resolves to the end of the
sequence and is logged; it is never an error.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

PAGE_BREAK_TYPE = "page"
VALID_MODES = ("append", "prepend", "after", "before", "index")

Field = Mapping[str, Any]


def _same_id(left: Any, right: Any) -> bool:
    """Loose id equality: ``3 == "3"``."""
    if left is None or right is None:
        return False
    return str(left) == str(right)


def _is_page_break(field: Field) -> bool:
    return field.get("type") == PAGE_BREAK_TYPE


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


class PositionEngine:
    """Compute insertion indexes within an ordered, page-partitioned field list."""

    # -----------------------------------------------------------------
    # Page model
    # -----------------------------------------------------------------

    def get_page_boundaries(self, fields: Sequence[Field]) -> List[Field]:
        """All page-break sentinels, in order."""
        return [field for field in fields if _is_page_break(field)]

    def get_total_pages(self, fields: Sequence[Field]) -> int:
        return len(self.get_page_boundaries(fields)) + 1

    def _boundary_indexes(self, fields: Sequence[Field]) -> List[int]:
        return [i for i, field in enumerate(fields) if _is_page_break(field)]

    def get_fields_for_page(self, fields: Sequence[Field], page: int) -> List[Field]:
        """Non-sentinel fields strictly inside page ``page``."""
        result: List[Field] = []
        current = 1
        for field in fields:
            if _is_page_break(field):
                current += 1
                if current > page:
                    break
                continue
            if current == page:
                result.append(field)
        return result

    def get_field_page(self, field: Field, fields: Sequence[Field]) -> Optional[int]:
        """1-based page of ``field``, or None if it is not in ``fields``."""
        index = self._find_index(fields, field)
        if index is None:
            return None
        return 1 + sum(1 for f in fields[:index] if _is_page_break(f))

    def _find_index(self, fields: Sequence[Field], field: Field) -> Optional[int]:
        for i, candidate in enumerate(fields):
            if candidate is field:
                return i
        field_id = field.get("id")
        for i, candidate in enumerate(fields):
            if _same_id(candidate.get("id"), field_id):
                return i
        return None

    def _index_of_id(self, fields: Sequence[Field], reference: Any) -> Optional[int]:
        for i, field in enumerate(fields):
            if _same_id(field.get("id"), reference):
                return i
        return None

    # -----------------------------------------------------------------
    # Position calculation
    # -----------------------------------------------------------------

    def calculate_position(
        self,
        fields: Sequence[Field],
        position: Optional[Mapping[str, Any]] = None,
        page_aware: bool = False,
    ) -> int:
        """Return the index at which a new field should be inserted.

        Args:
            fields: Current field sequence
            position: ``{mode, reference, page}``; defaults to append
            page_aware: Resolve ``page`` against page-break sentinels

        Returns:
            Index in ``[0, len(fields)]``
        """
        position = position or {}
        mode = position.get("mode") or "append"
        reference = position.get("reference")
        page = position.get("page")

        if page_aware and page is not None:
            return self._calculate_page_position(fields, page, mode, reference)

        if mode == "prepend":
            return 0
        if mode == "after":
            return self._position_after(fields, reference)
        if mode == "before":
            return self._position_before(fields, reference)
        if mode == "index":
            return self._position_at_index(fields, reference)
        return len(fields)

    def _position_after(self, fields: Sequence[Field], reference: Any) -> int:
        if reference is None or reference == "":
            return len(fields)
        index = self._index_of_id(fields, reference)
        if index is None:
            logger.warning(f"Reference field {reference} not found, appending to end")
            return len(fields)
        return index + 1

    def _position_before(self, fields: Sequence[Field], reference: Any) -> int:
        if reference is None or reference == "":
            return 0
        index = self._index_of_id(fields, reference)
        if index is None:
            logger.warning(f"Reference field {reference} not found, appending to end")
            return len(fields)
        return index

    def _position_at_index(self, fields: Sequence[Field], reference: Any) -> int:
        index = _as_int(reference)
        if index is None:
            return len(fields)
        return max(0, min(index, len(fields)))

    def _page_span(self, fields: Sequence[Field], page: int) -> tuple:
        """``(start, end)`` insertion bounds of page ``page``.

        ``start`` is just after the previous sentinel (0 for page 1); ``end``
        is the index of the page's trailing sentinel (len for the last page).
        """
        boundaries = self._boundary_indexes(fields)
        start = 0 if page == 1 else boundaries[page - 2] + 1
        end = boundaries[page - 1] if page - 1 < len(boundaries) else len(fields)
        return start, end

    def _calculate_page_position(
        self,
        fields: Sequence[Field],
        page: Any,
        mode: str,
        reference: Any,
    ) -> int:
        page_number = _as_int(page)
        total_pages = self.get_total_pages(fields)
        if page_number is None or page_number < 1 or page_number > total_pages:
            logger.warning(
                f"Page {page} out of range (1-{total_pages}), appending to end of form"
            )
            return len(fields)

        start, end = self._page_span(fields, page_number)

        if mode == "prepend":
            return start
        if mode in ("after", "before"):
            index = self._index_of_id(fields, reference) if reference not in (None, "") else None
            if index is not None and start <= index < end:
                return index + 1 if mode == "after" else index
            if index is not None:
                logger.warning(
                    f"Reference field {reference} is not on page {page_number}, "
                    f"using the page {'end' if mode == 'after' else 'start'}"
                )
            return end if mode == "after" else start
        if mode == "index":
            offset = _as_int(reference)
            if offset is None:
                return end
            return start + max(0, min(offset, end - start))
        return end

    # -----------------------------------------------------------------
    # Validation and reporting
    # -----------------------------------------------------------------

    def validate_position_config(
        self,
        position: Optional[Mapping[str, Any]],
        fields: Sequence[Field],
    ) -> Dict[str, Any]:
        """Check a position config without resolving it.

        Returns:
            ``{valid, errors, warnings}``; only errors make it invalid
        """
        errors: List[str] = []
        warnings: List[str] = []

        if not position:
            return {"valid": True, "errors": errors, "warnings": warnings}

        mode = position.get("mode")
        reference = position.get("reference")
        page = position.get("page")

        if mode is not None and mode not in VALID_MODES:
            errors.append(
                f"Invalid position mode: {mode}. Must be one of: {', '.join(VALID_MODES)}"
            )

        if mode in ("after", "before"):
            if reference is None or reference == "":
                warnings.append(f"Position mode '{mode}' specified without reference field ID")
            elif self._index_of_id(fields, reference) is None:
                warnings.append(f"Reference field {reference} not found in form")

        if mode == "index" and reference is not None and _as_int(reference) is None:
            errors.append(f"Invalid index: {reference}. Must be an integer")

        if page is not None:
            page_number = _as_int(page)
            if page_number is None or page_number < 1:
                errors.append(f"Invalid page number: {page}. Must be a positive integer")
            else:
                total_pages = self.get_total_pages(fields)
                if page_number > total_pages:
                    warnings.append(f"Page {page_number} exceeds total pages ({total_pages})")
                elif mode in ("after", "before") and reference not in (None, ""):
                    index = self._index_of_id(fields, reference)
                    if index is not None and self.get_field_page(fields[index], fields) != page_number:
                        warnings.append(f"Reference field {reference} is not on page {page_number}")

        return {"valid": not errors, "errors": errors, "warnings": warnings}

    def get_position_summary(
        self,
        fields: Sequence[Field],
        inserted_index: int,
        new_field: Field,
    ) -> Dict[str, Any]:
        """Describe where ``new_field`` landed in the post-insertion ``fields``."""
        return {
            "total_fields": len(fields),
            "total_pages": self.get_total_pages(fields),
            "inserted_at": inserted_index,
            "on_page": self.get_field_page(new_field, fields),
            "after_field": fields[inserted_index - 1].get("id") if inserted_index > 0 else None,
            "before_field": (
                fields[inserted_index + 1].get("id")
                if inserted_index + 1 < len(fields)
                else None
            ),
        }
