from __future__ import annotations

from typing import Any, Dict, Optional

# Set by the service, never by callers. Updates silently drop them.
SYSTEM_FIELDS = frozenset({
    "id",
    "document_number",
    "sequence",
    "sequence_value",
    "created_by",
    "created_at",
    "updated_at",
    "artifact",
    "attachment",
})


def strip_system_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if k not in SYSTEM_FIELDS}


def matches_search(record: Dict[str, Any], search: Optional[str], label_field: str) -> bool:
    """Case-insensitive substring match on the document number and the label field."""
    if not search:
        return True
    needle = search.strip().lower()
    haystack = (
        str(record.get("document_number") or ""),
        str(record.get(label_field) or ""),
    )
    return any(needle in value.lower() for value in haystack)
