from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from pydantic import TypeAdapter, ValidationError

from .errors import BadRequestError

PRIORITIES = ("low", "medium", "high")
DEFAULT_PRIORITY = "low"
# values clients send to mean "no priority"
NO_PRIORITY = {"", "none", "without", "without priority", "no priority"}

_datetime_adapter = TypeAdapter(datetime)


def normalize_priority(value: Any) -> Optional[str]:
    """Fold a client supplied priority into one of ``PRIORITIES``.

    ``None`` means the field was not supplied and is returned unchanged.
    Known "no priority" spellings collapse to the default; anything else
    that is not a recognised priority is rejected.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise BadRequestError("Invalid priority. Allowed: low, medium, high.")
    folded = " ".join(value.split()).casefold()
    if folded in NO_PRIORITY:
        return DEFAULT_PRIORITY
    if folded not in PRIORITIES:
        raise BadRequestError(
            "Invalid priority. Allowed: low, medium, high.",
            {"priority": value},
        )
    return folded


def parse_due_date(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 due date; empty values clear it."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return _datetime_adapter.validate_python(value)
    except ValidationError:
        raise BadRequestError("Invalid date for dueDate/deadline", {"dueDate": value}) from None


def normalize_card_fields(raw: dict[str, Any]) -> dict[str, Any]:
    """Map an incoming card payload onto model attribute names.

    Only keys present in ``raw`` are returned, so the result can be applied
    as a partial update. ``deadline`` is accepted in place of ``dueDate``.
    """
    fields: dict[str, Any] = {}
    if "title" in raw and raw["title"] is not None:
        fields["title"] = raw["title"].strip()
    if "description" in raw:
        description = raw["description"]
        fields["description"] = description.strip() if description else None
    if "priority" in raw:
        priority = normalize_priority(raw["priority"])
        if priority is not None:
            fields["priority"] = priority
    if raw.get("dueDate") not in (None, ""):
        fields["due_date"] = parse_due_date(raw["dueDate"])
    elif raw.get("deadline") not in (None, ""):
        fields["due_date"] = parse_due_date(raw["deadline"])
    elif "dueDate" in raw or "deadline" in raw:
        fields["due_date"] = None
    return fields


def is_dense(orders: Iterable[int]) -> bool:
    """True when ``orders`` is exactly ``0..n-1`` in some arrangement."""
    values = sorted(orders)
    return values == list(range(len(values)))
