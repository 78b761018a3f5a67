from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from sqlalchemy import Boolean, Integer, Numeric, String, Text


class ValidationError(ValueError):
    """400-level input problem (missing required field, bad number, empty combo map)."""


class ConflictError(ValueError):
    """Unique-constraint style conflict (duplicate code, duplicate SKU, duplicate conversion)."""


class NotFoundError(ValueError):
    """Unknown resource type or id."""


class LockedError(ValueError):
    """Write refused because the row is referenced elsewhere (e.g. UOM code rename)."""


TRUTHY_FORM_VALUES = {"on", "true", "1", "yes"}


def form_list(form, name: str) -> list:
    """
    Repeated form fields as a list.

    Accepts both `name=a&name=b` and the bracketed `name[]=a` / `name[0]=a`
    shapes browsers and JS form builders emit.
    """
    if form is None:
        return []
    if hasattr(form, "getlist"):
        values = list(form.getlist(name)) + list(form.getlist(f"{name}[]"))
        if not values:
            indexed = sorted(
                (key for key in form.keys() if key.startswith(f"{name}[") and key.endswith("]")),
                key=lambda key: _bracket_index(key, name),
            )
            values = [form.get(key) for key in indexed]
        return values
    raw = form.get(name)
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return [raw]


def _bracket_index(key: str, name: str) -> int:
    inner = key[len(name) + 1:-1]
    try:
        return int(inner)
    except ValueError:
        return 0


def parse_int(value: Any) -> int | None:
    """Plain integer or None (floats, blanks and scientific notation rejected)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    stripped = str(value).strip()
    if not stripped or "e" in stripped.lower() or "." in stripped:
        return None
    try:
        return int(stripped)
    except ValueError:
        return None


def parse_int_list(values: Iterable[Any]) -> list[int]:
    """Integers in order, dropping anything unparsable."""
    parsed = []
    for value in values:
        number = parse_int(value)
        if number is not None:
            parsed.append(number)
    return parsed


def parse_decimal(value: Any) -> Decimal | None:
    """Finite decimal or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = Decimal(text)
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def parse_date(value: Any) -> date | None:
    """"YYYY-MM-DD" (a date or datetime passes through as its date) or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_form_bool(value: Any) -> bool:
    """Checkbox semantics: "on"/"true"/"1"/"yes" are True, anything else False."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY_FORM_VALUES


def coerce_column_value(col, value: Any):
    """
    Coerce a form value to the Python type a SQLAlchemy column expects.

    Raises ValidationError with the column key when the value cannot be
    represented.
    """
    if value is None:
        return None

    coltype = col.type

    if isinstance(coltype, Boolean):
        return parse_form_bool(value)

    if isinstance(coltype, Integer):
        number = parse_int(value)
        if number is None:
            raise ValidationError(f"{col.key} must be an integer")
        return number

    if isinstance(coltype, Numeric):
        number = parse_decimal(value)
        if number is None:
            raise ValidationError(f"{col.key} must be a number")
        return number

    if isinstance(coltype, (String, Text)):
        text = str(value).strip()
        if isinstance(coltype, String) and coltype.length and len(text) > coltype.length:
            raise ValidationError(f"{col.key} exceeds max length {coltype.length}")
        return text

    return value
