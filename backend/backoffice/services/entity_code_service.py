# Overview: Service-layer helpers for slugified entity codes with uniqueness probing.

"""
Entity code generator.

Codes are lower-case slugs ("emp_ali") derived from an optional prefix and a
name. On collision a numeric suffix is appended ("emp_ali_2", "emp_ali_3", ...)
and the base is shortened from the right so the whole code never exceeds
max_len.

The uniqueness probe is injected: a database-backed probe for real writes,
a set membership test in unit tests. A probe run inside the transaction that
inserts the code is authoritative; outside a transaction it is advisory only.
"""
from __future__ import annotations

import re
from typing import Callable

from sqlalchemy import func

from ..extensions import db

DEFAULT_MAX_LEN = 50
MIN_MAX_LEN = 3

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

ExistsProbe = Callable[[str], bool]


def slugify(value: str | None, max_len: int = DEFAULT_MAX_LEN) -> str:
    """
    Lower-case, collapse non-alphanumeric runs to "_", trim underscores, truncate.

    Empty input yields "".
    """
    text = (value or "").lower()
    text = _NON_ALNUM.sub("_", text).strip("_")
    return text[:max_len]


def build_base_code(name: str | None, prefix: str | None = None, max_len: int = DEFAULT_MAX_LEN) -> str:
    prefix_slug = slugify(prefix, max_len)
    name_slug = slugify(name, max_len)
    parts = [part for part in (prefix_slug, name_slug) if part]
    base = "_".join(parts).strip("_")
    return base[:max_len]


def generate_unique_code(
    *,
    name: str | None,
    exists: ExistsProbe,
    prefix: str | None = None,
    max_len: int = DEFAULT_MAX_LEN,
) -> str:
    """
    Return the first code not reported by `exists`.

    Tries base, then base_2, base_3, ... The suffix (with its underscore) is
    reserved from the right: candidate = base[:max_len - len(suffix)] + suffix,
    keeping at least one base character.

    max_len must be at least 3 (one base character plus "_2"). When the
    suffix alone would leave no room for a base character the code space is
    exhausted and ValueError is raised instead of overrunning max_len.

    Args:
        name: Source text (e.g. "Ali")
        exists: Probe returning True when a code is taken
        prefix: Optional prefix slugged in front of the name (e.g. "emp")
        max_len: Maximum code length (default 50)

    Returns:
        A code c with exists(c) False and len(c) <= max_len.

    Raises:
        ValueError: max_len below 3, or every code within max_len is taken
    """
    if max_len < MIN_MAX_LEN:
        raise ValueError(f"max_len must be at least {MIN_MAX_LEN}, got {max_len}")

    base = build_base_code(name, prefix, max_len) or slugify(prefix, max_len) or "item"[:max_len]
    if not exists(base):
        return base

    counter = 2
    while True:
        suffix = f"_{counter}"
        if len(suffix) >= max_len:
            raise ValueError(f"No free code within {max_len} characters for {base!r}")
        head = base[:max_len - len(suffix)]
        candidate = f"{head}{suffix}"
        if not exists(candidate):
            return candidate
        counter += 1


def column_exists_probe(model, column_name: str = "code", exclude_id: int | None = None) -> ExistsProbe:
    """
    Case-insensitive probe against a model column, optionally ignoring one row
    (the row being edited).
    """
    column = getattr(model, column_name)

    def exists(candidate: str) -> bool:
        query = db.session.query(model.id).filter(func.lower(column) == candidate.lower())
        if exclude_id is not None:
            query = query.filter(model.id != exclude_id)
        return db.session.query(query.exists()).scalar()

    return exists
