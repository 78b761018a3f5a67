# Overview: Service-layer operations for SKUs; variant expansion, SKU minting, edit/toggle/delete.

"""
SKU / Variant Expansion Engine

A bulk create takes one item and several attribute axes and writes one
Variant (+ its Sku) per combination of the Cartesian product
size x grade x color x packing.

AXES: size and grade need at least one value. Color and packing are
optional; an absent axis contributes exactly one "no value" (None) so the
product is never empty and the missing dimension is stored as NULL.

RATES: with combo_keys/combo_rates, every enumerated combination must have
a rate ("size|grade|color|packing", 0 for an absent axis). A partial map is
rejected; nothing silently falls back to the default rate. Without a map
every combination uses sale_rate_default.

UPSERT: a combination that already exists is refreshed (rate when a map was
supplied, activity and barcode), never duplicated. NULL axes are probed
with IS NULL.

SKU CODES: upper-snake item code and attribute names joined with "-", empty
segments dropped ("SHOE-SIZE_40-A"). Collisions get "-2", "-3", ...
The probe runs in the same transaction as the insert. A refreshed
combination re-mints while excluding its own SKU, so it keeps its code
unless another SKU now holds the base.

ATOMICITY: the whole batch is one transaction; any failure rolls it all back.
"""

from __future__ import annotations

import itertools
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

from ..extensions import db
from ..models import ApprovalRequest, Color, Grade, Item, PackingType, Size, Sku, Variant
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    form_list,
    parse_decimal,
    parse_int,
    parse_int_list,
)
from . import activity_log_service, approval_service
from backoffice.time_utils import utcnow

logger = logging.getLogger(__name__)

_NON_ALNUM_UPPER = re.compile(r"[^A-Z0-9]+")

FINISHED_ITEM_TYPE = "FG"
LISTED_ITEM_TYPES = ("FG", "SFG")


# ---------------------------------------------------------------------------
# Codes
# ---------------------------------------------------------------------------

def sku_segment(value: Any) -> str:
    """"Size 40" -> "SIZE_40"; None/blank -> ""."""
    text = str(value or "").strip().upper()
    return _NON_ALNUM_UPPER.sub("_", text).strip("_")


def build_sku_code(item_code: str | None, *parts: Any) -> str:
    segments = [sku_segment(part) for part in (item_code, *parts)]
    return "-".join(segment for segment in segments if segment)


def mint_unique_sku(base: str, exclude_sku_id: int | None = None) -> str:
    """
    First free code among base, base-2, base-3, ...

    Comparison is case-sensitive. The SKU row being re-minted may be
    excluded so an unchanged edit keeps its own code.
    """
    def taken(candidate: str) -> bool:
        query = db.session.query(Sku.id).filter(Sku.sku_code == candidate)
        if exclude_sku_id is not None:
            query = query.filter(Sku.id != exclude_sku_id)
        return db.session.query(query.exists()).scalar()

    candidate = base
    counter = 2
    while taken(candidate):
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate


def combo_key(size_id, grade_id, color_id=None, packing_type_id=None) -> str:
    return "|".join(str(v or 0) for v in (size_id, grade_id, color_id, packing_type_id))


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

@dataclass
class ExpansionRequest:
    item_id: int | None
    size_ids: list[int]
    grade_ids: list[int]
    color_ids: list[int] = field(default_factory=list)
    packing_type_ids: list[int] = field(default_factory=list)
    sale_rate_default: Decimal = Decimal("0")
    combo_keys: list[str] = field(default_factory=list)
    combo_rates: list[Any] = field(default_factory=list)
    barcode: str | None = None
    is_active: bool = True

    @classmethod
    def from_mapping(cls, data) -> "ExpansionRequest":
        """
        Build from a form (MultiDict) or a stored JSON snapshot.

        sale_rate_default falls back to 0 when missing or not numeric;
        is_active is False only for the literal "false".
        """
        default_rate = parse_decimal(_first(data, "sale_rate_default"))
        raw_active = _first(data, "is_active")
        if isinstance(raw_active, bool):
            is_active = raw_active
        else:
            is_active = str(raw_active).strip().lower() != "false" if raw_active is not None else True
        barcode = _first(data, "barcode")
        return cls(
            item_id=parse_int(_first(data, "item_id")),
            size_ids=parse_int_list(form_list(data, "size_ids")),
            grade_ids=parse_int_list(form_list(data, "grade_ids")),
            color_ids=parse_int_list(form_list(data, "color_ids")),
            packing_type_ids=parse_int_list(form_list(data, "packing_type_ids")),
            sale_rate_default=default_rate if default_rate is not None else Decimal("0"),
            combo_keys=[str(k).strip() for k in form_list(data, "combo_keys")],
            combo_rates=list(form_list(data, "combo_rates")),
            barcode=(str(barcode).strip() or None) if barcode is not None else None,
            is_active=is_active,
        )

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "size_ids": list(self.size_ids),
            "grade_ids": list(self.grade_ids),
            "color_ids": list(self.color_ids),
            "packing_type_ids": list(self.packing_type_ids),
            "sale_rate_default": float(self.sale_rate_default),
            "combo_keys": list(self.combo_keys),
            "combo_rates": [str(r) for r in self.combo_rates],
            "barcode": self.barcode,
            "is_active": self.is_active,
        }

    def validate(self) -> None:
        if not self.item_id or not self.size_ids or not self.grade_ids:
            raise ValidationError("error_required_fields")
        if self.sale_rate_default < 0:
            raise ValidationError("error_invalid_value")

    def combinations(self) -> list[tuple[int, int, int | None, int | None]]:
        return list(itertools.product(
            _dedupe(self.size_ids),
            _dedupe(self.grade_ids),
            _optional_axis(self.color_ids),
            _optional_axis(self.packing_type_ids),
        ))

    def rate_map(self) -> dict[str, Decimal] | None:
        """None when no per-combination rates were sent."""
        if not self.combo_keys and not self.combo_rates:
            return None
        if len(self.combo_keys) != len(self.combo_rates):
            raise ValidationError("error_required_fields")
        rates: dict[str, Decimal] = {}
        for key, raw in zip(self.combo_keys, self.combo_rates):
            rate = parse_decimal(raw)
            if rate is None:
                continue
            if rate < 0:
                raise ValidationError("error_invalid_value")
            rates[key] = rate
        return rates


def _first(data, name: str):
    if data is None:
        return None
    value = data.get(name)
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _dedupe(values: list[int]) -> list[int]:
    return list(dict.fromkeys(values))


def _optional_axis(values: list[int]) -> list[int | None]:
    """An absent axis contributes a single None."""
    return _dedupe(values) or [None]


def _name_map(model, ids) -> dict[int, str]:
    ids = [i for i in ids if i is not None]
    if not ids:
        return {}
    return {row.id: row.name for row in db.session.query(model).filter(model.id.in_(ids)).all()}


def _require_known(ids, names: dict[int, str]) -> None:
    missing = [i for i in ids if i is not None and i not in names]
    if missing:
        raise ValidationError("error_invalid_value")


def _match(column, value):
    return column.is_(None) if value is None else column == value


def find_variant(item_id: int, size_id, grade_id, color_id, packing_type_id) -> Variant | None:
    return (
        db.session.query(Variant)
        .filter(
            Variant.item_id == item_id,
            _match(Variant.size_id, size_id),
            _match(Variant.grade_id, grade_id),
            _match(Variant.color_id, color_id),
            _match(Variant.packing_type_id, packing_type_id),
        )
        .first()
    )


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------

@dataclass
class ExpansionResult:
    created: int = 0
    refreshed: int = 0
    variant_ids: list[int] = field(default_factory=list)


def expand_variants(request: ExpansionRequest, actor_id: int | None, commit: bool = True) -> ExpansionResult:
    """
    Create or refresh every (variant, sku) for the request's combinations.

    Raises:
        ValidationError: missing item/size/grade, unknown attribute id,
            negative rate, or a rate map that misses a combination
            or an item that is not a finished good
        NotFoundError: unknown item
    """
    request.validate()
    combos = request.combinations()
    rates = request.rate_map()
    if rates is not None:
        if any(combo_key(*combo) not in rates for combo in combos):
            raise ValidationError("error_required_fields")

    try:
        item = db.session.get(Item, request.item_id)
        if item is None:
            raise NotFoundError("error_item_not_found")
        if item.item_type != FINISHED_ITEM_TYPE:
            raise ValidationError("error_only_finished")

        sizes = _name_map(Size, request.size_ids)
        grades = _name_map(Grade, request.grade_ids)
        colors = _name_map(Color, request.color_ids)
        packings = _name_map(PackingType, request.packing_type_ids)
        for ids, names in (
            (request.size_ids, sizes),
            (request.grade_ids, grades),
            (request.color_ids, colors),
            (request.packing_type_ids, packings),
        ):
            _require_known(ids, names)

        result = ExpansionResult()
        now = utcnow()

        for size_id, grade_id, color_id, packing_type_id in combos:
            rate = rates[combo_key(size_id, grade_id, color_id, packing_type_id)] if rates is not None else None

            variant = find_variant(item.id, size_id, grade_id, color_id, packing_type_id)
            if variant is None:
                variant = Variant(
                    item_id=item.id,
                    size_id=size_id,
                    grade_id=grade_id,
                    color_id=color_id,
                    packing_type_id=packing_type_id,
                    sale_rate=rate if rate is not None else request.sale_rate_default,
                    is_active=request.is_active,
                    created_by=actor_id,
                )
                db.session.add(variant)
                db.session.flush()
                result.created += 1
            else:
                if rate is not None:
                    variant.sale_rate = rate
                variant.is_active = request.is_active
                variant.updated_by = actor_id
                variant.updated_at = now
                result.refreshed += 1

            base = build_sku_code(
                item.code,
                sizes.get(size_id),
                grades.get(grade_id),
                colors.get(color_id),
                packings.get(packing_type_id),
            ) or f"SKU-{variant.id}"
            sku = variant.sku
            if sku is None:
                sku = Sku(
                    variant_id=variant.id,
                    sku_code=mint_unique_sku(base),
                    barcode=request.barcode,
                    is_active=request.is_active,
                )
                db.session.add(sku)
                variant.sku = sku
            else:
                sku.sku_code = mint_unique_sku(base, exclude_sku_id=sku.id)
                if request.barcode is not None:
                    sku.barcode = request.barcode
                sku.is_active = request.is_active
            db.session.flush()
            result.variant_ids.append(variant.id)

        if commit:
            db.session.commit()
    except Exception:
        if commit:
            db.session.rollback()
        raise

    logger.info(
        "[skus] expanded item %s: %d created, %d refreshed",
        request.item_id, result.created, result.refreshed,
    )
    return result


# ---------------------------------------------------------------------------
# Single-variant operations
# ---------------------------------------------------------------------------

def get_variant(variant_id: int) -> Variant:
    variant = db.session.get(Variant, variant_id)
    if variant is None:
        raise NotFoundError("error_not_found")
    return variant


def edit_variant(variant_id: int, data, actor_id: int | None, commit: bool = True) -> Variant:
    """
    Update one variant; the first value of each list field wins.

    The SKU code is re-minted on every edit because the attributes that
    make it up may have changed.
    """
    try:
        variant = get_variant(variant_id)

        def pick(name: str, current):
            for key in (name, name[:-1]):
                values = form_list(data, key)
                if values:
                    return parse_int(values[0])
            if data is not None and name in data:
                return None
            return current

        size_id = pick("size_ids", variant.size_id)
        grade_id = pick("grade_ids", variant.grade_id)
        color_id = pick("color_ids", variant.color_id)
        packing_type_id = pick("packing_type_ids", variant.packing_type_id)
        if not size_id or not grade_id:
            raise ValidationError("error_required_fields")

        clash = find_variant(variant.item_id, size_id, grade_id, color_id, packing_type_id)
        if clash is not None and clash.id != variant.id:
            raise ConflictError("error_duplicate_record")

        raw_rate = _first(data, "sale_rate")
        if raw_rate is not None and str(raw_rate).strip() != "":
            rate = parse_decimal(raw_rate)
            if rate is None or rate < 0:
                raise ValidationError("error_invalid_value")
            variant.sale_rate = rate

        raw_active = _first(data, "is_active")
        if raw_active is not None:
            variant.is_active = raw_active if isinstance(raw_active, bool) else str(raw_active).strip().lower() != "false"

        variant.size_id = size_id
        variant.grade_id = grade_id
        variant.color_id = color_id
        variant.packing_type_id = packing_type_id
        variant.updated_by = actor_id
        variant.updated_at = utcnow()

        item = db.session.get(Item, variant.item_id)
        base = build_sku_code(
            item.code if item else None,
            _name_map(Size, [size_id]).get(size_id),
            _name_map(Grade, [grade_id]).get(grade_id),
            _name_map(Color, [color_id]).get(color_id),
            _name_map(PackingType, [packing_type_id]).get(packing_type_id),
        ) or f"SKU-{variant.id}"

        barcode = _first(data, "barcode")
        sku = variant.sku
        if sku is None:
            sku = Sku(variant_id=variant.id, sku_code=mint_unique_sku(base), is_active=variant.is_active)
            db.session.add(sku)
            variant.sku = sku
        else:
            sku.sku_code = mint_unique_sku(base, exclude_sku_id=sku.id)
            sku.is_active = variant.is_active
        if barcode is not None:
            sku.barcode = str(barcode).strip() or None

        db.session.flush()
        if commit:
            db.session.commit()
    except Exception:
        if commit:
            db.session.rollback()
        raise
    return variant


def update_rate(variant_id: int, sale_rate, actor_id: int | None, commit: bool = True) -> Variant:
    rate = parse_decimal(sale_rate)
    if rate is None or rate < 0:
        raise ValidationError("error_invalid_value")
    variant = get_variant(variant_id)
    variant.sale_rate = rate
    variant.updated_by = actor_id
    variant.updated_at = utcnow()
    if commit:
        db.session.commit()
    return variant


def toggle_variant(variant_id: int, actor_id: int | None, is_active: bool | None = None,
                   commit: bool = True) -> Variant:
    """Flip (or set) is_active on the variant and its SKU together."""
    variant = get_variant(variant_id)
    new_state = (not variant.is_active) if is_active is None else bool(is_active)
    variant.is_active = new_state
    variant.updated_by = actor_id
    variant.updated_at = utcnow()
    if variant.sku is not None:
        variant.sku.is_active = new_state
    if commit:
        db.session.commit()
    return variant


def delete_variant(variant_id: int, commit: bool = True) -> None:
    """Hard delete; the SKU goes with it."""
    variant = get_variant(variant_id)
    db.session.delete(variant)
    if commit:
        db.session.commit()


def bulk_update_rates(variant_ids, new_rates, actor_id: int | None) -> int:
    """
    Pairwise rate update in one transaction.

    Pairs with an unparsable id or rate, or an unknown variant, are skipped.
    Returns the number of variants updated.
    """
    ids = list(variant_ids or [])
    rates = list(new_rates or [])
    updated = 0
    now = utcnow()
    try:
        for raw_id, raw_rate in zip(ids, rates):
            variant_id = parse_int(raw_id)
            rate = parse_decimal(raw_rate)
            if not variant_id or rate is None or rate < 0:
                continue
            variant = db.session.get(Variant, variant_id)
            if variant is None:
                continue
            variant.sale_rate = rate
            variant.updated_by = actor_id
            variant.updated_at = now
            updated += 1
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return updated


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_item_config(item_id: int) -> dict:
    """Axis values already used by an item, plus its existing combination keys."""
    rows = (
        db.session.query(Variant.size_id, Variant.grade_id, Variant.color_id, Variant.packing_type_id)
        .filter(Variant.item_id == item_id)
        .order_by(Variant.id)
        .all()
    )

    def distinct(index: int) -> list[int]:
        return list(dict.fromkeys(row[index] for row in rows if row[index]))

    return {
        "size_ids": distinct(0),
        "grade_ids": distinct(1),
        "color_ids": distinct(2),
        "packing_type_ids": distinct(3),
        "existing_combinations": [combo_key(*row) for row in rows],
    }


def list_item_variants(item_id: int) -> list[dict]:
    variants = db.session.query(Variant).filter(Variant.item_id == item_id).order_by(Variant.id).all()
    return [
        {
            "id": v.id,
            "sale_rate": float(v.sale_rate) if v.sale_rate is not None else 0.0,
            "size": v.size.name if v.size else None,
            "grade": v.grade.name if v.grade else None,
            "color": v.color.name if v.color else None,
            "packing": v.packing_type.name if v.packing_type else None,
            "sku_code": v.sku.sku_code if v.sku else None,
        }
        for v in variants
    ]


def list_variants(
    search: str | None = None,
    item_id: int | None = None,
    status: str | None = None,
    item_type: str | None = None,
    subgroup_id: int | None = None,
    created_by: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[Variant]:
    """
    Variants for the SKU screen, finished and semi-finished goods only.

    date_from / date_to bound created_at by calendar day, both inclusive.
    """
    query = (
        db.session.query(Variant)
        .join(Item, Item.id == Variant.item_id)
        .outerjoin(Sku, Sku.variant_id == Variant.id)
    )
    if item_type in LISTED_ITEM_TYPES:
        query = query.filter(Item.item_type == item_type)
    else:
        query = query.filter(Item.item_type.in_(LISTED_ITEM_TYPES))
    if item_id:
        query = query.filter(Variant.item_id == item_id)
    if subgroup_id:
        query = query.filter(Item.subgroup_id == subgroup_id)
    if created_by:
        query = query.filter(Variant.created_by == created_by)
    if date_from:
        query = query.filter(Variant.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.filter(Variant.created_at < datetime.combine(date_to + timedelta(days=1), time.min))
    if status in ("active", "inactive"):
        query = query.filter(Variant.is_active.is_(status == "active"))
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            db.or_(db.func.lower(Sku.sku_code).like(pattern), db.func.lower(Item.name).like(pattern))
        )
    return query.order_by(Item.name.asc(), Variant.id.desc()).all()


def pending_variant_ids(variant_ids) -> set[int]:
    """Ids among `variant_ids` with an edit, toggle or delete awaiting approval."""
    keys = [str(variant_id) for variant_id in variant_ids]
    if not keys:
        return set()
    rows = (
        db.session.query(ApprovalRequest.entity_id)
        .filter(
            ApprovalRequest.entity_type == ENTITY_TYPE,
            ApprovalRequest.status == approval_service.PENDING,
            ApprovalRequest.entity_id.in_(keys),
        )
        .distinct()
        .all()
    )
    return {int(entity_id) for (entity_id,) in rows}


def describe_request(request: ExpansionRequest) -> str:
    item = db.session.get(Item, request.item_id) if request.item_id else None
    count = len(request.combinations()) if request.size_ids and request.grade_ids else 0
    name = item.name if item else f"#{request.item_id}"
    return f"New variants: {name} ({count} combination{'s' if count != 1 else ''})"


# ---------------------------------------------------------------------------
# Screen operations (approval-aware)
# ---------------------------------------------------------------------------

SCOPE_KEY = "master_data.products.skus"
ENTITY_TYPE = "SKU"

EDIT_FIELDS = ("size_ids", "grade_ids", "color_ids", "packing_type_ids", "sale_rate", "is_active", "barcode")


def edit_payload(form) -> dict:
    """Plain-dict snapshot of an edit form, suitable for an approval request."""
    payload: dict[str, Any] = {}
    for name in EDIT_FIELDS:
        if name.endswith("_ids"):
            values = parse_int_list(form_list(form, name))
            if values:
                payload[name] = values[:1]
            elif _first(form, name) is not None:
                payload[name] = []
        else:
            value = _first(form, name)
            if value is not None:
                payload[name] = value if isinstance(value, bool) else str(value).strip()
    return payload


def _actor_id(user) -> int | None:
    return user.id if user is not None else None


def _record(action: str, entity_id, context: dict) -> None:
    activity_log_service.append_activity(
        entity_type=ENTITY_TYPE, entity_id=entity_id, action=action, context=context
    )


def create_variants(request: ExpansionRequest, user=None):
    """Queue or run a bulk expansion. Returns (ScreenApprovalResult, ExpansionResult | None)."""
    request.validate()
    item = db.session.get(Item, request.item_id)
    if item is None:
        raise NotFoundError("error_item_not_found")
    if item.item_type != FINISHED_ITEM_TYPE:
        raise ValidationError("error_only_finished")
    rates = request.rate_map()
    if rates is not None and any(combo_key(*combo) not in rates for combo in request.combinations()):
        raise ValidationError("error_required_fields")

    approval = approval_service.handle_screen_approval(
        scope_key=SCOPE_KEY,
        action="create",
        entity_type=ENTITY_TYPE,
        entity_id="NEW",
        summary=describe_request(request),
        new_value={"_action": "create", **request.to_dict()},
        user=user,
    )
    if approval.queued:
        return approval, None

    try:
        result = expand_variants(request, _actor_id(user), commit=False)
        _record("CREATE", request.item_id, {"item_id": request.item_id, "variant_ids": result.variant_ids})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return approval, result


def update_variant(variant_id: int, form, user=None):
    variant = get_variant(variant_id)
    payload = edit_payload(form)
    old_value = variant.to_dict()

    approval = approval_service.handle_screen_approval(
        scope_key=SCOPE_KEY,
        action="edit",
        entity_type=ENTITY_TYPE,
        entity_id=variant_id,
        summary=f"Edit variant {old_value.get('sku_code') or variant_id}",
        old_value=old_value,
        new_value={"_action": "update", **payload},
        user=user,
    )
    if approval.queued:
        return approval

    try:
        edit_variant(variant_id, payload, _actor_id(user), commit=False)
        _record("UPDATE", variant_id, {"old_value": old_value, "new_value": payload})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return approval


def toggle_variant_record(variant_id: int, user=None):
    variant = get_variant(variant_id)
    target = not variant.is_active

    approval = approval_service.handle_screen_approval(
        scope_key=SCOPE_KEY,
        action="delete",
        entity_type=ENTITY_TYPE,
        entity_id=variant_id,
        summary=f"{'Activate' if target else 'Deactivate'} variant {variant.sku.sku_code if variant.sku else variant_id}",
        old_value={"is_active": variant.is_active},
        new_value={"_action": "toggle", "is_active": target},
        user=user,
    )
    if approval.queued:
        return approval

    try:
        toggle_variant(variant_id, _actor_id(user), is_active=target, commit=False)
        _record("TOGGLE", variant_id, {"is_active": target})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return approval


def delete_variant_record(variant_id: int, user=None):
    variant = get_variant(variant_id)
    old_value = variant.to_dict()

    approval = approval_service.handle_screen_approval(
        scope_key=SCOPE_KEY,
        action="delete",
        entity_type=ENTITY_TYPE,
        entity_id=variant_id,
        summary=f"Delete variant {old_value.get('sku_code') or variant_id}",
        old_value=old_value,
        new_value={"_action": "delete"},
        user=user,
    )
    if approval.queued:
        return approval

    try:
        delete_variant(variant_id, commit=False)
        _record("DELETE", variant_id, {"old_value": old_value})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return approval
