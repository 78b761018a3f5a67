# Overview: Flask routes for SKUs / variants; bulk expansion, edit, toggle, delete and rate updates.

"""
SKU screens

POST /master-data/products/skus          bulk create over the attribute axes
                                         (size_ids, grade_ids, color_ids,
                                         packing_type_ids, combo_keys[i],
                                         combo_rates[i])
POST /master-data/products/skus/<id>     edit one variant
POST .../<id>/toggle, .../<id>/delete
POST .../bulk-update                     variant_ids[i] + new_rates[i]
GET  .../config/<item_id>                axis values already used by the item
GET  .../item-variants/<item_id>         variants with names, rates and codes
GET  /master-data/products/skus          FG and SFG variants; filters search, item_id,
                                         status, item_type, subgroup_id, created_by,
                                         date_from, date_to (YYYY-MM-DD, inclusive);
                                         rows carry pending_approval
"""

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from ..decorators import require_auth, require_permission
from ..services import sku_service
from ..validation import ConflictError, NotFoundError, ValidationError, form_list, parse_date, parse_int
from .screen import failed, forbid_unless, page, saved


BASE_PATH = "/master-data/products/skus"
FLASH_TYPE = "skus"

skus_bp = Blueprint("skus", __name__, url_prefix=BASE_PATH)

WRITE_ERRORS = (ValidationError, ConflictError, NotFoundError, SQLAlchemyError)


def _fail(e, tag: str, modal_mode: str, values: dict | None = None, entity_id=None):
    return failed(
        e, log_tag=f"[skus:{tag}]", list_path=BASE_PATH, flash_path=BASE_PATH,
        flash_type=FLASH_TYPE, values=values, modal_mode=modal_mode, entity_id=entity_id,
    )


@skus_bp.get("")
@require_auth
def list_route():
    denied = forbid_unless(sku_service.SCOPE_KEY, "view")
    if denied:
        return denied

    variants = sku_service.list_variants(
        search=request.args.get("search"),
        item_id=parse_int(request.args.get("item_id")),
        status=request.args.get("status"),
        item_type=(request.args.get("item_type") or "").strip().upper() or None,
        subgroup_id=parse_int(request.args.get("subgroup_id")),
        created_by=parse_int(request.args.get("created_by")),
        date_from=parse_date(request.args.get("date_from")),
        date_to=parse_date(request.args.get("date_to")),
    )
    pending = sku_service.pending_variant_ids(v.id for v in variants)
    items = [{**v.to_dict(), "pending_approval": v.id in pending} for v in variants]
    return page(items, flash_path=BASE_PATH, flash_type=FLASH_TYPE)



@skus_bp.post("")
@require_auth
def create_route():
    expansion = sku_service.ExpansionRequest.from_mapping(request.form)
    values = expansion.to_dict()

    try:
        approval, result = sku_service.create_variants(expansion, user=g.current_user)
    except WRITE_ERRORS as e:
        return _fail(e, "create", "create", values)

    if result is not None:
        current_app.logger.info(
            "[skus:create] item=%s created=%s refreshed=%s", expansion.item_id, result.created, result.refreshed
        )
    return saved(BASE_PATH, approval)


@skus_bp.post("/<int:variant_id>")
@require_auth
def update_route(variant_id: int):
    try:
        approval = sku_service.update_variant(variant_id, request.form, user=g.current_user)
    except WRITE_ERRORS as e:
        return _fail(e, "update", "edit", {**sku_service.edit_payload(request.form), "id": variant_id}, variant_id)
    return saved(BASE_PATH, approval)


@skus_bp.post("/<int:variant_id>/toggle")
@require_auth
def toggle_route(variant_id: int):
    try:
        approval = sku_service.toggle_variant_record(variant_id, user=g.current_user)
    except WRITE_ERRORS as e:
        return _fail(e, "toggle", "delete", entity_id=variant_id)
    return saved(BASE_PATH, approval)


@skus_bp.post("/<int:variant_id>/delete")
@require_auth
def delete_route(variant_id: int):
    try:
        approval = sku_service.delete_variant_record(variant_id, user=g.current_user)
    except WRITE_ERRORS as e:
        return _fail(e, "delete", "delete", entity_id=variant_id)
    return saved(BASE_PATH, approval, "deleted_successfully")


@skus_bp.post("/bulk-update")
@require_auth
@require_permission("SCREEN", sku_service.SCOPE_KEY, "edit")
def bulk_update_route():
    try:
        updated = sku_service.bulk_update_rates(
            form_list(request.form, "variant_ids"),
            form_list(request.form, "new_rates"),
            g.current_user.id,
        )
    except SQLAlchemyError as e:
        return _fail(e, "bulk-update", "delete")
    current_app.logger.info("[skus:bulk-update] %s variant(s) updated", updated)
    return saved(BASE_PATH, message_key="rates_updated")


@skus_bp.get("/config/<int:item_id>")
@require_auth
@require_permission("SCREEN", sku_service.SCOPE_KEY, "view")
def config_route(item_id: int):
    return jsonify(sku_service.get_item_config(item_id))


@skus_bp.get("/item-variants/<int:item_id>")
@require_auth
@require_permission("SCREEN", sku_service.SCOPE_KEY, "view")
def item_variants_route(item_id: int):
    return jsonify({"variants": sku_service.list_item_variants(item_id)})
