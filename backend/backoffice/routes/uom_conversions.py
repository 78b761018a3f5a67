# Overview: Flask routes for UOM conversions; every write goes through the screen-approval helper.

from flask import Blueprint, g, request
from sqlalchemy.exc import SQLAlchemyError

from ..decorators import require_auth
from ..services import uom_conversion_service
from ..validation import ConflictError, ValidationError
from .screen import failed, forbid_unless, page, saved


BASE_PATH = "/master-data/basic-info/uom-conversions"
FLASH_TYPE = "uom-conversions"

uom_conversions_bp = Blueprint("uom_conversions", __name__, url_prefix=BASE_PATH)

WRITE_ERRORS = (ValidationError, ConflictError, SQLAlchemyError)


def _form_values() -> dict:
    return {key: request.form.get(key, "") for key in ("from_uom_id", "to_uom_id", "factor")}


def _fail(e, tag: str, modal_mode: str, values: dict | None = None, entity_id=None):
    return failed(
        e, log_tag=f"[uom-conversions:{tag}]", list_path=BASE_PATH, flash_path=BASE_PATH,
        flash_type=FLASH_TYPE, values=values, modal_mode=modal_mode, entity_id=entity_id,
    )


@uom_conversions_bp.get("")
@require_auth
def list_route():
    denied = forbid_unless(uom_conversion_service.SCOPE_KEY, "view")
    if denied:
        return denied

    can_browse = forbid_unless(uom_conversion_service.SCOPE_KEY, "navigate") is None
    rows = [row.to_dict() for row in uom_conversion_service.list_conversions()] if can_browse else []
    uoms = [{"id": u.id, "code": u.code, "name": u.name} for u in uom_conversion_service.list_active_uoms()]
    return page(rows, flash_path=BASE_PATH, flash_type=FLASH_TYPE, uoms=uoms)


@uom_conversions_bp.post("")
@require_auth
def create_route():
    values = _form_values()
    try:
        approval = uom_conversion_service.create_conversion(request.form, user=g.current_user)
    except WRITE_ERRORS as e:
        return _fail(e, "create", "create", values)
    return saved(BASE_PATH, approval)


@uom_conversions_bp.post("/<int:conversion_id>")
@require_auth
def update_route(conversion_id: int):
    values = _form_values()
    try:
        approval = uom_conversion_service.update_conversion(conversion_id, request.form, user=g.current_user)
    except WRITE_ERRORS as e:
        return _fail(e, "update", "edit", {**values, "id": conversion_id}, conversion_id)
    return saved(BASE_PATH, approval)


@uom_conversions_bp.post("/<int:conversion_id>/toggle")
@require_auth
def toggle_route(conversion_id: int):
    try:
        approval = uom_conversion_service.toggle_conversion(conversion_id, user=g.current_user)
    except WRITE_ERRORS as e:
        return _fail(e, "toggle", "delete", entity_id=conversion_id)
    return saved(BASE_PATH, approval)


@uom_conversions_bp.post("/<int:conversion_id>/delete")
@require_auth
def delete_route(conversion_id: int):
    try:
        approval = uom_conversion_service.delete_conversion(conversion_id, user=g.current_user)
    except WRITE_ERRORS as e:
        return _fail(e, "delete", "delete", entity_id=conversion_id)
    return saved(BASE_PATH, approval, "deleted_successfully")
