# Overview: Flask routes for the basic-info master screens; one generic handler set over resource descriptors.

"""
Basic-Info screens

GET  /master-data/basic-info/<slug>                  list (+ notice/flash/error)
GET  /master-data/basic-info/<slug>/new              empty form values
POST /master-data/basic-info/<slug>                  create
POST /master-data/basic-info/<slug>/<id>             update
POST /master-data/basic-info/<slug>/<id>/toggle      flip is_active
POST /master-data/basic-info/<slug>/<id>/delete      hard delete

Writes answer 302 to the list. Failures travel in the basic_info_flash
cookie (path = this blueprint's prefix) so the list re-opens the modal.
"""

from flask import Blueprint, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from ..decorators import require_auth
from ..services import basic_info_service
from ..services.basic_info_resources import ALIASES, ITEM_TYPE_LABELS
from ..validation import ConflictError, LockedError, ValidationError
from .screen import failed, forbid_unless, page, saved


BASE_PATH = "/master-data/basic-info"

basic_info_bp = Blueprint("basic_info", __name__, url_prefix=BASE_PATH)

WRITE_ERRORS = (ValidationError, ConflictError, LockedError, SQLAlchemyError)


def _list_path(slug: str) -> str:
    return f"{BASE_PATH}/{ALIASES.get(slug, slug)}"


def _describe(resource) -> dict:
    return {
        "slug": resource.slug,
        "title_key": resource.title_key,
        "scope_key": resource.scope_key,
        "fields": [
            {"name": f.name, "kind": f.kind, "required": f.required, "options": list(f.options)}
            for f in resource.fields
        ],
        "item_type_labels": ITEM_TYPE_LABELS if resource.item_type_map else None,
    }


@basic_info_bp.get("/<slug>")
@require_auth
def list_route(slug: str):
    resource = basic_info_service.get_resource(slug)
    denied = forbid_unless(resource.scope_key, "view")
    if denied:
        return denied

    return page(
        basic_info_service.list_rows(resource),
        flash_path=BASE_PATH,
        flash_type=resource.slug,
        page=_describe(resource),
        defaults=resource.defaults,
    )


@basic_info_bp.get("/<slug>/new")
@require_auth
def new_route(slug: str):
    resource = basic_info_service.get_resource(slug)
    denied = forbid_unless(resource.scope_key, "view")
    if denied:
        return denied
    return jsonify({"page": _describe(resource), "values": resource.defaults, "error": None})


@basic_info_bp.post("/<slug>")
@require_auth
def create_route(slug: str):
    resource = basic_info_service.get_resource(slug)
    values = basic_info_service.build_values(resource, request.form)

    try:
        approval = basic_info_service.create_record(resource, values, user=g.current_user)
    except WRITE_ERRORS as e:
        return failed(
            e, log_tag="[basic-info:create]", list_path=_list_path(slug), flash_path=BASE_PATH,
            flash_type=resource.slug, values=values, modal_mode="create",
        )
    return saved(_list_path(slug), approval)


@basic_info_bp.post("/<slug>/<int:row_id>")
@require_auth
def update_route(slug: str, row_id: int):
    resource = basic_info_service.get_resource(slug)
    values = basic_info_service.build_values(resource, request.form)

    try:
        approval = basic_info_service.update_record(resource, row_id, values, user=g.current_user)
    except WRITE_ERRORS as e:
        return failed(
            e, log_tag="[basic-info:update]", list_path=_list_path(slug), flash_path=BASE_PATH,
            flash_type=resource.slug, values={**values, "id": row_id}, modal_mode="edit", entity_id=row_id,
        )
    return saved(_list_path(slug), approval)


@basic_info_bp.post("/<slug>/<int:row_id>/toggle")
@require_auth
def toggle_route(slug: str, row_id: int):
    resource = basic_info_service.get_resource(slug)

    try:
        approval = basic_info_service.toggle_record(resource, row_id, user=g.current_user)
    except WRITE_ERRORS as e:
        return failed(
            e, log_tag="[basic-info:toggle]", list_path=_list_path(slug), flash_path=BASE_PATH,
            flash_type=resource.slug, values={}, modal_mode="delete", entity_id=row_id,
        )
    return saved(_list_path(slug), approval)


@basic_info_bp.post("/<slug>/<int:row_id>/delete")
@require_auth
def delete_route(slug: str, row_id: int):
    resource = basic_info_service.get_resource(slug)

    try:
        approval = basic_info_service.delete_record(resource, row_id, user=g.current_user)
    except WRITE_ERRORS as e:
        return failed(
            e, log_tag="[basic-info:delete]", list_path=_list_path(slug), flash_path=BASE_PATH,
            flash_type=resource.slug, values={}, modal_mode="delete", entity_id=row_id,
        )
    return saved(_list_path(slug), approval, "deleted_successfully")
