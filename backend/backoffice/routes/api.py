# Overview: JSON API routes; translation lookups and request-scoped approval submissions.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..i18n import t
from ..services import approval_service, translation_service
from ..services.translation_service import TranslationError
from ..validation import ValidationError


api_bp = Blueprint("api", __name__, url_prefix="/api")


@api_bp.post("/translate")
@require_auth
def translate_route():
    """
    Translate or transliterate a Latin-script name to Urdu.

    Body: {"text": "...", "mode": "translate" | "transliterate"}

    Returns 200 {translated, provider, azure_error}, 400 for blank text and
    502 when every provider failed.
    """
    data = request.get_json(silent=True) or {}
    try:
        result = translation_service.resolve(data.get("text"), data.get("mode") or "translate")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TranslationError as e:
        return jsonify({
            "error": t("translation_unavailable"),
            "detail": str(e),
            "azure_error": e.azure_error,
            "deepl_error": e.deepl_error,
        }), 502

    if result.azure_error:
        current_app.logger.warning("[translate] Azure failed, DeepL used: %s", result.azure_error)
    return jsonify(result.to_dict()), 200


@api_bp.post("/approvals")
@require_auth
def submit_approval_route():
    """
    Queue a change for review.

    Body: {request_type, entity_type, entity_id, summary?, old_value?,
    new_value?, block?}. The branch comes from X-Branch-Id.

    block=true answers 202 {"status": "PENDING", "approval_request_id": n};
    otherwise 200 with the same body and the caller carries on.
    """
    data = request.get_json(silent=True) or {}
    g.approval_request = {
        "branch_id": g.branch_id,
        "request_type": data.get("request_type"),
        "entity_type": data.get("entity_type"),
        "entity_id": data.get("entity_id"),
        "summary": data.get("summary"),
        "old_value": data.get("old_value"),
        "new_value": data.get("new_value"),
        "block": data.get("block") is True,
    }

    try:
        response = approval_service.intercept()
    except ValidationError as e:
        return jsonify({"error": t(str(e))}), 400

    if response is not None:
        return response
    return jsonify({
        "status": approval_service.PENDING,
        "approval_request_id": getattr(g, "approval_request_id", None),
    }), 200
