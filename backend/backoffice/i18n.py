# Overview: English/Urdu message catalogs and the t() lookup used by routes and services.

from __future__ import annotations

from typing import Callable

from flask import has_request_context, request

DEFAULT_LANGUAGE = "en"
SUPPORTED_LANGUAGES = ("en", "ur")
LANGUAGE_COOKIE = "lang"

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "approval_sent": "Change request sent for approval. It will be applied once reviewed.",
        "approval_pending_subject": "ERP approval pending",
        "approval_pending_intro": "A change request is waiting for your review.",
        "approval_pending_details": "Request details",
        "approval_request_id": "Request ID",
        "request_type": "Request Type",
        "entity_type": "Entity Type",
        "entity_id": "Entity ID",
        "requested_by": "Requested By",
        "branch": "Branch",
        "summary": "Summary",
        "old_value": "Old Value",
        "new_value": "New Value",
        "approval_approved": "Request approved and applied.",
        "approval_rejected": "Request rejected.",
        "approval_not_pending": "Only pending requests can be decided.",
        "approval_settings_saved": "Approval settings saved.",
        "approval_missing_fields": "Approval request is missing required fields",
        "approval_request_not_found": "Approval request not found.",
        "approval_apply_failed": "The approved change could not be applied.",
        "saved_successfully": "Saved successfully.",
        "deleted_successfully": "Deleted successfully.",
        "rates_updated": "Rates updated.",
        "variants_sent_approval": "Variants sent for approval.",
        "error_required_fields": "Required fields are missing.",
        "error_unable_save": "Unable to save. Please review the values and try again.",
        "error_duplicate_record": "A record with the same details already exists.",
        "error_record_in_use": "This record is linked to other data and cannot be deleted.",
        "error_invalid_value": "One or more values are invalid.",
        "error_generic": "Something went wrong. Please try again.",
        "error_not_found": "Record not found.",
        "error_page_not_found": "Basic information page not found",
        "unit_code_exists": "A unit with this code already exists.",
        "error_unit_code_locked": "Unit code is locked because items or conversions use this unit.",
        "error_invalid_factor": "Factor must be greater than zero.",
        "error_same_uom": "From and To units must be different.",
        "error_item_not_found": "Item not found.",
        "error_only_finished": "Only finished products can be added from this screen.",
        "translation_unavailable": "Translation unavailable",
    },
    "ur": {
        "approval_sent": "تبدیلی کی درخواست منظوری کے لیے بھیج دی گئی ہے۔ جائزے کے بعد لاگو ہو گی۔",
        "approval_pending_subject": "ای آر پی منظوری زیر التوا",
        "approval_pending_intro": "ایک تبدیلی کی درخواست آپ کے جائزے کی منتظر ہے۔",
        "approval_pending_details": "درخواست کی تفصیل",
        "approval_request_id": "درخواست نمبر",
        "request_type": "درخواست کی قسم",
        "entity_type": "ریکارڈ کی قسم",
        "entity_id": "ریکارڈ نمبر",
        "requested_by": "درخواست گزار",
        "branch": "برانچ",
        "summary": "خلاصہ",
        "old_value": "پرانی قیمت",
        "new_value": "نئی قیمت",
        "approval_approved": "درخواست منظور اور لاگو ہو گئی۔",
        "approval_rejected": "درخواست مسترد کر دی گئی۔",
        "approval_not_pending": "صرف زیر التوا درخواستوں پر فیصلہ ہو سکتا ہے۔",
        "approval_request_not_found": "منظوری کی درخواست نہیں ملی۔",
        "approval_apply_failed": "منظور شدہ تبدیلی لاگو نہیں ہو سکی۔",
        "saved_successfully": "کامیابی سے محفوظ ہو گیا۔",
        "deleted_successfully": "کامیابی سے حذف ہو گیا۔",
        "error_required_fields": "ضروری خانے خالی ہیں۔",
        "error_unable_save": "محفوظ نہیں ہو سکا۔ براہ کرم معلومات دیکھ کر دوبارہ کوشش کریں۔",
        "error_duplicate_record": "یہی تفصیلات والا ریکارڈ پہلے سے موجود ہے۔",
        "error_record_in_use": "یہ ریکارڈ دوسری معلومات سے منسلک ہے اور حذف نہیں ہو سکتا۔",
        "error_generic": "کچھ غلط ہو گیا۔ دوبارہ کوشش کریں۔",
        "unit_code_exists": "اس کوڈ والی اکائی پہلے سے موجود ہے۔",
        "error_unit_code_locked": "اکائی کا کوڈ مقفل ہے کیونکہ آئٹمز یا تبادلے اسے استعمال کر رہے ہیں۔",
        "error_invalid_factor": "فیکٹر صفر سے زیادہ ہونا چاہیے۔",
        "error_same_uom": "دونوں اکائیاں مختلف ہونی چاہییں۔",
        "error_item_not_found": "آئٹم نہیں ملا۔",
        "error_only_finished": "اس اسکرین سے صرف تیار مصنوعات شامل کی جا سکتی ہیں۔",
        "translation_unavailable": "ترجمہ دستیاب نہیں",
    },
}

Translator = Callable[[str], str]


def current_language() -> str:
    if not has_request_context():
        return DEFAULT_LANGUAGE
    lang = (request.cookies.get(LANGUAGE_COOKIE) or "").strip().lower()
    return lang if lang in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE


def translate_key(key: str, lang: str | None = None) -> str:
    """Catalog lookup: requested language, then English, then the key itself."""
    lang = lang or current_language()
    catalog = MESSAGES.get(lang) or {}
    if key in catalog:
        return catalog[key]
    return MESSAGES[DEFAULT_LANGUAGE].get(key, key)


def t(key: str) -> str:
    return translate_key(key)


def bilingual(key: str) -> str:
    """English/Urdu pair, used where the reader language is unknown (email)."""
    en = translate_key(key, "en")
    ur = translate_key(key, "ur")
    return en if en == ur else f"{en} / {ur}"
