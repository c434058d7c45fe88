from __future__ import annotations

from flask import Blueprint, abort, g, jsonify, request

from app.orgms.db import db_session
from app.orgms.models import User
from app.orgms.modules.approvals.service import set_entity_status, submit_for_approval
from app.orgms.modules.letters.models import Letter
from app.orgms.modules.letters.service import (
    create_letter,
    delete_letter,
    letter_detail,
    letter_to_dict,
    query_letters,
    update_letter,
    validate_letter_payload,
)
from app.orgms.rbac import require_permission
from app.orgms.utils import paginate, parse_id_list, parse_pagination, request_payload, validation_response

bp = Blueprint("letters", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_letter(s, letter_id: int) -> Letter:
    letter = s.get(Letter, letter_id)
    if not letter:
        abort(404)
    return letter


def _reason(payload: dict) -> str | None:
    return (payload.get("reason") or "").strip() or None


@bp.get("/letters")
@require_permission("letters.view")
def letters_list():
    s = db_session()
    page, limit = parse_pagination(request.args)
    q = query_letters(
        s,
        type=request.args.get("type"),
        priority=request.args.get("priority"),
        status=request.args.get("status"),
        search=request.args.get("search") or request.args.get("q"),
    )
    pg = paginate(q, page, limit)
    return jsonify({"data": [letter_to_dict(l) for l in pg.items], "pagination": pg.meta()})


@bp.post("/letters")
@require_permission("letters.create")
def letters_create():
    s = db_session()
    u = _current_user()
    payload = request_payload()
    errors = validate_letter_payload(payload)
    if errors:
        return validation_response(errors)
    letter = create_letter(s, payload, u)
    s.commit()
    return jsonify({"letter": letter_detail(s, letter)}), 201


@bp.post("/letters/bulk-delete")
@require_permission("letters.delete")
def letters_bulk_delete():
    s = db_session()
    u = _current_user()
    ids = parse_id_list(request_payload().get("ids"))
    if not ids:
        return jsonify({"error": "No valid letter ids provided."}), 400
    deleted: list[int] = []
    missing: list[int] = []
    for letter_id in ids:
        letter = s.get(Letter, letter_id)
        if letter is None:
            missing.append(letter_id)
            continue
        delete_letter(s, letter, u)
        deleted.append(letter_id)
    s.commit()
    return jsonify({"deleted": deleted, "missing": missing})


@bp.get("/letters/<int:letter_id>")
@require_permission("letters.view")
def letter_detail_view(letter_id: int):
    s = db_session()
    letter = _get_letter(s, letter_id)
    return jsonify({"letter": letter_detail(s, letter)})


@bp.put("/letters/<int:letter_id>")
@require_permission("letters.edit")
def letter_update(letter_id: int):
    s = db_session()
    u = _current_user()
    letter = _get_letter(s, letter_id)
    payload = request_payload()
    errors = validate_letter_payload(payload, partial=True)
    if errors:
        return validation_response(errors)
    update_letter(s, letter, payload, u, reason=_reason(payload))
    s.commit()
    return jsonify({"letter": letter_detail(s, letter)})


@bp.delete("/letters/<int:letter_id>")
@require_permission("letters.delete")
def letter_delete(letter_id: int):
    s = db_session()
    u = _current_user()
    letter = _get_letter(s, letter_id)
    delete_letter(s, letter, u)
    s.commit()
    return jsonify({"ok": True, "id": letter_id})


@bp.post("/letters/<int:letter_id>/submit")
@require_permission("letters.edit")
def letter_submit(letter_id: int):
    s = db_session()
    u = _current_user()
    letter = _get_letter(s, letter_id)
    submit_for_approval(s, letter, u, note=request_payload().get("note"))
    s.commit()
    return jsonify({"letter": letter_detail(s, letter)})


@bp.post("/letters/<int:letter_id>/status")
@require_permission("letters.edit")
def letter_status(letter_id: int):
    s = db_session()
    u = _current_user()
    letter = _get_letter(s, letter_id)
    payload = request_payload()
    set_entity_status(s, letter, payload.get("status"), u, reason=_reason(payload))
    s.commit()
    return jsonify({"letter": letter_detail(s, letter)})
