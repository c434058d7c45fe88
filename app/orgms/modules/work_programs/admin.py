from __future__ import annotations

from flask import Blueprint, abort, g, jsonify, request

from app.orgms.db import db_session
from app.orgms.models import User
from app.orgms.modules.approvals.service import set_entity_status, submit_for_approval
from app.orgms.modules.work_programs.models import WorkProgram
from app.orgms.modules.work_programs.service import (
    create_work_program,
    delete_work_program,
    query_work_programs,
    update_work_program,
    validate_work_program_payload,
    work_program_detail,
    work_program_to_dict,
)
from app.orgms.rbac import require_permission
from app.orgms.utils import paginate, parse_id_list, parse_pagination, request_payload, validation_response

bp = Blueprint("work_programs", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_work_program(s, work_program_id: int) -> WorkProgram:
    wp = s.get(WorkProgram, work_program_id)
    if not wp:
        abort(404)
    return wp


def _reason(payload: dict) -> str | None:
    return (payload.get("reason") or "").strip() or None


@bp.get("/work-programs")
@require_permission("works.view")
def work_programs_list():
    s = db_session()
    page, limit = parse_pagination(request.args)
    q = query_work_programs(
        s,
        status=request.args.get("status"),
        department=request.args.get("department"),
        search=request.args.get("search") or request.args.get("q"),
    )
    pg = paginate(q, page, limit)
    return jsonify({"data": [work_program_to_dict(wp) for wp in pg.items], "pagination": pg.meta()})


@bp.post("/work-programs")
@require_permission("works.create")
def work_programs_create():
    s = db_session()
    u = _current_user()
    payload = request_payload()
    errors = validate_work_program_payload(s, payload)
    if errors:
        return validation_response(errors)
    wp = create_work_program(s, payload, u)
    s.commit()
    return jsonify({"work_program": work_program_detail(s, wp)}), 201


@bp.post("/work-programs/bulk-delete")
@require_permission("works.delete")
def work_programs_bulk_delete():
    s = db_session()
    u = _current_user()
    ids = parse_id_list(request_payload().get("ids"))
    if not ids:
        return jsonify({"error": "No valid work program ids provided."}), 400
    deleted: list[int] = []
    missing: list[int] = []
    for work_program_id in ids:
        wp = s.get(WorkProgram, work_program_id)
        if wp is None:
            missing.append(work_program_id)
            continue
        delete_work_program(s, wp, u)
        deleted.append(work_program_id)
    s.commit()
    return jsonify({"deleted": deleted, "missing": missing})


@bp.get("/work-programs/<int:work_program_id>")
@require_permission("works.view")
def work_program_detail_view(work_program_id: int):
    s = db_session()
    wp = _get_work_program(s, work_program_id)
    return jsonify({"work_program": work_program_detail(s, wp)})


@bp.put("/work-programs/<int:work_program_id>")
@require_permission("works.edit")
def work_program_update(work_program_id: int):
    s = db_session()
    u = _current_user()
    wp = _get_work_program(s, work_program_id)
    payload = request_payload()
    errors = validate_work_program_payload(s, payload, partial=True, current=wp)
    if errors:
        return validation_response(errors)
    update_work_program(s, wp, payload, u, reason=_reason(payload))
    s.commit()
    return jsonify({"work_program": work_program_detail(s, wp)})


@bp.delete("/work-programs/<int:work_program_id>")
@require_permission("works.delete")
def work_program_delete(work_program_id: int):
    s = db_session()
    u = _current_user()
    wp = _get_work_program(s, work_program_id)
    delete_work_program(s, wp, u)
    s.commit()
    return jsonify({"ok": True, "id": work_program_id})


@bp.post("/work-programs/<int:work_program_id>/submit")
@require_permission("works.edit")
def work_program_submit(work_program_id: int):
    s = db_session()
    u = _current_user()
    wp = _get_work_program(s, work_program_id)
    submit_for_approval(s, wp, u, note=request_payload().get("note"))
    s.commit()
    return jsonify({"work_program": work_program_detail(s, wp)})


@bp.post("/work-programs/<int:work_program_id>/status")
@require_permission("works.edit")
def work_program_status(work_program_id: int):
    s = db_session()
    u = _current_user()
    wp = _get_work_program(s, work_program_id)
    payload = request_payload()
    set_entity_status(s, wp, payload.get("status"), u, reason=_reason(payload))
    s.commit()
    return jsonify({"work_program": work_program_detail(s, wp)})
