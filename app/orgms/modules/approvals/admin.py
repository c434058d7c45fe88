from __future__ import annotations

from flask import Blueprint, abort, current_app, g, jsonify, request

from app.orgms.db import db_session
from app.orgms.models import User
from app.orgms.modules.approvals.registry import UnknownEntityType, get_entity_spec, load_entity
from app.orgms.modules.approvals.service import (
    ApprovalError,
    ApprovalNotFound,
    ApprovalPermissionError,
    DuplicateApproval,
    InvalidTransition,
    approval_history,
    approval_to_dict,
    bulk_decide,
    create_approval,
    decide,
    decide_by_status,
    delete_approval,
    get_approval,
    list_approvals,
)
from app.orgms.rbac import require_permission, user_has_permission
from app.orgms.utils import parse_id_list, parse_int, parse_pagination, request_payload

bp = Blueprint("approvals", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _approval_payload(s, approval) -> dict:
    entity = load_entity(s, approval.entity_type, approval.entity_id)
    return approval_to_dict(approval, entity=entity)


# ---------- Workflow errors (registered app-wide; record blueprints raise them too) ----------
@bp.app_errorhandler(ApprovalError)
def _approval_error(e: ApprovalError):
    return jsonify({"error": str(e)}), 400


@bp.app_errorhandler(UnknownEntityType)
def _unknown_entity_type(e: UnknownEntityType):
    return jsonify({"error": str(e)}), 400


@bp.app_errorhandler(InvalidTransition)
def _invalid_transition(e: InvalidTransition):
    return jsonify({"error": str(e)}), 409


@bp.app_errorhandler(DuplicateApproval)
def _duplicate_approval(e: DuplicateApproval):
    return jsonify({"error": str(e)}), 409


@bp.app_errorhandler(ApprovalNotFound)
def _approval_not_found(e: ApprovalNotFound):
    return jsonify({"error": str(e)}), 404


@bp.app_errorhandler(ApprovalPermissionError)
def _approval_forbidden(e: ApprovalPermissionError):
    current_app.logger.warning(
        "Approval decision forbidden: %s (user=%s request_id=%s)",
        e,
        getattr(getattr(g, "current_user", None), "email", None),
        getattr(g, "request_id", None),
    )
    return jsonify({"error": str(e)}), 403


# ---------- Queue ----------
@bp.get("/approvals")
@require_permission("approvals.view")
def approvals_list():
    s = db_session()
    page, limit = parse_pagination(request.args)
    pg, rows = list_approvals(
        s,
        status=request.args.get("status"),
        entity_type=request.args.get("entity_type"),
        page=page,
        limit=limit,
    )
    return jsonify({"data": rows, "pagination": pg.meta()})


@bp.post("/approvals")
@require_permission("approvals.view")
def approvals_create():
    s = db_session()
    u = _current_user()
    payload = request_payload()

    spec = get_entity_spec(payload.get("entity_type"))
    try:
        entity_id = parse_int(payload.get("entity_id"))
    except ValueError:
        entity_id = None
    if not entity_id:
        return jsonify({"errors": [{"field": "entity_id", "message": "Entity id is required."}]}), 400

    # Submitting a record for approval is an edit of that record.
    edit_permission = f"{spec.resource}.edit"
    if not user_has_permission(u, edit_permission):
        g.missing_permission = edit_permission
        abort(403)

    approval = create_approval(s, spec.entity_type, entity_id, u, note=payload.get("note"))
    s.commit()
    return jsonify({"approval": _approval_payload(s, approval)}), 201


@bp.post("/approvals/bulk")
@require_permission("approvals.view")
def approvals_bulk():
    s = db_session()
    u = _current_user()
    payload = request_payload()

    ids = parse_id_list(payload.get("ids"))
    result = bulk_decide(s, ids, payload.get("action") or "", u, note=payload.get("note"))
    s.commit()
    return jsonify(
        {
            "updated": [_approval_payload(s, a) for a in result["updated"]],
            "failed": result["failed"],
        }
    )


# ---------- Detail ----------
@bp.get("/approvals/<int:approval_id>")
@require_permission("approvals.view")
def approval_detail(approval_id: int):
    s = db_session()
    approval = get_approval(s, approval_id)
    return jsonify({"approval": _approval_payload(s, approval)})


@bp.get("/approvals/<int:approval_id>/history")
@require_permission("approvals.view")
def approval_history_view(approval_id: int):
    s = db_session()
    approval = get_approval(s, approval_id)
    return jsonify({"approval_id": approval.id, "events": approval_history(s, approval)})


@bp.put("/approvals/<int:approval_id>")
@require_permission("approvals.view")
def approval_update(approval_id: int):
    s = db_session()
    u = _current_user()
    payload = request_payload()
    approval = get_approval(s, approval_id)
    decide_by_status(s, approval, payload.get("status"), u, note=payload.get("note"))
    s.commit()
    return jsonify({"approval": _approval_payload(s, approval)})


@bp.post("/approvals/<int:approval_id>/<action>")
@require_permission("approvals.view")
def approval_decide(approval_id: int, action: str):
    s = db_session()
    u = _current_user()
    payload = request_payload()
    approval = get_approval(s, approval_id)
    decide(s, approval, action, u, note=payload.get("note"))
    s.commit()
    return jsonify({"approval": _approval_payload(s, approval)})


@bp.delete("/approvals/<int:approval_id>")
@require_permission("approvals.delete")
def approval_delete(approval_id: int):
    s = db_session()
    u = _current_user()
    approval = get_approval(s, approval_id)
    delete_approval(s, approval, u)
    s.commit()
    return jsonify({"ok": True, "id": approval_id})
