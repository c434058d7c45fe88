from __future__ import annotations

from flask import Blueprint, abort, g, jsonify, request

from app.orgms.db import db_session
from app.orgms.models import User
from app.orgms.modules.approvals.service import set_entity_status, submit_for_approval
from app.orgms.modules.finance.models import Finance, FinanceCategory
from app.orgms.modules.finance.service import (
    category_in_use,
    category_to_dict,
    create_category,
    create_finance,
    delete_category,
    delete_finance,
    finance_detail,
    finance_summary,
    finance_to_dict,
    query_finances,
    update_category,
    update_finance,
    validate_category_payload,
    validate_finance_payload,
)
from app.orgms.rbac import require_permission
from app.orgms.utils import (
    ValidationError,
    paginate,
    parse_date,
    parse_id_list,
    parse_optional_id,
    parse_pagination,
    request_payload,
    validation_response,
)

bp = Blueprint("finance", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_finance(s, finance_id: int) -> Finance:
    f = s.get(Finance, finance_id)
    if not f:
        abort(404)
    return f


def _reason(payload: dict) -> str | None:
    return (payload.get("reason") or "").strip() or None


# ---------- Categories ----------
@bp.get("/finance-categories")
@require_permission("transaction_categories.view")
def categories_list():
    s = db_session()
    categories = s.query(FinanceCategory).order_by(FinanceCategory.name.asc()).all()
    return jsonify({"data": [category_to_dict(c) for c in categories]})


@bp.post("/finance-categories")
@require_permission("transaction_categories.create")
def categories_create():
    s = db_session()
    u = _current_user()
    payload = request_payload()
    errors = validate_category_payload(s, payload)
    if errors:
        return validation_response(errors)
    c = create_category(s, payload, u)
    s.commit()
    return jsonify({"category": category_to_dict(c)}), 201


@bp.put("/finance-categories/<int:category_id>")
@require_permission("transaction_categories.edit")
def categories_update(category_id: int):
    s = db_session()
    u = _current_user()
    c = s.get(FinanceCategory, category_id)
    if not c:
        abort(404)
    payload = request_payload()
    errors = validate_category_payload(s, {"name": c.name, **payload}, current=c)
    if errors:
        return validation_response(errors)
    update_category(s, c, payload, u)
    s.commit()
    return jsonify({"category": category_to_dict(c)})


@bp.delete("/finance-categories/<int:category_id>")
@require_permission("transaction_categories.delete")
def categories_delete(category_id: int):
    s = db_session()
    u = _current_user()
    c = s.get(FinanceCategory, category_id)
    if not c:
        abort(404)
    if category_in_use(s, c):
        return jsonify({"error": "Category is in use by one or more transactions."}), 409
    delete_category(s, c, u)
    s.commit()
    return jsonify({"ok": True, "id": category_id})


# ---------- Transactions ----------
@bp.get("/finance")
@require_permission("transactions.view")
def finance_list():
    s = db_session()
    page, limit = parse_pagination(request.args)
    try:
        start_date = parse_date(request.args.get("start_date"))
        end_date = parse_date(request.args.get("end_date"))
    except ValueError:
        return validation_response([ValidationError("date", "Dates must be YYYY-MM-DD.")])
    q = query_finances(
        s,
        type=request.args.get("type"),
        status=request.args.get("status"),
        category_id=parse_optional_id(request.args.get("category_id")),
        search=request.args.get("search") or request.args.get("q"),
        start_date=start_date,
        end_date=end_date,
    )
    pg = paginate(q, page, limit)
    return jsonify({"data": [finance_to_dict(f) for f in pg.items], "pagination": pg.meta()})


@bp.get("/finance/summary")
@require_permission("transactions.view")
def finance_summary_view():
    return jsonify(finance_summary(db_session()))


@bp.post("/finance")
@require_permission("transactions.create")
def finance_create():
    s = db_session()
    u = _current_user()
    payload = request_payload()
    errors = validate_finance_payload(s, payload)
    if errors:
        return validation_response(errors)
    f = create_finance(s, payload, u)
    s.commit()
    return jsonify({"transaction": finance_detail(s, f)}), 201


@bp.post("/finance/bulk-delete")
@require_permission("transactions.delete")
def finance_bulk_delete():
    s = db_session()
    u = _current_user()
    ids = parse_id_list(request_payload().get("ids"))
    if not ids:
        return jsonify({"error": "No valid transaction ids provided."}), 400
    deleted: list[int] = []
    missing: list[int] = []
    for finance_id in ids:
        f = s.get(Finance, finance_id)
        if f is None:
            missing.append(finance_id)
            continue
        delete_finance(s, f, u)
        deleted.append(finance_id)
    s.commit()
    return jsonify({"deleted": deleted, "missing": missing})


@bp.get("/finance/<int:finance_id>")
@require_permission("transactions.view")
def finance_detail_view(finance_id: int):
    s = db_session()
    f = _get_finance(s, finance_id)
    return jsonify({"transaction": finance_detail(s, f)})


@bp.put("/finance/<int:finance_id>")
@require_permission("transactions.edit")
def finance_update(finance_id: int):
    s = db_session()
    u = _current_user()
    f = _get_finance(s, finance_id)
    payload = request_payload()
    errors = validate_finance_payload(s, payload, partial=True)
    if errors:
        return validation_response(errors)
    update_finance(s, f, payload, u, reason=_reason(payload))
    s.commit()
    return jsonify({"transaction": finance_detail(s, f)})


@bp.delete("/finance/<int:finance_id>")
@require_permission("transactions.delete")
def finance_delete(finance_id: int):
    s = db_session()
    u = _current_user()
    f = _get_finance(s, finance_id)
    delete_finance(s, f, u)
    s.commit()
    return jsonify({"ok": True, "id": finance_id})


@bp.post("/finance/<int:finance_id>/submit")
@require_permission("transactions.edit")
def finance_submit(finance_id: int):
    s = db_session()
    u = _current_user()
    f = _get_finance(s, finance_id)
    submit_for_approval(s, f, u, note=request_payload().get("note"))
    s.commit()
    return jsonify({"transaction": finance_detail(s, f)})


@bp.post("/finance/<int:finance_id>/status")
@require_permission("transactions.edit")
def finance_status(finance_id: int):
    s = db_session()
    u = _current_user()
    f = _get_finance(s, finance_id)
    payload = request_payload()
    set_entity_status(s, f, payload.get("status"), u, reason=_reason(payload))
    s.commit()
    return jsonify({"transaction": finance_detail(s, f)})
