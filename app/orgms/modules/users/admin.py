from __future__ import annotations

from flask import Blueprint, abort, g, jsonify, request

from app.orgms.db import db_session
from app.orgms.models import Role, User
from app.orgms.modules.users.service import (
    account_to_dict,
    create_user,
    deactivate_user,
    query_users,
    role_to_dict,
    update_user,
    validate_user_payload,
)
from app.orgms.rbac import require_permission
from app.orgms.utils import ValidationError, paginate, parse_pagination, request_payload, validation_response

bp = Blueprint("users", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_user(s, user_id: int) -> User:
    user = s.get(User, user_id)
    if not user:
        abort(404)
    return user


@bp.get("/users")
@require_permission("users.view")
def users_list():
    s = db_session()
    page, limit = parse_pagination(request.args)
    q = query_users(
        s,
        search=request.args.get("search") or request.args.get("q"),
        role=request.args.get("role"),
        department=request.args.get("department"),
        is_active=request.args.get("is_active"),
    )
    pg = paginate(q, page, limit)
    return jsonify({"data": [account_to_dict(u) for u in pg.items], "pagination": pg.meta()})


@bp.post("/users")
@require_permission("users.create")
def users_create():
    s = db_session()
    u = _current_user()
    payload = request_payload()
    errors = validate_user_payload(s, payload)
    if errors:
        return validation_response(errors)
    user = create_user(s, payload, u)
    s.commit()
    return jsonify({"user": account_to_dict(user)}), 201


@bp.get("/users/<int:user_id>")
@require_permission("users.view")
def user_detail(user_id: int):
    s = db_session()
    return jsonify({"user": account_to_dict(_get_user(s, user_id))})


@bp.put("/users/<int:user_id>")
@require_permission("users.edit")
def user_update(user_id: int):
    s = db_session()
    u = _current_user()
    user = _get_user(s, user_id)
    payload = request_payload()
    errors = validate_user_payload(s, payload, partial=True, current=user, actor=u)
    if errors:
        return validation_response(errors)
    update_user(s, user, payload, u)
    s.commit()
    return jsonify({"user": account_to_dict(user)})


@bp.delete("/users/<int:user_id>")
@require_permission("users.delete")
def user_deactivate(user_id: int):
    s = db_session()
    u = _current_user()
    user = _get_user(s, user_id)
    if user.id == u.id:
        return validation_response([ValidationError("id", "You cannot deactivate your own account.")])
    deactivate_user(s, user, u)
    s.commit()
    return jsonify({"user": account_to_dict(user)})


@bp.get("/roles")
@require_permission("users.view")
def roles_list():
    s = db_session()
    roles = s.query(Role).order_by(Role.key.asc()).all()
    return jsonify({"data": [role_to_dict(r) for r in roles]})
