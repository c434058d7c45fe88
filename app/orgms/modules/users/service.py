from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_
from werkzeug.security import generate_password_hash

from app.orgms.audit import record_event
from app.orgms.constants import DEPARTMENTS
from app.orgms.models import Role, User
from app.orgms.utils import ValidationError, iso, like_pattern, normalize_text, set_if_changed

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PASSWORD_MIN_LENGTH = 8


def _role_keys(raw: Any) -> list[str] | None:
    """["bph", " DPO "] -> ["bph", "dpo"]; None when the payload is not a list."""
    if not isinstance(raw, (list, tuple)):
        return None
    keys: list[str] = []
    for item in raw:
        k = normalize_text(item).lower()
        if k and k not in keys:
            keys.append(k)
    return keys


def _flag(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return normalize_text(raw).lower() in ("1", "true", "yes", "on")


def validate_user_payload(
    s: "Session",
    payload: dict,
    *,
    partial: bool = False,
    current: User | None = None,
    actor: User | None = None,
) -> list[ValidationError]:
    errors: list[ValidationError] = []

    if not partial or "email" in payload:
        email = normalize_text(payload.get("email")).lower()
        if not email:
            errors.append(ValidationError("email", "Email is required."))
        elif not _EMAIL_RE.match(email):
            errors.append(ValidationError("email", "Invalid email format."))
        else:
            q = s.query(User).filter(func.lower(User.email) == email)
            if current is not None:
                q = q.filter(User.id != current.id)
            if q.first() is not None:
                errors.append(ValidationError("email", "An account with this email already exists."))

    if not partial or "name" in payload:
        if not normalize_text(payload.get("name")):
            errors.append(ValidationError("name", "Name is required."))

    if not partial or "password" in payload:
        password = payload.get("password") or ""
        if not password:
            errors.append(ValidationError("password", "Password is required."))
        elif len(password) < PASSWORD_MIN_LENGTH:
            errors.append(ValidationError("password", f"Password must be at least {PASSWORD_MIN_LENGTH} characters."))

    dept = normalize_text(payload.get("department")).upper()
    if dept and dept not in DEPARTMENTS:
        errors.append(ValidationError("department", f"Department must be one of: {', '.join(DEPARTMENTS)}"))

    if "roles" in payload:
        keys = _role_keys(payload.get("roles"))
        if keys is None:
            errors.append(ValidationError("roles", "Roles must be a list of role keys."))
        else:
            known = {k for (k,) in s.query(Role.key).filter(Role.key.in_(keys))} if keys else set()
            unknown = [k for k in keys if k not in known]
            if unknown:
                errors.append(ValidationError("roles", f"Unknown role(s): {', '.join(unknown)}"))

    if current is not None and actor is not None and current.id == actor.id:
        # own account: profile fields only
        if "roles" in payload or ("is_active" in payload and not _flag(payload.get("is_active"))):
            errors.append(ValidationError("roles", "You cannot change your own roles or deactivate your own account."))

    return errors


def _roles_for(s: "Session", keys: list[str]) -> list[Role]:
    if not keys:
        return []
    return s.query(Role).filter(Role.key.in_(keys)).order_by(Role.key.asc()).all()


def create_user(s: "Session", payload: dict, actor: User) -> User:
    user = User(
        email=normalize_text(payload.get("email")).lower(),
        name=normalize_text(payload.get("name")),
        department=normalize_text(payload.get("department")).upper() or None,
        password_hash=generate_password_hash(payload.get("password") or ""),
        is_active=_flag(payload.get("is_active")) if "is_active" in payload else True,
    )
    user.roles = _roles_for(s, _role_keys(payload.get("roles")) or [])
    s.add(user)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "department": user.department, "roles": [r.key for r in user.roles]},
    )
    return user


def update_user(s: "Session", user: User, payload: dict, actor: User) -> User:
    changes: dict[str, dict[str, Any]] = {}
    if "email" in payload:
        set_if_changed(user, "email", normalize_text(payload.get("email")).lower(), changes)
    if "name" in payload:
        set_if_changed(user, "name", normalize_text(payload.get("name")), changes)
    if "department" in payload:
        set_if_changed(user, "department", normalize_text(payload.get("department")).upper() or None, changes)
    if "is_active" in payload:
        set_if_changed(user, "is_active", _flag(payload.get("is_active")), changes)
    if "roles" in payload:
        before = sorted(r.key for r in user.roles)
        roles = _roles_for(s, _role_keys(payload.get("roles")) or [])
        after = [r.key for r in roles]
        if before != after:
            user.roles = roles
            changes["roles"] = {"old": before, "new": after}
    if payload.get("password"):
        user.password_hash = generate_password_hash(payload["password"])
        changes["password"] = {"old": None, "new": "(reset)"}

    if changes:
        record_event(
            s,
            actor=actor,
            action="user.update",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"email": user.email, "changes": changes},
        )
    return user


def deactivate_user(s: "Session", user: User, actor: User) -> User:
    """Soft delete: the account keeps its audit history but can no longer log in."""
    if user.is_active:
        user.is_active = False
        record_event(
            s,
            actor=actor,
            action="user.deactivate",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"email": user.email},
        )
    return user


def query_users(
    s: "Session",
    *,
    search: str | None = None,
    role: str | None = None,
    department: str | None = None,
    is_active: str | None = None,
):
    q = s.query(User)
    term = normalize_text(search)
    if term:
        like = like_pattern(term)
        q = q.filter(or_(User.name.ilike(like, escape="\\"), User.email.ilike(like, escape="\\")))
    role_key = normalize_text(role).lower()
    if role_key and role_key != "all":
        q = q.filter(User.roles.any(Role.key == role_key))
    dept = normalize_text(department).upper()
    if dept and dept != "ALL":
        q = q.filter(User.department == dept)
    active = normalize_text(is_active).lower()
    if active in ("true", "false"):
        q = q.filter(User.is_active == (active == "true"))
    return q.order_by(User.created_at.desc(), User.id.desc())


def account_to_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "department": user.department,
        "roles": sorted(r.key for r in user.roles),
        "is_active": user.is_active,
        "created_at": iso(user.created_at),
    }


def role_to_dict(role: Role) -> dict[str, Any]:
    return {
        "id": role.id,
        "key": role.key,
        "name": role.name,
        "permissions": sorted(p.key for p in role.permissions),
    }
