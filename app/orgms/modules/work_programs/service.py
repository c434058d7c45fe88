from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.orgms.audit import record_event
from app.orgms.constants import DEPARTMENTS, ENTITY_STATUSES, STATUS_DRAFT, STATUS_PENDING
from app.orgms.models import User
from app.orgms.modules.approvals.service import (
    approval_brief,
    discard_for_entity,
    resubmit_on_edit,
    set_entity_status,
    submit_for_approval,
)
from app.orgms.modules.work_programs.models import WorkProgram
from app.orgms.utils import (
    CENT,
    ValidationError,
    decimal_to_json,
    iso,
    like_pattern,
    normalize_text,
    parse_money,
    parse_optional_id,
    set_if_changed,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

_FUND_FIELDS = ("funds", "used_funds")


def validate_work_program_payload(
    s: "Session", payload: dict, *, partial: bool = False, current: WorkProgram | None = None
) -> list[ValidationError]:
    errors: list[ValidationError] = []

    if not partial or "name" in payload:
        if not normalize_text(payload.get("name")):
            errors.append(ValidationError("name", "Name is required."))

    if not partial or "department" in payload:
        dept = normalize_text(payload.get("department")).upper()
        if not dept:
            errors.append(ValidationError("department", "Department is required."))
        elif dept not in DEPARTMENTS:
            errors.append(ValidationError("department", f"Department must be one of: {', '.join(DEPARTMENTS)}"))

    amounts: dict[str, Decimal] = {}
    for field in _FUND_FIELDS:
        if field not in payload:
            continue
        try:
            v = parse_money(payload.get(field))
        except ValueError as e:
            errors.append(ValidationError(field, str(e)))
            continue
        v = v if v is not None else Decimal("0")
        if v < 0:
            errors.append(ValidationError(field, "Must not be negative."))
            continue
        amounts[field] = v

    funds = amounts.get("funds", current.funds if current is not None else Decimal("0"))
    used = amounts.get("used_funds", current.used_funds if current is not None else Decimal("0"))
    if amounts and used > funds:
        errors.append(ValidationError("used_funds", "Used funds cannot exceed the allocated funds."))

    if normalize_text(payload.get("responsible_user_id")):
        uid = parse_optional_id(payload.get("responsible_user_id"))
        if uid is None or s.get(User, uid) is None:
            errors.append(ValidationError("responsible_user_id", "User not found."))

    status = normalize_text(payload.get("status")).upper()
    if status and status not in ENTITY_STATUSES:
        errors.append(ValidationError("status", f"Invalid status. Must be one of: {', '.join(ENTITY_STATUSES)}"))
    elif status and not partial and status not in (STATUS_DRAFT, STATUS_PENDING):
        errors.append(ValidationError("status", "New work programs start as DRAFT or PENDING."))

    return errors


def _money(raw: Any) -> Decimal:
    v = parse_money(raw)
    return v if v is not None else Decimal("0.00")


def _recompute_remaining(wp: WorkProgram, changes: dict[str, dict[str, Any]]) -> None:
    set_if_changed(wp, "remaining_funds", (wp.funds - wp.used_funds).quantize(CENT), changes)


def create_work_program(s: "Session", payload: dict, user: User) -> WorkProgram:
    now = datetime.utcnow()
    wp = WorkProgram(
        name=normalize_text(payload.get("name")),
        department=normalize_text(payload.get("department")).upper(),
        schedule=normalize_text(payload.get("schedule")),
        goal=normalize_text(payload.get("goal")),
        funds=_money(payload.get("funds")),
        used_funds=_money(payload.get("used_funds")),
        responsible_user_id=parse_optional_id(payload.get("responsible_user_id")),
        status=STATUS_DRAFT,
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    wp.remaining_funds = (wp.funds - wp.used_funds).quantize(CENT)
    s.add(wp)
    s.flush()

    record_event(
        s,
        actor=user,
        action="work_program.create",
        entity_type="WorkProgram",
        entity_id=str(wp.id),
        metadata={"name": wp.name, "department": wp.department, "funds": decimal_to_json(wp.funds)},
    )
    if normalize_text(payload.get("status")).upper() == STATUS_PENDING:
        submit_for_approval(s, wp, user)
    return wp


def update_work_program(s: "Session", wp: WorkProgram, payload: dict, user: User, reason: str | None = None) -> WorkProgram:
    changes: dict[str, dict[str, Any]] = {}
    if "name" in payload:
        set_if_changed(wp, "name", normalize_text(payload.get("name")), changes)
    if "department" in payload:
        set_if_changed(wp, "department", normalize_text(payload.get("department")).upper(), changes)
    for field in ("schedule", "goal"):
        if field in payload:
            set_if_changed(wp, field, normalize_text(payload.get(field)), changes)
    for field in _FUND_FIELDS:
        if field in payload:
            set_if_changed(wp, field, _money(payload.get(field)), changes)
    if "responsible_user_id" in payload:
        set_if_changed(wp, "responsible_user_id", parse_optional_id(payload.get("responsible_user_id")), changes)
        if "responsible_user_id" in changes:
            wp.responsible = s.get(User, wp.responsible_user_id) if wp.responsible_user_id else None
    if changes:
        _recompute_remaining(wp, changes)
        wp.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="work_program.edit",
            entity_type="WorkProgram",
            entity_id=str(wp.id),
            reason=reason,
            metadata={"name": wp.name, "changes": changes},
        )
        resubmit_on_edit(s, wp, user, list(changes))

    new_status = normalize_text(payload.get("status")).upper()
    if new_status:
        set_entity_status(s, wp, new_status, user, reason=reason)
    return wp


def delete_work_program(s: "Session", wp: WorkProgram, user: User) -> None:
    discard_for_entity(s, wp, user)
    record_event(
        s,
        actor=user,
        action="work_program.delete",
        entity_type="WorkProgram",
        entity_id=str(wp.id),
        metadata={"name": wp.name, "department": wp.department, "status": wp.status},
    )
    s.delete(wp)


def query_work_programs(
    s: "Session",
    *,
    status: str | None = None,
    department: str | None = None,
    search: str | None = None,
):
    q = s.query(WorkProgram)
    st = normalize_text(status).upper()
    if st and st != "ALL":
        q = q.filter(WorkProgram.status == st)
    dept = normalize_text(department).upper()
    if dept and dept != "ALL":
        q = q.filter(WorkProgram.department == dept)
    term = normalize_text(search)
    if term:
        like = like_pattern(term)
        q = q.filter(or_(WorkProgram.name.ilike(like, escape="\\"), WorkProgram.goal.ilike(like, escape="\\")))
    return q.order_by(WorkProgram.created_at.desc(), WorkProgram.id.desc())


def work_program_to_dict(wp: WorkProgram, *, approval: dict | None = None) -> dict[str, Any]:
    return {
        "id": wp.id,
        "name": wp.name,
        "department": wp.department,
        "schedule": wp.schedule,
        "goal": wp.goal,
        "funds": decimal_to_json(wp.funds),
        "used_funds": decimal_to_json(wp.used_funds),
        "remaining_funds": decimal_to_json(wp.remaining_funds),
        "responsible": (
            {"id": wp.responsible.id, "name": wp.responsible.name, "email": wp.responsible.email}
            if wp.responsible
            else None
        ),
        "status": wp.status,
        "created_by": wp.created_by.email if wp.created_by else None,
        "created_at": iso(wp.created_at),
        "updated_at": iso(wp.updated_at),
        "approval": approval,
    }


def work_program_detail(s: "Session", wp: WorkProgram) -> dict[str, Any]:
    return work_program_to_dict(wp, approval=approval_brief(s, wp))


def public_work_program_to_dict(wp: WorkProgram) -> dict[str, Any]:
    """Published view: no funds breakdown or creator."""
    return {
        "id": wp.id,
        "name": wp.name,
        "department": wp.department,
        "schedule": wp.schedule,
        "goal": wp.goal,
        "responsible": wp.responsible.name if wp.responsible else None,
    }
