from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_

from app.orgms.audit import record_event
from app.orgms.constants import ENTITY_STATUSES, FINANCE_TYPES, STATUS_DRAFT, STATUS_PENDING, STATUS_PUBLISH
from app.orgms.modules.approvals.service import (
    approval_brief,
    discard_for_entity,
    resubmit_on_edit,
    set_entity_status,
    submit_for_approval,
)
from app.orgms.modules.finance.models import Finance, FinanceCategory
from app.orgms.utils import (
    CENT,
    ValidationError,
    decimal_to_json,
    iso,
    like_pattern,
    normalize_text,
    parse_date,
    parse_money,
    parse_optional_id,
    set_if_changed,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.orgms.models import User


# ---------- Categories ----------


def validate_category_payload(s: "Session", payload: dict, *, current: FinanceCategory | None = None) -> list[ValidationError]:
    errors: list[ValidationError] = []
    name = normalize_text(payload.get("name"))
    if not name:
        errors.append(ValidationError("name", "Name is required."))
        return errors
    q = s.query(FinanceCategory).filter(func.lower(FinanceCategory.name) == name.lower())
    if current is not None:
        q = q.filter(FinanceCategory.id != current.id)
    if q.first() is not None:
        errors.append(ValidationError("name", f"Category {name!r} already exists."))
    return errors


def create_category(s: "Session", payload: dict, user: "User") -> FinanceCategory:
    c = FinanceCategory(
        name=normalize_text(payload.get("name")),
        description=normalize_text(payload.get("description")) or None,
    )
    s.add(c)
    s.flush()
    record_event(
        s,
        actor=user,
        action="finance_category.create",
        entity_type="FinanceCategory",
        entity_id=str(c.id),
        metadata={"name": c.name},
    )
    return c


def update_category(s: "Session", c: FinanceCategory, payload: dict, user: "User") -> FinanceCategory:
    changes: dict[str, dict[str, Any]] = {}
    if "name" in payload:
        set_if_changed(c, "name", normalize_text(payload.get("name")), changes)
    if "description" in payload:
        set_if_changed(c, "description", normalize_text(payload.get("description")) or None, changes)
    if changes:
        record_event(
            s,
            actor=user,
            action="finance_category.edit",
            entity_type="FinanceCategory",
            entity_id=str(c.id),
            metadata={"name": c.name, "changes": changes},
        )
    return c


def category_in_use(s: "Session", c: FinanceCategory) -> bool:
    return s.query(Finance.id).filter(Finance.category_id == c.id).first() is not None


def delete_category(s: "Session", c: FinanceCategory, user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="finance_category.delete",
        entity_type="FinanceCategory",
        entity_id=str(c.id),
        metadata={"name": c.name},
    )
    s.delete(c)


def category_to_dict(c: FinanceCategory) -> dict[str, Any]:
    return {"id": c.id, "name": c.name, "description": c.description, "created_at": iso(c.created_at)}


# ---------- Transactions ----------


def validate_finance_payload(s: "Session", payload: dict, *, partial: bool = False) -> list[ValidationError]:
    errors: list[ValidationError] = []

    if not partial or "name" in payload:
        if not normalize_text(payload.get("name")):
            errors.append(ValidationError("name", "Name is required."))

    if not partial or "amount" in payload:
        try:
            amount = parse_money(payload.get("amount"))
        except ValueError as e:
            errors.append(ValidationError("amount", f"Amount: {e}"))
        else:
            if amount is None:
                errors.append(ValidationError("amount", "Amount is required."))
            elif amount <= 0:
                # amount is already rounded to cents: "0.004" -> 0.00
                errors.append(ValidationError("amount", "Amount must be greater than zero."))

    if not partial or "date" in payload:
        try:
            d = parse_date(payload.get("date"))
        except ValueError:
            errors.append(ValidationError("date", "Date must be YYYY-MM-DD."))
        else:
            if d is None:
                errors.append(ValidationError("date", "Date is required."))

    if not partial or "category_id" in payload:
        category_id = parse_optional_id(payload.get("category_id"))
        if category_id is None or s.get(FinanceCategory, category_id) is None:
            errors.append(ValidationError("category_id", "Category not found."))

    if not partial or "type" in payload:
        t = normalize_text(payload.get("type")).upper()
        if t not in FINANCE_TYPES:
            errors.append(ValidationError("type", f"Type must be one of: {', '.join(FINANCE_TYPES)}"))

    status = normalize_text(payload.get("status")).upper()
    if status and status not in ENTITY_STATUSES:
        errors.append(ValidationError("status", f"Invalid status. Must be one of: {', '.join(ENTITY_STATUSES)}"))
    elif status and not partial and status not in (STATUS_DRAFT, STATUS_PENDING):
        errors.append(ValidationError("status", "New transactions start as DRAFT or PENDING."))

    return errors


def _amount(raw: Any) -> Decimal:
    return parse_money(raw)


def create_finance(s: "Session", payload: dict, user: "User") -> Finance:
    now = datetime.utcnow()
    f = Finance(
        name=normalize_text(payload.get("name")),
        amount=_amount(payload.get("amount")),
        description=normalize_text(payload.get("description")) or None,
        date=parse_date(payload.get("date")),
        category_id=parse_optional_id(payload.get("category_id")),
        type=normalize_text(payload.get("type")).upper(),
        proof_url=normalize_text(payload.get("proof_url")) or None,
        status=STATUS_DRAFT,
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(f)
    s.flush()

    record_event(
        s,
        actor=user,
        action="finance.create",
        entity_type="Finance",
        entity_id=str(f.id),
        metadata={"name": f.name, "amount": decimal_to_json(f.amount), "type": f.type},
    )
    if normalize_text(payload.get("status")).upper() == STATUS_PENDING:
        submit_for_approval(s, f, user)
    return f


def update_finance(s: "Session", f: Finance, payload: dict, user: "User", reason: str | None = None) -> Finance:
    changes: dict[str, dict[str, Any]] = {}
    if "name" in payload:
        set_if_changed(f, "name", normalize_text(payload.get("name")), changes)
    if "amount" in payload:
        set_if_changed(f, "amount", _amount(payload.get("amount")), changes)
    if "description" in payload:
        set_if_changed(f, "description", normalize_text(payload.get("description")) or None, changes)
    if "date" in payload:
        set_if_changed(f, "date", parse_date(payload.get("date")), changes)
    if "category_id" in payload:
        set_if_changed(f, "category_id", parse_optional_id(payload.get("category_id")), changes)
        if "category_id" in changes:
            f.category = s.get(FinanceCategory, f.category_id)
    if "type" in payload:
        set_if_changed(f, "type", normalize_text(payload.get("type")).upper(), changes)
    if "proof_url" in payload:
        set_if_changed(f, "proof_url", normalize_text(payload.get("proof_url")) or None, changes)

    if changes:
        f.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="finance.edit",
            entity_type="Finance",
            entity_id=str(f.id),
            reason=reason,
            metadata={"name": f.name, "changes": changes},
        )
        resubmit_on_edit(s, f, user, list(changes))

    new_status = normalize_text(payload.get("status")).upper()
    if new_status:
        set_entity_status(s, f, new_status, user, reason=reason)
    return f


def delete_finance(s: "Session", f: Finance, user: "User") -> None:
    discard_for_entity(s, f, user)
    record_event(
        s,
        actor=user,
        action="finance.delete",
        entity_type="Finance",
        entity_id=str(f.id),
        metadata={"name": f.name, "amount": decimal_to_json(f.amount), "status": f.status},
    )
    s.delete(f)


def query_finances(
    s: "Session",
    *,
    type: str | None = None,
    status: str | None = None,
    category_id: int | None = None,
    search: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
):
    q = s.query(Finance)
    t = normalize_text(type).upper()
    if t and t != "ALL":
        q = q.filter(Finance.type == t)
    st = normalize_text(status).upper()
    if st and st != "ALL":
        q = q.filter(Finance.status == st)
    if category_id:
        q = q.filter(Finance.category_id == category_id)
    term = normalize_text(search)
    if term:
        like = like_pattern(term)
        q = q.filter(or_(Finance.name.ilike(like, escape="\\"), Finance.description.ilike(like, escape="\\")))
    if start_date:
        q = q.filter(Finance.date >= start_date)
    if end_date:
        q = q.filter(Finance.date <= end_date)
    return q.order_by(Finance.date.desc(), Finance.id.desc())


def finance_summary(s: "Session") -> dict[str, str]:
    """Income/expense/balance over published transactions."""
    rows = (
        s.query(Finance.type, func.coalesce(func.sum(Finance.amount), 0))
        .filter(Finance.status == STATUS_PUBLISH)
        .group_by(Finance.type)
        .all()
    )
    totals = {t: Decimal("0") for t in FINANCE_TYPES}
    for t, total in rows:
        totals[t] = Decimal(str(total)).quantize(CENT)
    income = totals["INCOME"].quantize(CENT)
    expense = totals["EXPENSE"].quantize(CENT)
    return {
        "income": decimal_to_json(income),
        "expense": decimal_to_json(expense),
        "balance": decimal_to_json(income - expense),
    }


def finance_to_dict(f: Finance, *, approval: dict | None = None) -> dict[str, Any]:
    return {
        "id": f.id,
        "name": f.name,
        "amount": decimal_to_json(f.amount),
        "description": f.description,
        "date": iso(f.date),
        "category": category_to_dict(f.category) if f.category else None,
        "type": f.type,
        "proof_url": f.proof_url,
        "status": f.status,
        "created_by": f.created_by.email if f.created_by else None,
        "created_at": iso(f.created_at),
        "updated_at": iso(f.updated_at),
        "approval": approval,
    }


def finance_detail(s: "Session", f: Finance) -> dict[str, Any]:
    return finance_to_dict(f, approval=approval_brief(s, f))
