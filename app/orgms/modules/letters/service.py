from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.orgms.audit import record_event
from app.orgms.constants import (
    ENTITY_STATUSES,
    LETTER_CLASSIFICATIONS,
    LETTER_PRIORITIES,
    LETTER_TYPES,
    STATUS_DRAFT,
    STATUS_PENDING,
)
from app.orgms.modules.approvals.service import (
    approval_brief,
    discard_for_entity,
    resubmit_on_edit,
    set_entity_status,
    submit_for_approval,
)
from app.orgms.modules.letters.models import Letter
from app.orgms.utils import ValidationError, iso, like_pattern, normalize_text, parse_date, set_if_changed

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.orgms.models import User


_REQUIRED_TEXT = ("regarding", "origin", "destination")
_CHOICES = (
    ("type", LETTER_TYPES),
    ("priority", LETTER_PRIORITIES),
    ("classification", LETTER_CLASSIFICATIONS),
)


def validate_letter_payload(payload: dict, *, partial: bool = False) -> list[ValidationError]:
    errors: list[ValidationError] = []

    for field in _REQUIRED_TEXT:
        if (not partial or field in payload) and not normalize_text(payload.get(field)):
            errors.append(ValidationError(field, f"{field.capitalize()} is required."))

    if not partial or "date" in payload:
        try:
            d = parse_date(payload.get("date"))
        except ValueError:
            errors.append(ValidationError("date", "Date must be YYYY-MM-DD."))
        else:
            if d is None:
                errors.append(ValidationError("date", "Date is required."))

    for field, allowed in _CHOICES:
        value = normalize_text(payload.get(field)).upper()
        # classification has a default; type and priority are required on create
        required = field != "classification" and not partial
        if not value:
            if required:
                errors.append(ValidationError(field, f"{field.capitalize()} is required."))
            continue
        if value not in allowed:
            errors.append(ValidationError(field, f"Invalid {field}. Must be one of: {', '.join(allowed)}"))

    status = normalize_text(payload.get("status")).upper()
    if status and status not in ENTITY_STATUSES:
        errors.append(ValidationError("status", f"Invalid status. Must be one of: {', '.join(ENTITY_STATUSES)}"))
    elif status and not partial and status not in (STATUS_DRAFT, STATUS_PENDING):
        errors.append(ValidationError("status", "New letters start as DRAFT or PENDING."))

    return errors


def create_letter(s: "Session", payload: dict, user: "User") -> Letter:
    now = datetime.utcnow()
    letter = Letter(
        number=normalize_text(payload.get("number")) or None,
        regarding=normalize_text(payload.get("regarding")),
        origin=normalize_text(payload.get("origin")),
        destination=normalize_text(payload.get("destination")),
        date=parse_date(payload.get("date")),
        type=normalize_text(payload.get("type")).upper(),
        priority=normalize_text(payload.get("priority")).upper(),
        classification=normalize_text(payload.get("classification")).upper() or "GENERAL",
        body=normalize_text(payload.get("body")) or None,
        file_url=normalize_text(payload.get("file_url")) or None,
        notes=normalize_text(payload.get("notes")) or None,
        status=STATUS_DRAFT,
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(letter)
    s.flush()

    record_event(
        s,
        actor=user,
        action="letter.create",
        entity_type="Letter",
        entity_id=str(letter.id),
        metadata={"regarding": letter.regarding, "type": letter.type, "number": letter.number},
    )
    if normalize_text(payload.get("status")).upper() == STATUS_PENDING:
        submit_for_approval(s, letter, user)
    return letter


def update_letter(s: "Session", letter: Letter, payload: dict, user: "User", reason: str | None = None) -> Letter:
    changes: dict[str, dict[str, Any]] = {}
    for field in ("number", "body", "file_url", "notes"):
        if field in payload:
            set_if_changed(letter, field, normalize_text(payload.get(field)) or None, changes)
    for field in _REQUIRED_TEXT:
        if field in payload:
            set_if_changed(letter, field, normalize_text(payload.get(field)), changes)
    for field, _allowed in _CHOICES:
        if normalize_text(payload.get(field)):
            set_if_changed(letter, field, normalize_text(payload.get(field)).upper(), changes)
    if "date" in payload:
        set_if_changed(letter, "date", parse_date(payload.get("date")), changes)

    if changes:
        letter.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="letter.edit",
            entity_type="Letter",
            entity_id=str(letter.id),
            reason=reason,
            metadata={"regarding": letter.regarding, "changes": changes},
        )
        resubmit_on_edit(s, letter, user, list(changes))

    new_status = normalize_text(payload.get("status")).upper()
    if new_status:
        set_entity_status(s, letter, new_status, user, reason=reason)
    return letter


def delete_letter(s: "Session", letter: Letter, user: "User") -> None:
    discard_for_entity(s, letter, user)
    record_event(
        s,
        actor=user,
        action="letter.delete",
        entity_type="Letter",
        entity_id=str(letter.id),
        metadata={"regarding": letter.regarding, "number": letter.number, "status": letter.status},
    )
    s.delete(letter)


def query_letters(
    s: "Session",
    *,
    type: str | None = None,
    priority: str | None = None,
    status: str | None = None,
    search: str | None = None,
):
    q = s.query(Letter)
    for column, value in ((Letter.type, type), (Letter.priority, priority), (Letter.status, status)):
        v = normalize_text(value).upper()
        if v and v != "ALL":
            q = q.filter(column == v)
    term = normalize_text(search)
    if term:
        like = like_pattern(term)
        q = q.filter(
            or_(
                Letter.regarding.ilike(like, escape="\\"),
                Letter.number.ilike(like, escape="\\"),
                Letter.origin.ilike(like, escape="\\"),
                Letter.destination.ilike(like, escape="\\"),
            )
        )
    return q.order_by(Letter.date.desc(), Letter.id.desc())


def letter_to_dict(letter: Letter, *, approval: dict | None = None) -> dict[str, Any]:
    return {
        "id": letter.id,
        "number": letter.number,
        "regarding": letter.regarding,
        "origin": letter.origin,
        "destination": letter.destination,
        "date": iso(letter.date),
        "type": letter.type,
        "priority": letter.priority,
        "classification": letter.classification,
        "body": letter.body,
        "file_url": letter.file_url,
        "notes": letter.notes,
        "status": letter.status,
        "approved_by_user_id": letter.approved_by_user_id,
        "created_by": letter.created_by.email if letter.created_by else None,
        "created_at": iso(letter.created_at),
        "updated_at": iso(letter.updated_at),
        "approval": approval,
    }


def letter_detail(s: "Session", letter: Letter) -> dict[str, Any]:
    return letter_to_dict(letter, approval=approval_brief(s, letter))
