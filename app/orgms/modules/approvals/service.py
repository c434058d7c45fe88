from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.orgms.audit import event_to_dict, record_event
from app.orgms.constants import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    APPROVAL_RETURNED,
    APPROVAL_REVISION,
    APPROVAL_STATUSES,
    ENTITY_STATUSES,
    STATUS_ARCHIVE,
    STATUS_DRAFT,
    STATUS_PENDING,
    STATUS_PRIVATE,
    STATUS_PUBLISH,
)
from app.orgms.models import AuditEvent, User
from app.orgms.modules.approvals.models import Approval
from app.orgms.modules.approvals.registry import (
    ENTITIES,
    ApprovableEntity,
    UnknownEntityType,
    get_entity_spec,
    load_entities,
    load_entity,
    spec_for_instance,
)
from app.orgms.rbac import user_has_permission
from app.orgms.utils import Page, iso, paginate

logger = logging.getLogger(__name__)

NOTE_MAX_LENGTH = 512


class ApprovalError(ValueError):
    """Bad request against the workflow (unknown action/status, empty bulk list)."""


class InvalidTransition(ApprovalError):
    """The requested transition is not allowed from the current state."""


class DuplicateApproval(ApprovalError):
    pass


class ApprovalNotFound(LookupError):
    pass


class ApprovalPermissionError(PermissionError):
    pass


@dataclass(frozen=True)
class Decision:
    action: str
    approval_status: str
    entity_status: str
    default_note: str
    audit_action: str


DECISIONS: dict[str, Decision] = {
    "approve": Decision("approve", APPROVAL_APPROVED, STATUS_PUBLISH, "Approved", "approval.approve"),
    "reject": Decision("reject", APPROVAL_REJECTED, STATUS_DRAFT, "Rejected", "approval.reject"),
    "revision": Decision(
        "revision", APPROVAL_REVISION, STATUS_DRAFT, "Please revise and resubmit", "approval.request_revision"
    ),
    "return": Decision("return", APPROVAL_RETURNED, STATUS_DRAFT, "Returned for review", "approval.return"),
}

_ACTION_ALIASES = {"request_revision": "revision", "request-revision": "revision"}

STATUS_TO_ACTION = {d.approval_status: d.action for d in DECISIONS.values()}

# Editing a record in one of these approval states puts it back in the queue.
RESUBMIT_ON_EDIT = frozenset({APPROVAL_APPROVED, APPROVAL_REJECTED, APPROVAL_REVISION})

# Manual record status changes. PENDING is reached only through submit; PUBLISH also needs an APPROVED approval.
MANUAL_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_DRAFT: frozenset({STATUS_ARCHIVE}),
    STATUS_PENDING: frozenset(),
    STATUS_PUBLISH: frozenset({STATUS_PRIVATE, STATUS_ARCHIVE}),
    STATUS_PRIVATE: frozenset({STATUS_PUBLISH, STATUS_ARCHIVE}),
    STATUS_ARCHIVE: frozenset({STATUS_DRAFT, STATUS_PUBLISH}),
}


def normalize_action(action: str | None) -> str:
    a = (action or "").strip().lower()
    return _ACTION_ALIASES.get(a, a)


def get_decision(action: str | None) -> Decision:
    decision = DECISIONS.get(normalize_action(action))
    if decision is None:
        raise ApprovalError(f"Unknown action {action!r}. Must be one of: {', '.join(DECISIONS)}")
    return decision


def find_approval(s: Session, entity_type: str, entity_id: int) -> Approval | None:
    return (
        s.query(Approval)
        .filter(Approval.entity_type == entity_type, Approval.entity_id == entity_id)
        .one_or_none()
    )


def get_approval(s: Session, approval_id: int) -> Approval:
    approval = s.get(Approval, approval_id)
    if approval is None:
        raise ApprovalNotFound(f"Approval {approval_id} not found")
    return approval


def _touch(entity: Any, now: datetime) -> None:
    entity.updated_at = now


def _clean_note(note: Any) -> str:
    return str(note or "").strip()[:NOTE_MAX_LENGTH]


def _record_transition(
    s: Session,
    *,
    actor: User | None,
    action: str,
    approval: Approval,
    spec: ApprovableEntity,
    entity: Any,
    approval_from: str | None,
    approval_to: str | None,
    entity_from: str | None,
    note: str | None,
    extra: dict[str, Any] | None = None,
) -> None:
    metadata: dict[str, Any] = {
        "entity_type": spec.entity_type,
        "entity_id": approval.entity_id,
        "name": spec.display_name(entity),
        "approval_status": {"from": approval_from, "to": approval_to},
        "entity_status": {"from": entity_from, "to": entity.status if entity is not None else None},
    }
    if extra:
        metadata.update(extra)
    record_event(
        s,
        actor=actor,
        action=action,
        entity_type="Approval",
        entity_id=str(approval.id),
        reason=note,
        metadata=metadata,
    )
    logger.info(
        "%s approval_id=%s %s:%s approval %s->%s entity %s->%s actor=%s",
        action,
        approval.id,
        spec.entity_type,
        approval.entity_id,
        approval_from,
        approval_to,
        entity_from,
        metadata["entity_status"]["to"],
        actor.email if actor else None,
    )


# ---------- Submission ----------


def submit_for_approval(
    s: Session,
    entity: Any,
    user: User,
    *,
    note: str | None = None,
    audit_action: str = "approval.submit",
) -> Approval:
    """
    DRAFT record -> PENDING, creating its approval or re-opening the existing one.
    """
    spec = spec_for_instance(entity)
    if entity.status != STATUS_DRAFT:
        raise InvalidTransition(f"{spec.label} must be {STATUS_DRAFT} to submit for approval (is {entity.status}).")
    if entity.id is None:
        s.flush()

    approval = find_approval(s, spec.entity_type, entity.id)
    if approval is not None and approval.status == APPROVAL_PENDING:
        raise InvalidTransition(f"{spec.label} already has a pending approval.")

    now = datetime.utcnow()
    note = _clean_note(note) or f"{spec.label} submitted for approval"
    entity_from = entity.status
    approval_from = approval.status if approval is not None else None

    if approval is None:
        approval = Approval(
            entity_type=spec.entity_type,
            entity_id=entity.id,
            status=APPROVAL_PENDING,
            note=note,
            requested_by=user,
            created_at=now,
            updated_at=now,
        )
        s.add(approval)
    else:
        approval.status = APPROVAL_PENDING
        approval.note = note
        approval.requested_by = user
        approval.decided_by = None
        approval.decided_at = None
        approval.updated_at = now

    entity.status = STATUS_PENDING
    _touch(entity, now)
    s.flush()

    _record_transition(
        s,
        actor=user,
        action=audit_action,
        approval=approval,
        spec=spec,
        entity=entity,
        approval_from=approval_from,
        approval_to=APPROVAL_PENDING,
        entity_from=entity_from,
        note=note,
    )
    return approval


def create_approval(s: Session, entity_type: str, entity_id: int, user: User, *, note: str | None = None) -> Approval:
    spec = get_entity_spec(entity_type)
    entity = s.get(spec.model, entity_id)
    if entity is None:
        raise ApprovalNotFound(f"{spec.label} {entity_id} not found")
    if find_approval(s, spec.entity_type, entity_id) is not None:
        raise DuplicateApproval("Approval already exists for this entity")
    return submit_for_approval(s, entity, user, note=note, audit_action="approval.create")


def resubmit_on_edit(s: Session, entity: Any, user: User, changed_fields: list[str]) -> Approval | None:
    """
    Content edits to an approved, rejected or revision-requested record send it back to the queue.
    Returns the re-opened approval, or None when nothing changed state.
    """
    if not changed_fields:
        return None
    if entity.status in (STATUS_PENDING, STATUS_ARCHIVE):
        return None
    spec = spec_for_instance(entity)
    approval = find_approval(s, spec.entity_type, entity.id)
    if approval is None or approval.status not in RESUBMIT_ON_EDIT:
        return None

    now = datetime.utcnow()
    note = f"{spec.label} updated and resubmitted for approval"
    approval_from = approval.status
    entity_from = entity.status

    approval.status = APPROVAL_PENDING
    approval.note = note
    approval.requested_by = user
    approval.decided_by = None
    approval.decided_at = None
    approval.updated_at = now
    entity.status = STATUS_PENDING
    if hasattr(entity, "approved_by"):
        entity.approved_by = None
    _touch(entity, now)

    _record_transition(
        s,
        actor=user,
        action="approval.resubmit",
        approval=approval,
        spec=spec,
        entity=entity,
        approval_from=approval_from,
        approval_to=APPROVAL_PENDING,
        entity_from=entity_from,
        note=note,
        extra={"fields_changed": sorted(changed_fields)},
    )
    return approval


# ---------- Decisions ----------


def decide(s: Session, approval: Approval, action: str, user: User, *, note: str | None = None) -> Approval:
    decision = get_decision(action)
    spec = get_entity_spec(approval.entity_type)

    if not user_has_permission(user, spec.approve_permission):
        raise ApprovalPermissionError(f"Missing permission: {spec.approve_permission}")
    if approval.status != APPROVAL_PENDING:
        raise InvalidTransition(
            f"Approval {approval.id} is {approval.status}; only {APPROVAL_PENDING} approvals can be decided."
        )

    entity = load_entity(s, spec.entity_type, approval.entity_id)
    if entity is None:
        raise ApprovalNotFound(f"{spec.label} {approval.entity_id} no longer exists")
    if entity.status != STATUS_PENDING:
        raise InvalidTransition(f"{spec.label} {entity.id} is {entity.status}, expected {STATUS_PENDING}.")

    now = datetime.utcnow()
    note = _clean_note(note) or decision.default_note
    approval_from = approval.status
    entity_from = entity.status

    approval.status = decision.approval_status
    approval.note = note
    approval.decided_by = user
    approval.decided_at = now
    approval.updated_at = now

    entity.status = decision.entity_status
    if hasattr(entity, "approved_by"):
        entity.approved_by = user if decision.approval_status == APPROVAL_APPROVED else None
    _touch(entity, now)

    _record_transition(
        s,
        actor=user,
        action=decision.audit_action,
        approval=approval,
        spec=spec,
        entity=entity,
        approval_from=approval_from,
        approval_to=approval.status,
        entity_from=entity_from,
        note=note,
    )
    return approval


def decide_by_status(s: Session, approval: Approval, status: str | None, user: User, *, note: str | None = None) -> Approval:
    """Status-driven variant of decide(): {"status": "APPROVED"} -> approve."""
    target = (status or "").strip().upper()
    action = STATUS_TO_ACTION.get(target)
    if action is None:
        allowed = ", ".join(STATUS_TO_ACTION)
        raise ApprovalError(f"Status must be one of: {allowed}")
    return decide(s, approval, action, user, note=note)


def bulk_decide(
    s: Session,
    approval_ids: list[int],
    action: str,
    user: User,
    *,
    note: str | None = None,
) -> dict[str, list]:
    """
    Apply one decision to many approvals. Each item runs in its own SAVEPOINT so a
    failing item is reported without undoing the others.
    """
    decision = get_decision(action)
    if not approval_ids:
        raise ApprovalError("No valid approval ids provided.")

    updated: list[Approval] = []
    failed: list[dict[str, Any]] = []
    for approval_id in approval_ids:
        try:
            with s.begin_nested():
                approval = get_approval(s, approval_id)
                decide(s, approval, decision.action, user, note=note)
        except (ApprovalError, ApprovalNotFound, ApprovalPermissionError, UnknownEntityType) as e:
            failed.append({"id": approval_id, "error": str(e)})
            continue
        updated.append(approval)

    logger.info(
        "bulk %s: %d updated, %d failed (actor=%s)",
        decision.action,
        len(updated),
        len(failed),
        user.email,
    )
    return {"updated": updated, "failed": failed}


# ---------- Record status / lifecycle ----------


def set_entity_status(s: Session, entity: Any, new_status: str | None, user: User, *, reason: str | None = None) -> None:
    """
    Guarded manual status change. PENDING delegates to submit_for_approval().
    """
    spec = spec_for_instance(entity)
    target = (new_status or "").strip().upper()
    if target not in ENTITY_STATUSES:
        raise ApprovalError(f"Status must be one of: {', '.join(ENTITY_STATUSES)}")
    current = entity.status
    if target == current:
        return
    if target == STATUS_PENDING:
        submit_for_approval(s, entity, user, note=reason)
        return
    if target not in MANUAL_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(f"Cannot change {spec.label} status from {current} to {target}.")
    if target == STATUS_PUBLISH:
        approval = find_approval(s, spec.entity_type, entity.id)
        if approval is None or approval.status != APPROVAL_APPROVED:
            raise InvalidTransition(f"{spec.label} can only be published after approval.")

    entity.status = target
    _touch(entity, datetime.utcnow())
    record_event(
        s,
        actor=user,
        action="record.status_change",
        entity_type=spec.audit_name,
        entity_id=str(entity.id),
        reason=reason,
        metadata={"from": current, "to": target, "name": spec.display_name(entity)},
    )
    logger.info("status change %s:%s %s->%s actor=%s", spec.entity_type, entity.id, current, target, user.email)


def delete_approval(s: Session, approval: Approval, user: User) -> None:
    spec = get_entity_spec(approval.entity_type)
    entity = load_entity(s, spec.entity_type, approval.entity_id)
    entity_from = entity.status if entity is not None else None
    if entity is not None and entity.status == STATUS_PENDING:
        entity.status = STATUS_DRAFT
        _touch(entity, datetime.utcnow())

    _record_transition(
        s,
        actor=user,
        action="approval.delete",
        approval=approval,
        spec=spec,
        entity=entity,
        approval_from=approval.status,
        approval_to=None,
        entity_from=entity_from,
        note=approval.note,
    )
    s.delete(approval)


def discard_for_entity(s: Session, entity: Any, user: User) -> None:
    """Drop the approval of a record that is being deleted."""
    spec = spec_for_instance(entity)
    approval = find_approval(s, spec.entity_type, entity.id)
    if approval is None:
        return
    record_event(
        s,
        actor=user,
        action="approval.discard",
        entity_type="Approval",
        entity_id=str(approval.id),
        metadata={
            "entity_type": spec.entity_type,
            "entity_id": entity.id,
            "name": spec.display_name(entity),
            "approval_status": {"from": approval.status, "to": None},
        },
    )
    s.delete(approval)


# ---------- Queries ----------


def query_approvals(s: Session, *, status: str | None = None, entity_type: str | None = None):
    q = s.query(Approval)
    st = (status or "").strip().upper()
    if st and st != "ALL":
        if st not in APPROVAL_STATUSES:
            raise ApprovalError(f"Status must be one of: {', '.join(APPROVAL_STATUSES)}")
        q = q.filter(Approval.status == st)
    if entity_type and entity_type.strip():
        q = q.filter(Approval.entity_type == get_entity_spec(entity_type).entity_type)
    return q


def list_approvals(
    s: Session,
    *,
    status: str | None,
    entity_type: str | None,
    page: int,
    limit: int,
) -> tuple[Page, list[dict[str, Any]]]:
    q = query_approvals(s, status=status, entity_type=entity_type).order_by(
        Approval.updated_at.desc(), Approval.id.desc()
    )
    pg = paginate(q, page, limit)

    ids_by_type: dict[str, list[int]] = defaultdict(list)
    for a in pg.items:
        ids_by_type[a.entity_type].append(a.entity_id)
    loaded = {t: load_entities(s, t, ids) for t, ids in ids_by_type.items() if t in ENTITIES}

    rows = [approval_to_dict(a, entity=loaded.get(a.entity_type, {}).get(a.entity_id)) for a in pg.items]
    return pg, rows


def count_pending(s: Session) -> dict[str, int]:
    from sqlalchemy import func

    rows = (
        s.query(Approval.entity_type, func.count(Approval.id))
        .filter(Approval.status == APPROVAL_PENDING)
        .group_by(Approval.entity_type)
        .all()
    )
    return {entity_type: count for entity_type, count in rows}


def approval_history(s: Session, approval: Approval) -> list[dict[str, Any]]:
    events = (
        s.query(AuditEvent)
        .filter(AuditEvent.entity_type == "Approval", AuditEvent.entity_id == str(approval.id))
        .order_by(AuditEvent.id.asc())
        .all()
    )
    return [event_to_dict(e) for e in events]


def _user_brief(u: User | None) -> dict[str, Any] | None:
    if u is None:
        return None
    return {"id": u.id, "name": u.name, "email": u.email}


def approval_to_dict(approval: Approval, *, entity: Any = None) -> dict[str, Any]:
    spec = ENTITIES.get(approval.entity_type)
    return {
        "id": approval.id,
        "entity_type": approval.entity_type,
        "entity_id": approval.entity_id,
        "name": spec.display_name(entity) if spec else "",
        "entity_status": entity.status if entity is not None else None,
        "status": approval.status,
        "note": approval.note,
        "requested_by": _user_brief(approval.requested_by),
        "decided_by": _user_brief(approval.decided_by),
        "decided_at": iso(approval.decided_at),
        "created_at": iso(approval.created_at),
        "updated_at": iso(approval.updated_at),
    }


def approval_brief(s: Session, entity: Any) -> dict[str, Any] | None:
    """Compact approval block embedded in record payloads."""
    spec = spec_for_instance(entity)
    approval = find_approval(s, spec.entity_type, entity.id)
    if approval is None:
        return None
    return {
        "id": approval.id,
        "status": approval.status,
        "note": approval.note,
        "decided_by": _user_brief(approval.decided_by),
        "decided_at": iso(approval.decided_at),
    }
