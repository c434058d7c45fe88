from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.orgms.audit import record_event
from app.orgms.constants import ENTITY_STATUSES
from app.orgms.modules.approvals.service import (
    approval_brief,
    discard_for_entity,
    resubmit_on_edit,
    set_entity_status,
    submit_for_approval,
)
from app.orgms.modules.documents.models import Document, DocumentType
from app.orgms.modules.letters.models import Letter
from app.orgms.utils import (
    ValidationError,
    iso,
    like_pattern,
    normalize_text,
    parse_optional_id,
    set_if_changed,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.orgms.models import User


# ---------- Document types ----------


def validate_document_type_payload(s: "Session", payload: dict, *, current: DocumentType | None = None) -> list[ValidationError]:
    errors: list[ValidationError] = []
    name = normalize_text(payload.get("name")).upper()
    if not name:
        errors.append(ValidationError("name", "Name is required."))
        return errors
    q = s.query(DocumentType).filter(DocumentType.name == name)
    if current is not None:
        q = q.filter(DocumentType.id != current.id)
    if q.first() is not None:
        errors.append(ValidationError("name", f"Document type {name} already exists."))
    return errors


def create_document_type(s: "Session", payload: dict, user: "User") -> DocumentType:
    t = DocumentType(
        name=normalize_text(payload.get("name")).upper(),
        description=normalize_text(payload.get("description")) or None,
    )
    s.add(t)
    s.flush()
    record_event(
        s,
        actor=user,
        action="document_type.create",
        entity_type="DocumentType",
        entity_id=str(t.id),
        metadata={"name": t.name},
    )
    return t


def update_document_type(s: "Session", t: DocumentType, payload: dict, user: "User") -> DocumentType:
    changes: dict[str, dict[str, Any]] = {}
    if "name" in payload:
        set_if_changed(t, "name", normalize_text(payload.get("name")).upper(), changes)
    if "description" in payload:
        set_if_changed(t, "description", normalize_text(payload.get("description")) or None, changes)
    if changes:
        record_event(
            s,
            actor=user,
            action="document_type.edit",
            entity_type="DocumentType",
            entity_id=str(t.id),
            metadata={"name": t.name, "changes": changes},
        )
    return t


def document_type_in_use(s: "Session", t: DocumentType) -> bool:
    return s.query(Document.id).filter(Document.document_type_id == t.id).first() is not None


def delete_document_type(s: "Session", t: DocumentType, user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="document_type.delete",
        entity_type="DocumentType",
        entity_id=str(t.id),
        metadata={"name": t.name},
    )
    s.delete(t)


def document_type_to_dict(t: DocumentType) -> dict[str, Any]:
    return {"id": t.id, "name": t.name, "description": t.description, "created_at": iso(t.created_at)}


# ---------- Documents ----------


def validate_document_payload(s: "Session", payload: dict, *, partial: bool = False) -> list[ValidationError]:
    """
    partial=True validates only the keys present (updates); otherwise all required fields must be present.
    """
    errors: list[ValidationError] = []

    if not partial or "name" in payload:
        if not normalize_text(payload.get("name")):
            errors.append(ValidationError("name", "Name is required."))

    if not partial or "document_type_id" in payload:
        type_id = parse_optional_id(payload.get("document_type_id"))
        if type_id is None or s.get(DocumentType, type_id) is None:
            errors.append(ValidationError("document_type_id", "Document type not found."))

    if not partial or "file_url" in payload:
        url = normalize_text(payload.get("file_url"))
        if not url:
            errors.append(ValidationError("file_url", "File URL is required."))
        elif not url.startswith(("http://", "https://")):
            errors.append(ValidationError("file_url", "File URL must be an http(s) link."))

    if normalize_text(payload.get("letter_id")):
        letter_id = parse_optional_id(payload.get("letter_id"))
        if letter_id is None or s.get(Letter, letter_id) is None:
            errors.append(ValidationError("letter_id", "Letter not found."))

    status = normalize_text(payload.get("status")).upper()
    if status and status not in ENTITY_STATUSES:
        errors.append(ValidationError("status", f"Invalid status. Must be one of: {', '.join(ENTITY_STATUSES)}"))

    return errors


def create_document(s: "Session", payload: dict, user: "User") -> Document:
    """New documents go straight into the approval queue."""
    now = datetime.utcnow()
    doc = Document(
        name=normalize_text(payload.get("name")),
        document_type_id=parse_optional_id(payload.get("document_type_id")),
        file_url=normalize_text(payload.get("file_url")),
        letter_id=parse_optional_id(payload.get("letter_id")),
        status="DRAFT",
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(doc)
    s.flush()

    record_event(
        s,
        actor=user,
        action="document.create",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"name": doc.name, "document_type_id": doc.document_type_id},
    )
    submit_for_approval(s, doc, user)
    return doc


def update_document(s: "Session", doc: Document, payload: dict, user: "User", reason: str | None = None) -> Document:
    changes: dict[str, dict[str, Any]] = {}
    if "name" in payload:
        set_if_changed(doc, "name", normalize_text(payload.get("name")), changes)
    if "document_type_id" in payload:
        set_if_changed(doc, "document_type_id", parse_optional_id(payload.get("document_type_id")), changes)
        if "document_type_id" in changes:
            doc.document_type = s.get(DocumentType, doc.document_type_id)
    if "file_url" in payload:
        set_if_changed(doc, "file_url", normalize_text(payload.get("file_url")), changes)
    if "letter_id" in payload:
        set_if_changed(doc, "letter_id", parse_optional_id(payload.get("letter_id")), changes)

    if changes:
        doc.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="document.edit",
            entity_type="Document",
            entity_id=str(doc.id),
            reason=reason,
            metadata={"name": doc.name, "changes": changes},
        )
        resubmit_on_edit(s, doc, user, list(changes))

    new_status = normalize_text(payload.get("status")).upper()
    if new_status:
        set_entity_status(s, doc, new_status, user, reason=reason)
    return doc


def delete_document(s: "Session", doc: Document, user: "User") -> None:
    discard_for_entity(s, doc, user)
    record_event(
        s,
        actor=user,
        action="document.delete",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"name": doc.name, "status": doc.status},
    )
    s.delete(doc)


def query_documents(
    s: "Session",
    *,
    status: str | None = None,
    document_type_id: int | None = None,
    search: str | None = None,
):
    q = s.query(Document)
    st = normalize_text(status).upper()
    if st and st != "ALL":
        q = q.filter(Document.status == st)
    if document_type_id:
        q = q.filter(Document.document_type_id == document_type_id)
    term = normalize_text(search)
    if term:
        q = q.filter(Document.name.ilike(like_pattern(term), escape="\\"))
    return q.order_by(Document.created_at.desc(), Document.id.desc())


def document_to_dict(doc: Document, *, approval: dict | None = None) -> dict[str, Any]:
    return {
        "id": doc.id,
        "name": doc.name,
        "document_type": document_type_to_dict(doc.document_type) if doc.document_type else None,
        "file_url": doc.file_url,
        "letter_id": doc.letter_id,
        "status": doc.status,
        "created_by": doc.created_by.email if doc.created_by else None,
        "created_at": iso(doc.created_at),
        "updated_at": iso(doc.updated_at),
        "approval": approval,
    }


def document_detail(s: "Session", doc: Document) -> dict[str, Any]:
    return document_to_dict(doc, approval=approval_brief(s, doc))
