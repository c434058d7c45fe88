from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.orgms.constants import ENTITY_DOCUMENT, ENTITY_FINANCE, ENTITY_LETTER, ENTITY_WORK_PROGRAM
from app.orgms.modules.documents.models import Document
from app.orgms.modules.finance.models import Finance
from app.orgms.modules.letters.models import Letter
from app.orgms.modules.work_programs.models import WorkProgram


class UnknownEntityType(ValueError):
    pass


@dataclass(frozen=True)
class ApprovableEntity:
    entity_type: str  # value stored on Approval.entity_type
    model: type
    label_attr: str  # attribute shown as the approval's display name
    resource: str  # permission prefix, e.g. "letters" -> "letters.approve"
    audit_name: str  # AuditEvent.entity_type for the record itself
    label: str  # human label used in default notes

    @property
    def approve_permission(self) -> str:
        return f"{self.resource}.approve"

    def display_name(self, entity: Any) -> str:
        if entity is None:
            return ""
        return getattr(entity, self.label_attr, None) or ""


ENTITIES: dict[str, ApprovableEntity] = {
    ENTITY_DOCUMENT: ApprovableEntity(ENTITY_DOCUMENT, Document, "name", "documents", "Document", "Document"),
    ENTITY_LETTER: ApprovableEntity(ENTITY_LETTER, Letter, "regarding", "letters", "Letter", "Letter"),
    ENTITY_FINANCE: ApprovableEntity(ENTITY_FINANCE, Finance, "name", "transactions", "Finance", "Finance transaction"),
    ENTITY_WORK_PROGRAM: ApprovableEntity(
        ENTITY_WORK_PROGRAM, WorkProgram, "name", "works", "WorkProgram", "Work program"
    ),
}


def normalize_entity_type(entity_type: str | None) -> str:
    return (entity_type or "").strip().upper().replace("-", "_")


def get_entity_spec(entity_type: str | None) -> ApprovableEntity:
    key = normalize_entity_type(entity_type)
    spec = ENTITIES.get(key)
    if spec is None:
        raise UnknownEntityType(f"Unknown entity type: {entity_type!r}. Must be one of: {', '.join(ENTITIES)}")
    return spec


def spec_for_instance(entity: Any) -> ApprovableEntity:
    for spec in ENTITIES.values():
        if isinstance(entity, spec.model):
            return spec
    raise UnknownEntityType(f"{type(entity).__name__} is not approvable")


def load_entity(s: Session, entity_type: str, entity_id: int) -> Any | None:
    return s.get(get_entity_spec(entity_type).model, entity_id)


def load_entities(s: Session, entity_type: str, entity_ids: list[int]) -> dict[int, Any]:
    """Batch-load referenced records for list views (one query per entity type)."""
    if not entity_ids:
        return {}
    model = get_entity_spec(entity_type).model
    rows = s.query(model).filter(model.id.in_(entity_ids)).all()
    return {row.id: row for row in rows}
