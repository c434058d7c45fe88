from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.orgms.models import Base, User


class Approval(Base):
    __tablename__ = "approvals"
    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", name="uq_approval_entity"),
        Index("idx_approvals_status", "status"),
        Index("idx_approvals_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Polymorphic reference: DOCUMENT, LETTER, FINANCE, WORK_PROGRAM
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # PENDING -> APPROVED | REJECTED | REVISION | RETURNED; re-submission re-opens to PENDING
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    note: Mapped[str | None] = mapped_column(String(512), nullable=True)

    requested_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    decided_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    requested_by: Mapped[User | None] = relationship(User, foreign_keys=[requested_by_user_id], lazy="selectin")
    decided_by: Mapped[User | None] = relationship(User, foreign_keys=[decided_by_user_id], lazy="selectin")
