from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.orgms.models import Base, User


class WorkProgram(Base):
    __tablename__ = "work_programs"
    __table_args__ = (
        Index("idx_work_programs_status", "status"),
        Index("idx_work_programs_department", "department"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str] = mapped_column(String(32), nullable=False)
    schedule: Mapped[str] = mapped_column(String(255), nullable=False, default="")  # free text, e.g. "March-May"
    goal: Mapped[str] = mapped_column(Text, nullable=False, default="")

    funds: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    used_funds: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    # Stored so list filters/sorts don't recompute; kept as funds - used_funds on every write.
    remaining_funds: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    responsible_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="DRAFT")

    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    responsible: Mapped[User | None] = relationship(User, foreign_keys=[responsible_user_id], lazy="selectin")
    created_by: Mapped[User | None] = relationship(User, foreign_keys=[created_by_user_id], lazy="selectin")
