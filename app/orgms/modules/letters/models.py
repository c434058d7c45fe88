from __future__ import annotations

import datetime as dt

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.orgms.models import Base, User


class Letter(Base):
    __tablename__ = "letters"
    __table_args__ = (
        Index("idx_letters_status", "status"),
        Index("idx_letters_date", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    number: Mapped[str | None] = mapped_column(String(128), nullable=True)  # assigned by the secretariat
    regarding: Mapped[str] = mapped_column(String(255), nullable=False)
    origin: Mapped[str] = mapped_column(String(255), nullable=False)
    destination: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    type: Mapped[str] = mapped_column(String(16), nullable=False)  # OUTGOING, INCOMING
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="NORMAL")  # NORMAL, IMPORTANT, URGENT
    classification: Mapped[str] = mapped_column(String(32), nullable=False, default="GENERAL")

    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)  # scanned letter, external storage
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="DRAFT")
    approved_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=dt.datetime.utcnow)

    created_by: Mapped[User | None] = relationship(User, foreign_keys=[created_by_user_id], lazy="selectin")
    approved_by: Mapped[User | None] = relationship(User, foreign_keys=[approved_by_user_id], lazy="selectin")
