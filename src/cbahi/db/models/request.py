"""Privilege request tables."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cbahi.db.base import Base, TimestampMixin


class PrivilegeRequestRow(Base, TimestampMixin):
    __tablename__ = "privilege_requests"

    request_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    applicant_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.user_id"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    privilege_type: Mapped[str] = mapped_column(String(50), nullable=False)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    chain_round: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class RequestedPrivilegeRow(Base, TimestampMixin):
    __tablename__ = "requested_privileges"
    __table_args__ = (UniqueConstraint("request_id", "privilege_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("privilege_requests.request_id"), nullable=False, index=True
    )
    privilege_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("privileges.privilege_id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    comments: Mapped[str | None] = mapped_column(String(2000), nullable=True)
