"""Escalation tracking table. Rows are never deleted."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from cbahi.db.base import Base, TimestampMixin


class EscalationRow(Base, TimestampMixin):
    __tablename__ = "escalations"

    escalation_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    request_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("privilege_requests.request_id"), nullable=False, index=True
    )
    step_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("approval_steps.step_id"), nullable=False, index=True
    )
    approver_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    level1_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    level1_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    level2_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    level2_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    level2_manager_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    level2_manager_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    level3_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    level3_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active", index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
