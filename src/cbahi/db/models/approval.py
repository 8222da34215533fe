"""Approval chain and approval requirement tables."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cbahi.db.base import Base, TimestampMixin


class ApprovalStepRow(Base, TimestampMixin):
    __tablename__ = "approval_steps"
    __table_args__ = (UniqueConstraint("request_id", "chain_round", "level"),)

    step_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    request_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("privilege_requests.request_id"), nullable=False, index=True
    )
    chain_round: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    level: Mapped[str] = mapped_column(String(50), nullable=False)
    level_order: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.user_id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ApprovalRequirementRow(Base):
    __tablename__ = "approval_requirements"
    __table_args__ = (UniqueConstraint("privilege_type", "practitioner_type", "same_specialty"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    privilege_type: Mapped[str] = mapped_column(String(50), nullable=False)
    practitioner_type: Mapped[str] = mapped_column(String(50), nullable=False)
    same_specialty: Mapped[bool] = mapped_column(Boolean, nullable=False)
    required_consultants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    requires_committee: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requires_medical_director: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_approve: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
