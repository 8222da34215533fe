"""Audit log and system settings tables."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from cbahi.db.base import Base, TimestampMixin


class AuditLogRow(Base):
    __tablename__ = "audit_log"

    audit_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    actor_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    old_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SystemSettingsRow(Base, TimestampMixin):
    __tablename__ = "system_settings"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default="default")
    escalation_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    escalation_thresholds: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    escalation_hr_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    testing_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    test_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
