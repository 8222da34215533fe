"""Outbound notification queue table."""

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from cbahi.db.base import Base, TimestampMixin


class NotificationLogRow(Base, TimestampMixin):
    __tablename__ = "notification_log"

    notification_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    request_id: Mapped[str | None] = mapped_column(
        String(128), ForeignKey("privilege_requests.request_id"), nullable=True, index=True
    )
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    recipient_name: Mapped[str] = mapped_column(String(200), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    extra_data: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
