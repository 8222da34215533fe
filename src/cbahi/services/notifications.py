"""Outbound notification emission.

Notifications are queued as ``notification_log`` rows inside the caller's
transaction; delivery (email provider, retries) belongs to a separate
consumer of that table.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from cbahi.db.models.notification import NotificationLogRow
from cbahi.models.enums import NotificationType
from cbahi.services.common import generate_id

logger = logging.getLogger(__name__)

# Notification type -> subject template
SUBJECT_TEMPLATES = {
    NotificationType.REQUEST_SUBMITTED: "Your Clinical Privilege Request Has Been Submitted",
    NotificationType.APPROVAL_REQUIRED: "Clinical Privilege Request Awaiting Your Approval - {applicant_name}",
    NotificationType.REQUEST_APPROVED: "Your Clinical Privilege Request Has Been Approved",
    NotificationType.REQUEST_REJECTED: "Your Clinical Privilege Request Has Been Rejected",
    NotificationType.REMINDER: "Modifications Requested for Your Clinical Privilege Request",
    NotificationType.ESCALATION_LEVEL1: "Reminder: Clinical Privilege Request Awaiting Your Approval - {applicant_name}",
    NotificationType.ESCALATION_LEVEL2: "Escalation: Pending Clinical Privilege Approval - {approver_name}",
    NotificationType.ESCALATION_LEVEL3: "HR Escalation: Severely Delayed Clinical Privilege Approval - {approver_name}",
}


def build_subject(notification_type: NotificationType, metadata: dict) -> str:
    template = SUBJECT_TEMPLATES.get(notification_type, str(notification_type))
    try:
        return template.format(**metadata)
    except KeyError:
        return template.split(" - ")[0]


class NotificationService:
    """Queue notifications in the current session.

    ``redirect_to`` reroutes every recipient address (testing mode).
    """

    def __init__(self, session: AsyncSession, redirect_to: str | None = None):
        self.session = session
        self.redirect_to = redirect_to

    async def enqueue(
        self,
        notification_type: NotificationType,
        recipient_email: str,
        recipient_name: str,
        request_id: str | None = None,
        metadata: dict | None = None,
        subject: str | None = None,
    ) -> NotificationLogRow:
        metadata = metadata or {}
        email = self.redirect_to or recipient_email
        if self.redirect_to:
            metadata = {**metadata, "original_recipient": recipient_email}

        row = NotificationLogRow(
            notification_id=generate_id("ntf_"),
            request_id=request_id,
            type=notification_type,
            recipient_email=email,
            recipient_name=recipient_name,
            subject=subject or build_subject(notification_type, metadata),
            status="pending",
            extra_data=metadata,
        )
        self.session.add(row)
        await self.session.flush()
        logger.info(
            "Queued %s notification for %s (request=%s)",
            notification_type, email, request_id,
        )
        return row
