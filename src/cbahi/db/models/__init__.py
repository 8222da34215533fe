"""SQLAlchemy ORM models - import all to register with Base.metadata."""

from cbahi.db.models.user import UserRow, PrivilegeRow
from cbahi.db.models.request import PrivilegeRequestRow, RequestedPrivilegeRow
from cbahi.db.models.approval import ApprovalStepRow, ApprovalRequirementRow
from cbahi.db.models.escalation import EscalationRow
from cbahi.db.models.notification import NotificationLogRow
from cbahi.db.models.audit import AuditLogRow, SystemSettingsRow

__all__ = [
    "UserRow",
    "PrivilegeRow",
    "PrivilegeRequestRow",
    "RequestedPrivilegeRow",
    "ApprovalStepRow",
    "ApprovalRequirementRow",
    "EscalationRow",
    "NotificationLogRow",
    "AuditLogRow",
    "SystemSettingsRow",
]
