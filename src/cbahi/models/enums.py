"""String enums for the privileging workflow."""

from enum import IntEnum, StrEnum


class UserRole(StrEnum):
    EMPLOYEE = "employee"
    HEAD_OF_SECTION = "head_of_section"
    HEAD_OF_DEPT = "head_of_dept"
    COMMITTEE_MEMBER = "committee_member"
    MEDICAL_DIRECTOR = "medical_director"
    ADMIN = "admin"


class PractitionerType(StrEnum):
    GP = "gp"
    SPECIALIST = "specialist"
    CONSULTANT = "consultant"


class RequestKind(StrEnum):
    NEW = "new"
    RENEWAL = "renewal"
    ADDITION = "addition"
    TEMPORARY = "temporary"


# Kinds that cannot be submitted without a written justification.
JUSTIFICATION_REQUIRED_KINDS = frozenset({RequestKind.RENEWAL, RequestKind.TEMPORARY})


class PrivilegeRequestType(StrEnum):
    CORE = "core"
    NON_CORE = "non_core"
    EXTRA = "extra"


class RequestStatus(StrEnum):
    DRAFT = "draft"
    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


ACTIVE_REQUEST_STATUSES = (RequestStatus.DRAFT, RequestStatus.PENDING, RequestStatus.IN_REVIEW)
IN_FLIGHT_REQUEST_STATUSES = (RequestStatus.PENDING, RequestStatus.IN_REVIEW)
EDITABLE_REQUEST_STATUSES = (RequestStatus.DRAFT, RequestStatus.REJECTED)


class PrivilegeStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalLevel(StrEnum):
    HEAD_OF_SECTION = "head_of_section"
    HEAD_OF_DEPT = "head_of_dept"
    COMMITTEE = "committee"
    MEDICAL_DIRECTOR = "medical_director"


APPROVAL_LEVEL_ORDER: tuple[ApprovalLevel, ...] = (
    ApprovalLevel.HEAD_OF_SECTION,
    ApprovalLevel.HEAD_OF_DEPT,
    ApprovalLevel.COMMITTEE,
    ApprovalLevel.MEDICAL_DIRECTOR,
)


def level_ordinal(level: ApprovalLevel | str) -> int:
    """Position of ``level`` in the approval hierarchy (0 = first)."""
    return APPROVAL_LEVEL_ORDER.index(ApprovalLevel(level))


class ApprovalStepStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class ApprovalAction(StrEnum):
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_MODIFICATIONS = "request_modifications"


class EscalationStatus(StrEnum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class EscalationTier(IntEnum):
    REMINDER = 1
    MANAGER = 2
    HR = 3


class EscalationOutcome(StrEnum):
    NOTIFIED = "notified"
    SKIPPED = "skipped"
    ERROR = "error"


class NotificationType(StrEnum):
    REQUEST_SUBMITTED = "request_submitted"
    APPROVAL_REQUIRED = "approval_required"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    REMINDER = "reminder"
    ESCALATION_LEVEL1 = "escalation_level1"
    ESCALATION_LEVEL2 = "escalation_level2"
    ESCALATION_LEVEL3 = "escalation_level3"
