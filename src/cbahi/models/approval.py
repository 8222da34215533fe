"""Pydantic models for processing an approval step."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from cbahi.models.enums import ApprovalAction, ApprovalLevel, PrivilegeStatus


class PrivilegeDecision(BaseModel):
    """Grant or deny decision for one requested privilege."""

    model_config = ConfigDict(extra="forbid")

    privilege_id: str
    status: PrivilegeStatus
    comments: str | None = Field(None, max_length=2000)


class ProcessApprovalBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: ApprovalAction
    comments: str | None = Field(None, max_length=5000)
    signature: str | None = Field(None, max_length=20000)
    granted_privileges: list[PrivilegeDecision] | None = None


class ProcessResult(BaseModel):
    message: str
    is_complete: bool
    next_level: ApprovalLevel | None = None


class PendingApproval(BaseModel):
    """A current-step approval waiting on the caller."""

    step_id: str
    request_id: str
    level: ApprovalLevel
    applicant_id: str
    applicant_name: str
    privilege_type: str
    received_at: datetime | None = None
