"""Pydantic models for privilege request payloads."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from cbahi.models.enums import (
    ApprovalLevel,
    ApprovalStepStatus,
    EscalationStatus,
    PrivilegeRequestType,
    PrivilegeStatus,
    RequestKind,
    RequestStatus,
)


class RequestCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: RequestKind = RequestKind.NEW
    privilege_type: PrivilegeRequestType = PrivilegeRequestType.CORE
    justification: str | None = Field(None, max_length=5000)
    privilege_ids: list[str] = Field(default_factory=list)
    submit: bool = False


class RequestUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: RequestKind | None = None
    privilege_type: PrivilegeRequestType | None = None
    justification: str | None = Field(None, max_length=5000)
    privilege_ids: list[str] | None = None


class RequestedPrivilegeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    privilege_id: str
    status: PrivilegeStatus
    comments: str | None = None


class ApprovalStepOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    step_id: str
    request_id: str
    chain_round: int
    level: ApprovalLevel
    approver_id: str
    status: ApprovalStepStatus
    comments: str | None = None
    decided_at: datetime | None = None


class EscalationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    escalation_id: str
    step_id: str
    approver_id: str
    received_at: datetime
    level1_sent: bool
    level2_sent: bool
    level3_sent: bool
    status: EscalationStatus
    resolved_at: datetime | None = None
    notes: str | None = None


class RequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: str
    applicant_id: str
    kind: RequestKind
    privilege_type: PrivilegeRequestType
    justification: str | None = None
    status: RequestStatus
    chain_round: int
    submitted_at: datetime | None = None
    completed_at: datetime | None = None


class RequestDetail(BaseModel):
    """A request with its current approval round and escalation history."""

    request: RequestOut
    privileges: list[RequestedPrivilegeOut] = Field(default_factory=list)
    steps: list[ApprovalStepOut] = Field(default_factory=list)
    current_step: ApprovalStepOut | None = None
    escalations: list[EscalationOut] = Field(default_factory=list)
