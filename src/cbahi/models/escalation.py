"""Pydantic models for escalation thresholds and sweep reports."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cbahi.models.enums import EscalationOutcome, EscalationTier


class EscalationThresholds(BaseModel):
    """Days after receipt at which each escalation tier becomes due.

    Stored in ``system_settings.escalation_thresholds`` with camelCase keys
    (``level1Days``...), so both spellings are accepted.
    """

    model_config = ConfigDict(populate_by_name=True)

    level1_days: int = Field(3, ge=0, alias="level1Days")
    level2_days: int = Field(5, ge=0, alias="level2Days")
    level3_days: int = Field(7, ge=0, alias="level3Days")

    @model_validator(mode="after")
    def _check_order(self) -> "EscalationThresholds":
        if not (self.level1_days <= self.level2_days <= self.level3_days):
            raise ValueError("escalation thresholds must be non-decreasing")
        return self


class EscalationResult(BaseModel):
    escalation_id: str
    request_id: str
    approver_id: str
    approver_name: str
    level: EscalationTier
    action: EscalationOutcome
    message: str | None = None


class SweepStatistics(BaseModel):
    total_active: int = 0
    level1_sent: int = 0
    level2_sent: int = 0
    level3_sent: int = 0
    skipped: int = 0
    errors: int = 0


class SweepReport(BaseModel):
    message: str
    processed: int = 0
    results: list[EscalationResult] = Field(default_factory=list)
    statistics: SweepStatistics | None = None
