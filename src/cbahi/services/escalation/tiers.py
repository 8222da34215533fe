"""Escalation tier selection.

Tier 1 reminds the approver, tier 2 notifies the approver's line manager and
tier 3 notifies HR. Tiers are checked highest first, so an approval that has
sat untouched for longer than every threshold only ever receives tier 3.
"""

import logging
from datetime import datetime, timedelta

from pydantic import ValidationError as PydanticValidationError

from cbahi.config import settings
from cbahi.db.models.audit import SystemSettingsRow
from cbahi.models.enums import EscalationTier
from cbahi.models.escalation import EscalationThresholds
from cbahi.services.common import ensure_utc

logger = logging.getLogger(__name__)

_ONE_DAY = timedelta(days=1)


def default_thresholds() -> EscalationThresholds:
    return EscalationThresholds(
        level1_days=settings.escalation_level1_days,
        level2_days=settings.escalation_level2_days,
        level3_days=settings.escalation_level3_days,
    )


def load_thresholds(row: SystemSettingsRow | None) -> EscalationThresholds:
    """Thresholds from the settings row, missing keys filled from defaults."""
    defaults = default_thresholds()
    stored = (row.escalation_thresholds if row else None) or {}
    if not stored:
        return defaults

    merged = defaults.model_dump(by_alias=True)
    for field_name, field in EscalationThresholds.model_fields.items():
        if field.alias in stored:
            merged[field.alias] = stored[field.alias]
        elif field_name in stored:
            merged[field.alias] = stored[field_name]
    try:
        return EscalationThresholds.model_validate(merged)
    except PydanticValidationError as exc:
        logger.warning("Invalid escalation thresholds %s, using defaults: %s", stored, exc)
        return defaults


def days_since(received_at: datetime, now: datetime) -> int:
    """Whole days elapsed, floored."""
    return (ensure_utc(now) - ensure_utc(received_at)) // _ONE_DAY


def select_tier(
    days_since_received: int,
    thresholds: EscalationThresholds,
    level1_sent: bool,
    level2_sent: bool,
    level3_sent: bool,
    hr_configured: bool,
) -> EscalationTier | None:
    """Return the single tier to fire now, or None."""
    if days_since_received >= thresholds.level3_days and not level3_sent and hr_configured:
        return EscalationTier.HR
    if days_since_received >= thresholds.level2_days and not level2_sent:
        return EscalationTier.MANAGER
    if days_since_received >= thresholds.level1_days and not level1_sent:
        return EscalationTier.REMINDER
    return None


def hr_tier_blocked(
    days_since_received: int,
    thresholds: EscalationThresholds,
    level3_sent: bool,
    hr_configured: bool,
) -> bool:
    """True when tier 3 is due but there is nobody in HR to send it to."""
    return days_since_received >= thresholds.level3_days and not level3_sent and not hr_configured
