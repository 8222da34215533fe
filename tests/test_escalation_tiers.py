"""Tests for escalation tier selection and threshold loading."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from cbahi.db.models.audit import SystemSettingsRow
from cbahi.models.enums import EscalationTier
from cbahi.models.escalation import EscalationThresholds
from cbahi.services.escalation.tiers import days_since, hr_tier_blocked, load_thresholds, select_tier

DEFAULTS = EscalationThresholds()
T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def test_days_since_floors_partial_days():
    assert days_since(T0, T0 + timedelta(days=2, hours=23)) == 2
    assert days_since(T0, T0 + timedelta(days=3)) == 3
    assert days_since(T0, T0) == 0


def test_days_since_accepts_naive_database_values():
    naive = T0.replace(tzinfo=None)
    assert days_since(naive, T0 + timedelta(days=5)) == 5


def test_long_overdue_fires_only_hr_tier():
    assert select_tier(10, DEFAULTS, False, False, False, hr_configured=True) == EscalationTier.HR


def test_long_overdue_without_hr_falls_back_to_manager():
    assert select_tier(10, DEFAULTS, False, False, False, hr_configured=False) == EscalationTier.MANAGER


@pytest.mark.parametrize(
    "days, sent, expected",
    [
        (2, (False, False, False), None),
        (3, (False, False, False), EscalationTier.REMINDER),
        (4, (True, False, False), None),
        (5, (True, False, False), EscalationTier.MANAGER),
        (6, (False, False, False), EscalationTier.MANAGER),
        (7, (True, True, False), EscalationTier.HR),
        (9, (True, True, True), None),
    ],
)
def test_tier_table(days, sent, expected):
    assert select_tier(days, DEFAULTS, *sent, hr_configured=True) == expected


def test_hr_blocked_only_when_due_and_unsent():
    assert hr_tier_blocked(8, DEFAULTS, level3_sent=False, hr_configured=False) is True
    assert hr_tier_blocked(8, DEFAULTS, level3_sent=False, hr_configured=True) is False
    assert hr_tier_blocked(8, DEFAULTS, level3_sent=True, hr_configured=False) is False
    assert hr_tier_blocked(6, DEFAULTS, level3_sent=False, hr_configured=False) is False


def test_thresholds_default_without_settings_row():
    thresholds = load_thresholds(None)
    assert (thresholds.level1_days, thresholds.level2_days, thresholds.level3_days) == (3, 5, 7)


def test_thresholds_from_camel_case_json_with_missing_keys():
    row = SystemSettingsRow(id="default", escalation_thresholds={"level1Days": 1, "level3Days": 10})
    thresholds = load_thresholds(row)
    assert (thresholds.level1_days, thresholds.level2_days, thresholds.level3_days) == (1, 5, 10)


def test_thresholds_accept_snake_case_keys():
    row = SystemSettingsRow(id="default", escalation_thresholds={"level2_days": 4})
    assert load_thresholds(row).level2_days == 4


def test_invalid_thresholds_fall_back_to_defaults(caplog):
    caplog.set_level(logging.WARNING, logger="cbahi.services.escalation.tiers")
    row = SystemSettingsRow(id="default", escalation_thresholds={"level1Days": 9, "level2Days": 2})
    thresholds = load_thresholds(row)
    assert (thresholds.level1_days, thresholds.level2_days, thresholds.level3_days) == (3, 5, 7)
    assert any(
        r.levelno == logging.WARNING and r.getMessage().startswith("Invalid escalation thresholds")
        for r in caplog.records
    )
