"""Tests for the escalation sweep.

Covers:
- disabled escalation writes nothing
- highest-due tier wins and each tier fires at most once
- tier 2 without a line manager, tier 3 without an HR contact
- drifted escalations are resolved silently
- one failing escalation does not stop the others, and is reported at its tier
- a tier already sent by a concurrent sweep is not sent again
- testing mode redirects recipients
- the Redis sweep lock
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select, update

from cbahi.db.models.approval import ApprovalStepRow
from cbahi.db.models.audit import AuditLogRow, SystemSettingsRow
from cbahi.db.models.escalation import EscalationRow
from cbahi.db.models.notification import NotificationLogRow
from cbahi.db.models.user import UserRow
from cbahi.errors.exceptions import SweepInProgressError
from cbahi.services.escalation import sweep
from cbahi.services.escalation.sweep import SWEEP_LOCK_KEY, run_escalation_sweep, run_locked_sweep
from cbahi.services.notifications import NotificationService

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def _day(n: int) -> datetime:
    return T0 + timedelta(days=n, hours=1)


async def _configure(session_factory, **values):
    async with session_factory() as session:
        await session.execute(
            update(SystemSettingsRow).where(SystemSettingsRow.id == "default").values(**values)
        )
        await session.commit()


async def _escalation(session_factory, **criteria) -> EscalationRow:
    async with session_factory() as session:
        stmt = select(EscalationRow).filter_by(**criteria)
        return (await session.execute(stmt)).scalar_one()


async def _count(session_factory, model, *where) -> int:
    async with session_factory() as session:
        stmt = select(func.count()).select_from(model)
        if where:
            stmt = stmt.where(*where)
        return (await session.execute(stmt)).scalar_one()


@pytest.mark.asyncio
async def test_disabled_sweep_processes_nothing(session_factory, four_level_request):
    await _configure(session_factory, escalation_enabled=False)
    notifications_before = await _count(session_factory, NotificationLogRow)
    audits_before = await _count(session_factory, AuditLogRow)

    report = await run_escalation_sweep(session_factory, now=_day(10))

    assert report.message == "Escalation is disabled"
    assert report.processed == 0
    assert report.statistics is None
    assert await _count(session_factory, NotificationLogRow) == notifications_before
    assert await _count(session_factory, AuditLogRow) == audits_before
    esc = await _escalation(session_factory, request_id=four_level_request.request_id)
    assert (esc.level1_sent, esc.level2_sent, esc.level3_sent) == (False, False, False)


@pytest.mark.asyncio
async def test_nothing_due_before_first_threshold(session_factory, four_level_request):
    report = await run_escalation_sweep(session_factory, now=_day(2))
    assert report.processed == 0
    assert report.statistics.total_active == 1


@pytest.mark.asyncio
async def test_reminder_goes_to_approver_once(session_factory, four_level_request):
    report = await run_escalation_sweep(session_factory, now=_day(3))

    assert report.processed == 1
    result = report.results[0]
    assert (result.level, result.action) == (1, "notified")
    assert result.approver_id == "u_hos"
    assert result.approver_name == "Dr. Head of Section"
    assert report.statistics.level1_sent == 1

    notice = await _notification(session_factory, "escalation_level1")
    assert notice.recipient_email == "hos@hospital.test"
    assert notice.extra_data["days_pending"] == 3

    again = await run_escalation_sweep(session_factory, now=_day(4))
    assert again.processed == 0


@pytest.mark.asyncio
async def test_ten_days_with_hr_contact_sends_only_hr_tier(session_factory, four_level_request):
    await _configure(session_factory, escalation_hr_email="hr@hospital.test")

    report = await run_escalation_sweep(session_factory, now=_day(10))

    assert [(r.level, r.action) for r in report.results] == [(3, "notified")]
    assert report.statistics.level3_sent == 1
    assert report.statistics.level1_sent == 0
    esc = await _escalation(session_factory, request_id=four_level_request.request_id)
    assert (esc.level1_sent, esc.level2_sent, esc.level3_sent) == (False, False, True)
    notice = await _notification(session_factory, "escalation_level3")
    assert notice.recipient_email == "hr@hospital.test"
    assert notice.recipient_name == "HR Department"


@pytest.mark.asyncio
async def test_manager_tier_notifies_approvers_line_manager(session_factory, four_level_request):
    report = await run_escalation_sweep(session_factory, now=_day(6))

    assert [(r.level, r.action) for r in report.results] == [(2, "notified")]
    esc = await _escalation(session_factory, request_id=four_level_request.request_id)
    assert esc.level2_manager_id == "u_hod"
    assert esc.level2_manager_email == "hod@hospital.test"
    notice = await _notification(session_factory, "escalation_level2")
    assert notice.recipient_email == "hod@hospital.test"
    assert notice.extra_data["approver_email"] == "hos@hospital.test"


@pytest.mark.asyncio
async def test_manager_tier_without_line_manager_is_skipped(session_factory, four_level_request):
    async with session_factory() as session:
        await session.execute(update(UserRow).where(UserRow.user_id == "u_hos").values(line_manager_id=None))
        await session.commit()

    report = await run_escalation_sweep(session_factory, now=_day(6))

    assert [(r.level, r.action, r.message) for r in report.results] == [(2, "skipped", "No line manager found")]
    assert report.statistics.skipped == 1
    esc = await _escalation(session_factory, request_id=four_level_request.request_id)
    assert esc.level2_sent is True
    assert esc.notes == "No line manager found"
    assert await _count(session_factory, NotificationLogRow, NotificationLogRow.type == "escalation_level2") == 0


@pytest.mark.asyncio
async def test_hr_tier_without_contact_is_skipped_without_writing(session_factory, four_level_request):
    first = await run_escalation_sweep(session_factory, now=_day(10))
    assert [(r.level, r.action) for r in first.results] == [(2, "notified")]

    # lower tiers still unsent keep firing first
    second = await run_escalation_sweep(session_factory, now=_day(11))
    assert [(r.level, r.action) for r in second.results] == [(1, "notified")]

    third = await run_escalation_sweep(session_factory, now=_day(12))
    assert [(r.level, r.action, r.message) for r in third.results] == [
        (3, "skipped", "No HR escalation contact configured")
    ]
    assert third.statistics.skipped == 1
    esc = await _escalation(session_factory, request_id=four_level_request.request_id)
    assert esc.level3_sent is False
    assert esc.level3_sent_at is None


@pytest.mark.asyncio
async def test_drifted_escalation_is_resolved(session_factory, four_level_request):
    esc = await _escalation(session_factory, request_id=four_level_request.request_id)
    async with session_factory() as session:
        await session.execute(
            update(ApprovalStepRow).where(ApprovalStepRow.step_id == esc.step_id).values(status="approved")
        )
        await session.commit()

    report = await run_escalation_sweep(session_factory, now=_day(10))

    assert report.processed == 0
    esc = await _escalation(session_factory, escalation_id=esc.escalation_id)
    assert esc.status == "resolved"
    assert esc.notes == "Approval processed"
    assert esc.resolved_at is not None


@pytest.mark.asyncio
async def test_failure_is_isolated_to_one_escalation(session_factory, four_level_request):
    real = await _escalation(session_factory, request_id=four_level_request.request_id)
    async with session_factory() as session:
        session.add(EscalationRow(
            escalation_id="esc_ghost",
            request_id=real.request_id,
            step_id=real.step_id,
            approver_id="u_ghost",
            received_at=T0,
        ))
        await session.commit()

    report = await run_escalation_sweep(session_factory, now=_day(3))

    by_id = {r.escalation_id: r for r in report.results}
    assert by_id["esc_ghost"].action == "error"
    assert by_id["esc_ghost"].approver_name == "Unknown"
    assert by_id[real.escalation_id].action == "notified"
    assert report.statistics.errors == 1
    assert report.statistics.total_active == 2

    ghost = await _escalation(session_factory, escalation_id="esc_ghost")
    assert ghost.level1_sent is False


@pytest.mark.asyncio
async def test_failed_hr_notice_is_reported_against_hr_tier(session_factory, four_level_request, monkeypatch):
    await _configure(session_factory, escalation_hr_email="hr@hospital.test")

    async def failing_enqueue(self, *args, **kwargs):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(NotificationService, "enqueue", failing_enqueue)

    report = await run_escalation_sweep(session_factory, now=_day(10))

    assert [(r.level, r.action, r.message) for r in report.results] == [(3, "error", "smtp down")]
    assert report.statistics.errors == 1
    assert report.statistics.level3_sent == 0
    esc = await _escalation(session_factory, request_id=four_level_request.request_id)
    assert esc.level3_sent is False


@pytest.mark.asyncio
async def test_tier_sent_by_concurrent_sweep_is_not_sent_again(session_factory, four_level_request, monkeypatch):
    load_open_escalation = sweep._load_open_escalation

    async def load_then_race(session, ref, now):
        esc = await load_open_escalation(session, ref, now)
        # another instance sends the reminder after this one has read the row
        async with session_factory() as other:
            await other.execute(
                update(EscalationRow)
                .where(EscalationRow.escalation_id == ref.escalation_id)
                .values(level1_sent=True, level1_sent_at=now)
            )
            await other.commit()
        return esc

    monkeypatch.setattr(sweep, "_load_open_escalation", load_then_race)

    report = await run_escalation_sweep(session_factory, now=_day(3))

    assert report.processed == 0
    assert await _count(session_factory, NotificationLogRow, NotificationLogRow.type == "escalation_level1") == 0
    esc = await _escalation(session_factory, request_id=four_level_request.request_id)
    assert esc.level1_sent is True


@pytest.mark.asyncio
async def test_testing_mode_redirects_recipients(session_factory, four_level_request):
    await _configure(session_factory, testing_mode=True, test_email="qa@hospital.test")

    await run_escalation_sweep(session_factory, now=_day(3))

    notice = await _notification(session_factory, "escalation_level1")
    assert notice.recipient_email == "qa@hospital.test"
    assert notice.extra_data["original_recipient"] == "hos@hospital.test"


@pytest.mark.asyncio
async def test_each_run_writes_one_audit_record(session_factory, four_level_request):
    await run_escalation_sweep(session_factory, now=_day(1))
    await run_escalation_sweep(session_factory, now=_day(3))

    async with session_factory() as session:
        records = (await session.execute(
            select(AuditLogRow).where(AuditLogRow.action == "ESCALATION_CRON")
        )).scalars().all()
    assert len(records) == 2
    assert sorted(r.new_values["processed"] for r in records) == [0, 1]


async def _notification(session_factory, notification_type: str) -> NotificationLogRow:
    async with session_factory() as session:
        stmt = select(NotificationLogRow).where(NotificationLogRow.type == notification_type)
        return (await session.execute(stmt)).scalar_one()


class _FakeRedis:
    """Minimal async stand-in for the three Redis calls the lock makes."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def get(self, key):
        return self.store.get(key)

    async def delete(self, key):
        self.store.pop(key, None)


@pytest.mark.asyncio
async def test_lock_held_raises_sweep_in_progress(session_factory, four_level_request):
    redis = _FakeRedis()
    redis.store[SWEEP_LOCK_KEY] = "other-instance"

    with pytest.raises(SweepInProgressError):
        await run_locked_sweep(session_factory, redis=redis, now=_day(3))
    assert await _count(session_factory, NotificationLogRow, NotificationLogRow.type == "escalation_level1") == 0


@pytest.mark.asyncio
async def test_lock_released_after_run(session_factory, four_level_request):
    redis = _FakeRedis()
    report = await run_locked_sweep(session_factory, redis=redis, now=_day(3))
    assert report.processed == 1
    assert SWEEP_LOCK_KEY not in redis.store
