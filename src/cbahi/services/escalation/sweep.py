"""Escalation sweep: one pass over every active escalation.

Triggered externally (cron over HTTP, or ``cbahi-server sweep``); there is no
in-process scheduler. Each escalation is handled in its own session so one
failure rolls back only that escalation's writes.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cbahi.db.models.escalation import EscalationRow
from cbahi.errors.exceptions import NotFoundError, SweepInProgressError
from cbahi.logging_config import workflow_context
from cbahi.models.enums import (
    IN_FLIGHT_REQUEST_STATUSES,
    ApprovalStepStatus,
    EscalationOutcome,
    EscalationStatus,
    EscalationTier,
    NotificationType,
)
from cbahi.models.escalation import EscalationResult, EscalationThresholds, SweepReport, SweepStatistics
from cbahi.repositories.approval_repo import ApprovalStepRepository
from cbahi.repositories.audit_repo import SystemSettingsRepository
from cbahi.repositories.escalation_repo import EscalationRepository
from cbahi.repositories.request_repo import PrivilegeRequestRepository
from cbahi.repositories.user_repo import UserRepository
from cbahi.services.audit import record_audit
from cbahi.services.common import utcnow
from cbahi.services.escalation.tiers import days_since, hr_tier_blocked, load_thresholds, select_tier
from cbahi.services.notifications import NotificationService

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "cbahi:escalation:sweep:lock"


@dataclass(frozen=True)
class SweepConfig:
    thresholds: EscalationThresholds
    hr_email: str | None
    redirect_to: str | None


@dataclass(frozen=True)
class EscalationRef:
    """Plain snapshot of an active escalation, safe to use across sessions."""

    escalation_id: str
    request_id: str
    approver_id: str
    approver_name: str


def _result(
    ref: EscalationRef,
    tier: EscalationTier,
    action: EscalationOutcome,
    message: str | None = None,
) -> EscalationResult:
    return EscalationResult(
        escalation_id=ref.escalation_id,
        request_id=ref.request_id,
        approver_id=ref.approver_id,
        approver_name=ref.approver_name,
        level=tier,
        action=action,
        message=message,
    )


async def _load_run_state(session: AsyncSession) -> tuple[SweepConfig | None, list[EscalationRef]]:
    row = await SystemSettingsRepository(session).get_default()
    if not row or not row.escalation_enabled:
        return None, []

    redirect_to = row.test_email if row.testing_mode and row.test_email else None
    config = SweepConfig(load_thresholds(row), row.escalation_hr_email or None, redirect_to)

    users = UserRepository(session)
    names: dict[str, str] = {}
    refs = []
    for esc in await EscalationRepository(session).list_active():
        if esc.approver_id not in names:
            approver = await users.get(esc.approver_id)
            names[esc.approver_id] = approver.display_name if approver else "Unknown"
        refs.append(EscalationRef(esc.escalation_id, esc.request_id, esc.approver_id, names[esc.approver_id]))
    return config, refs


async def _resolve_drifted(session: AsyncSession, esc: EscalationRow, now: datetime) -> bool:
    """Close escalations whose step or request has moved on. True if closed."""
    step = await ApprovalStepRepository(session).get(esc.step_id)
    if not step:
        raise NotFoundError("Approval", esc.step_id)
    if step.status != ApprovalStepStatus.PENDING:
        await EscalationRepository(session).close(esc.escalation_id, EscalationStatus.RESOLVED, now, notes="Approval processed")
        return True

    request = await PrivilegeRequestRepository(session).get(esc.request_id)
    if not request:
        raise NotFoundError("Privilege request", esc.request_id)
    if request.status not in IN_FLIGHT_REQUEST_STATUSES:
        await EscalationRepository(session).close(esc.escalation_id, EscalationStatus.RESOLVED, now, notes="Request completed")
        return True
    return False


async def _load_open_escalation(
    session: AsyncSession, ref: EscalationRef, now: datetime
) -> EscalationRow | None:
    """The escalation if it is still active and its step still awaits a decision."""
    esc = await EscalationRepository(session).get(ref.escalation_id)
    if not esc or esc.status != EscalationStatus.ACTIVE:
        return None
    if await _resolve_drifted(session, esc, now):
        logger.info("Escalation %s resolved (no longer pending)", esc.escalation_id)
        return None
    return esc


def _due_tier(esc: EscalationRow, config: SweepConfig, now: datetime) -> tuple[int, EscalationTier | None]:
    days = days_since(esc.received_at, now)
    tier = select_tier(
        days, config.thresholds, esc.level1_sent, esc.level2_sent, esc.level3_sent, bool(config.hr_email)
    )
    return days, tier


async def _send_tier(
    session: AsyncSession,
    esc: EscalationRow,
    ref: EscalationRef,
    tier: EscalationTier | None,
    days: int,
    config: SweepConfig,
    now: datetime,
) -> EscalationResult | None:
    if tier is None:
        if hr_tier_blocked(days, config.thresholds, esc.level3_sent, bool(config.hr_email)):
            return _result(ref, EscalationTier.HR, EscalationOutcome.SKIPPED, "No HR escalation contact configured")
        return None

    escalations = EscalationRepository(session)
    users = UserRepository(session)
    approver = await users.get(esc.approver_id)
    if not approver:
        raise NotFoundError("User", esc.approver_id)
    step = await ApprovalStepRepository(session).get(esc.step_id)
    request = await PrivilegeRequestRepository(session).get(esc.request_id)
    applicant = await users.get(request.applicant_id)
    metadata = {
        "escalation_id": esc.escalation_id,
        "approval_level": step.level,
        "applicant_name": applicant.display_name if applicant else "Unknown",
        "approver_name": approver.display_name,
        "days_pending": days,
    }
    notifier = NotificationService(session, redirect_to=config.redirect_to)

    if tier == EscalationTier.REMINDER:
        if not await escalations.mark_tier_sent(esc.escalation_id, tier, now):
            return None
        await notifier.enqueue(
            NotificationType.ESCALATION_LEVEL1,
            approver.email,
            approver.display_name,
            request_id=esc.request_id,
            metadata=metadata,
        )
        return _result(ref, tier, EscalationOutcome.NOTIFIED)

    if tier == EscalationTier.MANAGER:
        manager = await users.get(approver.line_manager_id) if approver.line_manager_id else None
        if not manager:
            if not await escalations.mark_tier_sent(esc.escalation_id, tier, now, notes="No line manager found"):
                return None
            return _result(ref, tier, EscalationOutcome.SKIPPED, "No line manager found")
        if not await escalations.mark_tier_sent(
            esc.escalation_id, tier, now,
            level2_manager_id=manager.user_id,
            level2_manager_email=manager.email,
        ):
            return None
        await notifier.enqueue(
            NotificationType.ESCALATION_LEVEL2,
            manager.email,
            manager.display_name,
            request_id=esc.request_id,
            metadata={**metadata, "approver_email": approver.email},
        )
        return _result(ref, tier, EscalationOutcome.NOTIFIED)

    line_manager_notified = esc.level2_sent
    line_manager_email = esc.level2_manager_email
    if not await escalations.mark_tier_sent(esc.escalation_id, tier, now):
        return None
    await notifier.enqueue(
        NotificationType.ESCALATION_LEVEL3,
        config.hr_email,
        "HR Department",
        request_id=esc.request_id,
        metadata={
            **metadata,
            "approver_email": approver.email,
            "line_manager_notified": line_manager_notified,
            "line_manager_email": line_manager_email,
        },
    )
    return _result(ref, tier, EscalationOutcome.NOTIFIED)


def _statistics(total_active: int, results: list[EscalationResult]) -> SweepStatistics:
    def notified(tier: EscalationTier) -> int:
        return sum(1 for r in results if r.level == tier and r.action == EscalationOutcome.NOTIFIED)

    return SweepStatistics(
        total_active=total_active,
        level1_sent=notified(EscalationTier.REMINDER),
        level2_sent=notified(EscalationTier.MANAGER),
        level3_sent=notified(EscalationTier.HR),
        skipped=sum(1 for r in results if r.action == EscalationOutcome.SKIPPED),
        errors=sum(1 for r in results if r.action == EscalationOutcome.ERROR),
    )


async def run_escalation_sweep(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
) -> SweepReport:
    """Send at most one due escalation tier per active escalation."""
    now = now or utcnow()

    async with session_factory() as session:
        config, refs = await _load_run_state(session)
    if config is None:
        logger.info("Escalation sweep skipped: escalation is disabled")
        return SweepReport(message="Escalation is disabled", processed=0)

    results: list[EscalationResult] = []
    for ref in refs:
        # A failure before any tier is chosen is reported against tier 1.
        tier: EscalationTier | None = None
        with workflow_context(request_id=ref.request_id, escalation_id=ref.escalation_id):
            async with session_factory() as session:
                try:
                    result = None
                    esc = await _load_open_escalation(session, ref, now)
                    if esc is not None:
                        days, tier = _due_tier(esc, config, now)
                        result = await _send_tier(session, esc, ref, tier, days, config, now)
                    await session.commit()
                except Exception as exc:
                    await session.rollback()
                    logger.exception("Escalation %s failed: %s", ref.escalation_id, exc)
                    result = _result(ref, tier or EscalationTier.REMINDER, EscalationOutcome.ERROR, str(exc))
        if result:
            results.append(result)

    statistics = _statistics(len(refs), results)
    async with session_factory() as session:
        await record_audit(
            session,
            action="ESCALATION_CRON",
            entity_type="escalations",
            new_values={
                "processed": len(results),
                "active_escalations": len(refs),
                "results": [
                    {"escalation_id": r.escalation_id, "level": int(r.level), "action": r.action.value}
                    for r in results
                ],
            },
        )
        await session.commit()

    logger.info(
        "Escalation sweep finished: active=%d processed=%d errors=%d",
        len(refs), len(results), statistics.errors,
    )
    return SweepReport(
        message="Escalation processing completed",
        processed=len(results),
        results=results,
        statistics=statistics,
    )


async def run_locked_sweep(
    session_factory: async_sessionmaker[AsyncSession],
    redis=None,
    lock_ttl_seconds: int = 600,
    now: datetime | None = None,
) -> SweepReport:
    """Run the sweep behind a Redis SET NX lock when Redis is available."""
    if redis is None:
        return await run_escalation_sweep(session_factory, now=now)

    token = uuid.uuid4().hex
    locked = await redis.set(SWEEP_LOCK_KEY, token, nx=True, ex=lock_ttl_seconds)
    if not locked:
        logger.info("Escalation sweep already running on another instance")
        raise SweepInProgressError()
    try:
        return await run_escalation_sweep(session_factory, now=now)
    finally:
        if await redis.get(SWEEP_LOCK_KEY) in (token, token.encode()):
            await redis.delete(SWEEP_LOCK_KEY)
