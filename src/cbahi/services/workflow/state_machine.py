"""Approval step transitions and the parent request's aggregate status.

Step:     pending → approved | rejected | skipped
Request:  draft → pending → in_review → approved | rejected
          (pending | in_review) → draft on request_modifications

The current step of a request is never stored; it is the lowest-ordinal
pending step of the request's latest chain round. Every transition here runs
inside the caller's transaction and is committed once by the caller.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from cbahi.db.models.approval import ApprovalStepRow
from cbahi.db.models.request import PrivilegeRequestRow
from cbahi.db.models.user import UserRow
from cbahi.errors.exceptions import (
    AlreadyProcessedError,
    AuthorizationError,
    CommentsRequiredError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from cbahi.models.approval import PendingApproval, PrivilegeDecision, ProcessResult
from cbahi.models.enums import (
    IN_FLIGHT_REQUEST_STATUSES,
    ApprovalAction,
    ApprovalLevel,
    ApprovalStepStatus,
    EscalationStatus,
    NotificationType,
    PrivilegeStatus,
    RequestStatus,
    UserRole,
)
from cbahi.repositories.approval_repo import ApprovalStepRepository
from cbahi.repositories.escalation_repo import EscalationRepository
from cbahi.repositories.request_repo import PrivilegeRequestRepository, RequestedPrivilegeRepository
from cbahi.repositories.user_repo import UserRepository
from cbahi.services.audit import record_audit
from cbahi.services.common import generate_id, utcnow
from cbahi.services.notifications import NotificationService

logger = logging.getLogger(__name__)


def current_step(round_steps: list[ApprovalStepRow]) -> ApprovalStepRow | None:
    """Lowest-ordinal pending step of one chain round."""
    pending = [s for s in round_steps if s.status == ApprovalStepStatus.PENDING]
    return min(pending, key=lambda s: s.level_order) if pending else None


def next_pending_step(
    round_steps: list[ApprovalStepRow], after: ApprovalStepRow
) -> ApprovalStepRow | None:
    later = [
        s for s in round_steps
        if s.level_order > after.level_order and s.status == ApprovalStepStatus.PENDING
    ]
    return min(later, key=lambda s: s.level_order) if later else None


class ApprovalContext:
    """Rows loaded once per ``process_approval`` call."""

    def __init__(
        self,
        step: ApprovalStepRow,
        request: PrivilegeRequestRow,
        actor: UserRow,
        applicant: UserRow,
        round_steps: list[ApprovalStepRow],
        now: datetime,
    ):
        self.step = step
        self.request = request
        self.actor = actor
        self.applicant = applicant
        self.round_steps = round_steps
        self.now = now


async def process_approval(
    session: AsyncSession,
    step_id: str,
    actor_id: str,
    action: ApprovalAction | str,
    comments: str | None = None,
    signature: str | None = None,
    privilege_decisions: list[PrivilegeDecision] | None = None,
    now: datetime | None = None,
) -> ProcessResult:
    """Apply an approver's decision to one approval step.

    Preconditions are checked before anything is written. Not idempotent: a
    second call on a decided step raises AlreadyProcessedError.
    """
    action = ApprovalAction(action)
    ctx = await _load_context(session, step_id, actor_id, now or utcnow())
    comments = (comments or "").strip() or None

    if action in (ApprovalAction.REJECT, ApprovalAction.REQUEST_MODIFICATIONS) and not comments:
        if action == ApprovalAction.REJECT:
            raise CommentsRequiredError("Please provide a reason for rejection")
        raise CommentsRequiredError("Please specify what modifications are needed")

    if privilege_decisions:
        await _check_privilege_decisions(session, ctx.request.request_id, privilege_decisions)

    old_request_status = ctx.request.status
    if action == ApprovalAction.APPROVE:
        result = await _approve(session, ctx, comments, signature, privilege_decisions or [])
    elif action == ApprovalAction.REJECT:
        result = await _reject(session, ctx, comments)
    else:
        result = await _request_modifications(session, ctx, comments)

    await record_audit(
        session,
        action=f"APPROVAL_{action.value.upper()}",
        entity_type="approval_steps",
        entity_id=ctx.step.step_id,
        actor_id=ctx.actor.user_id,
        old_values={"step_status": ApprovalStepStatus.PENDING, "request_status": old_request_status},
        new_values={
            "action": action.value,
            "comments": comments,
            "request_id": ctx.request.request_id,
            "step_status": ctx.step.status,
            "request_status": ctx.request.status,
            "admin_override": ctx.actor.user_id != ctx.step.approver_id,
        },
    )
    await session.flush()
    return result


async def _load_context(
    session: AsyncSession, step_id: str, actor_id: str, now: datetime
) -> ApprovalContext:
    step_repo = ApprovalStepRepository(session)
    users = UserRepository(session)

    step = await step_repo.get(step_id)
    if not step:
        raise NotFoundError("Approval", step_id)

    actor = await users.get(actor_id)
    if not actor or not actor.is_active:
        raise AuthorizationError("You are not authorized to process this approval")
    if step.approver_id != actor.user_id and actor.role != UserRole.ADMIN:
        raise AuthorizationError("You are not authorized to process this approval")

    if step.status != ApprovalStepStatus.PENDING:
        raise AlreadyProcessedError(step.step_id, step.status)

    request = await PrivilegeRequestRepository(session).get(step.request_id)
    if not request:
        raise NotFoundError("Privilege request", step.request_id)
    if step.chain_round != request.chain_round:
        raise ConflictError("This approval belongs to a superseded approval chain")
    if request.status not in IN_FLIGHT_REQUEST_STATUSES:
        raise ConflictError(
            f"Request is '{request.status}' and not awaiting approval",
            {"request_status": request.status},
        )

    round_steps = await step_repo.list_for_round(request.request_id, request.chain_round)
    current = current_step(round_steps)
    if current is None or current.step_id != step.step_id:
        raise ConflictError(
            "This approval is not the current step of the chain",
            {"current_level": current.level if current else None},
        )

    applicant = await users.get(request.applicant_id)
    if not applicant:
        raise NotFoundError("User", request.applicant_id)

    return ApprovalContext(step, request, actor, applicant, round_steps, now)


async def _check_privilege_decisions(
    session: AsyncSession, request_id: str, decisions: list[PrivilegeDecision]
) -> None:
    requested = await RequestedPrivilegeRepository(session).list_for_request(request_id)
    known = {rp.privilege_id for rp in requested}
    unknown = sorted({d.privilege_id for d in decisions} - known)
    if unknown:
        raise ValidationError(
            "Decisions reference privileges that are not part of this request",
            {"privilege_ids": unknown},
        )


async def _claim_step(session: AsyncSession, step: ApprovalStepRow, **values) -> None:
    """Compare-and-swap the step away from pending; lose → AlreadyProcessed."""
    won = await ApprovalStepRepository(session).transition(
        step.step_id, ApprovalStepStatus.PENDING, **values
    )
    if not won:
        await session.refresh(step)
        raise AlreadyProcessedError(step.step_id, step.status)


async def _approve(
    session: AsyncSession,
    ctx: ApprovalContext,
    comments: str | None,
    signature: str | None,
    decisions: list[PrivilegeDecision],
) -> ProcessResult:
    step, request, now = ctx.step, ctx.request, ctx.now
    await _claim_step(
        session, step,
        status=ApprovalStepStatus.APPROVED,
        comments=comments,
        signature=signature,
        decided_at=now,
    )

    privileges = RequestedPrivilegeRepository(session)
    for decision in decisions:
        await privileges.apply_decision(
            request.request_id, decision.privilege_id, decision.status, decision.comments
        )

    escalations = EscalationRepository(session)
    await escalations.close_for_step(step.step_id, EscalationStatus.RESOLVED, now, notes="Approval processed")

    notifier = NotificationService(session)
    following = next_pending_step(ctx.round_steps, step)
    if following is None:
        request.status = RequestStatus.APPROVED
        request.completed_at = now
        await privileges.settle_pending(request.request_id, PrivilegeStatus.APPROVED)
        await notifier.enqueue(
            NotificationType.REQUEST_APPROVED,
            ctx.applicant.email,
            ctx.applicant.display_name,
            request_id=request.request_id,
            metadata={"final_approver": ctx.actor.display_name},
        )
        logger.info("Request %s fully approved at level %s", request.request_id, step.level)
        return ProcessResult(message="Request fully approved", is_complete=True, next_level=None)

    request.status = RequestStatus.IN_REVIEW
    await escalations.create(
        escalation_id=generate_id("esc_"),
        request_id=request.request_id,
        step_id=following.step_id,
        approver_id=following.approver_id,
        received_at=now,
    )
    next_approver = await UserRepository(session).get(following.approver_id)
    if next_approver:
        await notifier.enqueue(
            NotificationType.APPROVAL_REQUIRED,
            next_approver.email,
            next_approver.display_name,
            request_id=request.request_id,
            metadata={
                "applicant_name": ctx.applicant.display_name,
                "previous_approver": ctx.actor.display_name,
                "approval_level": following.level,
            },
        )
    logger.info(
        "Request %s approved at %s, forwarded to %s",
        request.request_id, step.level, following.level,
    )
    return ProcessResult(
        message="Approval recorded, forwarded to next level",
        is_complete=False,
        next_level=ApprovalLevel(following.level),
    )


async def _reject(session: AsyncSession, ctx: ApprovalContext, comments: str) -> ProcessResult:
    step, request, now = ctx.step, ctx.request, ctx.now
    await _claim_step(
        session, step,
        status=ApprovalStepStatus.REJECTED,
        comments=comments,
        decided_at=now,
    )

    request.status = RequestStatus.REJECTED
    request.completed_at = now
    await RequestedPrivilegeRepository(session).settle_pending(request.request_id, PrivilegeStatus.REJECTED)
    await EscalationRepository(session).close_for_request(
        request.request_id, EscalationStatus.CANCELLED, now, notes="Request rejected"
    )
    skipped = await ApprovalStepRepository(session).skip_pending(
        request.request_id, exclude_step_id=step.step_id
    )

    await NotificationService(session).enqueue(
        NotificationType.REQUEST_REJECTED,
        ctx.applicant.email,
        ctx.applicant.display_name,
        request_id=request.request_id,
        metadata={
            "rejected_by": ctx.actor.display_name,
            "rejection_level": step.level,
            "reason": comments,
        },
    )
    logger.info(
        "Request %s rejected at %s (%d later steps skipped)",
        request.request_id, step.level, skipped,
    )
    return ProcessResult(message="Request rejected", is_complete=True, next_level=None)


async def _request_modifications(
    session: AsyncSession, ctx: ApprovalContext, comments: str
) -> ProcessResult:
    step, request, now = ctx.step, ctx.request, ctx.now
    # Step stays pending so it is reviewed again after the applicant's edits.
    await _claim_step(session, step, status=ApprovalStepStatus.PENDING, comments=comments)

    request.status = RequestStatus.DRAFT
    await EscalationRepository(session).close_for_step(
        step.step_id, EscalationStatus.CANCELLED, now, notes="Modifications requested"
    )
    await NotificationService(session).enqueue(
        NotificationType.REMINDER,
        ctx.applicant.email,
        ctx.applicant.display_name,
        request_id=request.request_id,
        metadata={
            "requested_by": ctx.actor.display_name,
            "requester_level": step.level,
            "modifications": comments,
        },
    )
    logger.info("Modifications requested on request %s at %s", request.request_id, step.level)
    return ProcessResult(
        message="Modifications requested, applicant notified",
        is_complete=False,
        next_level=None,
    )


async def list_current_approvals(session: AsyncSession, approver_id: str) -> list[PendingApproval]:
    """Steps assigned to ``approver_id`` that are the current step of their request."""
    step_repo = ApprovalStepRepository(session)
    requests = PrivilegeRequestRepository(session)
    users = UserRepository(session)
    escalations = EscalationRepository(session)

    pending = []
    for step in await step_repo.list_pending_for_approver(approver_id):
        request = await requests.get(step.request_id)
        if not request or request.status not in IN_FLIGHT_REQUEST_STATUSES:
            continue
        if step.chain_round != request.chain_round:
            continue
        current = current_step(await step_repo.list_for_round(request.request_id, request.chain_round))
        if current is None or current.step_id != step.step_id:
            continue
        applicant = await users.get(request.applicant_id)
        escalation = await escalations.get_active_for_step(step.step_id)
        pending.append(PendingApproval(
            step_id=step.step_id,
            request_id=request.request_id,
            level=ApprovalLevel(step.level),
            applicant_id=request.applicant_id,
            applicant_name=applicant.display_name if applicant else "Unknown",
            privilege_type=request.privilege_type,
            received_at=escalation.received_at if escalation else None,
        ))
    return pending
