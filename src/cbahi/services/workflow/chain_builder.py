"""Approval chain construction at submission time.

The chain follows the fixed hierarchy head_of_section → head_of_dept →
committee → medical_director. A level is present only when an approver for it
can be found (and, for committee and medical director, when the request's
approval requirement calls for it).
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from cbahi.db.models.approval import ApprovalStepRow
from cbahi.db.models.request import PrivilegeRequestRow
from cbahi.db.models.user import UserRow
from cbahi.errors.exceptions import NoApproversError
from cbahi.models.enums import (
    ApprovalLevel,
    ApprovalStepStatus,
    RequestStatus,
    UserRole,
    level_ordinal,
)
from cbahi.repositories.approval_repo import ApprovalStepRepository
from cbahi.repositories.escalation_repo import EscalationRepository
from cbahi.repositories.user_repo import UserRepository
from cbahi.services.common import generate_id, utcnow
from cbahi.services.workflow.requirements import ApprovalRequirement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainSlot:
    level: ApprovalLevel
    approver: UserRow


async def plan_chain(
    session: AsyncSession,
    applicant: UserRow,
    requirement: ApprovalRequirement | None = None,
) -> list[ChainSlot]:
    """Work out the ordered (level, approver) pairs without writing anything."""
    users = UserRepository(session)
    slots: list[ChainSlot] = []

    if applicant.line_manager_id:
        manager = await users.get(applicant.line_manager_id)
        if manager and manager.is_active and manager.role == UserRole.HEAD_OF_SECTION:
            slots.append(ChainSlot(ApprovalLevel.HEAD_OF_SECTION, manager))

    if applicant.department_id:
        head_of_dept = await users.first_active_with_role(
            UserRole.HEAD_OF_DEPT,
            department_id=applicant.department_id,
            exclude_user_id=applicant.user_id,
        )
        if head_of_dept:
            slots.append(ChainSlot(ApprovalLevel.HEAD_OF_DEPT, head_of_dept))

    if requirement is None or requirement.needs_committee_level:
        # First active member; there is no rotation between committee members.
        committee_member = await users.first_active_with_role(
            UserRole.COMMITTEE_MEMBER, exclude_user_id=applicant.user_id
        )
        if committee_member:
            slots.append(ChainSlot(ApprovalLevel.COMMITTEE, committee_member))

    if requirement is None or requirement.requires_medical_director:
        medical_director = await users.first_active_with_role(
            UserRole.MEDICAL_DIRECTOR, exclude_user_id=applicant.user_id
        )
        if medical_director:
            slots.append(ChainSlot(ApprovalLevel.MEDICAL_DIRECTOR, medical_director))

    return slots


async def build_chain(
    session: AsyncSession,
    request: PrivilegeRequestRow,
    applicant: UserRow,
    requirement: ApprovalRequirement | None = None,
    now: datetime | None = None,
) -> list[ApprovalStepRow]:
    """Persist a new chain round for ``request`` and start escalation tracking.

    All writes join the caller's transaction; the caller commits once. Raises
    NoApproversError (with nothing written) when no level has an approver.
    """
    now = now or utcnow()
    slots = await plan_chain(session, applicant, requirement)
    if not slots:
        logger.warning("No approvers available for request %s", request.request_id)
        raise NoApproversError(request.request_id)

    chain_round = (request.chain_round or 0) + 1
    step_repo = ApprovalStepRepository(session)
    steps: list[ApprovalStepRow] = []
    for slot in slots:
        step = await step_repo.create(
            step_id=generate_id("step_"),
            request_id=request.request_id,
            chain_round=chain_round,
            level=slot.level,
            level_order=level_ordinal(slot.level),
            approver_id=slot.approver.user_id,
            status=ApprovalStepStatus.PENDING,
        )
        steps.append(step)

    first = steps[0]
    await EscalationRepository(session).create(
        escalation_id=generate_id("esc_"),
        request_id=request.request_id,
        step_id=first.step_id,
        approver_id=first.approver_id,
        received_at=now,
    )

    request.status = RequestStatus.PENDING
    request.submitted_at = now
    request.chain_round = chain_round
    await session.flush()

    logger.info(
        "Built approval chain for request %s (round=%d, levels=%s)",
        request.request_id, chain_round, [s.level for s in steps],
    )
    return steps
