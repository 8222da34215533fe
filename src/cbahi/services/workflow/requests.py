"""Privilege request lifecycle: create, edit, submit, cancel and read."""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from cbahi.db.models.request import PrivilegeRequestRow
from cbahi.db.models.user import UserRow
from cbahi.errors.exceptions import (
    ActiveRequestExistsError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from cbahi.models.enums import (
    ACTIVE_REQUEST_STATUSES,
    EDITABLE_REQUEST_STATUSES,
    JUSTIFICATION_REQUIRED_KINDS,
    EscalationStatus,
    NotificationType,
    PrivilegeRequestType,
    PrivilegeStatus,
    RequestKind,
    RequestStatus,
    UserRole,
)
from cbahi.models.request import (
    ApprovalStepOut,
    EscalationOut,
    RequestDetail,
    RequestedPrivilegeOut,
    RequestOut,
)
from cbahi.repositories.approval_repo import ApprovalStepRepository
from cbahi.repositories.escalation_repo import EscalationRepository
from cbahi.repositories.request_repo import PrivilegeRequestRepository, RequestedPrivilegeRepository
from cbahi.repositories.user_repo import PrivilegeRepository, UserRepository
from cbahi.services.audit import record_audit
from cbahi.services.common import generate_id, utcnow
from cbahi.services.notifications import NotificationService
from cbahi.services.workflow.chain_builder import build_chain
from cbahi.services.workflow.requirements import is_same_specialty, resolve_requirement
from cbahi.services.workflow.state_machine import current_step

logger = logging.getLogger(__name__)


async def _load_request(session: AsyncSession, request_id: str) -> PrivilegeRequestRow:
    request = await PrivilegeRequestRepository(session).get(request_id)
    if not request:
        raise NotFoundError("Privilege request", request_id)
    return request


async def _load_active_user(session: AsyncSession, user_id: str) -> UserRow:
    user = await UserRepository(session).get(user_id)
    if not user or not user.is_active:
        raise AuthorizationError("User account is missing or inactive")
    return user


def _check_justification(kind: str, justification: str | None) -> None:
    if kind in JUSTIFICATION_REQUIRED_KINDS and not (justification or "").strip():
        raise ValidationError(
            f"A justification is required for {kind} requests",
            {"field": "justification"},
        )


async def _check_privileges(session: AsyncSession, privilege_ids: list[str]) -> list[str]:
    """De-duplicate ``privilege_ids`` and make sure each is an active catalog entry."""
    unique_ids = list(dict.fromkeys(privilege_ids))
    if not unique_ids:
        return unique_ids
    found = await PrivilegeRepository(session).list_by_ids(unique_ids)
    active = {p.privilege_id for p in found if p.is_active}
    missing = [pid for pid in unique_ids if pid not in active]
    if missing:
        raise ValidationError(
            "Unknown or inactive privileges requested",
            {"privilege_ids": missing},
        )
    return unique_ids


async def _ensure_no_other_active(
    session: AsyncSession, applicant_id: str, exclude_request_id: str | None = None
) -> None:
    existing = await PrivilegeRequestRepository(session).find_active_for_applicant(applicant_id)
    if existing and existing.request_id != exclude_request_id:
        raise ActiveRequestExistsError(existing.request_id)


async def create_request(
    session: AsyncSession,
    applicant_id: str,
    kind: RequestKind | str = RequestKind.NEW,
    privilege_type: PrivilegeRequestType | str = PrivilegeRequestType.CORE,
    justification: str | None = None,
    privilege_ids: list[str] | None = None,
    submit: bool = False,
    now: datetime | None = None,
) -> PrivilegeRequestRow:
    """Create a draft request, optionally submitting it straight away."""
    now = now or utcnow()
    applicant = await _load_active_user(session, applicant_id)
    await _ensure_no_other_active(session, applicant.user_id)
    _check_justification(kind, justification)
    unique_ids = await _check_privileges(session, privilege_ids or [])

    request = await PrivilegeRequestRepository(session).create(
        request_id=generate_id("req_"),
        applicant_id=applicant.user_id,
        kind=RequestKind(kind),
        privilege_type=PrivilegeRequestType(privilege_type),
        justification=justification,
        status=RequestStatus.DRAFT,
        chain_round=0,
    )
    await RequestedPrivilegeRepository(session).replace(request.request_id, unique_ids)
    await record_audit(
        session,
        action="CREATE",
        entity_type="privilege_requests",
        entity_id=request.request_id,
        actor_id=applicant.user_id,
        new_values={
            "kind": request.kind,
            "privilege_type": request.privilege_type,
            "privilege_ids": unique_ids,
        },
    )
    logger.info("Created request %s for %s", request.request_id, applicant.user_id)

    if submit:
        await submit_request(session, request.request_id, applicant.user_id, now=now)
    return request


async def update_request(
    session: AsyncSession,
    request_id: str,
    actor_id: str,
    kind: RequestKind | str | None = None,
    privilege_type: PrivilegeRequestType | str | None = None,
    justification: str | None = None,
    privilege_ids: list[str] | None = None,
) -> PrivilegeRequestRow:
    """Edit a draft or rejected request.

    Editing a rejected request reopens it as a draft, which counts against
    the one-active-request rule.
    """
    request = await _load_request(session, request_id)
    if request.applicant_id != actor_id:
        raise AuthorizationError("Only the applicant can edit this request")
    if request.status not in EDITABLE_REQUEST_STATUSES:
        raise ConflictError(
            f"Request is '{request.status}' and can no longer be edited",
            {"request_status": request.status},
        )

    privileges = RequestedPrivilegeRepository(session)
    old_ids = [rp.privilege_id for rp in await privileges.list_for_request(request_id)]
    old_values = {
        "status": request.status,
        "kind": request.kind,
        "privilege_type": request.privilege_type,
        "justification": request.justification,
        "privilege_ids": old_ids,
    }

    if request.status == RequestStatus.REJECTED:
        await _ensure_no_other_active(session, request.applicant_id, exclude_request_id=request_id)
        request.status = RequestStatus.DRAFT
        request.completed_at = None

    if kind is not None:
        request.kind = RequestKind(kind)
    if privilege_type is not None:
        request.privilege_type = PrivilegeRequestType(privilege_type)
    if justification is not None:
        request.justification = justification
    new_ids = old_ids
    if privilege_ids is not None:
        new_ids = await _check_privileges(session, privilege_ids)
        await privileges.replace(request_id, new_ids)

    await session.flush()
    await record_audit(
        session,
        action="UPDATE",
        entity_type="privilege_requests",
        entity_id=request_id,
        actor_id=actor_id,
        old_values=old_values,
        new_values={
            "status": request.status,
            "kind": request.kind,
            "privilege_type": request.privilege_type,
            "justification": request.justification,
            "privilege_ids": new_ids,
        },
    )
    return request


async def submit_request(
    session: AsyncSession,
    request_id: str,
    actor_id: str,
    now: datetime | None = None,
) -> PrivilegeRequestRow:
    """Submit a draft: auto-approve it or build its approval chain.

    A request returned for modifications is resubmitted through here too; the
    chain is rebuilt from scratch in a new round and pending steps of earlier
    rounds are skipped.
    """
    now = now or utcnow()
    request = await _load_request(session, request_id)
    if request.applicant_id != actor_id:
        raise AuthorizationError("Only the applicant can submit this request")
    if request.status != RequestStatus.DRAFT:
        raise ConflictError(
            f"Only draft requests can be submitted (status is '{request.status}')",
            {"request_status": request.status},
        )
    _check_justification(request.kind, request.justification)

    privileges = RequestedPrivilegeRepository(session)
    requested = await privileges.list_for_request(request_id)
    if not requested:
        raise ValidationError("Select at least one privilege before submitting")

    applicant = await _load_active_user(session, request.applicant_id)
    catalog = await PrivilegeRepository(session).list_by_ids([rp.privilege_id for rp in requested])
    same_specialty = all(
        is_same_specialty(applicant.specialty, p.required_specialty, applicant.additional_specialties)
        for p in catalog
    )
    requirement = await resolve_requirement(
        session, applicant.practitioner_type, request.privilege_type, same_specialty
    )

    resubmission = request.chain_round > 0
    if resubmission:
        await ApprovalStepRepository(session).skip_pending(request_id)
        await EscalationRepository(session).close_for_request(
            request_id, EscalationStatus.CANCELLED, now, notes="Superseded by resubmission"
        )
        await privileges.reset_decisions(request_id)

    notifier = NotificationService(session)
    if requirement.auto_approve:
        request.status = RequestStatus.APPROVED
        request.submitted_at = now
        request.completed_at = now
        await privileges.settle_pending(request_id, PrivilegeStatus.APPROVED)
        await record_audit(
            session,
            action="AUTO_APPROVE",
            entity_type="privilege_requests",
            entity_id=request_id,
            actor_id=actor_id,
            new_values={"status": request.status, "requirement": requirement.as_dict()},
        )
        await notifier.enqueue(
            NotificationType.REQUEST_APPROVED,
            applicant.email,
            applicant.display_name,
            request_id=request_id,
            metadata={"auto_approved": True},
        )
        logger.info("Request %s auto-approved (%s)", request_id, requirement.description)
        await session.flush()
        return request

    steps = await build_chain(session, request, applicant, requirement, now=now)
    first = steps[0]
    first_approver = await UserRepository(session).get(first.approver_id)
    if first_approver:
        await notifier.enqueue(
            NotificationType.APPROVAL_REQUIRED,
            first_approver.email,
            first_approver.display_name,
            request_id=request_id,
            metadata={"applicant_name": applicant.display_name, "approval_level": first.level},
        )
    await notifier.enqueue(
        NotificationType.REQUEST_SUBMITTED,
        applicant.email,
        applicant.display_name,
        request_id=request_id,
        metadata={"first_level": first.level},
    )
    await record_audit(
        session,
        action="SUBMIT",
        entity_type="privilege_requests",
        entity_id=request_id,
        actor_id=actor_id,
        old_values={"status": RequestStatus.DRAFT},
        new_values={
            "status": request.status,
            "chain_round": request.chain_round,
            "levels": [s.level for s in steps],
            "resubmission": resubmission,
        },
    )
    return request


async def cancel_request(
    session: AsyncSession,
    request_id: str,
    actor_id: str,
    now: datetime | None = None,
) -> PrivilegeRequestRow:
    now = now or utcnow()
    request = await _load_request(session, request_id)
    actor = await _load_active_user(session, actor_id)
    if request.applicant_id != actor.user_id and actor.role != UserRole.ADMIN:
        raise AuthorizationError("Only the applicant or an administrator can cancel this request")
    if request.status not in ACTIVE_REQUEST_STATUSES:
        raise ConflictError(
            f"Request is '{request.status}' and cannot be cancelled",
            {"request_status": request.status},
        )

    old_status = request.status
    request.status = RequestStatus.CANCELLED
    request.completed_at = now
    skipped = await ApprovalStepRepository(session).skip_pending(request_id)
    await EscalationRepository(session).close_for_request(
        request_id, EscalationStatus.CANCELLED, now, notes="Request cancelled"
    )
    await record_audit(
        session,
        action="CANCEL",
        entity_type="privilege_requests",
        entity_id=request_id,
        actor_id=actor.user_id,
        old_values={"status": old_status},
        new_values={"status": request.status, "skipped_steps": skipped},
    )
    await session.flush()
    logger.info("Request %s cancelled by %s", request_id, actor.user_id)
    return request


async def get_request_detail(
    session: AsyncSession, request_id: str, viewer_id: str | None = None
) -> RequestDetail:
    """Load a request for display.

    With ``viewer_id`` the caller must be the applicant, an approver on the
    request or an administrator.
    """
    request = await _load_request(session, request_id)
    step_repo = ApprovalStepRepository(session)

    if viewer_id is not None and viewer_id != request.applicant_id:
        viewer = await _load_active_user(session, viewer_id)
        approvers = {s.approver_id for s in await step_repo.list_for_request(request_id)}
        if viewer.role != UserRole.ADMIN and viewer.user_id not in approvers:
            raise AuthorizationError("You are not allowed to view this request")

    steps = await step_repo.list_for_round(request_id, request.chain_round) if request.chain_round else []
    current = current_step(steps) if request.status in (RequestStatus.PENDING, RequestStatus.IN_REVIEW) else None
    privileges = await RequestedPrivilegeRepository(session).list_for_request(request_id)
    escalations = await EscalationRepository(session).list_for_request(request_id)

    return RequestDetail(
        request=RequestOut.model_validate(request),
        privileges=[RequestedPrivilegeOut.model_validate(p) for p in privileges],
        steps=[ApprovalStepOut.model_validate(s) for s in steps],
        current_step=ApprovalStepOut.model_validate(current) if current else None,
        escalations=[EscalationOut.model_validate(e) for e in escalations],
    )
