"""Approval step API routes."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cbahi.db.models.user import UserRow
from cbahi.dependencies import get_current_user, get_db
from cbahi.logging_config import bind_workflow_context
from cbahi.errors.exceptions import AuthorizationError, NotFoundError
from cbahi.models.approval import ProcessApprovalBody
from cbahi.models.enums import UserRole
from cbahi.models.request import ApprovalStepOut
from cbahi.repositories.approval_repo import ApprovalStepRepository
from cbahi.repositories.request_repo import PrivilegeRequestRepository
from cbahi.services.workflow.requests import get_request_detail
from cbahi.services.workflow.state_machine import list_current_approvals, process_approval

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Approvals"])


@router.get("/approvals/pending")
async def list_pending_approvals(
    db: AsyncSession = Depends(get_db),
    user: UserRow = Depends(get_current_user),
) -> list[dict]:
    approvals = await list_current_approvals(db, user.user_id)
    return [a.model_dump(mode="json") for a in approvals]


@router.get("/approvals/{step_id}")
async def get_approval(
    step_id: str,
    db: AsyncSession = Depends(get_db),
    user: UserRow = Depends(get_current_user),
) -> dict:
    step = await ApprovalStepRepository(db).get(step_id)
    if not step:
        raise NotFoundError("Approval", step_id)
    request = await PrivilegeRequestRepository(db).get(step.request_id)
    allowed = {step.approver_id, request.applicant_id if request else None}
    if user.user_id not in allowed and user.role != UserRole.ADMIN:
        raise AuthorizationError("You are not allowed to view this approval")

    detail = await get_request_detail(db, step.request_id)
    return {
        "approval": ApprovalStepOut.model_validate(step).model_dump(mode="json"),
        "request": detail.model_dump(mode="json"),
    }


@router.post("/approvals/{step_id}")
async def process_approval_step(
    step_id: str,
    body: ProcessApprovalBody,
    db: AsyncSession = Depends(get_db),
    user: UserRow = Depends(get_current_user),
) -> dict:
    bind_workflow_context(step_id=step_id)
    result = await process_approval(
        db,
        step_id,
        actor_id=user.user_id,
        action=body.action,
        comments=body.comments,
        signature=body.signature,
        privilege_decisions=body.granted_privileges,
    )
    await db.commit()
    logger.info("Approval %s processed by %s: %s", step_id, user.user_id, body.action)
    return result.model_dump(mode="json")
