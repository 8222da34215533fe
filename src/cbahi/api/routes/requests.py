"""Privilege request API routes."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cbahi.db.models.user import UserRow
from cbahi.dependencies import get_current_user, get_db
from cbahi.logging_config import bind_workflow_context
from cbahi.models.request import RequestCreate, RequestUpdate
from cbahi.services.workflow.requests import (
    cancel_request,
    create_request,
    get_request_detail,
    submit_request,
    update_request,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Requests"])


@router.post("/requests", status_code=201)
async def create_privilege_request(
    body: RequestCreate,
    db: AsyncSession = Depends(get_db),
    user: UserRow = Depends(get_current_user),
) -> dict:
    request = await create_request(
        db,
        applicant_id=user.user_id,
        kind=body.kind,
        privilege_type=body.privilege_type,
        justification=body.justification,
        privilege_ids=body.privilege_ids,
        submit=body.submit,
    )
    await db.commit()
    detail = await get_request_detail(db, request.request_id)
    return detail.model_dump(mode="json")


@router.get("/requests/{request_id}")
async def get_privilege_request(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    user: UserRow = Depends(get_current_user),
) -> dict:
    detail = await get_request_detail(db, request_id, viewer_id=user.user_id)
    return detail.model_dump(mode="json")


@router.patch("/requests/{request_id}")
async def update_privilege_request(
    request_id: str,
    body: RequestUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserRow = Depends(get_current_user),
) -> dict:
    bind_workflow_context(request_id=request_id)
    await update_request(
        db,
        request_id,
        actor_id=user.user_id,
        kind=body.kind,
        privilege_type=body.privilege_type,
        justification=body.justification,
        privilege_ids=body.privilege_ids,
    )
    await db.commit()
    detail = await get_request_detail(db, request_id)
    return detail.model_dump(mode="json")


@router.post("/requests/{request_id}/submit")
async def submit_privilege_request(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    user: UserRow = Depends(get_current_user),
) -> dict:
    bind_workflow_context(request_id=request_id)
    await submit_request(db, request_id, actor_id=user.user_id)
    await db.commit()
    detail = await get_request_detail(db, request_id)
    return detail.model_dump(mode="json")


@router.post("/requests/{request_id}/cancel")
async def cancel_privilege_request(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    user: UserRow = Depends(get_current_user),
) -> dict:
    bind_workflow_context(request_id=request_id)
    await cancel_request(db, request_id, actor_id=user.user_id)
    await db.commit()
    detail = await get_request_detail(db, request_id)
    return detail.model_dump(mode="json")
