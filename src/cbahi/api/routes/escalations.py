"""Escalation sweep trigger for external cron schedulers."""

from fastapi import APIRouter, Depends, Request

from cbahi.config import settings
from cbahi.dependencies import get_redis, verify_cron_secret
from cbahi.services.escalation.sweep import run_locked_sweep

router = APIRouter(tags=["Escalation"])


async def _sweep(request: Request, redis) -> dict:
    report = await run_locked_sweep(
        request.app.state.db_session_factory,
        redis=redis,
        lock_ttl_seconds=settings.sweep_lock_ttl_seconds,
    )
    return report.model_dump(mode="json", exclude_none=True)


# Some schedulers can only issue GET, so both verbs run the sweep.
@router.get("/cron/escalation", dependencies=[Depends(verify_cron_secret)])
async def trigger_escalation_get(request: Request, redis=Depends(get_redis)) -> dict:
    return await _sweep(request, redis)


@router.post("/cron/escalation", dependencies=[Depends(verify_cron_secret)])
async def trigger_escalation_post(request: Request, redis=Depends(get_redis)) -> dict:
    return await _sweep(request, redis)
