"""FastAPI dependency injection providers."""

import hmac
from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cbahi.config import settings
from cbahi.db.models.user import UserRow
from cbahi.errors.exceptions import AuthenticationError
from cbahi.logging_config import bind_request_context
from cbahi.repositories.user_repo import UserRepository


async def get_db(request: Request) -> AsyncGenerator:
    """Yield a database session from the app's session factory."""
    session_factory = request.app.state.db_session_factory
    async with session_factory() as session:
        yield session


async def get_redis(request: Request):
    """Return the Redis connection pool from app state (None when disabled)."""
    return getattr(request.app.state, "redis", None)


def get_trace_id(request: Request) -> str:
    """Extract trace_id from request state (set by middleware)."""
    return getattr(request.state, "trace_id", "unknown")


async def get_current_user(
    request: Request, session: AsyncSession = Depends(get_db)
) -> UserRow:
    """Return the authenticated, active user row or raise 401."""
    user = getattr(request.state, "user", {})
    if "_auth_error" in user:
        raise AuthenticationError(user["_auth_error"])
    if not user or user.get("sub") in ("anonymous", ""):
        raise AuthenticationError("Authentication required")

    row = await UserRepository(session).get(user["sub"])
    if not row or not row.is_active:
        raise AuthenticationError("Unknown or inactive user")
    bind_request_context(get_trace_id(request), row.user_id)
    return row


def _presented_cron_secrets(request: Request) -> list[str]:
    presented = []
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        presented.append(auth_header[7:])
    for header in ("x-cron-secret", "x-vercel-cron-secret"):
        value = request.headers.get(header)
        if value:
            presented.append(value)
    return presented


async def verify_cron_secret(request: Request) -> None:
    """Shared-secret check for the escalation trigger.

    Without a configured secret the trigger is only open in development.
    """
    secret = settings.cron_secret
    if not secret:
        if settings.environment == "development":
            return
        raise AuthenticationError("Invalid or missing cron secret")
    for candidate in _presented_cron_secrets(request):
        if hmac.compare_digest(candidate.encode(), secret.encode()):
            return
    raise AuthenticationError("Invalid or missing cron secret")
