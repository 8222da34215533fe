"""FastAPI application factory and lifespan management."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cbahi.config import settings
from cbahi.db.engine import create_db_engine, create_session_factory
from cbahi.logging_config import configure_logging

# Configure logging at import time
configure_logging(log_level=settings.log_level, json_output=not settings.local_mode)

logger = logging.getLogger(__name__)


async def seed_reference_data(session_factory) -> None:
    """Insert the default approval matrix and settings row (idempotent)."""
    from cbahi.repositories.audit_repo import SystemSettingsRepository
    from cbahi.services.workflow.requirements import seed_default_requirements

    async with session_factory() as session:
        created = await seed_default_requirements(session)
        _, settings_created = await SystemSettingsRepository(session).ensure_default()
        await session.commit()
    if created:
        logger.info("Seeded %d default approval requirements", created)
    if settings_created:
        logger.info("Created default system settings")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    db_url = settings.effective_database_url
    engine = create_db_engine(db_url)
    session_factory = create_session_factory(engine)

    # Auto-create tables for SQLite (local dev, no migrations)
    if "sqlite" in db_url:
        from cbahi.db.base import Base
        import cbahi.db.models  # noqa: F401 register all ORM models

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQLite tables created (local mode)")
        await seed_reference_data(session_factory)

    app.state.db_engine = engine
    app.state.db_session_factory = session_factory

    # Redis only backs the sweep lock; run without it in local mode
    app.state.redis = None
    if not settings.local_mode:
        try:
            import redis.asyncio as aioredis
            app.state.redis = aioredis.from_url(settings.redis_url, decode_responses=True)
        except Exception:
            logger.warning("Redis not available, escalation sweep lock disabled")

    logger.info("CBAHI workflow API started (db=%s)", "sqlite" if "sqlite" in db_url else "postgresql")
    yield

    if app.state.redis:
        await app.state.redis.close()
    await engine.dispose()
    logger.info("CBAHI workflow API shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="CBAHI Privileging Workflow API",
        version="1.0.0",
        description="Clinical privilege requests, multi-level approval and escalation.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Order matters: last added = first executed
    from cbahi.api.middleware.trace_id import TraceIdMiddleware
    from cbahi.api.middleware.auth import AuthMiddleware
    app.add_middleware(AuthMiddleware)
    app.add_middleware(TraceIdMiddleware)

    from cbahi.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    from cbahi.api.router import api_router
    app.include_router(api_router)

    return app


app = create_app()
