"""CLI entry point: run the API server or a one-off escalation sweep."""

import argparse
import asyncio
import json
import os


async def _run_sweep() -> int:
    from cbahi.config import settings
    from cbahi.db.engine import create_db_engine, create_session_factory
    from cbahi.errors.exceptions import SweepInProgressError
    from cbahi.services.escalation.sweep import run_locked_sweep

    engine = create_db_engine()
    redis = None
    if not settings.local_mode:
        import redis.asyncio as aioredis
        redis = aioredis.from_url(settings.redis_url, decode_responses=True)
    try:
        report = await run_locked_sweep(
            create_session_factory(engine),
            redis=redis,
            lock_ttl_seconds=settings.sweep_lock_ttl_seconds,
        )
    except SweepInProgressError as exc:
        print(exc.message)
        return 1
    finally:
        if redis is not None:
            await redis.close()
        await engine.dispose()
    print(json.dumps(report.model_dump(mode="json", exclude_none=True), indent=2))
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="cbahi-server",
        description="CBAHI clinical privileging workflow service",
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Local dev mode: SQLite database, no Redis required",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API (default)")
    serve.add_argument("--host", default=None, help="Bind host (default: CBAHI_HOST or 0.0.0.0)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: CBAHI_PORT or 8080)")

    sub.add_parser("sweep", help="Run one escalation sweep and print the report")

    args = parser.parse_args(argv)

    # Must be set before cbahi.config is first imported
    if args.local:
        os.environ["CBAHI_LOCAL_MODE"] = "1"

    if args.command == "sweep":
        raise SystemExit(asyncio.run(_run_sweep()))

    import uvicorn

    from cbahi.config import settings

    host = getattr(args, "host", None) or settings.host
    port = getattr(args, "port", None) or settings.port
    uvicorn.run("cbahi.main:app", host=host, port=port)


if __name__ == "__main__":
    main()
