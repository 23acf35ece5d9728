"""Health check endpoints.

- /health: liveness, always 200
- /healthz: checks the search index database and Redis, 503 when degraded
"""

from typing import Any

import redis.asyncio as redis
from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from edu_cms.app.config import Settings

router = APIRouter()


async def check_db(engine: AsyncEngine | None) -> tuple[bool, str]:
    """Check search index database connectivity.

    Returns:
        (is_ok, status_message)
    """
    if engine is None:
        return (False, "not_initialized")

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return (True, "ok")
    except Exception as e:
        return (False, f"error: {type(e).__name__}")


async def check_redis(settings: Settings) -> tuple[bool, str]:
    """Check Redis connectivity.

    Returns:
        (is_ok, status_message)
    """
    if not settings.redis_url:
        return (True, "not_configured")

    client = redis.from_url(settings.redis_url, decode_responses=True)
    try:
        await client.ping()
        return (True, "ok")
    except Exception as e:
        return (False, f"error: {type(e).__name__}")
    finally:
        await client.aclose()


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(request: Request) -> dict[str, Any] | Response:
    """Component health check.

    Returns:
        200 with component status if core systems ok
        503 if any component fails
    """
    settings: Settings = request.app.state.settings

    db_ok, db_status = await check_db(getattr(request.app.state, "index_engine", None))
    redis_ok, redis_status = await check_redis(settings)

    core_ok = db_ok and redis_ok

    response_body = {
        "status": "ok" if core_ok else "degraded",
        "components": {
            "index_db": db_status,
            "redis": redis_status,
        },
    }

    if not core_ok:
        return JSONResponse(content=response_body, status_code=503)

    return response_body
