"""Health check endpoint logic."""

from __future__ import annotations

import structlog

from onescheduler.config.settings import get_settings

logger = structlog.get_logger(__name__)


async def check_health() -> dict[str, object]:
    """Report which backends serve tenants and preferences, and check the database."""
    from onescheduler.web.dependencies import registry

    await registry.prune()
    settings = get_settings()
    result: dict[str, object] = {
        "status": "healthy",
        "version": "0.1.0",
        "tenant_store": "database" if settings.use_database else "memory",
        "preferences": "file" if settings.preferences_path else "memory",
        "active_sessions": len(registry),
        "database": "disabled",
    }
    if not settings.use_database:
        return result

    from sqlalchemy import text

    from onescheduler.storage.database import get_engine

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        result["database"] = "connected"
    except Exception as exc:
        logger.warning("health_check_db_failed", error=str(exc))
        result["database"] = "unavailable"
        result["status"] = "degraded"

    return result
