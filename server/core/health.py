"""Liveness details for the /health endpoint.

Reports the database and upload directory checks plus process uptime,
memory, upload-volume disk usage and query cache counters.
"""
import os
import time
from typing import Dict, Any, TYPE_CHECKING

import psutil
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

if TYPE_CHECKING:
    from core.cache import QueryCache
    from core.config import Settings
    from core.database import Database

_started_at: float = 0.0


def set_startup_time() -> None:
    """Called once from the lifespan hook."""
    global _started_at
    _started_at = time.time()


def get_uptime() -> float:
    return time.time() - _started_at if _started_at else 0.0


def process_memory_mb() -> float:
    return psutil.Process().memory_info().rss / (1024 * 1024)


def upload_disk_percent(upload_dir: str) -> float:
    try:
        return psutil.disk_usage(upload_dir).percent
    except OSError:
        return 0.0


def uploads_writable(upload_dir: str) -> bool:
    return os.path.isdir(upload_dir) and os.access(upload_dir, os.W_OK)


async def database_reachable(database: "Database") -> bool:
    try:
        async with database.get_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, RuntimeError, OSError):
        return False


async def get_health_status(
    database: "Database",
    cache: "QueryCache",
    settings: "Settings"
) -> Dict[str, Any]:
    """Status is "healthy" only when every check passes, "degraded" otherwise."""
    checks = {
        "database": await database_reachable(database),
        "uploads": uploads_writable(settings.upload_dir),
    }

    return {
        "status": "healthy" if all(checks.values()) else "degraded",
        "uptime_seconds": round(get_uptime(), 1),
        "memory_mb": round(process_memory_mb(), 1),
        "disk_percent": round(upload_disk_percent(settings.upload_dir), 1),
        "checks": checks,
        "cache": cache.stats(),
        "auth_enabled": settings.auth_enabled,
    }
