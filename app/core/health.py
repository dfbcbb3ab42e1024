from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from app.core.settings import settings
from app.db.session import engine
from app.services.carriers.registry import build_default_registry

APP_VERSION = "0.1.0"


async def _check_db() -> dict[str, str]:
    try:
        async with engine.begin() as conn:  # type: AsyncConnection
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}


def _check_carriers() -> dict[str, Any]:
    registry = build_default_registry()
    carriers: dict[str, str] = {}
    for slug in registry.slugs():
        adapter = registry.get(slug)
        carriers[slug] = "configured" if adapter.is_configured() else "missing_credentials"
    default_ok = carriers.get(settings.default_carrier_slug) == "configured"
    check: dict[str, Any] = {"status": "ok" if default_ok else "error", "carriers": carriers}
    if not default_ok:
        check["error"] = f"Default carrier {settings.default_carrier_slug} is not configured"
    return check


async def _check_api() -> dict[str, str]:
    return {"status": "ok", "version": APP_VERSION}


def _overall_status(checks: dict[str, dict[str, Any]]) -> tuple[str, bool]:
    ready = all(check.get("status") == "ok" for check in checks.values())
    return ("ok" if ready else "degraded", ready)


async def live_payload() -> dict[str, str]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def ready_payload() -> dict[str, Any]:
    checks = {
        "api": await _check_api(),
        "database": await _check_db(),
        "carrier": _check_carriers(),
    }
    overall, ready = _overall_status(checks)
    return {
        "status": overall,
        "ready": ready,
        "environment": settings.environment,
        "version": APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
