# remindhook/routes/health.py
"""
Health check endpoints with store connectivity.
"""

import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from remindhook.config import settings
from remindhook.repositories import get_reminder_store
from remindhook.repositories.reminder_store import ReminderStore

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "remindhook"}


@router.get("/readyz")
async def readyz(store: ReminderStore = Depends(get_reminder_store)):
    """Readiness check: the reminder store must answer a ping."""
    checks = {}

    t0 = time.time()
    try:
        store_ok = await store.ping()
        checks["store"] = {
            "ok": bool(store_ok),
            "backend": settings.STORE_BACKEND,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
    except Exception as e:
        checks["store"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}

    overall_ok = checks["store"]["ok"]
    return JSONResponse(
        status_code=200 if overall_ok else 503,
        content={"status": "ready" if overall_ok else "not_ready", "checks": checks},
    )
