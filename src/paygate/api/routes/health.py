"""Health check endpoints."""

import os

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from paygate import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Return service health status."""
    return {"status": "healthy", "service": "paygate", "version": __version__}


@router.get("/health/live")
async def liveness():
    """Liveness check; always 200 while the process runs."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(request: Request):
    """Readiness check: the queue directories must be writable."""
    checks: dict[str, str] = {}
    overall_ok = True

    services = getattr(request.app.state, "services", None)
    if services is None:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "checks": {"services": "not initialized"}},
        )

    directories = {
        "pending": services.store.pending_dir,
        "sent": services.store.sent_dir,
        "webhook_failures": services.failure_store.directory,
    }
    for name, directory in directories.items():
        if directory.is_dir() and os.access(directory, os.W_OK):
            checks[name] = "ok"
        else:
            checks[name] = f"error: {directory} not writable"
            overall_ok = False

    status_code = 200 if overall_ok else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ready" if overall_ok else "not_ready",
            "checks": checks,
        },
    )
