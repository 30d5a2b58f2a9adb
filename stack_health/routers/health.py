"""Health check endpoints for container probes and monitoring."""

from __future__ import annotations

import traceback
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse

from stack_health.dependencies import AppSettings, RuntimeProbe
from stack_health.schemas.health import ErrorEnvelope, LivenessResponse, ServiceStatus
from stack_health.services.manager import build_dashboard, build_manager

router = APIRouter(tags=["health"])
logger = structlog.get_logger()

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

JSON_MEDIA_TYPE = "application/json; charset=utf-8"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def error_envelope(exc: Exception) -> ErrorEnvelope:
    """Describe an exception with the file and line it was raised from."""
    frames = traceback.extract_tb(exc.__traceback__)
    origin = frames[-1] if frames else None
    return ErrorEnvelope(
        timestamp=_now(),
        error=str(exc),
        file=origin.filename if origin else "unknown",
        line=origin.lineno if origin and origin.lineno else 0,
    )


@router.get("/health")
@router.get("/health.php", include_in_schema=False)
def health_check(settings: AppSettings, probe: RuntimeProbe) -> JSONResponse:
    """Run every checker. 200 when healthy, 503 when a critical check fails."""
    try:
        report = build_manager(settings, probe).run_all()
    except Exception as exc:
        logger.exception("health_check_crashed", error=str(exc))
        return JSONResponse(
            status_code=500,
            content=error_envelope(exc).model_dump(),
            headers=NO_CACHE_HEADERS,
            media_type=JSON_MEDIA_TYPE,
        )

    return JSONResponse(
        status_code=200 if report.healthy else 503,
        content=report.to_dict(),
        headers=NO_CACHE_HEADERS,
        media_type=JSON_MEDIA_TYPE,
    )


@router.get("/health/live", response_model=LivenessResponse)
def liveness_check(response: Response) -> LivenessResponse:
    """Liveness: the process answers. Runs no checks."""
    response.headers.update(NO_CACHE_HEADERS)
    return LivenessResponse()


@router.get("/status", response_model=ServiceStatus)
def service_status(settings: AppSettings, probe: RuntimeProbe) -> ServiceStatus:
    """Which bundled services are up, as plain booleans."""
    report = build_dashboard(settings, probe).run_all()
    return ServiceStatus(
        services={name: payload.healthy for name, payload in report.checks.items()},
        timestamp=_now(),
    )
