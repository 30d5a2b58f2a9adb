"""Demo landing page served when no application is mounted."""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from fastapi.templating import Jinja2Templates

from stack_health.dependencies import AppSettings, RuntimeProbe
from stack_health.services.formatting import format_uptime
from stack_health.services.manager import build_dashboard
from stack_health.services.php_runtime import RuntimeProbeError

router = APIRouter(tags=["demo"])

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))
templates.env.filters["uptime"] = format_uptime

CARD_TITLES = {
    "php": "PHP",
    "opcache": "OPcache",
    "redis": "Redis",
}


def _summary(name: str, payload) -> str:
    """One-line card message for a check."""
    details = payload.details or {}
    if payload.error:
        return payload.error
    if name == "php":
        return f"PHP {details.get('version', 'unknown')} ({details.get('sapi', 'unknown')})"
    if name == "opcache":
        return f"OPcache enabled ({details.get('memory', {}).get('usage_percent', 0)}% memory used)"
    if name == "redis":
        return f"Redis {details.get('version', 'unknown')} connected"
    return payload.status.value


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def landing_page(request: Request, settings: AppSettings, probe: RuntimeProbe) -> Response:
    """HTML dashboard over the PHP, OPcache and Redis checks."""
    if not settings.show_demo:
        return PlainTextResponse("Not Found", status_code=404)

    report = build_dashboard(settings, probe).run_all()
    cards = [
        {
            "title": CARD_TITLES.get(name, name),
            "healthy": payload.healthy,
            "message": _summary(name, payload),
            "details": payload.details or {},
        }
        for name, payload in report.checks.items()
    ]
    php_details = report.checks["php"].details or {}

    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "cards": cards,
            "overall_healthy": all(card["healthy"] for card in cards),
            "stack": {
                "image": settings.stack_image,
                "version": settings.stack_version,
                "php_version": php_details.get("version", "unknown"),
                "environment": settings.app_env,
                "document_root": settings.document_root,
            },
        },
    )


@router.get("/info", include_in_schema=False)
def php_info(settings: AppSettings, probe: RuntimeProbe) -> Response:
    """phpinfo of the bundled runtime. Never served in production."""
    if settings.app_env == "production":
        return JSONResponse({"error": "PHPInfo is disabled in production"})
    try:
        return PlainTextResponse(probe.phpinfo())
    except RuntimeProbeError as exc:
        return JSONResponse({"error": str(exc)}, status_code=503)
