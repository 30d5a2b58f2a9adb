"""Runs registered checkers and folds their results into one report."""

from __future__ import annotations

import time
from datetime import datetime, timezone

import structlog

from stack_health.config import Settings
from stack_health.schemas.health import CheckPayload, HealthReport
from stack_health.services.checks import (
    Checker,
    application_check,
    opcache_check,
    php_extensions_check,
    php_runtime_check,
    redis_check,
    resolve_redis_host,
    system_resources_check,
)
from stack_health.services.php_runtime import PhpRuntimeProbe

logger = structlog.get_logger()


class HealthCheckManager:
    """Ordered registry of checkers.

    Checkers run one after another in registration order. Registering a
    name twice replaces the earlier checker.
    """

    def __init__(self) -> None:
        self.checkers: dict[str, Checker] = {}

    def add_checker(self, checker: Checker) -> HealthCheckManager:
        self.checkers[checker.name] = checker
        return self

    def run_all(self) -> HealthReport:
        start = time.perf_counter()
        results: dict[str, CheckPayload] = {}
        overall_healthy = True

        for name, checker in self.checkers.items():
            result = checker.check()
            results[name] = result.to_payload()
            if not result.healthy and checker.critical:
                overall_healthy = False

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        report = HealthReport(
            status="healthy" if overall_healthy else "unhealthy",
            timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            duration_ms=duration_ms,
            checks=results,
        )

        log = logger.info if overall_healthy else logger.warning
        log(
            "health_check_completed",
            status=report.status,
            duration_ms=duration_ms,
            failing=[name for name, payload in results.items() if not payload.healthy],
        )
        return report


def build_probe(settings: Settings) -> PhpRuntimeProbe:
    return PhpRuntimeProbe(
        php_binary=settings.php_binary,
        status_url=settings.php_status_url,
        timeout=settings.probe_timeout,
    )


def build_manager(settings: Settings, probe: PhpRuntimeProbe | None = None) -> HealthCheckManager:
    """The full set of checkers served on /health."""
    if probe is None:
        probe = build_probe(settings)

    return (
        HealthCheckManager()
        .add_checker(php_runtime_check(probe))
        .add_checker(php_extensions_check(probe))
        .add_checker(opcache_check(probe))
        .add_checker(redis_check(settings.redis_host, settings.redis_port, settings.redis_password))
        .add_checker(system_resources_check())
        .add_checker(
            application_check(
                probe,
                settings.app_directories_list,
                document_root=settings.document_root,
                open_basedir=settings.open_basedir,
            )
        )
    )


def build_dashboard(settings: Settings, probe: PhpRuntimeProbe | None = None) -> HealthCheckManager:
    """The reduced set shown on the landing page and /status."""
    if probe is None:
        probe = build_probe(settings)

    return (
        HealthCheckManager()
        .add_checker(php_runtime_check(probe))
        .add_checker(opcache_check(probe))
        .add_checker(
            redis_check(resolve_redis_host(settings.redis_host), settings.redis_port, settings.redis_password)
        )
    )
