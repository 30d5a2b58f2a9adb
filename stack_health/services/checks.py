"""Individual health checkers.

Every checker is a ``Checker`` record holding a name, a criticality flag and
a zero-argument logic function. ``run_check`` wraps the logic with timing and
turns any exception into an ``error`` result, so a single broken dependency
never takes the other checks down with it.
"""

from __future__ import annotations

import os
import re
import resource
import shutil
import socket
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import psutil
import redis
import structlog
from redis.backoff import NoBackoff
from redis.retry import Retry

from stack_health.schemas.health import CheckResult, CheckStatus
from stack_health.services.formatting import format_bytes, parse_memory_limit
from stack_health.services.php_runtime import PhpRuntimeProbe, RuntimeProbeError

logger = structlog.get_logger()

MAX_MEMORY_USAGE_PERCENT = 90.0

REQUIRED_EXTENSIONS = ("pdo", "mbstring", "json", "curl")
OPTIONAL_EXTENSIONS = ("redis", "apcu", "intl", "zip", "gd", "xml")

OPCACHE_MIN_HIT_RATE = 90.0
OPCACHE_MAX_MEMORY_USAGE = 90.0

REDIS_TIMEOUT = 1.0
REDIS_MAX_LATENCY_MS = 100.0
LOCAL_REDIS_HOST = "127.0.0.1"

MAX_DISK_USAGE_PERCENT = 90.0
MAX_LOAD_AVERAGE = 10.0

DEFAULT_APP_DIRECTORIES = ("/var/www/html", "/var/www/html/public", "/tmp")

_MEMINFO_LINE = re.compile(r"^(\w+):\s+(\d+)\s+kB", re.MULTILINE)


@dataclass(frozen=True)
class Checker:
    """A named, self-contained health check."""

    name: str
    critical: bool
    logic: Callable[[], CheckResult]

    def check(self) -> CheckResult:
        return run_check(self.logic, self.name)


def run_check(logic: Callable[[], CheckResult], name: str = "") -> CheckResult:
    """Run a check's logic, timing it and containing any failure."""
    start = time.perf_counter()
    try:
        result = logic()
        return result.model_copy(update={"duration": time.perf_counter() - start})
    except Exception as exc:
        duration = time.perf_counter() - start
        logger.warning("health_check_failed", check=name, error=str(exc))
        return CheckResult(
            healthy=False,
            status=CheckStatus.ERROR,
            error=str(exc),
            duration=duration,
        )


def _status(healthy: bool, otherwise: CheckStatus = CheckStatus.WARNING) -> CheckStatus:
    return CheckStatus.HEALTHY if healthy else otherwise


def _percent(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0


# ─── PHP runtime ─────────────────────────────────────────────────────────────

def php_runtime_check(probe: PhpRuntimeProbe) -> Checker:
    """Memory headroom of the PHP runtime. The only critical check."""

    def logic() -> CheckResult:
        snapshot = probe.snapshot
        limit = parse_memory_limit(snapshot.memory_limit)
        usage_percent = _percent(snapshot.memory_usage, limit)
        healthy = usage_percent < MAX_MEMORY_USAGE_PERCENT

        return CheckResult(
            healthy=healthy,
            status=_status(healthy),
            details={
                "version": snapshot.version,
                "sapi": snapshot.sapi,
                "memory": {
                    "limit": format_bytes(limit) if limit >= 0 else "unlimited",
                    "usage": format_bytes(snapshot.memory_usage),
                    "peak": format_bytes(snapshot.memory_peak),
                    "usage_percent": usage_percent,
                },
                "zend_version": snapshot.zend_version,
            },
        )

    return Checker(name="php", critical=True, logic=logic)


def php_extensions_check(probe: PhpRuntimeProbe) -> Checker:
    """Required and optional extensions.

    Non-critical on purpose: a missing extension is reported as ``critical``
    in this check's own status but does not fail the liveness probe.
    """

    def logic() -> CheckResult:
        snapshot = probe.snapshot
        required_loaded = [e for e in REQUIRED_EXTENSIONS if snapshot.has_extension(e)]
        required_missing = [e for e in REQUIRED_EXTENSIONS if not snapshot.has_extension(e)]
        optional_loaded = [e for e in OPTIONAL_EXTENSIONS if snapshot.has_extension(e)]
        healthy = not required_missing

        return CheckResult(
            healthy=healthy,
            status=_status(healthy, CheckStatus.CRITICAL),
            details={
                "total_loaded": len(snapshot.extensions),
                "required": {
                    "loaded": required_loaded,
                    "missing": required_missing,
                },
                "optional_loaded": optional_loaded,
            },
            error=None if healthy else "Missing required extensions: " + ", ".join(required_missing),
        )

    return Checker(name="php_extensions", critical=False, logic=logic)


def opcache_check(probe: PhpRuntimeProbe) -> Checker:
    """OPcache memory pressure and hit rate."""

    def logic() -> CheckResult:
        status = probe.snapshot.opcache
        if status is None:
            return CheckResult(
                healthy=False,
                status=CheckStatus.UNAVAILABLE,
                error="OPcache extension not available",
            )
        if status is False or not isinstance(status, dict):
            return CheckResult(
                healthy=False,
                status=CheckStatus.DISABLED,
                error="OPcache is disabled",
            )

        memory = status.get("memory_usage") or {}
        stats = status.get("opcache_statistics") or {}
        jit = status.get("jit") or {}

        memory_used = memory.get("used_memory", 0)
        memory_free = memory.get("free_memory", 0)
        memory_usage_percent = _percent(memory_used, memory_used + memory_free)

        hits = stats.get("hits", 0)
        misses = stats.get("misses", 0)
        hit_rate = _percent(hits, hits + misses)

        healthy = hit_rate >= OPCACHE_MIN_HIT_RATE and memory_usage_percent < OPCACHE_MAX_MEMORY_USAGE

        return CheckResult(
            healthy=healthy,
            status=_status(healthy),
            details={
                "enabled": True,
                "memory": {
                    "used": format_bytes(memory_used),
                    "free": format_bytes(memory_free),
                    "usage_percent": memory_usage_percent,
                    "wasted_percent": round(memory.get("current_wasted_percentage", 0), 2),
                },
                "statistics": {
                    "hits": hits,
                    "misses": misses,
                    "hit_rate": hit_rate,
                    "cached_scripts": stats.get("num_cached_scripts", 0),
                    "max_cached_keys": stats.get("max_cached_keys", 0),
                },
                "jit": {
                    "enabled": jit.get("enabled", False),
                    "on": jit.get("on", False),
                    "buffer_size": format_bytes(jit.get("buffer_size", 0)),
                },
                "restarts": {
                    "oom": stats.get("oom_restarts", 0),
                    "hash": stats.get("hash_restarts", 0),
                    "manual": stats.get("manual_restarts", 0),
                },
            },
        )

    return Checker(name="opcache", critical=False, logic=logic)


# ─── Redis ───────────────────────────────────────────────────────────────────

def redis_check(host: str, port: int = 6379, password: str = "") -> Checker:
    """Connect, authenticate, ping and read INFO from Redis. No retries."""

    def logic() -> CheckResult:
        if not host:
            return CheckResult(
                healthy=False,
                status=CheckStatus.UNAVAILABLE,
                error="Redis host not configured",
            )

        client = None
        try:
            connect_start = time.perf_counter()
            try:
                # single_connection_client connects eagerly: TCP handshake plus AUTH when a password is set
                client = redis.Redis(
                    host=host,
                    port=port,
                    password=password or None,
                    socket_connect_timeout=REDIS_TIMEOUT,
                    socket_timeout=REDIS_TIMEOUT,
                    retry=Retry(NoBackoff(), 0),
                    single_connection_client=True,
                    decode_responses=True,
                )
            except (redis.AuthenticationError, redis.ResponseError):
                # AuthenticationError subclasses ConnectionError, so it is caught first
                return _redis_unauthenticated(host)
            except (redis.ConnectionError, redis.TimeoutError):
                return CheckResult(
                    healthy=False,
                    status=CheckStatus.UNAVAILABLE,
                    details={"connect_latency_ms": round((time.perf_counter() - connect_start) * 1000, 2)},
                    error="Cannot connect to Redis",
                )
            connect_ms = (time.perf_counter() - connect_start) * 1000

            ping_start = time.perf_counter()
            try:
                pong = client.ping()
            except redis.AuthenticationError:
                return _redis_unauthenticated(host)
            ping_ms = (time.perf_counter() - ping_start) * 1000

            if pong is not True and pong not in ("+PONG", "PONG"):
                raise RuntimeError("Redis ping failed")

            info = client.info()
            healthy = ping_ms < REDIS_MAX_LATENCY_MS

            return CheckResult(
                healthy=healthy,
                status=_status(healthy),
                details={
                    "connected": True,
                    "version": str(info.get("redis_version", "unknown")),
                    "uptime_seconds": int(info.get("uptime_in_seconds", 0)),
                    "memory": {
                        "used": str(info.get("used_memory_human", "unknown")),
                        "peak": str(info.get("used_memory_peak_human", "unknown")),
                        "fragmentation_ratio": float(info.get("mem_fragmentation_ratio", 0)),
                    },
                    "stats": {
                        "connected_clients": int(info.get("connected_clients", 0)),
                        "total_commands_processed": int(info.get("total_commands_processed", 0)),
                        "keyspace_hits": int(info.get("keyspace_hits", 0)),
                        "keyspace_misses": int(info.get("keyspace_misses", 0)),
                    },
                    "latency": {
                        "connect_ms": round(connect_ms, 2),
                        "ping_ms": round(ping_ms, 2),
                    },
                },
            )
        finally:
            if client is not None:
                client.close()

    return Checker(name="redis", critical=False, logic=logic)


def _redis_unauthenticated(host: str) -> CheckResult:
    return CheckResult(
        healthy=False,
        status=CheckStatus.UNAUTHENTICATED,
        details={"host": host},
        error="Redis authentication failed (NOAUTH). Check REDIS_PASSWORD.",
    )


def resolve_redis_host(host: str) -> str:
    """Fall back to loopback when the compose service name ``redis`` does not resolve.

    Covers the single-container image, where Redis runs next to PHP and no
    ``redis`` DNS entry exists.
    """
    if host != "redis":
        return host
    try:
        socket.gethostbyname(host)
    except (socket.gaierror, UnicodeError):
        logger.debug("redis_host_unresolved", host=host, fallback=LOCAL_REDIS_HOST)
        return LOCAL_REDIS_HOST
    return host


# ─── System resources ────────────────────────────────────────────────────────

def system_resources_check(root: str = "/", meminfo_path: str = "/proc/meminfo") -> Checker:
    """Disk, load average and memory of the host (or container)."""

    def logic() -> CheckResult:
        try:
            usage = shutil.disk_usage(root)
            disk_total, disk_free = usage.total, usage.free
        except OSError:
            disk_total = disk_free = 0
        disk_usage_percent = _percent(disk_total - disk_free, disk_total)

        try:
            load1, load5, load15 = os.getloadavg()
        except OSError:
            load1 = load5 = load15 = 0.0

        healthy = disk_usage_percent < MAX_DISK_USAGE_PERCENT and load1 < MAX_LOAD_AVERAGE

        return CheckResult(
            healthy=healthy,
            status=_status(healthy),
            details={
                "disk": {
                    "total": format_bytes(disk_total),
                    "free": format_bytes(disk_free),
                    "usage_percent": disk_usage_percent,
                },
                "load_average": {
                    "1min": round(load1, 2),
                    "5min": round(load5, 2),
                    "15min": round(load15, 2),
                },
                "memory": read_memory_info(meminfo_path),
            },
        )

    return Checker(name="system", critical=False, logic=logic)


def read_memory_info(meminfo_path: str = "/proc/meminfo") -> dict[str, Any]:
    """System memory from /proc/meminfo, or this process's own usage if that is off limits."""
    try:
        content = Path(meminfo_path).read_text()
    except OSError:
        return {
            "source": "process_fallback",
            "note": "System memory unavailable (restricted environment)",
            "process_memory_usage": format_bytes(psutil.Process().memory_info().rss),
            # ru_maxrss is in kilobytes on Linux
            "process_memory_peak": format_bytes(resource.getrusage(resource.RUSAGE_SELF).ru_maxrss * 1024),
        }

    meminfo = {key: int(value) * 1024 for key, value in _MEMINFO_LINE.findall(content)}
    mem_total = meminfo.get("MemTotal", 0)
    mem_available = meminfo.get("MemAvailable", meminfo.get("MemFree", 0))
    mem_used = mem_total - mem_available

    return {
        "source": "proc_meminfo",
        "total": format_bytes(mem_total),
        "available": format_bytes(mem_available),
        "used": format_bytes(mem_used),
        "usage_percent": _percent(mem_used, mem_total),
    }


# ─── Application directories ─────────────────────────────────────────────────

def application_check(
    probe: PhpRuntimeProbe,
    directories: list[str] | tuple[str, ...] = DEFAULT_APP_DIRECTORIES,
    document_root: str = "",
    open_basedir: str = "",
) -> Checker:
    """Existence and permissions of the directories the app is served from.

    ``document_root`` and ``open_basedir`` are what PHP itself reports; the
    arguments are only used when the runtime leaves them empty or cannot be
    inspected.
    """

    def logic() -> CheckResult:
        try:
            snapshot = probe.snapshot
            runtime_root, runtime_basedir = snapshot.document_root, snapshot.open_basedir
        except RuntimeProbeError:
            runtime_root = runtime_basedir = ""
        root = runtime_root or document_root
        basedir = runtime_basedir or open_basedir

        directory_status = {}
        all_healthy = True

        for directory in directories:
            status = probe_directory(directory)
            directory_status[os.path.basename(directory.rstrip("/")) or directory] = status
            if not status["exists"] or not status["readable"]:
                all_healthy = False

        details: dict[str, Any] = {
            "directories": directory_status,
            "document_root": root or "unknown",
        }
        if basedir:
            details["security_note"] = "Directories outside open_basedir are not checked"
            details["open_basedir"] = basedir

        return CheckResult(
            healthy=all_healthy,
            status=_status(all_healthy),
            details=details,
        )

    return Checker(name="application", critical=False, logic=logic)


def probe_directory(path: str) -> dict[str, Any]:
    """exists/readable/writable for one path. Access errors read as False."""
    try:
        exists = os.path.isdir(path)
        readable = exists and os.access(path, os.R_OK)
        writable = exists and os.access(path, os.W_OK)
    except (OSError, ValueError):
        exists = readable = writable = False

    return {
        "path": path,
        "exists": exists,
        "readable": readable,
        "writable": writable,
    }
