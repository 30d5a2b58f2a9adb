"""Shared test fixtures for the health service test suite."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from stack_health.app import create_app
from stack_health.config import Settings
from stack_health.dependencies import get_probe
from stack_health.services.php_runtime import RuntimeSnapshot

MB = 1024 * 1024


def healthy_opcache() -> dict[str, Any]:
    """opcache_get_status(false) output of a warmed-up cache."""
    return {
        "opcache_enabled": True,
        "memory_usage": {
            "used_memory": 64 * MB,
            "free_memory": 64 * MB,
            "current_wasted_percentage": 0.5,
        },
        "opcache_statistics": {
            "num_cached_scripts": 420,
            "max_cached_keys": 16229,
            "hits": 9900,
            "misses": 100,
            "oom_restarts": 0,
            "hash_restarts": 0,
            "manual_restarts": 1,
        },
        "jit": {
            "enabled": True,
            "on": True,
            "buffer_size": 64 * MB,
        },
    }


def make_snapshot(**overrides: Any) -> RuntimeSnapshot:
    """A healthy PHP 8.3 FPM runtime, with any field overridden."""
    data: dict[str, Any] = {
        "version": "8.3.12",
        "sapi": "fpm-fcgi",
        "zend_version": "4.3.12",
        "memory_limit": "256M",
        "memory_usage": 2 * MB,
        "memory_peak": 4 * MB,
        "extensions": ["Core", "PDO", "mbstring", "json", "curl", "redis", "intl", "Zend OPcache"],
        "opcache": healthy_opcache(),
        "open_basedir": "",
        "document_root": "/var/www/html/public",
    }
    data.update(overrides)
    return RuntimeSnapshot(**data)


class StaticProbe:
    """Stands in for PhpRuntimeProbe with a fixed snapshot."""

    def __init__(self, snapshot: RuntimeSnapshot) -> None:
        self.snapshot = snapshot

    def phpinfo(self) -> str:
        return f"phpinfo()\nPHP Version => {self.snapshot.version}\n"


class BrokenProbe:
    """A probe whose snapshot always fails."""

    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    @property
    def snapshot(self) -> RuntimeSnapshot:
        raise self.exc

    def phpinfo(self) -> str:
        raise self.exc


def _test_settings(tmp_path) -> Settings:
    """Return settings suitable for testing."""
    html = tmp_path / "html"
    public = html / "public"
    public.mkdir(parents=True)
    return Settings(
        app_env="development",
        log_format="console",
        redis_host="",
        document_root=str(public),
        app_directories=f"{html},{public}",
    )


@pytest.fixture
def settings(tmp_path):
    """Test settings."""
    return _test_settings(tmp_path)


@pytest.fixture
def snapshot():
    """Runtime snapshot served to the app; tests may replace it."""
    return make_snapshot()


@pytest.fixture
def app(settings, snapshot):
    """Create a fresh FastAPI app whose PHP probe returns the snapshot fixture."""
    app = create_app(settings)
    app.dependency_overrides[get_probe] = lambda: StaticProbe(snapshot)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """HTTP test client."""
    return TestClient(app)
