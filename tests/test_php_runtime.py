"""Tests for the PHP runtime probe."""

from __future__ import annotations

import json
import subprocess

import httpx
import pytest

from stack_health.services import php_runtime
from stack_health.services.php_runtime import PhpRuntimeProbe, RuntimeProbeError, RuntimeSnapshot

SNAPSHOT = {
    "version": "8.3.12",
    "sapi": "cli",
    "zend_version": "4.3.12",
    "memory_limit": "128M",
    "memory_usage": 2097152,
    "memory_peak": 2097152,
    "extensions": ["Core", "PDO", "json"],
    "opcache": False,
    "open_basedir": "",
    "document_root": "",
}


class TestRuntimeSnapshot:
    """Parsing the JSON PHP prints."""

    def test_from_dict(self):
        snapshot = RuntimeSnapshot.from_dict(SNAPSHOT)
        assert snapshot.version == "8.3.12"
        assert snapshot.memory_limit == "128M"
        assert snapshot.opcache is False
        assert snapshot.has_extension("pdo")
        assert not snapshot.has_extension("curl")

    def test_null_opcache_means_unavailable(self):
        snapshot = RuntimeSnapshot.from_dict({**SNAPSHOT, "opcache": None})
        assert snapshot.opcache is None

    def test_missing_version_is_rejected(self):
        data = dict(SNAPSHOT)
        del data["version"]
        with pytest.raises(RuntimeProbeError):
            RuntimeSnapshot.from_dict(data)


class TestCliProbe:
    """Snapshot taken by running the php binary."""

    def test_runs_php_once(self, monkeypatch):
        calls = []

        def fake_run(args, **kwargs):
            calls.append(args)
            return subprocess.CompletedProcess(args, 0, stdout=json.dumps(SNAPSHOT), stderr="")

        monkeypatch.setattr(php_runtime.subprocess, "run", fake_run)
        probe = PhpRuntimeProbe(php_binary="/usr/local/bin/php", timeout=2.0)
        assert probe.snapshot.sapi == "cli"
        assert probe.snapshot.version == "8.3.12"
        assert len(calls) == 1
        assert calls[0][0] == "/usr/local/bin/php"
        assert "-r" in calls[0]

    def test_missing_binary(self, monkeypatch):
        def fake_run(args, **kwargs):
            raise FileNotFoundError(args[0])

        monkeypatch.setattr(php_runtime.subprocess, "run", fake_run)
        with pytest.raises(RuntimeProbeError, match="PHP binary not found"):
            PhpRuntimeProbe(php_binary="php-nope").snapshot

    def test_timeout(self, monkeypatch):
        def fake_run(args, **kwargs):
            raise subprocess.TimeoutExpired(args, kwargs["timeout"])

        monkeypatch.setattr(php_runtime.subprocess, "run", fake_run)
        with pytest.raises(RuntimeProbeError, match="did not answer"):
            PhpRuntimeProbe(timeout=0.5).snapshot

    def test_non_zero_exit(self, monkeypatch):
        monkeypatch.setattr(
            php_runtime.subprocess,
            "run",
            lambda args, **kwargs: subprocess.CompletedProcess(args, 255, stdout="", stderr="PHP Fatal error"),
        )
        with pytest.raises(RuntimeProbeError, match="exited with 255"):
            PhpRuntimeProbe().snapshot

    def test_invalid_json(self, monkeypatch):
        monkeypatch.setattr(
            php_runtime.subprocess,
            "run",
            lambda args, **kwargs: subprocess.CompletedProcess(args, 0, stdout="Warning: oops", stderr=""),
        )
        with pytest.raises(RuntimeProbeError, match="invalid JSON"):
            PhpRuntimeProbe().snapshot

    def test_phpinfo_runs_php_dash_i(self, monkeypatch):
        calls = []

        def fake_run(args, **kwargs):
            calls.append(args)
            return subprocess.CompletedProcess(args, 0, stdout="phpinfo()\nPHP Version => 8.3.12\n", stderr="")

        monkeypatch.setattr(php_runtime.subprocess, "run", fake_run)
        assert "PHP Version => 8.3.12" in PhpRuntimeProbe(php_binary="php8.3").phpinfo()
        assert calls == [["php8.3", "-i"]]

    def test_phpinfo_missing_binary(self, monkeypatch):
        def fake_run(args, **kwargs):
            raise FileNotFoundError(args[0])

        monkeypatch.setattr(php_runtime.subprocess, "run", fake_run)
        with pytest.raises(RuntimeProbeError, match="PHP binary not found"):
            PhpRuntimeProbe().phpinfo()

    def test_non_object_json(self, monkeypatch):
        monkeypatch.setattr(
            php_runtime.subprocess,
            "run",
            lambda args, **kwargs: subprocess.CompletedProcess(args, 0, stdout="[1, 2]", stderr=""),
        )
        with pytest.raises(RuntimeProbeError, match="not a JSON object"):
            PhpRuntimeProbe().snapshot


class TestStatusUrlProbe:
    """Snapshot fetched from a PHP-FPM status script."""

    URL = "http://127.0.0.1/_runtime.php"

    def test_fetches_json(self, monkeypatch):
        fpm_snapshot = {**SNAPSHOT, "sapi": "fpm-fcgi", "opcache": {"opcache_enabled": True}}
        monkeypatch.setattr(php_runtime.httpx, "get", lambda url, timeout: httpx.Response(200, json=fpm_snapshot))
        probe = PhpRuntimeProbe(status_url=self.URL)
        assert probe.snapshot.sapi == "fpm-fcgi"
        assert probe.snapshot.opcache == {"opcache_enabled": True}

    def test_http_error_status(self, monkeypatch):
        monkeypatch.setattr(php_runtime.httpx, "get", lambda url, timeout: httpx.Response(502, text="Bad Gateway"))
        with pytest.raises(RuntimeProbeError, match="502"):
            PhpRuntimeProbe(status_url=self.URL).snapshot

    def test_connection_failure(self, monkeypatch):
        def refuse(url, timeout):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(php_runtime.httpx, "get", refuse)
        with pytest.raises(RuntimeProbeError, match="connection refused"):
            PhpRuntimeProbe(status_url=self.URL).snapshot

    def test_invalid_json(self, monkeypatch):
        monkeypatch.setattr(php_runtime.httpx, "get", lambda url, timeout: httpx.Response(200, text="<html>"))
        with pytest.raises(RuntimeProbeError, match="invalid JSON"):
            PhpRuntimeProbe(status_url=self.URL).snapshot
