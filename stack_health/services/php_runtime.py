"""Snapshot of the PHP runtime, taken from the php CLI or an FPM status script."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

import httpx
import structlog

logger = structlog.get_logger()

# Prints everything the checkers need as one JSON object. opcache is null when
# opcache_get_status() does not exist and false when OPcache is disabled.
SNAPSHOT_SCRIPT = r"""
$opcache = function_exists('opcache_get_status') ? @opcache_get_status(false) : null;
echo json_encode([
    'version' => PHP_VERSION,
    'sapi' => PHP_SAPI,
    'zend_version' => zend_version(),
    'memory_limit' => (string) ini_get('memory_limit'),
    'memory_usage' => memory_get_usage(true),
    'memory_peak' => memory_get_peak_usage(true),
    'extensions' => get_loaded_extensions(),
    'opcache' => $opcache,
    'open_basedir' => (string) ini_get('open_basedir'),
    'document_root' => $_SERVER['DOCUMENT_ROOT'] ?? '',
]);
"""


class RuntimeProbeError(Exception):
    """Raised when the PHP runtime cannot be inspected."""


@dataclass(frozen=True)
class RuntimeSnapshot:
    """What PHP reports about itself at one point in time."""

    version: str
    sapi: str
    zend_version: str = "unknown"
    memory_limit: str = "-1"
    memory_usage: int = 0
    memory_peak: int = 0
    extensions: list[str] = field(default_factory=list)
    opcache: dict[str, Any] | bool | None = None
    open_basedir: str = ""
    document_root: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuntimeSnapshot:
        try:
            return cls(
                version=str(data["version"]),
                sapi=str(data["sapi"]),
                zend_version=str(data.get("zend_version") or "unknown"),
                memory_limit=str(data.get("memory_limit") or "-1"),
                memory_usage=int(data.get("memory_usage") or 0),
                memory_peak=int(data.get("memory_peak") or 0),
                extensions=[str(e) for e in data.get("extensions") or []],
                opcache=data.get("opcache"),
                open_basedir=str(data.get("open_basedir") or ""),
                document_root=str(data.get("document_root") or ""),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise RuntimeProbeError(f"Malformed runtime snapshot: {exc}") from exc

    def has_extension(self, name: str) -> bool:
        return name.lower() in {e.lower() for e in self.extensions}


class PhpRuntimeProbe:
    """Fetches a RuntimeSnapshot once and memoises it.

    With a status URL the snapshot comes from a PHP script served by FPM,
    which sees the same OPcache the web requests use. Otherwise the php CLI
    is run directly.
    """

    def __init__(
        self,
        php_binary: str = "php",
        status_url: str = "",
        timeout: float = 5.0,
    ) -> None:
        self.php_binary = php_binary
        self.status_url = status_url
        self.timeout = timeout

    @cached_property
    def snapshot(self) -> RuntimeSnapshot:
        if self.status_url:
            data = self._fetch_status_url()
        else:
            data = self._run_cli()
        if not isinstance(data, dict):
            raise RuntimeProbeError("Runtime snapshot is not a JSON object")
        snapshot = RuntimeSnapshot.from_dict(data)
        logger.debug("php_runtime_probed", version=snapshot.version, sapi=snapshot.sapi)
        return snapshot

    def phpinfo(self) -> str:
        """Plain-text ``php -i`` output of the CLI runtime."""
        return self._run_php("-i")

    def _run_cli(self) -> Any:
        stdout = self._run_php("-d", "display_errors=stderr", "-r", SNAPSHOT_SCRIPT)
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise RuntimeProbeError(f"PHP printed invalid JSON: {exc}") from exc

    def _run_php(self, *args: str) -> str:
        try:
            completed = subprocess.run(
                [self.php_binary, *args],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise RuntimeProbeError(f"PHP binary not found: {self.php_binary}") from exc
        except subprocess.TimeoutExpired as exc:
            raise RuntimeProbeError(f"PHP did not answer within {self.timeout}s") from exc

        if completed.returncode != 0:
            raise RuntimeProbeError(
                f"PHP exited with {completed.returncode}: {completed.stderr.strip()[:200]}"
            )
        return completed.stdout

    def _fetch_status_url(self) -> Any:
        try:
            response = httpx.get(self.status_url, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise RuntimeProbeError(f"Runtime status request failed: {exc}") from exc
        if response.status_code != 200:
            raise RuntimeProbeError(
                f"Runtime status request failed: {response.status_code} {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RuntimeProbeError(f"Runtime status returned invalid JSON: {exc}") from exc
