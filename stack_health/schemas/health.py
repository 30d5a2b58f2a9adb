"""Schemas for health check endpoints."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CheckStatus(str, Enum):
    """Why a check ended the way it did."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    ERROR = "error"
    UNAVAILABLE = "unavailable"
    DISABLED = "disabled"
    UNAUTHENTICATED = "unauthenticated"


class CheckPayload(BaseModel):
    """Wire form of a single check result."""

    healthy: bool
    status: CheckStatus
    details: dict[str, Any] | None = None
    error: str | None = None
    duration_ms: float | None = None


class CheckResult(BaseModel):
    """Outcome of one checker run. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    healthy: bool
    status: CheckStatus
    details: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    duration: float | None = None  # seconds

    def to_payload(self) -> CheckPayload:
        """Build the wire form, leaving out empty details, error and duration."""
        return CheckPayload(
            healthy=self.healthy,
            status=self.status,
            details=self.details or None,
            error=self.error,
            duration_ms=round(self.duration * 1000, 2) if self.duration is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return self.to_payload().model_dump(mode="json", exclude_none=True)


class HealthReport(BaseModel):
    """Aggregate health of every registered checker."""

    status: str
    timestamp: str
    duration_ms: float
    checks: dict[str, CheckPayload]

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ErrorEnvelope(BaseModel):
    """Body returned when the health run itself blows up."""

    status: str = "error"
    timestamp: str
    error: str
    file: str
    line: int


class ServiceStatus(BaseModel):
    """Compact service map for /status."""

    status: str = "ok"
    services: dict[str, bool]
    timestamp: str


class LivenessResponse(BaseModel):
    """Body of /health/live."""

    status: str = "alive"
