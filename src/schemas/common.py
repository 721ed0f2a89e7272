"""Schemas shared by health checks and error responses."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Liveness probe payload."""

    status: HealthStatus
    timestamp: datetime = Field(default_factory=_utcnow)
    version: str = Field(default="0.1.0", description="API version")


class CheckResult(BaseModel):
    """Result of one dependency check during readiness."""

    name: str
    healthy: bool
    latency_ms: float | None = None
    error: str | None = None


class ReadinessResponse(BaseModel):
    status: HealthStatus
    timestamp: datetime = Field(default_factory=_utcnow)
    checks: list[CheckResult] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Body returned for every API error.

    `errors` maps dotted field paths (e.g. `shipping_address.city`) to
    messages and is only set for validation failures.
    """

    error: str = Field(description="Error type or category")
    message: str = Field(description="Human-readable error description")
    errors: dict[str, list[str]] | None = Field(default=None, description="Field-keyed validation messages")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_exception(
        cls,
        error_type: str,
        message: str,
        errors: dict[str, list[str]] | None = None,
        request_id: str | None = None,
    ) -> "ErrorResponse":
        return cls(error=error_type, message=message, errors=errors or None, request_id=request_id)
