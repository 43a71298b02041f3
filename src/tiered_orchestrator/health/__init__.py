"""Workspace health checks."""

from .checker import (
    CheckResult,
    CheckStatus,
    HealthChecker,
    check_workspace_health,
    ensure_workspace_healthy,
)

__all__ = [
    "HealthChecker",
    "CheckResult",
    "CheckStatus",
    "check_workspace_health",
    "ensure_workspace_healthy",
]
