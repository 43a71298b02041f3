"""Core models, configuration and the task driver."""

from .task import (
    MAX_TOTAL_ATTEMPTS,
    TIER_ORDER,
    AttemptRecord,
    Task,
    TaskInput,
    TaskOutcome,
    TaskState,
    Tier,
)
from .config import OrchestratorConfig, load_config
from .tier_policy import TierPolicy
from .driver import TaskDriver, create_driver, run_batch

__all__ = [
    "MAX_TOTAL_ATTEMPTS",
    "TIER_ORDER",
    "AttemptRecord",
    "Task",
    "TaskInput",
    "TaskOutcome",
    "TaskState",
    "Tier",
    "OrchestratorConfig",
    "load_config",
    "TierPolicy",
    "TaskDriver",
    "create_driver",
    "run_batch",
]
