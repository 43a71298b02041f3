"""Task model and the tier ladder it climbs."""

import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import TaskInputError


class Tier(str, Enum):
    """Model capability tiers, cheapest first."""
    FAST = "fast"
    DEEP = "deep"
    REVIEWER = "reviewer"


# Fixed at process start; "next tier" is the immediate successor here.
TIER_ORDER: Tuple[Tier, ...] = (Tier.FAST, Tier.DEEP, Tier.REVIEWER)

MAX_TOTAL_ATTEMPTS = 5


class TaskState(str, Enum):
    """Driver states for a single task."""
    PENDING = "pending"
    ATTEMPTING = "attempting"
    ESCALATING = "escalating"
    SUCCEEDED = "succeeded"
    ABORTED = "aborted"


class TaskInput(BaseModel):
    """Incoming request: what to do and which files the task may write."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    description: str
    files_owned: List[str] = Field(alias="filesOwned")

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("description must not be empty")
        return v

    @field_validator("files_owned")
    @classmethod
    def validate_files_owned(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("filesOwned must list at least one path")
        blank = [p for p in v if not p.strip()]
        if blank:
            raise ValueError("filesOwned must not contain blank paths")
        return v


def _zero_tier_attempts() -> Dict[Tier, int]:
    return {tier: 0 for tier in TIER_ORDER}


class Task(BaseModel):
    """A unit of work moving through the tiers.

    Frozen: every transition builds a new Task with model_copy(), so a driver
    observing the task from another coroutine never sees a half-updated value.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    description: str
    files_owned: Tuple[str, ...]
    tier: Tier = Tier.FAST

    # Monotonic across all tiers
    attempt: int = 0
    max_attempts: int = MAX_TOTAL_ATTEMPTS

    # Reset to zero only when a tier is newly entered
    tier_attempts: Dict[Tier, int] = Field(default_factory=_zero_tier_attempts)

    def attempts_at(self, tier: Optional[Tier] = None) -> int:
        """Attempts made at ``tier`` (defaults to the current tier)."""
        return self.tier_attempts.get(tier or self.tier, 0)

    def short_id(self) -> str:
        return self.id[:8]


@dataclass
class AttemptRecord:
    """What a single attempt did and how it ended."""

    attempt_number: int
    tier: Tier
    outcome: str  # model_call, patch_format, patch_apply, verification, succeeded
    errors: List[str] = field(default_factory=list)
    tokens_used: int = 0
    lines_changed: Optional[int] = None
    duration_seconds: float = 0.0


@dataclass
class TaskOutcome:
    """Terminal result of driving one task."""

    task: Task
    state: TaskState
    last_errors: List[str] = field(default_factory=list)
    history: List[AttemptRecord] = field(default_factory=list)
    escalations: int = 0

    @property
    def success(self) -> bool:
        return self.state == TaskState.SUCCEEDED

    @property
    def total_tokens(self) -> int:
        return sum(a.tokens_used for a in self.history)


def parse_task_input(text: str) -> TaskInput:
    """Parse one JSON task object; raises TaskInputError on any problem."""
    try:
        return TaskInput.model_validate_json(text)
    except ValidationError as e:
        raise TaskInputError(f"Invalid task input: {e}") from e


def parse_task_batch(text: str) -> List[TaskInput]:
    """Parse a JSON array of task objects."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise TaskInputError(f"Invalid task input: {e}") from e
    if not isinstance(data, list) or not data:
        raise TaskInputError("Batch input must be a non-empty JSON array of tasks")

    inputs = []
    for i, item in enumerate(data):
        try:
            inputs.append(TaskInput.model_validate(item))
        except ValidationError as e:
            raise TaskInputError(f"Invalid task input at index {i}: {e}") from e
    return inputs
