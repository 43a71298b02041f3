"""Tier selection, escalation and abort decisions.

Everything here is a pure function of a Task value and a few fixed limits,
so the driver's state machine can be tested without any I/O.

Decision rules:
1. Start at DEEP when the task owns more than ``deep_file_threshold`` files or
   its description is longer than ``deep_description_threshold`` characters,
   otherwise at FAST.
2. A tier is exhausted once ``max_attempts_per_tier`` attempts were made at it.
3. Escalate when the tier is exhausted and a next tier exists.
4. Abort when ``max_total_attempts`` is reached, or when the tier is exhausted
   and there is nowhere to escalate.
"""

from typing import Optional, Sequence, Union

from .config import PolicyConfig
from .task import MAX_TOTAL_ATTEMPTS, TIER_ORDER, Task, TaskInput, Tier
from ..errors import EscalationError


class TierPolicy:
    """Pure attempt-budget and tier-transition logic."""

    def __init__(
        self,
        max_attempts_per_tier: int = 2,
        max_total_attempts: int = MAX_TOTAL_ATTEMPTS,
        deep_file_threshold: int = 5,
        deep_description_threshold: int = 1000,
        tier_order: Sequence[Tier] = TIER_ORDER,
    ):
        self.max_attempts_per_tier = max_attempts_per_tier
        self.max_total_attempts = max_total_attempts
        self.deep_file_threshold = deep_file_threshold
        self.deep_description_threshold = deep_description_threshold
        self.tier_order = tuple(tier_order)

    @classmethod
    def from_config(cls, config: PolicyConfig) -> "TierPolicy":
        return cls(
            max_attempts_per_tier=config.max_attempts_per_tier,
            max_total_attempts=config.max_total_attempts,
            deep_file_threshold=config.deep_file_threshold,
            deep_description_threshold=config.deep_description_threshold,
        )

    def initial_tier(self, task: Union[Task, TaskInput]) -> Tier:
        """Larger or vaguer tasks skip the cheap tier."""
        if (
            len(task.files_owned) > self.deep_file_threshold
            or len(task.description) > self.deep_description_threshold
        ):
            return Tier.DEEP
        return Tier.FAST

    def next_tier(self, tier: Tier) -> Optional[Tier]:
        try:
            index = self.tier_order.index(tier)
        except ValueError:
            return None
        if index >= len(self.tier_order) - 1:
            return None
        return self.tier_order[index + 1]

    def tier_exhausted(self, task: Task) -> bool:
        """Single source of truth for "this tier's budget is spent".

        Both should_escalate() and should_abort() go through here so they can
        never disagree about whether a task is out of attempts at its tier.
        """
        return task.attempts_at(task.tier) >= self.max_attempts_per_tier

    def should_escalate(self, task: Task) -> bool:
        return self.tier_exhausted(task) and self.next_tier(task.tier) is not None

    def should_abort(self, task: Task) -> bool:
        if task.attempt >= min(task.max_attempts, self.max_total_attempts):
            return True
        return self.tier_exhausted(task) and self.next_tier(task.tier) is None

    def escalate(self, task: Task) -> Task:
        """Move to the next tier with a fresh per-tier counter.

        The global attempt counter is left alone; it only moves in
        increment_attempt().

        Raises:
            EscalationError: if the task is already at the last tier
        """
        next_tier = self.next_tier(task.tier)
        if next_tier is None:
            raise EscalationError(f"Cannot escalate from tier: {task.tier.value}")

        tier_attempts = dict(task.tier_attempts)
        tier_attempts[next_tier] = 0
        return task.model_copy(update={"tier": next_tier, "tier_attempts": tier_attempts})

    def increment_attempt(self, task: Task) -> Task:
        """Count one attempt globally and at the current tier.

        Called before any network or filesystem work so a crash mid-attempt
        still counts against the budget.
        """
        tier_attempts = dict(task.tier_attempts)
        tier_attempts[task.tier] = tier_attempts.get(task.tier, 0) + 1
        return task.model_copy(update={"attempt": task.attempt + 1, "tier_attempts": tier_attempts})

    def create_task(self, task_input: TaskInput) -> Task:
        """Build the initial Task for an incoming request."""
        return Task(
            description=task_input.description,
            files_owned=tuple(task_input.files_owned),
            tier=self.initial_tier(task_input),
            max_attempts=self.max_total_attempts,
        )
