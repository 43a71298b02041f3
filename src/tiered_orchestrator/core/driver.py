"""Task driver: the attempt → apply → verify → escalate/abort loop.

States: PENDING → ATTEMPTING → {SUCCEEDED | ESCALATING | ABORTED}, with
ESCALATING looping back to ATTEMPTING.

Per iteration:
1. Abort if the tier policy says the budget is spent.
2. Count the attempt (before any I/O, so crashes still count).
3. Snapshot owned files, build the prompt with the previous attempt's errors,
   call the tier's model under its concurrency gate.
4-6. Parse, apply and verify. Any failure replaces the error list; only the
   most recent failure is ever fed into the next prompt.
7. Escalate if the current tier is exhausted and a next tier exists.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .config import OrchestratorConfig
from .event_log import Event, TaskEventLogger
from .patch_pipeline import PatchPipeline
from .prompt_builder import build_prompt
from .task import AttemptRecord, Task, TaskInput, TaskOutcome, TaskState
from .tier_policy import TierPolicy
from ..errors import (
    ModelCallError,
    PatchApplyError,
    PatchFormatError,
    RetryableError,
    VerificationError,
)
from ..llm.base import LLMBackend
from ..safeguards.concurrency_gate import GateRegistry
from ..sandbox.verifier import Verifier

logger = logging.getLogger(__name__)

OUTCOME_SUCCEEDED = "succeeded"

# Which lifecycle event reports each kind of failed attempt
_FAILURE_EVENTS = {
    ModelCallError: Event.MODEL_CALL_COMPLETE,
    PatchFormatError: Event.PATCH_REJECTED,
    PatchApplyError: Event.PATCH_REJECTED,
    VerificationError: Event.VERIFICATION_FAIL,
}


class TaskDriver:
    """Drives tasks to success or abort.

    Holds no per-task state, so one driver can run many tasks concurrently;
    they share its pipeline and therefore its concurrency gates.
    """

    def __init__(
        self,
        pipeline: PatchPipeline,
        verifier: Verifier,
        policy: TierPolicy,
        workspace: Path,
        events: Optional[TaskEventLogger] = None,
    ):
        self.pipeline = pipeline
        self.verifier = verifier
        self.policy = policy
        self.workspace = workspace
        self.events = events or pipeline.events

    async def run(self, request: Union[TaskInput, Task]) -> TaskOutcome:
        """Drive one task to a terminal state."""
        task = self.policy.create_task(request) if isinstance(request, TaskInput) else request
        self.events.info(
            Event.TASK_CREATED,
            task,
            description=task.description[:100],
            files=list(task.files_owned),
        )

        state = TaskState.PENDING
        errors: List[str] = []
        history: List[AttemptRecord] = []
        escalations = 0

        while True:
            if self.policy.should_abort(task):
                state = TaskState.ABORTED
                break

            state = TaskState.ATTEMPTING
            task = self.policy.increment_attempt(task)
            record = await self._attempt(task, errors)
            history.append(record)

            if record.outcome == OUTCOME_SUCCEEDED:
                state = TaskState.SUCCEEDED
                break

            errors = record.errors

            if self.policy.should_escalate(task):
                state = TaskState.ESCALATING
                previous_tier = task.tier
                task = self.policy.escalate(task)
                escalations += 1
                self.events.info(
                    Event.ESCALATION,
                    task,
                    from_tier=previous_tier.value,
                    new_tier=task.tier.value,
                )

        outcome = TaskOutcome(
            task=task,
            state=state,
            last_errors=errors if state == TaskState.ABORTED else [],
            history=history,
            escalations=escalations,
        )
        self._log_terminal(outcome)
        return outcome

    async def _attempt(self, task: Task, prior_errors: Sequence[str]) -> AttemptRecord:
        """One prompt → model → parse → apply → verify cycle."""
        start = time.time()
        record = AttemptRecord(attempt_number=task.attempt, tier=task.tier, outcome=OUTCOME_SUCCEEDED)
        self.events.info(Event.ATTEMPT_START, task, retry=bool(prior_errors))

        try:
            contents = self.pipeline.read_files(task, self.workspace)
            prompt = build_prompt(task, contents, prior_errors or None)

            response = await self.pipeline.call_model(task, prompt)
            record.tokens_used = response.tokens_used

            patch_result = self.pipeline.parse_patch(response.content)
            record.lines_changed = patch_result.lines_changed
            if not patch_result.accepted:
                raise PatchFormatError(patch_result.error, patch_result.lines_changed)

            applied = await self.pipeline.apply_patch(patch_result.patch, self.workspace)
            if not applied.success:
                raise PatchApplyError(applied.error)
            self.events.info(Event.PATCH_APPLIED, task, lines_changed=patch_result.lines_changed)

            self.events.info(Event.VERIFICATION_START, task)
            verify_result = await self.verifier.run(self.workspace)
            if not verify_result.success:
                raise VerificationError(verify_result.errors or [], verify_result.logs)
            self.events.info(Event.VERIFICATION_PASS, task, summary=verify_result.summary)

        except RetryableError as e:
            record.outcome = e.category
            record.errors = e.to_feedback()
            self._log_failure(task, e)

        record.duration_seconds = time.time() - start
        self.events.info(
            Event.ATTEMPT_END,
            task,
            outcome=record.outcome,
            duration_s=round(record.duration_seconds, 2),
        )
        return record

    def _log_failure(self, task: Task, error: RetryableError) -> None:
        event = _FAILURE_EVENTS.get(type(error), Event.ATTEMPT_END)
        if isinstance(error, ModelCallError):
            self.events.error(event, task, error=error, model=error.model)
        elif isinstance(error, VerificationError):
            self.events.warn(event, task, error_count=len(error.errors), errors=error.errors)
        else:
            self.events.warn(event, task, reason=str(error))

    def _log_terminal(self, outcome: TaskOutcome) -> None:
        task = outcome.task
        summary = dict(
            total_attempts=task.attempt,
            final_tier=task.tier.value,
            escalations=outcome.escalations,
            total_tokens=outcome.total_tokens,
            attempts=[f"{a.attempt_number}:{a.tier.value}:{a.outcome}" for a in outcome.history],
        )
        if outcome.success:
            self.events.info(Event.TASK_COMPLETE, task, **summary)
        else:
            self.events.error(
                Event.TASK_ABORT,
                task,
                error="Max attempts reached",
                last_errors=outcome.last_errors,
                **summary,
            )


async def run_batch(driver: TaskDriver, requests: Sequence[Union[TaskInput, Task]]) -> List[TaskOutcome]:
    """Run independent tasks concurrently through one driver.

    Tasks must own disjoint files; the driver does not arbitrate between
    two tasks writing the same path.
    """
    return list(await asyncio.gather(*(driver.run(r) for r in requests)))


def create_driver(
    config: OrchestratorConfig,
    workspace: Path,
    backend: Optional[LLMBackend] = None,
    gates: Optional[GateRegistry] = None,
    events: Optional[TaskEventLogger] = None,
) -> TaskDriver:
    """Wire a driver from configuration.

    ``gates`` should be built once per process and shared; a fresh registry is
    created only when none is given.
    """
    if backend is None:
        from ..llm.litellm_backend import LiteLLMBackend
        logs_dir = config.logging.logs_dir if config.logging.session_logs else None
        backend = LiteLLMBackend.from_config(config.llm, logs_dir=logs_dir)

    events = events or TaskEventLogger(
        logs_dir=config.logging.logs_dir,
        session_logs=config.logging.session_logs,
    )
    pipeline = PatchPipeline(
        backend=backend,
        gates=gates or GateRegistry.from_config(config.tiers),
        config=config,
        events=events,
    )
    return TaskDriver(
        pipeline=pipeline,
        verifier=Verifier.from_config(config.verification),
        policy=TierPolicy.from_config(config.policy),
        workspace=workspace,
        events=events,
    )
