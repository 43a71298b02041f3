"""Turns a task into an applied patch.

Steps, each usable on its own:
- read_files(): snapshot the task's owned files (never raises)
- PatchPipeline.call_model(): one chat completion under the tier's gate
- parse_patch(): pull a single ```diff block out of the response and size-check it
- PatchPipeline.apply_patch(): hand the diff to the external `patch` utility
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import OrchestratorConfig
from .event_log import Event, TaskEventLogger
from .task import Task, Tier
from ..errors import ModelCallError
from ..llm.base import LLMBackend, LLMRequest, LLMResponse
from ..safeguards.concurrency_gate import GateRegistry
from ..utils.subprocess_utils import SubprocessError, run_process

logger = logging.getLogger(__name__)

MAX_PATCH_LINES = 300
NO_DIFF_BLOCK = "No diff block found in response"
MISSING_FILE_PLACEHOLDER = "// File does not exist yet"
UNREADABLE_FILE_PLACEHOLDER = "// Error reading file"
PATCH_COMMAND = ["patch", "-p1", "--forward", "--no-backup-if-mismatch"]

_DIFF_BLOCK = re.compile(r"```diff\n(.*?)```", re.DOTALL)


@dataclass
class PatchResult:
    """Either an accepted diff or a rejection reason, never both.

    ``lines_changed`` accompanies an accepted patch, and a rejection only when
    the patch was rejected for size.
    """
    patch: Optional[str] = None
    lines_changed: Optional[int] = None
    error: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.patch is not None and self.error is None


@dataclass
class ApplyResult:
    """Outcome of running the patch utility."""
    success: bool
    error: Optional[str] = None


def count_changed_lines(diff: str) -> int:
    """Count +/- lines, skipping the +++/--- file headers."""
    return sum(
        1
        for line in diff.split("\n")
        if line.startswith(("+", "-")) and not line.startswith(("+++", "---"))
    )


def parse_patch(response_text: str, max_lines: int = MAX_PATCH_LINES) -> PatchResult:
    """Extract the first fenced diff block and enforce the size cap."""
    match = _DIFF_BLOCK.search(response_text)
    if not match:
        return PatchResult(error=NO_DIFF_BLOCK)

    patch = match.group(1).strip()
    lines_changed = count_changed_lines(patch)

    if lines_changed > max_lines:
        return PatchResult(
            error=f"Patch too large: {lines_changed} lines (max {max_lines})",
            lines_changed=lines_changed,
        )

    return PatchResult(patch=patch, lines_changed=lines_changed)


def read_files(paths: Sequence[str], workspace: Path) -> Dict[str, str]:
    """Read each owned file, degrading I/O problems to placeholder text.

    A missing file is normal (the task may be creating it), so the model gets
    a placeholder instead of the pipeline failing.
    """
    contents: Dict[str, str] = {}
    for path in paths:
        full_path = workspace / path
        try:
            if full_path.is_file():
                contents[path] = full_path.read_text(encoding="utf-8")
            elif full_path.exists():
                contents[path] = UNREADABLE_FILE_PLACEHOLDER
            else:
                contents[path] = MISSING_FILE_PLACEHOLDER
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Could not read {full_path}: {e}")
            contents[path] = UNREADABLE_FILE_PLACEHOLDER
    return contents


class PatchPipeline:
    """Model calls and patch application for a workspace.

    The gate registry is shared by every pipeline in the process; a model call
    holds its tier's slot only for the duration of the request.
    """

    def __init__(
        self,
        backend: LLMBackend,
        gates: GateRegistry,
        config: OrchestratorConfig,
        events: Optional[TaskEventLogger] = None,
    ):
        self.backend = backend
        self.gates = gates
        self.config = config
        self.events = events or TaskEventLogger()

    @property
    def max_patch_lines(self) -> int:
        return self.config.patch.max_patch_lines

    def model_for(self, tier: Tier) -> str:
        return self.config.model_for(tier)

    async def call_model(self, task: Task, prompt: str) -> LLMResponse:
        """Send the prompt to the task's tier model under that tier's gate.

        Raises:
            ModelCallError: transport or backend failure (retryable)
        """
        model = self.model_for(task.tier)
        gate = self.gates.gate(task.tier)
        self.events.info(Event.MODEL_CALL_START, task, model=model)

        request = LLMRequest(
            prompt=prompt,
            model=model,
            max_tokens=self.config.llm.max_tokens,
            temperature=self.config.llm.temperature,
        )

        async with gate.slot():
            try:
                response = await self.backend.complete(request, task_id=task.id)
            except Exception as e:
                raise ModelCallError(model, str(e)) from e

        if not response.success:
            raise ModelCallError(model, response.error or "unknown backend error")

        self.events.info(
            Event.MODEL_CALL_COMPLETE,
            task,
            model=model,
            tokens_used=response.tokens_used,
            latency_ms=round(response.latency_ms),
        )
        return response

    def parse_patch(self, response_text: str) -> PatchResult:
        return parse_patch(response_text, self.max_patch_lines)

    async def apply_patch(self, patch: str, workspace: Path) -> ApplyResult:
        """Apply a unified diff forward-only, without .orig backups."""
        argv: List[str] = list(self.config.patch.command or PATCH_COMMAND)
        # patch wants a trailing newline on the last hunk line
        diff_text = patch if patch.endswith("\n") else patch + "\n"

        try:
            result = await run_process(
                argv,
                cwd=workspace,
                input_text=diff_text,
                timeout=self.config.patch.timeout,
            )
        except SubprocessError as e:
            return ApplyResult(success=False, error=f"Patch failed: {e.reason}")

        if not result.ok:
            diagnostics = result.stderr.strip() or result.stdout.strip()
            if result.timed_out:
                diagnostics = f"timed out after {self.config.patch.timeout}s"
            return ApplyResult(success=False, error=f"Patch failed: {diagnostics}")

        return ApplyResult(success=True)

    def read_files(self, task: Task, workspace: Path) -> Dict[str, str]:
        return read_files(task.files_owned, workspace)
