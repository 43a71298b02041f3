"""Runs the workspace check suite and judges a patch."""

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .error_parsers import parse_errors
from ..utils.subprocess_utils import SubprocessError, run_process

logger = logging.getLogger(__name__)

DEFAULT_COMMANDS = ["bun run typecheck", "bun run lint", "bun run build"]
DEFAULT_TIMEOUT = 60


@dataclass
class CommandResult:
    """One check command's run."""
    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    duration_seconds: float = 0.0

    @property
    def passed(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


@dataclass
class VerifyResult:
    """Aggregate verdict over every check command."""
    success: bool
    errors: Optional[List[str]] = None  # only on failure
    logs: str = ""
    commands: List[CommandResult] = field(default_factory=list)

    @property
    def summary(self) -> str:
        status = "PASS" if self.success else "FAIL"
        failed = [c.command for c in self.commands if not c.passed]
        if not failed:
            return f"{status}: {len(self.commands)} command(s) passed"
        return f"{status}: {len(failed)}/{len(self.commands)} failed ({', '.join(failed)})"


class Verifier:
    """Runs check commands one after another in the workspace.

    Every command runs even after an earlier one fails; errors accumulate in
    command order.
    """

    def __init__(
        self,
        commands: Optional[Sequence[str]] = None,
        timeout: int = DEFAULT_TIMEOUT,
        env: Optional[Dict[str, str]] = None,
    ):
        self.commands = list(commands) if commands else list(DEFAULT_COMMANDS)
        self.timeout = timeout
        self.extra_env = dict(env) if env is not None else {"CI": "true"}

    @classmethod
    def from_config(cls, verification_config) -> "Verifier":
        return cls(
            commands=verification_config.commands,
            timeout=verification_config.timeout,
            env=verification_config.env,
        )

    def _environment(self) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(self.extra_env)
        return env

    async def run(
        self,
        workspace: Path,
        commands: Optional[Sequence[str]] = None,
        timeout: Optional[int] = None,
    ) -> VerifyResult:
        """Run every command; success only if all exit zero within the timeout."""
        commands = list(commands) if commands else self.commands
        timeout = timeout or self.timeout
        env = self._environment()

        errors: List[str] = []
        logs: List[str] = []
        results: List[CommandResult] = []

        for command in commands:
            logger.debug(f"Verifying with: {command}")
            try:
                argv = shlex.split(command)
            except ValueError as e:
                errors.append(f'Command "{command}" failed: {e}')
                results.append(CommandResult(command=command, exit_code=-1, stderr=str(e)))
                continue

            try:
                proc = await run_process(argv, cwd=workspace, env=env, timeout=timeout)
            except SubprocessError as e:
                errors.append(f'Command "{command}" failed: {e.reason}')
                results.append(CommandResult(command=command, exit_code=-1, stderr=e.reason))
                continue

            logs.append(f"[{command}]\n{proc.stdout}{proc.stderr}")
            result = CommandResult(
                command=command,
                exit_code=proc.returncode,
                stdout=proc.stdout,
                stderr=proc.stderr,
                timed_out=proc.timed_out,
                duration_seconds=proc.duration_seconds,
            )
            results.append(result)

            if proc.timed_out:
                errors.append(f'Command "{command}" timed out after {timeout}s')
            elif proc.returncode != 0:
                errors.extend(parse_errors(proc.stderr or proc.stdout, command))

        return VerifyResult(
            success=not errors,
            errors=errors or None,
            logs="\n\n".join(logs),
            commands=results,
        )
