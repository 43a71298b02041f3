"""Workspace preconditions checked once before any attempt runs."""

import json
import logging
import shlex
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

from ..errors import WorkspaceError

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"
# Runners whose "<runner> run <script>" form names a manifest script
_SCRIPT_RUNNERS = {"bun", "npm", "pnpm", "yarn"}


class CheckStatus(Enum):
    """Health check status."""
    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"
    SKIPPED = "skipped"


@dataclass
class CheckResult:
    """Result of a health check."""
    name: str
    status: CheckStatus
    message: str
    fix_action: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status != CheckStatus.FAILED


def _load_manifest(workspace: Path):
    with open(workspace / MANIFEST_NAME) as f:
        return json.load(f)


def check_workspace_health(workspace: Path) -> CheckResult:
    """The workspace must have a manifest declaring at least one runnable script."""
    manifest = workspace / MANIFEST_NAME
    if not manifest.is_file():
        return CheckResult(
            name="Project Manifest",
            status=CheckStatus.FAILED,
            message="No package.json found",
            fix_action="Point --workspace at the project root",
        )

    try:
        pkg = _load_manifest(workspace)
    except (OSError, ValueError):
        return CheckResult(
            name="Project Manifest",
            status=CheckStatus.FAILED,
            message="Invalid package.json",
            fix_action="Fix the JSON syntax in package.json",
        )

    scripts = pkg.get("scripts") if isinstance(pkg, dict) else None
    if not isinstance(scripts, dict) or not scripts:
        return CheckResult(
            name="Project Manifest",
            status=CheckStatus.FAILED,
            message="No scripts defined in package.json",
            fix_action="Add typecheck/lint/build scripts to package.json",
        )

    return CheckResult(
        name="Project Manifest",
        status=CheckStatus.PASSED,
        message=f"{len(scripts)} script(s) declared",
    )


def ensure_workspace_healthy(workspace: Path) -> None:
    """Raise WorkspaceError unless check_workspace_health() passes."""
    result = check_workspace_health(workspace)
    if result.status == CheckStatus.FAILED:
        raise WorkspaceError(str(workspace), result.message)


class HealthChecker:
    """Validate the workspace and local tooling before a run."""

    def __init__(self, workspace: Path, verification_commands: Sequence[str] = ()):
        self.workspace = workspace
        self.verification_commands = list(verification_commands)

    def run_all_checks(self) -> List[CheckResult]:
        """Run every check; only the manifest check is fatal for a run."""
        return [
            self.check_manifest(),
            self.check_patch_utility(),
            self.check_verification_scripts(),
        ]

    def check_manifest(self) -> CheckResult:
        return check_workspace_health(self.workspace)

    def check_patch_utility(self) -> CheckResult:
        """Verify the `patch` executable is on PATH."""
        if shutil.which("patch") is None:
            return CheckResult(
                name="Patch Utility",
                status=CheckStatus.FAILED,
                message="`patch` not found on PATH",
                fix_action="Install GNU patch (apt install patch / brew install gpatch)",
            )
        return CheckResult(
            name="Patch Utility",
            status=CheckStatus.PASSED,
            message="`patch` available",
        )

    def check_verification_scripts(self) -> CheckResult:
        """Warn when a "<runner> run <script>" command names an undeclared script."""
        if not self.verification_commands:
            return CheckResult(
                name="Verification Scripts",
                status=CheckStatus.SKIPPED,
                message="No verification commands configured",
            )

        try:
            scripts = _load_manifest(self.workspace).get("scripts") or {}
        except (OSError, ValueError, AttributeError):
            return CheckResult(
                name="Verification Scripts",
                status=CheckStatus.SKIPPED,
                message="Manifest unreadable",
            )

        missing = []
        for command in self.verification_commands:
            parts = shlex.split(command)
            if len(parts) >= 3 and parts[0] in _SCRIPT_RUNNERS and parts[1] == "run":
                if parts[2] not in scripts:
                    missing.append(parts[2])

        if missing:
            return CheckResult(
                name="Verification Scripts",
                status=CheckStatus.WARNING,
                message=f"Scripts not declared in package.json: {', '.join(missing)}",
                fix_action="Add the scripts or override verification.commands",
            )

        return CheckResult(
            name="Verification Scripts",
            status=CheckStatus.PASSED,
            message="All verification scripts declared",
        )
