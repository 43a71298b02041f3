"""Translate fatal startup errors to user-friendly messages."""

import re
from dataclasses import dataclass
from typing import List

from rich.markup import escape


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: Exception
    title: str
    explanation: str
    actions: List[str]
    show_technical: bool = False


class ErrorTranslator:
    """Translate technical errors to user-friendly messages."""

    ERROR_PATTERNS = {
        r"No package\.json found": {
            "title": "Workspace has no project manifest",
            "explanation": "The orchestrator verifies patches by running the workspace's scripts, so it needs a package.json at the workspace root.",
            "actions": [
                "Pass the project root with --workspace",
                "Run: tiered-orchestrator check --workspace <path>",
            ],
        },

        r"No scripts defined|Invalid package\.json": {
            "title": "Project manifest is not usable",
            "explanation": "package.json must be valid JSON and declare at least one script (typecheck, lint, build).",
            "actions": [
                "Add a \"scripts\" section to package.json",
                "Or override verification.commands in the config file",
            ],
        },

        r"TaskInputError": {
            "title": "Task input is malformed",
            "explanation": "The task must be a JSON object with a non-empty \"description\" and a \"filesOwned\" list.",
            "actions": [
                "Check the file passed with --file, or the JSON piped to stdin",
                "Example: {\"description\": \"Add a null check\", \"filesOwned\": [\"src/index.ts\"]}",
            ],
        },

        r"ConfigError": {
            "title": "Configuration is invalid",
            "explanation": "The YAML config file could not be parsed or failed validation.",
            "actions": [
                "Fix the fields named in the technical details below",
                "Delete the file to fall back to defaults",
            ],
        },
    }

    def translate(self, error: Exception) -> UserFriendlyError:
        """Convert exception to user-friendly format."""
        error_type = type(error).__name__
        full_error = f"{error_type}: {error}"

        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, full_error):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=translation["actions"],
                    show_technical=error_type in ("ConfigError", "TaskInputError"),
                )

        return UserFriendlyError(
            original_error=error,
            title="Unexpected error",
            explanation=str(error),
            actions=[
                "Re-run with --log-level DEBUG",
                "Check the session logs under logs/sessions/",
            ],
            show_technical=True,
        )

    def format_for_cli(self, friendly_error: UserFriendlyError) -> str:
        """Format error for CLI display."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{escape(friendly_error.explanation)}\n\n"

        output += "[bold]How to fix:[/]\n"
        for i, action in enumerate(friendly_error.actions, 1):
            output += f"  {i}. {action}\n"

        if friendly_error.show_technical:
            output += f"\n[dim]Technical details:[/]\n[dim]{escape(str(friendly_error.original_error))}[/]"

        return output
