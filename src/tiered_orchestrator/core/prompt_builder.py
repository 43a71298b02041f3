"""Prompt construction for patch-producing model calls.

Pure string building: the same task, file snapshot and error list always
produce the same prompt.
"""

from typing import Mapping, Optional, Sequence

from .task import Task

OUTPUT_FORMAT = """## Output format
```diff
--- a/path/to/file
+++ b/path/to/file
@@ -line,count +line,count @@
 context line
-removed line
+added line
 context line
```
"""

INSTRUCTIONS = """## Instructions
1. Analyze the task and current code
2. Generate a unified diff patch to implement the changes
3. Output ONLY the patch in unified diff format, wrapped in ```diff and ``` markers
4. Ensure the patch is minimal and focused on the task
"""


def build_prompt(
    task: Task,
    file_contents: Mapping[str, str],
    prior_errors: Optional[Sequence[str]] = None,
) -> str:
    """Build the model prompt for one attempt.

    Args:
        task: Task being attempted
        file_contents: Path -> current text (placeholders for missing/unreadable files)
        prior_errors: Errors from the previous failed attempt, if this is a retry

    Returns:
        Prompt text
    """
    sections = [
        "You are a coding assistant. Complete the following task:\n",
        f"## Task\n{task.description}\n",
        f"## Files to modify\n{', '.join(task.files_owned)}\n",
        "## Current file contents",
    ]

    for path, content in file_contents.items():
        sections.append(f"\n### {path}\n```\n{content}\n```")

    if prior_errors:
        sections.append("\n## Previous errors to fix")
        sections.extend(f"- {error}" for error in prior_errors)

    sections.append("")
    sections.append(INSTRUCTIONS)
    sections.append(OUTPUT_FORMAT)

    return "\n".join(sections)
