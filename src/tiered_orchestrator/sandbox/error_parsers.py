"""Per-tool reduction of check-command output to a short error list.

Each ErrorParser says which commands it handles and which output lines look
like diagnostics. parse_errors() picks the first parser whose matcher accepts
the command, keeps at most ``cap`` matching lines, and falls back to a raw
output prefix (or a generic message) when nothing recognizable is found.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

MAX_ERRORS_PER_COMMAND = 10
RAW_OUTPUT_PREFIX_CHARS = 500


@dataclass(frozen=True)
class ErrorParser:
    """Strategy for one tool family."""
    name: str
    keywords: Sequence[str]  # command substrings that select this parser
    is_diagnostic: Callable[[str], bool]
    cap: int = MAX_ERRORS_PER_COMMAND

    def matches(self, command: str) -> bool:
        return any(k in command for k in self.keywords)

    def select(self, output: str) -> List[str]:
        return [line for line in output.split("\n") if self.is_diagnostic(line)][: self.cap]


def _typecheck_line(line: str) -> bool:
    # tsc: "src/a.ts(3,5): error TS2322: ..."; other checkers: "file:3:5: error: ..."
    return "error TS" in line or ": error:" in line


def _lint_line(line: str) -> bool:
    return "error" in line or "warning" in line


def _build_line(line: str) -> bool:
    lowered = line.lower()
    return "error" in lowered or "failed" in lowered


# Order matters: "bun run typecheck" must not fall through to another parser
ERROR_PARSERS: List[ErrorParser] = [
    ErrorParser("typecheck", ("typecheck", "tsc"), _typecheck_line),
    ErrorParser("lint", ("lint", "eslint"), _lint_line),
    ErrorParser("build", ("build",), _build_line),
]


def find_parser(command: str, parsers: Sequence[ErrorParser] = ERROR_PARSERS) -> Optional[ErrorParser]:
    for parser in parsers:
        if parser.matches(command):
            return parser
    return None


def parse_errors(
    output: str,
    command: str,
    parsers: Sequence[ErrorParser] = ERROR_PARSERS,
) -> List[str]:
    """Reduce a failed command's output to at most ``cap`` error strings.

    When no diagnostic line is recognized (or the tool has no parser) the
    result is "<command>: <first 500 chars of output>". Only empty output gets
    the generic failure message, so a failed command never contributes an
    empty list.
    """
    parser = find_parser(command, parsers)
    errors = parser.select(output) if parser is not None else []
    if errors:
        return errors
    if output.strip():
        return [f"{command}: {output[:RAW_OUTPUT_PREFIX_CHARS]}"]
    return [f"{command} failed with non-zero exit code"]
