"""Verification of patched workspaces."""

from .error_parsers import ERROR_PARSERS, ErrorParser, parse_errors
from .verifier import CommandResult, Verifier, VerifyResult

__all__ = [
    "ERROR_PARSERS",
    "ErrorParser",
    "parse_errors",
    "CommandResult",
    "Verifier",
    "VerifyResult",
]
