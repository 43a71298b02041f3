"""Tests for the exception taxonomy, translation and error helpers."""

import logging

import pytest

from tiered_orchestrator.errors import (
    ConfigError,
    ErrorTranslator,
    FatalError,
    ModelCallError,
    PatchApplyError,
    PatchFormatError,
    RetryableError,
    TaskInputError,
    VerificationError,
    WorkspaceError,
)
from tiered_orchestrator.utils.error_handling import log_and_ignore, log_and_reraise


class TestTaxonomy:
    @pytest.mark.parametrize("error", [
        ModelCallError("fast-coder", "timeout"),
        PatchFormatError("No diff block found in response"),
        PatchApplyError("Patch failed: hunk rejected"),
        VerificationError(["e"]),
    ])
    def test_attempt_failures_are_retryable(self, error):
        assert isinstance(error, RetryableError)
        assert not isinstance(error, FatalError)

    @pytest.mark.parametrize("error", [
        WorkspaceError("/ws", "No package.json found"),
        TaskInputError("bad"),
        ConfigError("bad"),
    ])
    def test_startup_failures_are_fatal(self, error):
        assert isinstance(error, FatalError)
        assert not isinstance(error, RetryableError)

    def test_categories(self):
        assert ModelCallError("m", "r").category == "model_call"
        assert PatchFormatError("r").category == "patch_format"
        assert PatchApplyError("r").category == "patch_apply"
        assert VerificationError([]).category == "verification"


class TestFeedback:
    def test_model_call(self):
        assert ModelCallError("m", "502 Bad Gateway").to_feedback() == ["Model call failed: 502 Bad Gateway"]

    def test_patch_format_keeps_size(self):
        error = PatchFormatError("Patch too large: 301 lines (max 300)", lines_changed=301)
        assert error.to_feedback() == ["Patch too large: 301 lines (max 300)"]
        assert error.lines_changed == 301

    def test_patch_apply(self):
        assert PatchApplyError("Patch failed: Hunk #1 FAILED").to_feedback() == ["Patch failed: Hunk #1 FAILED"]

    def test_verification_returns_tool_errors(self):
        error = VerificationError(["a.ts(1,1): error TS1", "lint: warning"], logs="raw")
        assert error.to_feedback() == ["a.ts(1,1): error TS1", "lint: warning"]
        assert error.logs == "raw"
        assert "2 error(s)" in str(error)

    def test_verification_never_empty(self):
        assert VerificationError([]).to_feedback() == ["Verification failed"]


class TestErrorTranslator:
    def test_missing_manifest(self):
        friendly = ErrorTranslator().translate(WorkspaceError("/ws", "No package.json found"))
        assert friendly.title == "Workspace has no project manifest"
        assert friendly.actions

    def test_unusable_manifest(self):
        friendly = ErrorTranslator().translate(WorkspaceError("/ws", "No scripts defined in package.json"))
        assert friendly.title == "Project manifest is not usable"

    def test_task_input(self):
        friendly = ErrorTranslator().translate(TaskInputError("Invalid task input: missing filesOwned"))
        assert friendly.title == "Task input is malformed"
        assert friendly.show_technical

    def test_unknown_error(self):
        friendly = ErrorTranslator().translate(RuntimeError("weird"))
        assert friendly.title == "Unexpected error"
        assert friendly.explanation == "weird"

    def test_format_escapes_markup(self):
        translator = ErrorTranslator()
        error = TaskInputError("Field required [type=missing]")
        output = translator.format_for_cli(translator.translate(error))

        assert "How to fix:" in output
        assert "\\[type=missing]" in output


class TestErrorHandling:
    def test_log_and_reraise(self, caplog):
        logger = logging.getLogger("tests.error_handling")
        with caplog.at_level(logging.ERROR, logger="tests.error_handling"):
            with pytest.raises(ValueError, match="bad"):
                try:
                    raise ValueError("bad")
                except ValueError as e:
                    log_and_reraise(e, "Context", logger_instance=logger)

        assert "Context: bad" in caplog.text

    def test_log_and_ignore(self, caplog):
        logger = logging.getLogger("tests.error_handling")
        with caplog.at_level(logging.WARNING, logger="tests.error_handling"):
            log_and_ignore(OSError("disk full"), "Write failed", logger_instance=logger)

        assert "Write failed: disk full" in caplog.text
