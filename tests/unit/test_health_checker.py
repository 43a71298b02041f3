"""Tests for workspace health checks."""

import json
from unittest.mock import patch

import pytest

from tiered_orchestrator.errors import WorkspaceError
from tiered_orchestrator.health.checker import (
    CheckStatus,
    HealthChecker,
    check_workspace_health,
    ensure_workspace_healthy,
)


class TestCheckWorkspaceHealth:
    def test_healthy(self, workspace):
        result = check_workspace_health(workspace)
        assert result.status == CheckStatus.PASSED
        assert result.passed

    def test_missing_manifest(self, tmp_path):
        result = check_workspace_health(tmp_path)
        assert result.status == CheckStatus.FAILED
        assert result.message == "No package.json found"

    def test_invalid_json(self, tmp_path):
        (tmp_path / "package.json").write_text("{ not json")
        assert check_workspace_health(tmp_path).message == "Invalid package.json"

    def test_no_scripts(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"name": "x"}))
        assert check_workspace_health(tmp_path).message == "No scripts defined in package.json"

    def test_empty_scripts(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"scripts": {}}))
        assert not check_workspace_health(tmp_path).passed

    def test_non_object_manifest(self, tmp_path):
        (tmp_path / "package.json").write_text("[]")
        assert check_workspace_health(tmp_path).message == "No scripts defined in package.json"


class TestEnsureWorkspaceHealthy:
    def test_passes_silently(self, workspace):
        ensure_workspace_healthy(workspace)

    def test_raises_workspace_error(self, tmp_path):
        with pytest.raises(WorkspaceError) as exc_info:
            ensure_workspace_healthy(tmp_path)
        assert exc_info.value.reason == "No package.json found"
        assert str(tmp_path) in str(exc_info.value)


class TestHealthChecker:
    def test_patch_utility_missing(self, workspace):
        with patch("tiered_orchestrator.health.checker.shutil.which", return_value=None):
            result = HealthChecker(workspace).check_patch_utility()
        assert result.status == CheckStatus.FAILED
        assert result.fix_action

    def test_patch_utility_present(self, workspace):
        with patch("tiered_orchestrator.health.checker.shutil.which", return_value="/usr/bin/patch"):
            assert HealthChecker(workspace).check_patch_utility().passed

    def test_declared_scripts(self, workspace):
        checker = HealthChecker(workspace, ["bun run typecheck", "bun run lint", "bun run build"])
        assert checker.check_verification_scripts().status == CheckStatus.PASSED

    def test_undeclared_script_warns(self, workspace):
        checker = HealthChecker(workspace, ["bun run typecheck", "npm run test"])
        result = checker.check_verification_scripts()
        assert result.status == CheckStatus.WARNING
        assert "test" in result.message
        assert result.passed

    def test_non_runner_commands_are_not_checked(self, workspace):
        checker = HealthChecker(workspace, ["make check", "npx tsc --noEmit"])
        assert checker.check_verification_scripts().status == CheckStatus.PASSED

    def test_no_commands_skipped(self, workspace):
        assert HealthChecker(workspace).check_verification_scripts().status == CheckStatus.SKIPPED

    def test_run_all_checks(self, workspace):
        with patch("tiered_orchestrator.health.checker.shutil.which", return_value="/usr/bin/patch"):
            results = HealthChecker(workspace, ["bun run build"]).run_all_checks()
        assert [r.name for r in results] == ["Project Manifest", "Patch Utility", "Verification Scripts"]
        assert all(r.passed for r in results)
