"""Tests for patch parsing, file snapshots, model calls and patch application."""

import shutil

import pytest

from tiered_orchestrator.core.config import OrchestratorConfig
from tiered_orchestrator.core.event_log import Event
from tiered_orchestrator.core.patch_pipeline import (
    MISSING_FILE_PLACEHOLDER,
    NO_DIFF_BLOCK,
    UNREADABLE_FILE_PLACEHOLDER,
    PatchPipeline,
    count_changed_lines,
    parse_patch,
    read_files,
)
from tiered_orchestrator.core.task import Task, Tier
from tiered_orchestrator.errors import ModelCallError
from tiered_orchestrator.safeguards.concurrency_gate import GateRegistry
from tests.unit.orchestrator_fixtures import SAMPLE_DIFF, ScriptedBackend, make_response

requires_patch = pytest.mark.skipif(shutil.which("patch") is None, reason="patch utility not installed")


def _diff_with_changes(n: int) -> str:
    body = "\n".join(f"+line {i}" for i in range(n))
    return f"```diff\n--- a/f.ts\n+++ b/f.ts\n@@ -0,0 +1,{n} @@\n{body}\n```"


@pytest.fixture
def task():
    return Task(description="Annotate x", files_owned=("src/index.ts",), tier=Tier.FAST)


@pytest.fixture
def pipeline_factory(events):
    def _make(backend=None, config=None):
        config = config or OrchestratorConfig()
        return PatchPipeline(
            backend=backend or ScriptedBackend(),
            gates=GateRegistry.from_config(config.tiers),
            config=config,
            events=events,
        )
    return _make


class TestParsePatch:
    def test_extracts_diff_block(self):
        result = parse_patch(f"Sure!\n```diff\n{SAMPLE_DIFF}```\nDone.")
        assert result.accepted
        assert result.patch.startswith("--- a/src/index.ts")
        assert result.lines_changed == 2
        assert result.error is None

    def test_no_diff_block(self):
        result = parse_patch("I could not figure it out.")
        assert not result.accepted
        assert result.error == NO_DIFF_BLOCK
        assert result.patch is None
        assert result.lines_changed is None

    def test_plain_fence_is_not_a_diff(self):
        result = parse_patch(f"```\n{SAMPLE_DIFF}```")
        assert result.error == NO_DIFF_BLOCK

    def test_uses_first_block(self):
        text = f"```diff\n{SAMPLE_DIFF}```\n```diff\n--- a/other\n+++ b/other\n+x\n```"
        assert "src/index.ts" in parse_patch(text).patch

    def test_exactly_at_cap_is_accepted(self):
        result = parse_patch(_diff_with_changes(300))
        assert result.accepted
        assert result.lines_changed == 300

    def test_over_cap_is_rejected_with_count(self):
        result = parse_patch(_diff_with_changes(301))
        assert not result.accepted
        assert result.patch is None
        assert result.lines_changed == 301
        assert result.error == "Patch too large: 301 lines (max 300)"

    def test_custom_cap(self):
        result = parse_patch(_diff_with_changes(11), max_lines=10)
        assert result.error == "Patch too large: 11 lines (max 10)"


class TestCountChangedLines:
    def test_skips_file_headers(self):
        assert count_changed_lines(SAMPLE_DIFF) == 2

    def test_ignores_context_lines(self):
        assert count_changed_lines("@@ -1,2 +1,2 @@\n same\n-old\n+new\n same") == 2


class TestReadFiles:
    def test_reads_existing_file(self, workspace):
        contents = read_files(["src/index.ts"], workspace)
        assert contents == {"src/index.ts": "export const x = 1;\n"}

    def test_missing_file_placeholder(self, workspace):
        contents = read_files(["src/new.ts"], workspace)
        assert contents["src/new.ts"] == MISSING_FILE_PLACEHOLDER

    def test_directory_gets_unreadable_placeholder(self, workspace):
        contents = read_files(["src"], workspace)
        assert contents["src"] == UNREADABLE_FILE_PLACEHOLDER

    def test_undecodable_file_gets_unreadable_placeholder(self, workspace):
        (workspace / "blob.bin").write_bytes(b"\xff\xfe\x00\x81")
        contents = read_files(["blob.bin"], workspace)
        assert contents["blob.bin"] == UNREADABLE_FILE_PLACEHOLDER

    def test_preserves_order(self, workspace):
        contents = read_files(["src/new.ts", "src/index.ts"], workspace)
        assert list(contents) == ["src/new.ts", "src/index.ts"]


class TestCallModel:
    @pytest.mark.asyncio
    async def test_uses_tier_model_and_llm_settings(self, pipeline_factory, task, events):
        backend = ScriptedBackend()
        pipeline = pipeline_factory(backend=backend)

        response = await pipeline.call_model(task, "prompt text")

        assert response.success
        request = backend.requests[0]
        assert request.model == "fast-coder"
        assert request.prompt == "prompt text"
        assert request.temperature == 0.2
        assert request.max_tokens == 4096
        assert events.names() == [Event.MODEL_CALL_START, Event.MODEL_CALL_COMPLETE]
        assert events.records[-1][3]["tokens_used"] == 120

    @pytest.mark.asyncio
    async def test_deep_tier_model(self, pipeline_factory, task):
        backend = ScriptedBackend()
        pipeline = pipeline_factory(backend=backend)

        await pipeline.call_model(task.model_copy(update={"tier": Tier.DEEP}), "p")

        assert backend.requests[0].model == "deep-coder"

    @pytest.mark.asyncio
    async def test_unsuccessful_response_raises(self, pipeline_factory, task):
        backend = ScriptedBackend([make_response(content="", success=False, error="connection refused")])
        pipeline = pipeline_factory(backend=backend)

        with pytest.raises(ModelCallError) as exc_info:
            await pipeline.call_model(task, "p")

        assert str(exc_info.value) == "Model call failed: connection refused"
        assert exc_info.value.model == "fast-coder"

    @pytest.mark.asyncio
    async def test_backend_exception_raises_and_frees_slot(self, pipeline_factory, task):
        class ExplodingBackend(ScriptedBackend):
            async def complete(self, request, task_id=None):
                raise ConnectionError("reset by peer")

        pipeline = pipeline_factory(backend=ExplodingBackend())

        with pytest.raises(ModelCallError, match="reset by peer"):
            await pipeline.call_model(task, "p")

        assert pipeline.gates.gate(Tier.FAST).in_flight == 0


class TestApplyPatch:
    @requires_patch
    @pytest.mark.asyncio
    async def test_applies_clean_diff(self, pipeline_factory, workspace):
        pipeline = pipeline_factory()

        result = await pipeline.apply_patch(SAMPLE_DIFF.rstrip("\n"), workspace)

        assert result.success
        assert (workspace / "src" / "index.ts").read_text() == "export const x: number = 1;\n"
        assert not (workspace / "src" / "index.ts.orig").exists()

    @requires_patch
    @pytest.mark.asyncio
    async def test_conflicting_diff_fails_with_diagnostics(self, pipeline_factory, workspace):
        pipeline = pipeline_factory()
        bad = SAMPLE_DIFF.replace("-export const x = 1;", "-export const y = 2;")

        result = await pipeline.apply_patch(bad, workspace)

        assert not result.success
        assert result.error.startswith("Patch failed: ")
        assert (workspace / "src" / "index.ts").read_text() == "export const x = 1;\n"

    @pytest.mark.asyncio
    async def test_missing_utility_fails(self, workspace):
        config = OrchestratorConfig()
        config.patch.command = ["definitely-not-a-patch-binary", "-p1"]
        pipeline = PatchPipeline(ScriptedBackend(), GateRegistry.from_config(config.tiers), config)

        result = await pipeline.apply_patch(SAMPLE_DIFF, workspace)

        assert not result.success
        assert result.error.startswith("Patch failed: ")
