"""Shared test fixtures for unit tests."""

import json

import pytest

from tests.unit.orchestrator_fixtures import RecordingEventLogger


@pytest.fixture
def events():
    return RecordingEventLogger()


@pytest.fixture
def workspace(tmp_path):
    """A workspace with a package.json declaring the default check scripts."""
    ws = tmp_path / "workspace"
    ws.mkdir()
    (ws / "package.json").write_text(json.dumps({
        "name": "demo",
        "scripts": {"typecheck": "tsc --noEmit", "lint": "eslint .", "build": "tsc"},
    }))
    (ws / "src").mkdir()
    (ws / "src" / "index.ts").write_text("export const x = 1;\n")
    return ws
