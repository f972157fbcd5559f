"""Tests for context scouting."""

import pytest

from conftest import ScriptedLLM
from turnwright.scout import ContextScout, ScoutResult


@pytest.mark.asyncio
async def test_scout_returns_listed_files(workspace):
    llm = ScriptedLLM(['{"files": ["src/main.py"]}'])

    result = await ContextScout(llm).scout("fix hello", workspace, environment="python")

    assert result.files == ["src/main.py"]
    prompt = llm.calls[0][0]["content"]
    assert "Environment: python" in prompt
    assert "src/utils.py" in prompt


@pytest.mark.asyncio
async def test_scout_includes_knowledge_and_context(workspace):
    llm = ScriptedLLM(['{"files": []}'])

    await ContextScout(llm).scout(
        "fix it", workspace, knowledge_summary="Uses Flask.", user_context="Active file: src/main.py"
    )

    prompt = llm.calls[0][0]["content"]
    assert "Uses Flask." in prompt
    assert "Active file: src/main.py" in prompt


@pytest.mark.asyncio
async def test_scout_failure_is_empty(workspace):
    scout = ContextScout(ScriptedLLM([RuntimeError("overloaded")]))

    result = await scout.scout("fix hello", workspace)

    assert result.files == []


@pytest.mark.asyncio
async def test_scout_unparseable_reply_is_empty(workspace):
    result = await ContextScout(ScriptedLLM(["main.py probably"])).scout("fix", workspace)

    assert result.files == []


def test_build_context_skips_folders_and_unknown_paths(workspace):
    scout = ContextScout(ScriptedLLM())
    result = ScoutResult(files=["./src/main.py", "src", "missing.py", "src/main.py"])

    context = scout.build_context(result, workspace)

    assert context == "--- src/main.py ---\ndef hello():\n    return 'world'\n"


def test_build_context_empty(workspace):
    assert ContextScout(ScriptedLLM()).build_context(ScoutResult(), workspace) == ""
