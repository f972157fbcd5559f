"""Tests for the knowledge cache."""

import pytest

from conftest import MemoryStore, ScriptedLLM
from turnwright.config import Config
from turnwright.conversation import Conversation
from turnwright.graph import TurnEngine
from turnwright.handlers.knowledge import (
    CACHE_MARKER,
    KnowledgeCache,
    KnowledgeService,
    KnowledgeSummaryError,
)


class FixedSummarizer:
    def __init__(self, summary="- **Stack**: Flask", error=None):
        self.summary = summary
        self.error = error
        self.calls = []

    async def summarize(self, current_summary, messages):
        self.calls.append((current_summary, list(messages)))
        if self.error is not None:
            raise self.error
        return self.summary


def chat_with(count):
    conversation = Conversation.new("system")
    for i in range(count):
        conversation.add_message("user" if i % 2 == 0 else "assistant", f"turn {i}")
    return conversation


@pytest.mark.asyncio
async def test_returns_trimmed_summary():
    llm = ScriptedLLM(["  - **DB**: sqlite  \n"])
    conversation = chat_with(2)

    summary = await KnowledgeService(llm).summarize("", conversation.unsummarized_messages())

    assert summary == "- **DB**: sqlite"
    request = llm.calls[0][1]["content"]
    assert "--- CURRENT MAP ---\n(Empty)" in request
    assert "USER: turn 0\n---\nASSISTANT: turn 1" in request


@pytest.mark.asyncio
async def test_retries_once():
    llm = ScriptedLLM([RuntimeError("timeout"), "- map"])

    assert await KnowledgeService(llm).summarize("old", []) == "- map"
    assert len(llm.calls) == 2


@pytest.mark.asyncio
async def test_raises_after_two_attempts():
    llm = ScriptedLLM(["", RuntimeError("timeout"), "- never used"])

    with pytest.raises(KnowledgeSummaryError):
        await KnowledgeService(llm).summarize("old", [])
    assert len(llm.calls) == 2


def test_threshold():
    cache = KnowledgeCache(FixedSummarizer(), threshold=10)

    assert not cache.should_trigger(chat_with(9))
    assert cache.should_trigger(chat_with(10))


def test_disabled():
    assert not KnowledgeCache(FixedSummarizer(), enabled=False).should_trigger(chat_with(20))


def test_status_messages_do_not_count():
    conversation = chat_with(9)
    conversation.add_message("status", "Executing: list_files")

    assert not KnowledgeCache(FixedSummarizer()).should_trigger(conversation)


@pytest.mark.asyncio
async def test_update_marks_messages_and_inserts_marker():
    store = MemoryStore()
    summarizer = FixedSummarizer()
    cache = KnowledgeCache(summarizer, store)
    conversation = chat_with(10)

    assert await cache.update(conversation)

    assert conversation.knowledge_summary == "- **Stack**: Flask"
    assert conversation.unsummarized_messages() == []
    assert conversation.messages[-1].content == CACHE_MARKER
    assert conversation.messages[-1].role == "status"
    assert not conversation.is_summarizing
    assert store.put_count == 1
    assert len(summarizer.calls[0][1]) == 10


@pytest.mark.asyncio
async def test_marker_follows_last_summarized_message():
    """Test that messages added while summarizing stay after the marker."""
    conversation = chat_with(10)

    class SlowSummarizer(FixedSummarizer):
        async def summarize(self, current_summary, messages):
            conversation.add_message("user", "sent during summary")
            return await super().summarize(current_summary, messages)

    await KnowledgeCache(SlowSummarizer()).update(conversation)

    assert conversation.messages[-2].content == CACHE_MARKER
    assert conversation.messages[-1].content == "sent during summary"
    assert not conversation.messages[-1].is_summarized


@pytest.mark.asyncio
async def test_failure_leaves_messages_pending():
    store = MemoryStore()
    cache = KnowledgeCache(FixedSummarizer(error=KnowledgeSummaryError("down")), store)
    conversation = chat_with(10)

    assert not await cache.update(conversation)

    assert len(conversation.unsummarized_messages()) == 10
    assert conversation.knowledge_summary == ""
    assert not conversation.is_summarizing
    assert store.put_count == 0


@pytest.mark.asyncio
async def test_update_skipped_while_summarizing():
    summarizer = FixedSummarizer()
    conversation = chat_with(10)
    conversation.is_summarizing = True

    assert not await KnowledgeCache(summarizer).update(conversation)
    assert summarizer.calls == []


@pytest.mark.asyncio
async def test_maybe_trigger_runs_in_background():
    cache = KnowledgeCache(FixedSummarizer())
    conversation = chat_with(10)

    task = cache.maybe_trigger(conversation)

    assert task is not None
    assert conversation.is_summarizing
    assert cache.maybe_trigger(conversation) is None
    assert await task is True
    assert not conversation.is_summarizing


@pytest.mark.asyncio
async def test_engine_triggers_after_turn(workspace, tester, store):
    llm = ScriptedLLM(['{"intent": "general", "reply": "Sure."}'])
    summarizer = FixedSummarizer()
    engine = TurnEngine(
        Config(anthropic_api_key="k", knowledge_cache_threshold=2),
        llm, workspace, tester, store=store, summarizer=summarizer,
    )
    conversation = Conversation.new("system")

    outcome = await engine.send_message(conversation, "hello")

    assert outcome.summary_task is not None
    await outcome.summary_task
    assert conversation.knowledge_summary == "- **Stack**: Flask"


@pytest.mark.asyncio
async def test_cleared_during_summary_keeps_cleared_state():
    """Test that a chat cleared mid-summary is not given the stale summary."""
    conversation = chat_with(10)

    class ClearingSummarizer(FixedSummarizer):
        async def summarize(self, current_summary, messages):
            conversation.clear()
            return await super().summarize(current_summary, messages)

    store = MemoryStore()

    assert not await KnowledgeCache(ClearingSummarizer(), store).update(conversation)

    assert conversation.knowledge_summary == ""
    assert CACHE_MARKER not in [m.content for m in conversation.messages]
    assert not conversation.is_summarizing
    assert store.put_count == 0
