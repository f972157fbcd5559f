"""Tests for conversations and their persistence."""

import json
from typing import List, get_type_hints

import pytest

from turnwright.constants import GREETING, NEW_CHAT_TITLE
from turnwright.conversation import GREETING_ID, Conversation
from turnwright.storage import JsonConversationStore, load_record


def test_new_conversation_has_system_and_greeting():
    conversation = Conversation.new("You are helpful.", environment="python")

    assert [m.role for m in conversation.messages] == ["system", "assistant"]
    assert conversation.messages[1].content == GREETING
    assert conversation.environment == "python"


def test_first_user_message_removes_greeting(conversation):
    conversation.add_user_message("hello")
    conversation.add_user_message("again")

    assert all(m.id != GREETING_ID for m in conversation.messages)
    assert [m.content for m in conversation.messages if m.role == "user"] == ["hello", "again"]


def test_blank_messages_are_dropped(conversation):
    before = len(conversation.messages)

    assert conversation.add_message("assistant", "   ") is None
    assert len(conversation.messages) == before


def test_history_excludes_system_and_status(conversation):
    conversation.add_user_message("q")
    conversation.add_message("status", "Executing: list_files")
    conversation.add_message("assistant", "a")

    assert conversation.recent_history(10) == [
        {"role": "user", "content": "q"},
        {"role": "assistant", "content": "a"},
    ]
    assert conversation.recent_history(1) == [{"role": "assistant", "content": "a"}]
    assert conversation.recent_history(0) == []


def test_demote_transient(conversation):
    conversation.add_message("file-status", "✓ Created a.py\nProgress: 1/1 files")
    conversation.add_message("test-status", "Running tests on all tests...")
    conversation.add_message("user", "[Tool Result]\n--- FILE: a.py ---")
    conversation.add_message("user", "a real question")

    assert conversation.demote_transient() == 3
    assert [m.role for m in conversation.messages[-4:]] == ["status", "status", "status", "user"]


def test_clear(conversation):
    conversation.add_user_message("remove me")
    conversation.knowledge_summary = "- map"

    conversation.clear()
    assert [m.role for m in conversation.messages] == ["system"]
    assert conversation.knowledge_summary == ""


def test_title_from_first_user_message(conversation):
    assert conversation.derive_title() == NEW_CHAT_TITLE

    conversation.add_user_message("Please refactor the authentication module")

    assert conversation.derive_title() == "Please refactor the authentica..."


def test_record_omits_system_and_runtime_flag(conversation):
    conversation.add_user_message("hi")
    conversation.is_summarizing = True

    record = conversation.to_record()

    assert "is_summarizing" not in record
    assert all(m["role"] != "system" for m in record["messages"])
    assert record["title"] == "hi..."


def test_legacy_messages_count_as_summarized():
    record = {"id": "abc", "title": "Old", "messages": [{"id": "1", "role": "user", "content": "hi"}]}

    conversation = load_record(record)

    assert conversation.messages[0].is_summarized
    assert conversation.unsummarized_messages() == []


def test_store_annotations_resolve():
    assert get_type_hints(JsonConversationStore._list_sync) == {"return": List[Conversation]}
    assert get_type_hints(JsonConversationStore.list) == {"return": List[Conversation]}


@pytest.mark.asyncio
async def test_put_list_remove(temp_dir, conversation):
    store = JsonConversationStore(temp_dir)
    conversation.add_user_message("build an api")
    conversation.knowledge_summary = "- **API**: FastAPI"

    await store.put(conversation)
    loaded = await store.list()

    assert len(loaded) == 1
    restored = loaded[0]
    assert restored.id == conversation.id
    assert restored.title == "build an api..."
    assert restored.knowledge_summary == "- **API**: FastAPI"
    assert not restored.is_summarizing
    assert all(m.role != "system" for m in restored.messages)
    assert conversation.title == "build an api..."

    await store.remove(conversation.id)
    assert await store.list() == []


@pytest.mark.asyncio
async def test_unreadable_files_are_skipped(temp_dir, conversation):
    store = JsonConversationStore(temp_dir)
    await store.put(conversation)
    (store.directory / "broken.json").write_text("{not json")
    (store.directory / "wrong.json").write_text(json.dumps({"messages": "nope"}))

    loaded = await store.list()

    assert [c.id for c in loaded] == [conversation.id]


@pytest.mark.asyncio
async def test_empty_store(temp_dir):
    assert await JsonConversationStore(temp_dir).list() == []
