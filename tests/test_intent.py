"""Tests for intent routing."""

import pytest

from conftest import ScriptedLLM
from turnwright.cancellation import CancellationToken, OperationCancelled
from turnwright.intent import IntentRouter, parse_router_reply


@pytest.mark.asyncio
async def test_general_reply_answers_directly():
    router = IntentRouter(ScriptedLLM(['{"intent": "general", "reply": "Hi! How can I help?"}']))

    result = await router.classify("hello")

    assert result.intent == "general"
    assert result.answers_directly
    assert result.reply == "Hi! How can I help?"


@pytest.mark.asyncio
async def test_prompt_embeds_message():
    llm = ScriptedLLM(['{"intent": "project"}'])

    await IntentRouter(llm).classify("fix the header")

    assert 'USER INPUT: "fix the header"' in llm.calls[0][0]["content"]


@pytest.mark.asyncio
async def test_model_error_routes_to_project():
    """Test that transport failures fail open to the project intent."""
    router = IntentRouter(ScriptedLLM([RuntimeError("connection reset")]))

    result = await router.classify("hello")

    assert result.intent == "project"
    assert not result.answers_directly


@pytest.mark.asyncio
async def test_cancellation_propagates():
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelled):
        await IntentRouter(ScriptedLLM(['{"intent": "project"}'])).classify("hi", cancel=token)


def test_garbage_reply_is_project():
    assert parse_router_reply("I think this is small talk").intent == "project"


def test_unknown_intent_is_project():
    assert parse_router_reply('{"intent": "weather"}').intent == "project"


def test_general_without_reply_does_not_answer():
    result = parse_router_reply('{"intent": "general", "reply": "  "}')

    assert result.intent == "general"
    assert not result.answers_directly


def test_reply_wrapped_in_prose():
    result = parse_router_reply('Here you go: {"intent": "general", "reply": "Hey",}')

    assert result.answers_directly
