"""Tests for action dispatch."""

import pytest

from conftest import StubTester
from turnwright.constants import ALL_TESTS
from turnwright.handlers.actions import DONE, EMPTY_TOOL_RESULT, ActionDispatcher
from turnwright.multi_file import MultiFileTracker
from turnwright.schema import InvalidAction, validate_payload
from turnwright.tools.tester import TestRunError
from turnwright.tools.workspace import Workspace


@pytest.fixture
def tracker():
    return MultiFileTracker()


@pytest.fixture
def dispatcher(workspace, tester, tracker):
    return ActionDispatcher(workspace, tester, tracker)


def action(payload):
    return validate_payload(payload).action


def read_files(*paths):
    return action(
        {"action": "tool_call", "tool_call": {"function_name": "read_file", "args": {"paths": list(paths)}}}
    )


def start(files, path, content="x = 1\n", kind="create_file"):
    return action(
        {
            "action": "start_multi_file",
            "plan": {"description": "Add modules", "files_to_modify": files},
            "first_file": {"action": kind, "file": {"path": path, "content": content}},
        }
    )


def cont(path, content="y = 2\n", kind="update_file", **extra):
    return action(
        {
            "action": "continue_multi_file",
            "next_file": {"action": kind, "file": {"path": path, "content": content}, **extra},
        }
    )


@pytest.mark.asyncio
async def test_adds_assistant_message(dispatcher, conversation):
    keep_going = await dispatcher.dispatch(
        conversation, action({"action": "text_response", "text_response": "All set."})
    )

    assert keep_going is False
    assert conversation.messages[-1].role == "assistant"
    assert conversation.messages[-1].content == "All set."


@pytest.mark.asyncio
async def test_blank_text_becomes_done(dispatcher, conversation):
    await dispatcher.dispatch(conversation, action({"action": "text_response", "text_response": ""}))

    assert conversation.messages[-1].content == DONE


@pytest.mark.asyncio
async def test_batch_read_keeps_order_and_reports_errors(dispatcher, conversation):
    """Test that one unreadable file does not hide the others."""
    keep_going = await dispatcher.dispatch(
        conversation, read_files("src/utils.py", "missing.py", "./src/main.py")
    )

    assert keep_going is True
    status, result = conversation.messages[-2], conversation.messages[-1]
    assert status.role == "status"
    assert status.content == "Executing: read_file (Batch: 3 files)"
    assert result.role == "user"

    body = result.content
    assert body.startswith("[Tool Result]\n--- FILE: src/utils.py ---\n")
    assert "--- ERROR READING FILE: missing.py ---\nFile not found: missing.py" in body
    assert body.index("src/utils.py") < body.index("missing.py") < body.index("--- FILE: src/main.py")


@pytest.mark.asyncio
async def test_empty_file_is_marked(dispatcher, conversation, test_project):
    (test_project / "empty.py").write_text("")

    await dispatcher.dispatch(conversation, read_files("empty.py"))

    assert conversation.messages[-1].content == "[Tool Result]\n--- FILE: empty.py ---\n(Empty File)"


@pytest.mark.asyncio
async def test_list_files(dispatcher, conversation):
    await dispatcher.dispatch(
        conversation, action({"action": "tool_call", "tool_call": {"function_name": "list_files", "args": {}}})
    )

    assert conversation.messages[-2].content == "Executing: list_files"
    assert "src/main.py" in conversation.messages[-1].content


@pytest.mark.asyncio
async def test_empty_output_placeholder(tester, tracker, conversation, temp_dir):
    dispatcher = ActionDispatcher(Workspace(temp_dir), tester, tracker)

    await dispatcher.dispatch(
        conversation, action({"action": "tool_call", "tool_call": {"function_name": "list_files", "args": {}}})
    )

    assert conversation.messages[-1].content == f"[Tool Result]\n{EMPTY_TOOL_RESULT}"


@pytest.mark.asyncio
async def test_start_applies_first_file(dispatcher, conversation, tracker, test_project):
    keep_going = await dispatcher.dispatch(conversation, start(["src/a.py", "src/b.py"], "src/a.py"))

    assert keep_going is True
    assert (test_project / "src" / "a.py").read_text() == "x = 1\n"
    assert tracker.state.remaining == ("src/b.py",)
    assert conversation.messages[-1].role == "file-status"
    assert conversation.messages[-1].content == "✓ Created src/a.py\nProgress: 1/2 files"
    assert any(m.content.startswith("Start Task: Add modules") for m in conversation.messages)


@pytest.mark.asyncio
async def test_continue_advances_plan(dispatcher, conversation, tracker, test_project):
    await dispatcher.dispatch(conversation, start(["src/a.py", "src/main.py"], "src/a.py"))

    keep_going = await dispatcher.dispatch(conversation, cont("./src/main.py"))

    assert keep_going is True
    assert tracker.state.remaining == ()
    assert (test_project / "src" / "main.py").read_text() == "y = 2\n"
    assert conversation.messages[-1].content == "✓ Updated src/main.py\nProgress: 2/2 files"


@pytest.mark.asyncio
async def test_terminal_noop_finishes_task(dispatcher, conversation, tracker):
    await dispatcher.dispatch(conversation, start(["src/a.py", "src/b.py"], "src/a.py"))

    keep_going = await dispatcher.dispatch(conversation, cont("", content=None, kind="noop", is_last_file=True))

    assert keep_going is False
    assert not tracker.active
    assert conversation.messages[-1].content == "Task marked as complete by AI."


@pytest.mark.asyncio
async def test_continue_without_task(dispatcher, conversation):
    keep_going = await dispatcher.dispatch(conversation, cont("src/a.py"))

    assert keep_going is False
    assert conversation.messages[-1].content == "⚠️ No active task state found."


@pytest.mark.asyncio
async def test_failed_first_file_resets(dispatcher, conversation, tracker):
    """Test that an update without content fails and leaves no task behind."""
    keep_going = await dispatcher.dispatch(
        conversation, start(["src/a.py"], "src/a.py", content=None, kind="update_file")
    )

    assert keep_going is False
    assert not tracker.active
    assert conversation.messages[-1].content.startswith("✗ ERROR: No content provided")


@pytest.mark.asyncio
async def test_failed_continue_resets(dispatcher, conversation, tracker):
    await dispatcher.dispatch(conversation, start(["src/a.py", "../escape.py"], "src/a.py"))

    keep_going = await dispatcher.dispatch(conversation, cont("../escape.py", kind="create_file"))

    assert keep_going is False
    assert not tracker.active
    assert "Path outside project root" in conversation.messages[-1].content


@pytest.mark.asyncio
async def test_start_while_active_is_rejected(dispatcher, conversation, tracker, test_project):
    await dispatcher.dispatch(conversation, start(["src/a.py", "src/b.py"], "src/a.py"))

    keep_going = await dispatcher.dispatch(conversation, start(["src/c.py"], "src/c.py"))

    assert keep_going is True
    assert conversation.messages[-1].role == "user"
    assert conversation.messages[-1].content.startswith("[SYSTEM-ERROR]")
    assert not (test_project / "src" / "c.py").exists()
    assert tracker.state.remaining == ("src/b.py",)


@pytest.mark.asyncio
async def test_report_is_formatted(dispatcher, conversation, tester):
    keep_going = await dispatcher.dispatch(conversation, action({"action": "run_test"}))

    assert keep_going is True
    assert tester.targets == [ALL_TESTS]
    assert conversation.messages[-2].content == "Running tests on all tests..."
    report = conversation.messages[-1]
    assert report.role == "test-status"
    assert "Status: FAILED" in report.content
    assert "Passed: 1, Failed: 1, Total: 2" in report.content
    assert "- tests.test_main::test_bye: assert 'a' == 'b'" in report.content


@pytest.mark.asyncio
async def test_runner_error_is_reported(workspace, tracker, conversation):
    dispatcher = ActionDispatcher(workspace, StubTester(error=TestRunError("pytest missing")), tracker)

    keep_going = await dispatcher.dispatch(
        conversation, action({"action": "run_test", "file": "tests/test_main.py"})
    )

    assert keep_going is True
    assert conversation.messages[-1].content == "✗ ERROR running tests: pytest missing"


@pytest.mark.asyncio
async def test_corrective_message(dispatcher, conversation):
    keep_going = await dispatcher.dispatch(conversation, InvalidAction("dance"))

    assert keep_going is False
    message = conversation.messages[-1]
    assert message.role == "user"
    assert message.content.startswith("[SYSTEM-ERROR] The action 'dance' is not a valid")
