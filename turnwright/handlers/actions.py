"""Dispatch of validated model actions.

Each handler appends its messages to the conversation and returns whether the
executor loop should call the model again.
"""

from typing import Awaitable, Callable, Optional

from rich.console import Console

from turnwright.collaborators import FileSystem, TestRunner
from turnwright.constants import ALL_TESTS
from turnwright.conversation import TOOL_RESULT_PREFIX, Conversation
from turnwright.multi_file import MultiFileTracker, TaskStateError
from turnwright.schema import (
    ACTION_TYPES,
    Action,
    ContinueMultiFile,
    FileAction,
    InvalidAction,
    RunTest,
    StartMultiFile,
    TextResponse,
    ToolCallAction,
)
from turnwright.tools.tester import format_report
from turnwright.utils.logging import SessionLogger
from turnwright.utils.paths import normalize_path

console = Console()

EMPTY_TOOL_RESULT = "[Action executed successfully, but returned no content]"
DONE = "✅ Done."


class ActionDispatcher:
    """Applies one action per loop iteration."""

    def __init__(
        self,
        workspace: FileSystem,
        tester: TestRunner,
        tracker: MultiFileTracker,
        logger: Optional[SessionLogger] = None,
    ):
        """Initialize the dispatcher.

        Args:
            workspace: File-system collaborator
            tester: Test collaborator
            tracker: Multi-file task state shared across turns
            logger: Optional session logger
        """
        self.workspace = workspace
        self.tester = tester
        self.tracker = tracker
        self.logger = logger

        self._handlers: dict[type, Callable[[Conversation, Action], Awaitable[bool]]] = {
            TextResponse: self.handle_text_response,
            ToolCallAction: self.handle_tool_call,
            StartMultiFile: self.handle_start_multi_file,
            ContinueMultiFile: self.handle_continue_multi_file,
            RunTest: self.handle_run_test,
            InvalidAction: self.handle_invalid_action,
        }
        missing = [t.__name__ for t in ACTION_TYPES if t not in self._handlers]
        if missing:
            raise TypeError(f"No handler for actions: {', '.join(missing)}")

    async def dispatch(self, conversation: Conversation, action: Action) -> bool:
        """Run the handler for ``action``.

        Args:
            conversation: Conversation receiving the handler's messages
            action: Action decoded from the model reply

        Returns:
            True if the loop should continue
        """
        if self.logger:
            self.logger.log_event("dispatch", action=type(action).__name__)
        return await self._handlers[type(action)](conversation, action)

    async def handle_text_response(self, conversation: Conversation, action: TextResponse) -> bool:
        text = action.text_response or action.message
        conversation.add_message("assistant", text if text and text.strip() else DONE)
        return False

    async def handle_tool_call(self, conversation: Conversation, action: ToolCallAction) -> bool:
        call = action.tool_call
        paths = call.requested_paths()

        if call.function_name == "read_file":
            conversation.add_message(
                "status", f"Executing: read_file (Batch: {len(paths)} files)"
            )
            console.print(f"[dim]🔧 Reading {len(paths)} file(s)[/dim]")
            blocks = [self._read_one(path) for path in paths]
            output = "\n\n".join(blocks)
        else:
            conversation.add_message("status", f"Executing: {call.function_name}")
            console.print(f"[dim]🔧 Using tool: {call.function_name}[/dim]")
            try:
                output = self.workspace.read_tool(call.function_name, {})
            except Exception as e:
                output = f"Error executing tool: {e}"

        if not output or not output.strip():
            output = EMPTY_TOOL_RESULT

        conversation.add_message("user", f"{TOOL_RESULT_PREFIX}\n{output}")
        return True

    def _read_one(self, raw_path: str) -> str:
        path = normalize_path(raw_path)
        try:
            content = self.workspace.read_tool("read_file", {"path": path})
        except Exception as e:
            return f"--- ERROR READING FILE: {path} ---\n{e}"
        return f"--- FILE: {path} ---\n{content if content else '(Empty File)'}"

    async def handle_start_multi_file(
        self, conversation: Conversation, action: StartMultiFile
    ) -> bool:
        if self.tracker.active:
            conversation.add_message(
                "user",
                "[SYSTEM-ERROR] A multi-file task is already in progress. "
                "Send continue_multi_file for the next file, or finish the task with "
                "a noop next_file that has is_last_file set to true.",
            )
            return True

        plan = action.plan
        first = action.first_file
        intro = f"Start Task: {plan.description}" if plan.description else "Start Task"
        conversation.add_message(
            "assistant", f"{intro}\n{action.message}" if action.message else intro
        )

        try:
            result = self._apply(first)
        except Exception as e:
            self.tracker.reset()
            conversation.add_message("assistant", f"✗ ERROR: {e}")
            return False

        files = plan.files_to_modify or [first.file.path]
        try:
            state = self.tracker.start(plan.description, files, first.file.path)
        except TaskStateError as e:
            conversation.add_message("assistant", f"✗ ERROR: {e}")
            return False

        conversation.add_message(
            "status", f"Plan: {len(state.all_files)} file(s): {', '.join(state.all_files)}"
        )
        conversation.add_message("file-status", f"{result}\nProgress: {state.progress} files")
        return True

    async def handle_continue_multi_file(
        self, conversation: Conversation, action: ContinueMultiFile
    ) -> bool:
        if not self.tracker.active:
            conversation.add_message("status", "⚠️ No active task state found.")
            return False

        next_file = action.next_file
        if next_file.is_terminal_noop:
            self.tracker.reset()
            conversation.add_message("status", "Task marked as complete by AI.")
            return False

        path = normalize_path(next_file.file.path)
        intro = f"Continuing with {path}"
        conversation.add_message(
            "assistant", f"{intro}\n{action.message}" if action.message else intro
        )

        try:
            result = self._apply(next_file)
        except Exception as e:
            self.tracker.reset()
            conversation.add_message("assistant", f"✗ ERROR: {e}")
            return False

        state = self.tracker.advance(path)
        conversation.add_message("file-status", f"{result}\nProgress: {state.progress} files")
        return True

    def _apply(self, file_action: FileAction) -> str:
        tags = file_action.tags.as_dict() if file_action.tags else None
        result = self.workspace.apply_file_action(file_action.action, file_action.file, tags)
        console.print(f"[dim]{result}[/dim]")
        return result

    async def handle_run_test(self, conversation: Conversation, action: RunTest) -> bool:
        target = action.target()
        label = "all tests" if target == ALL_TESTS else target
        conversation.add_message("test-status", f"Running tests on {label}...")
        console.print(f"[dim]🧪 Running tests on {label}[/dim]")

        try:
            report = await self.tester.run_tests(target)
        except Exception as e:
            conversation.add_message("test-status", f"✗ ERROR running tests: {e}")
            return True

        if self.logger:
            self.logger.save_test_report(target, report.to_dict())
        conversation.add_message("test-status", format_report(report))
        return True

    async def handle_invalid_action(self, conversation: Conversation, action: InvalidAction) -> bool:
        conversation.add_message(
            "user",
            f"[SYSTEM-ERROR] The action '{action.action}' is not a valid or recognized action. "
            "Please review the available actions and correct your response.",
        )
        return False
