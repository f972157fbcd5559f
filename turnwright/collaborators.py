"""Interfaces the turn engine depends on.

Concrete implementations live in llm.py, tools/workspace.py, tools/tester.py,
storage.py and handlers/knowledge.py; tests substitute in-memory stubs.
"""

from typing import Any, List, Optional, Protocol

from turnwright.cancellation import CancellationToken
from turnwright.conversation import Conversation, Message
from turnwright.llm import Completion
from turnwright.schema import FileRef
from turnwright.tools.tester import TestReport
from turnwright.tools.workspace import FileNode
from turnwright.utils.paths import PathKey


class ModelClient(Protocol):
    async def complete(
        self,
        messages: list[dict[str, Any]],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Completion: ...


class FileSystem(Protocol):
    def nodes(self) -> dict[PathKey, FileNode]: ...

    def structure_lines(self) -> list[str]: ...

    def read_content(self, path: str) -> Optional[str]: ...

    def read_tool(self, function_name: str, args: dict[str, Any]) -> str: ...

    def apply_file_action(
        self, kind: str, file: FileRef, tags: Optional[dict[str, list[str]]] = None
    ) -> str: ...


class TestRunner(Protocol):
    __test__ = False

    async def run_tests(self, target: str) -> TestReport: ...


class ConversationStore(Protocol):
    async def list(self) -> List[Conversation]: ...

    async def put(self, conversation: Conversation) -> None: ...

    async def remove(self, conversation_id: str) -> None: ...


class Summarizer(Protocol):
    async def summarize(self, current_summary: str, messages: list[Message]) -> str: ...
