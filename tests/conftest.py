"""Pytest configuration and fixtures."""

import tempfile
from pathlib import Path

import pytest

from turnwright.config import Config
from turnwright.conversation import Conversation
from turnwright.graph import TurnEngine
from turnwright.llm import Completion
from turnwright.tools.tester import AssertionResult, TestReport, TestSuite
from turnwright.tools.workspace import Workspace
from turnwright.utils.ignore import IgnoreRules


class ScriptedLLM:
    """Model stub that replays queued replies and records every request."""

    def __init__(self, replies=None, default=None):
        self.replies = list(replies or [])
        self.default = default
        self.calls: list[list[dict]] = []

    def queue(self, text: str, truncated: bool = False) -> None:
        self.replies.append(Completion(text=text, truncated=truncated))

    async def complete(self, messages, max_tokens=None, temperature=None, cancel=None):
        if cancel is not None:
            cancel.raise_if_cancelled()
        self.calls.append(messages)
        if self.replies:
            reply = self.replies.pop(0)
        elif self.default is not None:
            reply = self.default
        else:
            raise AssertionError("ScriptedLLM ran out of replies")
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return Completion(text=reply)
        return reply


class StubTester:
    """Test runner stub returning a fixed report."""

    __test__ = False

    def __init__(self, report=None, error=None):
        self.report = report or TestReport()
        self.error = error
        self.targets: list[str] = []

    async def run_tests(self, target):
        self.targets.append(target)
        if self.error is not None:
            raise self.error
        return self.report


class MemoryStore:
    """In-memory conversation store."""

    def __init__(self):
        self.records: dict[str, dict] = {}
        self.put_count = 0

    async def list(self):
        return [Conversation.model_validate(r) for r in self.records.values()]

    async def put(self, conversation):
        self.put_count += 1
        self.records[conversation.id] = conversation.to_record()

    async def remove(self, conversation_id):
        self.records.pop(conversation_id, None)


def tagged(json_data: str, **sections: str) -> str:
    """Build a tagged reply; keyword names use underscores for dashes."""
    parts = [f"#[json-data]\n{json_data}\n#[end-json-data]"]
    for name, text in sections.items():
        tag = name.replace("_", "-")
        parts.append(f"#[{tag}]\n{text}\n#[end-{tag}]")
    return "\n".join(parts)


PROJECT_ROUTE = '{"intent": "project"}'
NO_SCOUT = '{"files": []}'


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_project(temp_dir):
    """Create a test project structure."""
    (temp_dir / "src").mkdir()
    (temp_dir / "src" / "main.py").write_text("def hello():\n    return 'world'\n")
    (temp_dir / "src" / "utils.py").write_text("def add(a, b):\n    return a + b\n")

    (temp_dir / "tests").mkdir()
    (temp_dir / "tests" / "test_main.py").write_text(
        "def test_hello():\n    from src.main import hello\n    assert hello() == 'world'\n"
    )

    (temp_dir / "README.md").write_text("# Test Project\n")

    yield temp_dir


@pytest.fixture
def mock_config():
    """Create a mock configuration."""
    return Config(anthropic_api_key="test_key", knowledge_cache_enabled=False)


@pytest.fixture
def ignore_rules(temp_dir):
    """Create ignore rules for temp directory."""
    return IgnoreRules(temp_dir)


@pytest.fixture
def workspace(test_project):
    return Workspace(test_project)


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def tester():
    return StubTester(
        TestReport(
            num_passed=1,
            num_failed=1,
            num_total=2,
            suites=[
                TestSuite(
                    name="test_main",
                    assertions=[
                        AssertionResult("tests.test_main::test_hello", "passed"),
                        AssertionResult(
                            "tests.test_main::test_bye", "failed", ["assert 'a' == 'b'"]
                        ),
                    ],
                )
            ],
        )
    )


@pytest.fixture
def engine(mock_config, llm, workspace, tester, store):
    return TurnEngine(mock_config, llm, workspace, tester, store=store)


@pytest.fixture
def conversation():
    return Conversation.new("You are a test assistant.")
