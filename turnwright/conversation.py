"""Conversation and message models."""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from turnwright.constants import (
    DEFAULT_ENVIRONMENT,
    GREETING,
    NEW_CHAT_TITLE,
    TITLE_PREFIX_CHARS,
)

Role = Literal["system", "user", "assistant", "status", "file-status", "test-status"]

# Roles that only matter while the turn that produced them is running
TRANSIENT_ROLES = ("file-status", "test-status")
TOOL_RESULT_PREFIX = "[Tool Result]"
GREETING_ID = "initial-assistant"
SYSTEM_ID = "system-prompt"


def new_id() -> str:
    return uuid.uuid4().hex


class Message(BaseModel):
    """A single conversation message."""

    id: str = Field(default_factory=new_id)
    role: Role
    content: str
    is_summarized: bool = False


class Conversation(BaseModel):
    """A chat with its messages and long-term knowledge summary."""

    id: str = Field(default_factory=new_id)
    title: str = NEW_CHAT_TITLE
    messages: list[Message] = Field(default_factory=list)
    environment: str = DEFAULT_ENVIRONMENT
    knowledge_summary: str = ""
    is_summarizing: bool = Field(default=False, exclude=True)
    timestamp: datetime = Field(default_factory=datetime.now)

    @classmethod
    def new(cls, system_prompt: str = "", environment: str = DEFAULT_ENVIRONMENT) -> "Conversation":
        """Create a chat seeded with the system message and a greeting.

        Args:
            system_prompt: Base system prompt text
            environment: Environment tag for this chat

        Returns:
            New Conversation
        """
        conversation = cls(environment=environment)
        if system_prompt:
            conversation.messages.append(
                Message(id=SYSTEM_ID, role="system", content=system_prompt, is_summarized=True)
            )
        conversation.messages.append(
            Message(id=GREETING_ID, role="assistant", content=GREETING, is_summarized=True)
        )
        return conversation

    def add_message(self, role: Role, content: Optional[str]) -> Optional[Message]:
        """Append a message unless its content is blank.

        Args:
            role: Message role
            content: Message text

        Returns:
            The appended Message, or None if it was dropped
        """
        if content is None or not content.strip():
            return None
        message = Message(role=role, content=content)
        self.messages.append(message)
        self.timestamp = datetime.now()
        return message

    def add_user_message(self, content: str) -> Optional[Message]:
        """Append a user message, removing the greeting on the first one."""
        if not any(m.role == "user" for m in self.messages):
            self.messages = [m for m in self.messages if m.id != GREETING_ID]
        return self.add_message("user", content)

    def clear(self) -> None:
        """Drop everything except the system message and reset knowledge."""
        self.messages = [m for m in self.messages if m.role == "system"]
        self.knowledge_summary = ""

    def valid_messages(self) -> list[Message]:
        """Messages that count as conversation history."""
        return [
            m for m in self.messages
            if m.role not in ("system", "status") and m.content.strip()
        ]

    def recent_history(self, limit: int) -> list[dict]:
        """Last ``limit`` valid messages in model message format."""
        if limit <= 0:
            return []
        return [{"role": m.role, "content": m.content} for m in self.valid_messages()[-limit:]]

    def unsummarized_messages(self) -> list[Message]:
        return [m for m in self.valid_messages() if not m.is_summarized]

    def demote_transient(self) -> int:
        """Collapse per-turn messages into status messages.

        Returns:
            Number of messages demoted
        """
        demoted = 0
        for m in self.messages:
            if m.role in TRANSIENT_ROLES or (
                m.role == "user" and m.content.startswith(TOOL_RESULT_PREFIX)
            ):
                m.role = "status"
                demoted += 1
        return demoted

    def derive_title(self) -> str:
        """Title from the first user message, or the current title."""
        first_user = next((m for m in self.messages if m.role == "user"), None)
        if first_user is None or self.title != NEW_CHAT_TITLE:
            return self.title
        return first_user.content[:TITLE_PREFIX_CHARS] + "..."

    def to_record(self) -> dict:
        """Serializable form without system messages or runtime flags."""
        record = self.model_dump(mode="json")
        record["title"] = self.derive_title()
        record["messages"] = [m for m in record["messages"] if m["role"] != "system"]
        return record
