"""Conversation persistence as one JSON file per chat."""

import asyncio
import json
from pathlib import Path
from typing import List

from pydantic import ValidationError

from turnwright.constants import STATE_DIR
from turnwright.conversation import Conversation


class JsonConversationStore:
    """Stores conversations under .turnwright/conversations/<id>.json."""

    def __init__(self, project_root: Path):
        """Initialize the store.

        Args:
            project_root: Project root directory
        """
        self.directory = project_root / STATE_DIR / "conversations"

    async def list(self) -> List[Conversation]:
        """Load all stored conversations, most recent first.

        Returns:
            List of Conversations; unreadable files are skipped
        """
        return await asyncio.to_thread(self._list_sync)

    async def put(self, conversation: Conversation) -> None:
        """Insert or replace a conversation."""
        await asyncio.to_thread(self._put_sync, conversation)

    async def remove(self, conversation_id: str) -> None:
        """Delete a conversation if it exists."""
        await asyncio.to_thread(self._remove_sync, conversation_id)

    def _list_sync(self) -> List[Conversation]:
        if not self.directory.exists():
            return []

        conversations = []
        for path in self.directory.glob("*.json"):
            try:
                with open(path, encoding="utf-8") as f:
                    record = json.load(f)
                if isinstance(record, dict):
                    conversations.append(load_record(record))
            except (json.JSONDecodeError, IOError, ValidationError):
                continue

        return sorted(conversations, key=lambda c: c.timestamp, reverse=True)

    def _put_sync(self, conversation: Conversation) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        record = conversation.to_record()
        conversation.title = record["title"]

        path = self.directory / f"{conversation.id}.json"
        temp_path = path.with_suffix(".json.tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, ensure_ascii=False)
        temp_path.replace(path)

    def _remove_sync(self, conversation_id: str) -> None:
        path = self.directory / f"{conversation_id}.json"
        if path.exists():
            path.unlink()


def load_record(record: dict) -> Conversation:
    """Rebuild a Conversation from a stored record.

    Messages saved before the knowledge cache existed have no summarized flag
    and count as already summarized.
    """
    messages = record.get("messages")
    if isinstance(messages, list):
        for message in messages:
            if isinstance(message, dict):
                message.setdefault("is_summarized", True)
    record.pop("is_summarizing", None)
    return Conversation.model_validate(record)
