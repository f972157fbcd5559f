"""Intent routing: decide whether a message needs the coding assistant."""

from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError
from rich.console import Console

from turnwright.cancellation import CancellationToken, OperationCancelled
from turnwright.collaborators import ModelClient
from turnwright.constants import ROUTER_MAX_TOKENS
from turnwright.utils.json_extract import extract_json_object

console = Console()

ROUTER_PROMPT = """You are a semantic router for a coding assistant. Analyze the user's input and classify the intent.

RULES:
1. If the input is a greeting, small talk, or a general question NOT related to coding, the project, or technology -> Return JSON: {{"intent": "general", "reply": "Your friendly response here"}}
2. If the input is about coding, the project, files, debugging, refactoring, or technical concepts -> Return JSON: {{"intent": "project"}}

USER INPUT: "{message}"

RESPONSE (JSON ONLY):"""


class RouterResult(BaseModel):
    """Routing decision for one user message."""

    intent: Literal["general", "project"] = Field(
        description="general for small talk, project for anything technical"
    )
    reply: Optional[str] = Field(None, description="Direct answer for general messages")

    @property
    def answers_directly(self) -> bool:
        return self.intent == "general" and bool(self.reply and self.reply.strip())


PROJECT = RouterResult(intent="project")


class IntentRouter:
    """Classifies user messages with one lightweight model call."""

    def __init__(self, llm: ModelClient):
        """Initialize the router.

        Args:
            llm: Model client, usually a small fast model
        """
        self.llm = llm

    async def classify(
        self, message: str, cancel: Optional[CancellationToken] = None
    ) -> RouterResult:
        """Classify a user message.

        Any failure other than cancellation routes to the full assistant.

        Args:
            message: User's message
            cancel: Cancellation token for this turn

        Returns:
            RouterResult
        """
        messages = [{"role": "user", "content": ROUTER_PROMPT.format(message=message)}]

        try:
            completion = await self.llm.complete(
                messages, max_tokens=ROUTER_MAX_TOKENS, temperature=0.0, cancel=cancel
            )
        except OperationCancelled:
            raise
        except Exception as e:
            console.print(f"[dim]Router unavailable ({e}), using full assistant[/dim]")
            return PROJECT

        return parse_router_reply(completion.text)


def parse_router_reply(text: str) -> RouterResult:
    """Decode a router reply, defaulting to the project intent.

    Args:
        text: Raw router reply

    Returns:
        RouterResult
    """
    extracted = extract_json_object(text)
    if not extracted.ok:
        return PROJECT
    try:
        return RouterResult.model_validate(extracted.value)
    except ValidationError:
        return PROJECT
