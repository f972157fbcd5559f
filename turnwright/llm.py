"""LLM abstraction layer for Anthropic Claude models."""

from dataclasses import dataclass
from typing import Any, Literal, Optional

from anthropic import AsyncAnthropic

from turnwright.cancellation import CancellationToken
from turnwright.constants import SUPPORTED_MODELS


@dataclass
class ModelDescriptor:
    """Descriptor for an LLM model."""

    provider: Literal["anthropic"]
    name: str
    max_output_tokens: int
    temperature: float = 0.7


@dataclass
class Completion:
    """Text returned by one model call."""

    text: str
    truncated: bool = False
    stop_reason: Optional[str] = None


class LLM:
    """Anthropic Claude LLM interface."""

    def __init__(self, descriptor: ModelDescriptor, api_key: str):
        """Initialize LLM client.

        Args:
            descriptor: Model descriptor
            api_key: Anthropic API key
        """
        self.descriptor = descriptor

        if descriptor.provider != "anthropic":
            raise ValueError(f"Only Anthropic models are supported. Got: {descriptor.provider}")

        self.client = AsyncAnthropic(api_key=api_key)

    async def complete(
        self,
        messages: list[dict[str, Any]],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Completion:
        """Generate a completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            max_tokens: Optional max tokens override
            temperature: Optional temperature override
            cancel: Optional token; the request is abandoned when it fires

        Returns:
            Completion with the reply text and whether it hit the length limit
        """
        temp = temperature if temperature is not None else self.descriptor.temperature
        max_tok = max_tokens if max_tokens is not None else self.descriptor.max_output_tokens

        request = self._complete_anthropic(messages, temp, max_tok)
        if cancel is not None:
            return await cancel.guard(request)
        return await request

    async def _complete_anthropic(
        self,
        messages: list[dict[str, Any]],
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        """Complete using the Anthropic Messages API."""
        system, chat_messages = to_anthropic_messages(messages)

        kwargs: dict[str, Any] = {
            "model": self.descriptor.name,
            "messages": chat_messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        if system:
            kwargs["system"] = system

        response = await self.client.messages.create(**kwargs)

        text = "".join(block.text for block in response.content if block.type == "text")
        return Completion(
            text=text,
            truncated=response.stop_reason == "max_tokens",
            stop_reason=response.stop_reason,
        )

    @classmethod
    def parse_model_string(cls, model_str: str) -> ModelDescriptor:
        """Parse model string into ModelDescriptor.

        Args:
            model_str: Model string (e.g., "anthropic:claude-sonnet-4-5")

        Returns:
            ModelDescriptor

        Raises:
            ValueError: If model string is invalid
        """
        if model_str not in SUPPORTED_MODELS:
            raise ValueError(
                f"Unsupported model: {model_str}. "
                f"Supported: {', '.join(SUPPORTED_MODELS.keys())}"
            )

        model_config = SUPPORTED_MODELS[model_str]
        return ModelDescriptor(
            provider=model_config["provider"],
            name=model_config["name"],
            max_output_tokens=model_config["max_output_tokens"],
        )

    @classmethod
    def list_models(cls) -> list[str]:
        """List all supported model strings.

        Returns:
            List of model strings
        """
        return list(SUPPORTED_MODELS.keys())


def to_anthropic_messages(messages: list[dict[str, Any]]) -> tuple[Optional[str], list[dict]]:
    """Split system text out and merge consecutive same-role turns.

    The Messages API takes the system prompt separately and only knows the
    user and assistant roles; every other role is sent as user text.

    Args:
        messages: Messages with 'role' and string 'content'

    Returns:
        Tuple of (system prompt or None, chat messages)
    """
    system_parts = [m["content"] for m in messages if m["role"] == "system" and m["content"]]
    system = "\n\n".join(system_parts) if system_parts else None

    chat: list[dict] = []
    for m in messages:
        if m["role"] == "system" or not m.get("content"):
            continue
        role = "assistant" if m["role"] == "assistant" else "user"
        if chat and chat[-1]["role"] == role:
            chat[-1]["content"] += "\n\n" + m["content"]
        else:
            chat.append({"role": role, "content": m["content"]})

    # The API rejects a conversation that opens with an assistant turn
    if chat and chat[0]["role"] == "assistant":
        chat.insert(0, {"role": "user", "content": "(conversation continues)"})

    return system, chat
