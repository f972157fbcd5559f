"""State models for the LangGraph turn workflow."""

import asyncio
from dataclasses import dataclass, field
from typing import Literal, Optional, TypedDict

from turnwright.cancellation import CancellationToken
from turnwright.conversation import Conversation
from turnwright.schema import Action

Outcome = Literal["general", "completed", "budget_exceeded", "parse_error", "cancelled", "error"]


@dataclass
class TurnContext:
    """Files the user is looking at while sending a message."""

    active_file: Optional[str] = None
    pinned_files: list[str] = field(default_factory=list)


@dataclass
class LoopBudget:
    """Counters owned by one send_message call."""

    max_iterations: int
    iterations: int = 0
    tool_calls: int = 0
    model_calls: int = 0

    @property
    def exhausted(self) -> bool:
        return self.iterations >= self.max_iterations


@dataclass
class TurnOutcome:
    """What happened during one send_message call."""

    status: Outcome
    iterations: int = 0
    tool_calls: int = 0
    model_calls: int = 0
    summary_task: Optional[asyncio.Task] = None


class TurnState(TypedDict, total=False):
    """The state object passed through the turn graph.

    Attributes:
        conversation: Conversation being extended
        user_message: Text the user just sent (empty when resuming)
        context: Active and pinned files
        cancel: Cancellation token for this call
        budget: Iteration counters
        scouted_context: Contents of files picked by the scout
        action: Action decoded in the current iteration
        should_continue: Result of the last dispatch
        outcome: Set once the turn reaches a terminal state
    """

    conversation: Conversation
    user_message: str
    context: TurnContext
    cancel: CancellationToken
    budget: LoopBudget
    scouted_context: str
    action: Optional[Action]
    should_continue: bool
    outcome: Optional[Outcome]
