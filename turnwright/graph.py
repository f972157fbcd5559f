"""LangGraph orchestration of one conversational turn."""

from pathlib import Path
from typing import Optional

from langgraph.graph import END, StateGraph
from rich.console import Console

from turnwright.cancellation import CancellationToken, OperationCancelled
from turnwright.collaborators import (
    ConversationStore,
    FileSystem,
    ModelClient,
    Summarizer,
    TestRunner,
)
from turnwright.config import Config
from turnwright.constants import LANGUAGE_MAP
from turnwright.conversation import Conversation
from turnwright.handlers.actions import ActionDispatcher
from turnwright.handlers.knowledge import KnowledgeCache, KnowledgeService
from turnwright.intent import IntentRouter
from turnwright.llm import LLM
from turnwright.multi_file import MultiFileTracker
from turnwright.response import parse_response
from turnwright.schema import ToolCallAction, validate_payload
from turnwright.scout import ContextScout
from turnwright.state import LoopBudget, Outcome, TurnContext, TurnOutcome, TurnState
from turnwright.storage import JsonConversationStore
from turnwright.system_prompt import SystemPromptBuilder
from turnwright.tools.tester import Tester
from turnwright.tools.workspace import Workspace
from turnwright.utils.logging import SessionLogger

console = Console()

STOPPED = "⚠️ Generation stopped by user."
MISSING_ACTIVE_FILE = "(File no longer exists at this path - possibly renamed or deleted)"

KNOWLEDGE_CONTEXT = (
    "[CONTEXT] This is the project's conceptual map (our long-term memory). "
    "Use it to stay consistent with earlier decisions.\n\n"
    "--- CONCEPTUAL MAP ---\n{summary}"
)

CONTINUE_PROMPT = (
    "Your previous response was cut off by the length limit; the excerpt above is how it "
    "ended. Continue EXACTLY from where it stopped. Do not repeat any text, do not add "
    "commentary, and close any open #[...] sections."
)


def trim_to_last_line(text: str) -> str:
    """Cut a truncated chunk back to its last complete line."""
    index = text.rfind("\n")
    return text[:index + 1] if index != -1 else text


class TurnEngine:
    """Runs the router, scout and executor loop for each user message."""

    def __init__(
        self,
        config: Config,
        llm: ModelClient,
        workspace: FileSystem,
        tester: TestRunner,
        store: Optional[ConversationStore] = None,
        router_llm: Optional[ModelClient] = None,
        summarizer: Optional[Summarizer] = None,
        logger: Optional[SessionLogger] = None,
    ):
        """Initialize the engine.

        Args:
            config: Configuration object
            llm: Model used by the executor loop
            workspace: File-system collaborator
            tester: Test collaborator
            store: Conversation store used at the end of each turn
            router_llm: Lighter model for routing and scouting (defaults to llm)
            summarizer: Knowledge summarizer (defaults to one backed by llm)
            logger: Optional session logger
        """
        self.config = config
        self.llm = llm
        self.workspace = workspace
        self.tester = tester
        self.store = store
        self.logger = logger

        self.tracker = MultiFileTracker()
        self.router = IntentRouter(router_llm or llm)
        self.scout = ContextScout(router_llm or llm)
        self.dispatcher = ActionDispatcher(workspace, tester, self.tracker, logger)
        self.prompt_builder = SystemPromptBuilder(config.custom_system_prompt)
        self.knowledge = KnowledgeCache(
            summarizer or KnowledgeService(llm),
            store,
            enabled=config.knowledge_cache_enabled,
            threshold=config.knowledge_cache_threshold,
        )

        self.graph = self.build_graph()

    @classmethod
    def from_config(
        cls, project_root: Path, config: Config, logger: Optional[SessionLogger] = None
    ) -> "TurnEngine":
        """Build an engine with the Anthropic client and on-disk collaborators.

        Args:
            project_root: Project root directory
            config: Configuration object
            logger: Optional session logger

        Returns:
            TurnEngine
        """
        if not config.anthropic_api_key:
            raise ValueError("No Anthropic API key found. Set ANTHROPIC_API_KEY in .env")

        llm = LLM(LLM.parse_model_string(config.default_model), config.anthropic_api_key)
        router_llm = LLM(LLM.parse_model_string(config.router_model), config.anthropic_api_key)

        return cls(
            config,
            llm,
            Workspace(project_root, config.max_read_mb, config.max_write_mb),
            Tester(project_root, config.test_timeout),
            store=JsonConversationStore(project_root),
            router_llm=router_llm,
            logger=logger,
        )

    def switch_model(self, llm: ModelClient) -> None:
        """Use a different main model for generation and knowledge summaries.

        A custom summarizer passed to the constructor is left untouched.
        """
        self.llm = llm
        if isinstance(self.knowledge.summarizer, KnowledgeService):
            self.knowledge.summarizer.llm = llm

    def build_graph(self):
        """Build the LangGraph workflow.

        Returns:
            Compiled StateGraph
        """
        workflow = StateGraph(TurnState)

        workflow.add_node("route", self.route_node)
        workflow.add_node("scout", self.scout_node)
        workflow.add_node("generate", self.generate_node)
        workflow.add_node("dispatch", self.dispatch_node)
        workflow.add_node("budget_exceeded", self.budget_exceeded_node)

        workflow.set_entry_point("route")
        workflow.add_conditional_edges(
            "route", self._after_route, {"scout": "scout", "end": END}
        )
        workflow.add_edge("scout", "generate")
        workflow.add_conditional_edges(
            "generate", self._after_generate, {"dispatch": "dispatch", "end": END}
        )
        workflow.add_conditional_edges(
            "dispatch",
            self._after_dispatch,
            {"generate": "generate", "budget_exceeded": "budget_exceeded", "end": END},
        )
        workflow.add_edge("budget_exceeded", END)

        return workflow.compile()

    async def send_message(
        self,
        conversation: Conversation,
        user_message: str = "",
        context: Optional[TurnContext] = None,
        cancel: Optional[CancellationToken] = None,
        max_tool_calls: Optional[int] = None,
    ) -> TurnOutcome:
        """Run one full turn for a user message.

        Args:
            conversation: Conversation to extend
            user_message: New user text; empty to resume without a new message
            context: Active and pinned files (defaults to configured pins)
            cancel: Cancellation token (a fresh one is created if omitted)
            max_tool_calls: Iteration budget override

        Returns:
            TurnOutcome
        """
        cancel = cancel or CancellationToken()
        context = context or TurnContext(pinned_files=list(self.config.pinned_files))
        budget = LoopBudget(max_iterations=max_tool_calls or self.config.max_tool_calls)

        text = (user_message or "").strip()
        if text:
            conversation.add_user_message(text)
            if self.logger:
                self.logger.log_message("user", text, conversation.id)

        state: TurnState = {
            "conversation": conversation,
            "user_message": text,
            "context": context,
            "cancel": cancel,
            "budget": budget,
            "scouted_context": "",
            "action": None,
            "should_continue": False,
            "outcome": None,
        }

        status: Outcome = "error"
        summary_task = None
        try:
            final = await self.graph.ainvoke(
                state, config={"recursion_limit": budget.max_iterations * 2 + 6}
            )
            status = final.get("outcome") or "completed"
        except OperationCancelled:
            status = "cancelled"
            conversation.add_message("status", STOPPED)
        except Exception as e:
            status = "error"
            conversation.add_message("assistant", f"❌ Error: {e}")
            console.print(f"[red]Error: {e}[/red]")
        finally:
            summary_task = await self._finish_turn(conversation, budget, status)

        return TurnOutcome(
            status=status,
            iterations=budget.iterations,
            tool_calls=budget.tool_calls,
            model_calls=budget.model_calls,
            summary_task=summary_task,
        )

    async def _finish_turn(self, conversation: Conversation, budget: LoopBudget, status: Outcome):
        conversation.demote_transient()

        if status != "general":
            if status == "completed":
                line = f"✓ Task completed. Total tool calls: {budget.tool_calls}."
            else:
                line = f"Turn ended ({status}). Total tool calls: {budget.tool_calls}."
            conversation.add_message("status", line)

        if self.logger:
            self.logger.log_event(
                "turn", conversation=conversation.id, status=status,
                iterations=budget.iterations, tool_calls=budget.tool_calls,
            )

        if self.store is not None:
            try:
                await self.store.put(conversation)
            except OSError as e:
                console.print(f"[red]Could not save conversation: {e}[/red]")

        return self.knowledge.maybe_trigger(conversation)

    async def route_node(self, state: TurnState) -> dict:
        """Answer small talk directly; everything else goes to the assistant."""
        message = state.get("user_message", "")
        if not message or self.tracker.active:
            return {"outcome": None}

        result = await self.router.classify(message, state["cancel"])
        state["budget"].model_calls += 1
        if self.logger:
            self.logger.log_event("route", intent=result.intent)

        if result.answers_directly:
            state["conversation"].add_message("assistant", result.reply.strip())
            return {"outcome": "general"}
        return {"outcome": None}

    async def scout_node(self, state: TurnState) -> dict:
        """Preload files that look relevant to the new message."""
        message = state.get("user_message", "")
        if not message or self.tracker.active:
            return {"scouted_context": ""}

        conversation = state["conversation"]
        result = await self.scout.scout(
            message,
            self.workspace,
            knowledge_summary=conversation.knowledge_summary,
            user_context=self._context_hint(state["context"]),
            environment=conversation.environment,
            cancel=state["cancel"],
        )
        state["budget"].model_calls += 1

        block = self.scout.build_context(result, self.workspace)
        if block:
            console.print(f"[dim]🔎 Scouted: {', '.join(result.files)}[/dim]")
        return {"scouted_context": block}

    async def generate_node(self, state: TurnState) -> dict:
        """Call the model and decode its reply into an action."""
        cancel = state["cancel"]
        cancel.raise_if_cancelled()

        conversation = state["conversation"]
        messages = self.build_messages(
            conversation, state["context"], state.get("scouted_context", "")
        )
        raw = await self._complete_with_continuation(messages, conversation, cancel, state["budget"])
        if self.logger:
            self.logger.save_raw_response(raw)

        parsed = parse_response(raw)
        if not parsed.ok:
            conversation.add_message(
                "status",
                f"⚠️ Error: Could not parse the response structure ({parsed.error}). "
                f"Raw response:\n{raw}",
            )
            return {"action": None, "outcome": "parse_error"}

        report = validate_payload(parsed.payload)
        if not report.valid:
            errors = "\n".join(f"- {e}" for e in report.errors)
            conversation.add_message(
                "user",
                "[SYSTEM-ERROR] Your response does not conform to the required JSON schema. "
                f"Please correct it. Errors:\n{errors}",
            )
        return {"action": report.action, "outcome": None}

    async def dispatch_node(self, state: TurnState) -> dict:
        budget = state["budget"]
        action = state["action"]

        budget.iterations += 1
        if isinstance(action, ToolCallAction):
            budget.tool_calls += 1

        should_continue = await self.dispatcher.dispatch(state["conversation"], action)
        return {
            "should_continue": should_continue,
            "outcome": None if should_continue else "completed",
        }

    async def budget_exceeded_node(self, state: TurnState) -> dict:
        limit = state["budget"].max_iterations
        state["conversation"].add_message(
            "status", f"⚠️ Operation count limit reached ({limit} calls)."
        )
        console.print(f"[yellow]⚠️  Stopped after {limit} operations[/yellow]")
        return {"outcome": "budget_exceeded"}

    def _after_route(self, state: TurnState) -> str:
        return "end" if state.get("outcome") == "general" else "scout"

    def _after_generate(self, state: TurnState) -> str:
        return "end" if state.get("outcome") else "dispatch"

    def _after_dispatch(self, state: TurnState) -> str:
        if not state.get("should_continue"):
            return "end"
        if state["budget"].exhausted:
            return "budget_exceeded"
        return "generate"

    async def _complete_with_continuation(
        self,
        messages: list[dict],
        conversation: Conversation,
        cancel: CancellationToken,
        budget: LoopBudget,
    ) -> str:
        """Call the model, re-prompting while the reply hits the length limit.

        Each truncated chunk is cut back to its last full line before merging,
        and the follow-up call sees only a short tail of the merged text.
        """
        limit = self.config.max_continues
        completion = await self.llm.complete(
            messages, max_tokens=self.config.max_output_tokens, cancel=cancel
        )
        budget.model_calls += 1

        accumulated = ""
        continues = 0
        while completion.truncated:
            if continues >= limit:
                conversation.add_message(
                    "status",
                    f"⚠️ Max continuation limit reached ({limit}). Using partial response.",
                )
                console.print("[yellow]⚠️  Max continuation limit reached[/yellow]")
                return accumulated + completion.text

            accumulated += trim_to_last_line(completion.text)
            continues += 1
            console.print(f"[dim]Response truncated, continuing ({continues}/{limit})[/dim]")

            tail = accumulated[-self.config.continuation_tail_chars:]
            follow_up = messages + [
                {"role": "assistant", "content": tail},
                {"role": "user", "content": CONTINUE_PROMPT},
            ]
            completion = await self.llm.complete(
                follow_up, max_tokens=self.config.max_output_tokens, cancel=cancel
            )
            budget.model_calls += 1

        return accumulated + completion.text

    def build_messages(
        self, conversation: Conversation, context: TurnContext, scouted_context: str = ""
    ) -> list[dict]:
        """Assemble the model input for one iteration.

        Args:
            conversation: Current conversation
            context: Active and pinned files, re-read on every call
            scouted_context: Contents of scouted files

        Returns:
            Messages: system prompt, knowledge map, then recent history
        """
        user_context = "\n\n".join(
            part for part in (self._pinned_context(context), scouted_context) if part
        )
        system = self.prompt_builder.build(
            self.workspace,
            conversation.environment,
            self.tracker.state,
            user_context=user_context,
            active_file=self._active_file_block(context),
        )

        messages = [{"role": "system", "content": system}]
        if conversation.knowledge_summary.strip():
            messages.append({
                "role": "user",
                "content": KNOWLEDGE_CONTEXT.format(summary=conversation.knowledge_summary),
            })
        messages.extend(conversation.recent_history(self.config.knowledge_cache_threshold))
        return messages

    def _pinned_context(self, context: TurnContext) -> str:
        blocks = []
        for path in context.pinned_files:
            content = self.workspace.read_content(path)
            blocks.append(f"--- {path} ---\n{content if content is not None else '(File not found)'}")
        return "\n\n".join(blocks)

    def _active_file_block(self, context: TurnContext) -> Optional[str]:
        if not context.active_file:
            return None
        path = context.active_file
        content = self.workspace.read_content(path)
        language = LANGUAGE_MAP.get(Path(path).suffix.lower(), "text")
        body = content if content is not None else MISSING_ACTIVE_FILE
        return f"--- ACTIVE FILE: {path} ({language}) ---\n{body}\n---"

    def _context_hint(self, context: TurnContext) -> str:
        lines = []
        if context.active_file:
            lines.append(f"Active file: {context.active_file}")
        if context.pinned_files:
            lines.append(f"Pinned files: {', '.join(context.pinned_files)}")
        return "\n".join(lines)
