"""CLI and REPL for turnwright."""

import asyncio
import signal
import sys
import traceback
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from turnwright.cancellation import CancellationToken
from turnwright.config import Config
from turnwright.constants import ALL_TESTS, ENVIRONMENTS
from turnwright.conversation import Conversation
from turnwright.graph import TurnEngine
from turnwright.llm import LLM
from turnwright.state import TurnContext
from turnwright.system_prompt import CORE_IDENTITY
from turnwright.tools.tester import TestRunError, format_report
from turnwright.utils.logging import SessionLogger

app = typer.Typer(help="turnwright - conversational coding agent for your terminal")
console = Console()

# Messages shown in the REPL, by role
ROLE_STYLES = {
    "assistant": "green",
    "status": "dim",
    "file-status": "cyan",
    "test-status": "magenta",
}


class REPL:
    """Interactive REPL for turnwright."""

    def __init__(self, project_root: Path, config: Config):
        """Initialize REPL.

        Args:
            project_root: Project root directory
            config: Configuration object
        """
        self.project_root = project_root
        self.config = config
        self.logger = SessionLogger(project_root)
        self.engine = TurnEngine.from_config(project_root, config, logger=self.logger)

        self.conversations: list[Conversation] = []
        self.current: Optional[Conversation] = None
        self.context = TurnContext(pinned_files=list(config.pinned_files))
        self._turn_token: Optional[CancellationToken] = None
        self.running = True

    def start(self) -> None:
        """Start the REPL."""
        console.print(Panel.fit(
            "[bold cyan]turnwright[/bold cyan] - conversational coding agent\n"
            f"Project: {self.project_root}\n"
            f"Model: {self.config.default_model}\n"
            "\n"
            "Type /help for commands or /quit to exit",
            border_style="cyan"
        ))
        asyncio.run(self._run())
        console.print("\n[cyan]Goodbye![/cyan]")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self._interrupt)
        except NotImplementedError:
            pass  # Signal handlers are unavailable on this platform

        self.conversations = await self.engine.store.list()
        if self.conversations:
            self.current = self.conversations[0]
            console.print(f"[dim]Resumed chat: {self.current.title}[/dim]\n")
        else:
            self._new_chat()

        while self.running:
            try:
                user_input = (await asyncio.to_thread(
                    console.input, "[bold cyan]turnwright>[/bold cyan] "
                )).strip()
            except EOFError:
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                await self.handle_command(user_input)
            else:
                await self.handle_message(user_input)

    def _interrupt(self) -> None:
        if self._turn_token is not None:
            self._turn_token.cancel()
        else:
            console.print("\n[dim]Use /quit to exit[/dim]")

    def _new_chat(self) -> Conversation:
        conversation = Conversation.new(CORE_IDENTITY, self.config.environment)
        self.conversations.insert(0, conversation)
        self.current = conversation
        return conversation

    async def handle_message(self, text: str) -> None:
        """Send a message to the agent and print what it added.

        Args:
            text: User's natural language request
        """
        conversation = self.current or self._new_chat()
        start = len(conversation.messages)

        self._turn_token = CancellationToken()
        try:
            outcome = await self.engine.send_message(
                conversation, text, context=self.context, cancel=self._turn_token
            )
        finally:
            self._turn_token = None

        for message in conversation.messages[start:]:
            if message.role == "user":
                continue
            if message.role == "assistant":
                console.print(Panel(Markdown(message.content), border_style="green"))
            else:
                style = ROLE_STYLES.get(message.role, "white")
                console.print(f"[{style}]{message.content}[/{style}]")

        if outcome.summary_task is not None:
            console.print("[dim]🧠 Updating knowledge cache in the background...[/dim]")

    async def handle_command(self, command: str) -> None:
        """Handle slash command.

        Args:
            command: Command string (starting with /)
        """
        parts = command.split(maxsplit=1)
        cmd = parts[0].lower()
        args = parts[1].strip() if len(parts) > 1 else ""

        try:
            if cmd == "/help":
                self.show_help()
            elif cmd in ("/quit", "/exit"):
                self.running = False
            elif cmd == "/new":
                self._new_chat()
                console.print("[green]Started a new chat[/green]")
            elif cmd == "/chats":
                for conversation in self.conversations:
                    marker = "*" if conversation is self.current else " "
                    console.print(f"{marker} {conversation.id[:8]}  {conversation.derive_title()}")
            elif cmd == "/switch":
                match = self._find_chat(args)
                if match is None:
                    console.print(f"[red]No chat matches: {args}[/red]")
                    return
                self.current = match
                console.print(f"[green]Switched to: {match.derive_title()}[/green]")
            elif cmd == "/delete":
                match = self._find_chat(args)
                if match is None:
                    console.print(f"[red]No chat matches: {args}[/red]")
                    return
                await self.engine.store.remove(match.id)
                self.conversations.remove(match)
                if match is self.current:
                    self.current = self.conversations[0] if self.conversations else self._new_chat()
                console.print("[yellow]Chat deleted[/yellow]")
            elif cmd == "/clear":
                if self.current:
                    self.current.clear()
                    await self.engine.store.put(self.current)
                console.print("[yellow]Chat cleared[/yellow]")
            elif cmd == "/open":
                self.context.active_file = args or None
                console.print(f"[dim]Active file: {self.context.active_file or '(none)'}[/dim]")
            elif cmd == "/pin":
                if not args:
                    console.print("[red]Usage: /pin <path>[/red]")
                    return
                if args not in self.context.pinned_files:
                    self.context.pinned_files.append(args)
                console.print(f"[dim]Pinned: {', '.join(self.context.pinned_files)}[/dim]")
            elif cmd == "/unpin":
                self.context.pinned_files = [p for p in self.context.pinned_files if p != args]
                console.print(f"[dim]Pinned: {', '.join(self.context.pinned_files) or '(none)'}[/dim]")
            elif cmd == "/env":
                if not args:
                    console.print(f"[dim]Environment: {self.current.environment}[/dim]")
                    console.print(f"Available: {', '.join(ENVIRONMENTS)}")
                elif args not in ENVIRONMENTS:
                    console.print(f"[red]Unknown environment: {args}[/red]")
                else:
                    self.current.environment = args
                    console.print(f"[green]Environment set to {ENVIRONMENTS[args]['label']}[/green]")
            elif cmd == "/test":
                console.print("[dim]Running tests...[/dim]\n")
                try:
                    report = await self.engine.tester.run_tests(args or ALL_TESTS)
                    console.print(format_report(report))
                except TestRunError as e:
                    console.print(f"[red]✗ {e}[/red]")
            elif cmd == "/knowledge":
                summary = self.current.knowledge_summary if self.current else ""
                console.print(Panel(
                    Markdown(summary) if summary else "(empty)",
                    title="Knowledge Cache",
                    border_style="blue",
                ))
            elif cmd == "/model":
                if args:
                    try:
                        descriptor = LLM.parse_model_string(args)
                        self.config.default_model = args
                        self.engine.switch_model(LLM(descriptor, self.config.anthropic_api_key))
                        console.print(f"[green]Switched to model: {args}[/green]")
                    except ValueError as e:
                        console.print(f"[red]{e}[/red]")
                else:
                    console.print(f"[dim]Current model: {self.config.default_model}[/dim]")
                    console.print("\nAvailable models:")
                    for model in LLM.list_models():
                        console.print(f"  - {model}")
            elif cmd == "/config":
                config_dict = self.config.to_dict()
                console.print(Panel(
                    "\n".join(f"{k}: {v}" for k, v in config_dict.items()),
                    title="Configuration",
                    border_style="blue"
                ))
            elif cmd == "/log":
                console.print(f"[dim]Session logs: {self.logger.get_log_path()}[/dim]")
            else:
                console.print(f"[red]Unknown command: {cmd}[/red]")
                console.print("[dim]Type /help for available commands[/dim]")

        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            traceback.print_exc()

    def _find_chat(self, prefix: str) -> Optional[Conversation]:
        if not prefix:
            return None
        return next((c for c in self.conversations if c.id.startswith(prefix)), None)

    def show_help(self) -> None:
        """Show help message."""
        help_text = """
**Available Commands:**

- `/new` - Start a new chat
- `/chats` - List chats
- `/switch <id>` - Switch to a chat (id prefix)
- `/delete <id>` - Delete a chat
- `/clear` - Clear the current chat and its knowledge cache
- `/open <path>` - Set the active file
- `/pin <path>` / `/unpin <path>` - Always include a file in the context
- `/env [name]` - Show or set the chat environment
- `/test [path]` - Run the test suite or one test file
- `/knowledge` - Show the chat's conceptual map
- `/model [name]` - Show or switch LLM model
- `/config` - Show current configuration
- `/log` - Show session log path
- `/help` - Show this help message
- `/quit` - Exit

Anything else is sent to the agent. Press Ctrl-C to stop a running turn.
        """
        console.print(Markdown(help_text))


@app.command()
def main(
    path: Optional[str] = typer.Argument(
        None,
        help="Project path (default: current directory)"
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model", "-m",
        help="Model to use (e.g., anthropic:claude-sonnet-4-5)"
    ),
    environment: Optional[str] = typer.Option(
        None,
        "--env", "-e",
        help=f"Environment for new chats ({', '.join(ENVIRONMENTS)})"
    ),
) -> None:
    """Start a turnwright interactive session."""
    project_root = Path(path).resolve() if path else Path.cwd()

    if not project_root.exists():
        console.print(f"[red]Error: Path does not exist: {project_root}[/red]")
        sys.exit(1)

    if not project_root.is_dir():
        console.print(f"[red]Error: Path is not a directory: {project_root}[/red]")
        sys.exit(1)

    try:
        config = Config.load(project_root)
    except ValueError as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)

    if model:
        config.default_model = model
    if environment:
        config.environment = environment

    errors = config.validate()
    if errors:
        console.print("[red]Configuration errors:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        sys.exit(1)

    try:
        repl = REPL(project_root, config)
        repl.start()
    except Exception as e:
        console.print(f"[red]Fatal error: {e}[/red]")
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    app()
