"""Interactive console for the knowledge base chat.

Commands: ``/stream <question>``, ``/clear``, ``/help``, ``/exit`` (or ``/quit``).
Anything else is sent as a regular question.
"""

from __future__ import annotations

import argparse
import os
import sys
from contextlib import closing
from dataclasses import dataclass
from typing import Callable, List, Literal, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule

from kb_chat.agents.orchestrator import ConversationOrchestrator
from kb_chat.api.service import build_orchestrator
from kb_chat.config.settings import CONFIG_FILE_ENV, Settings
from kb_chat.domain.exceptions import BusinessError
from kb_chat.infrastructure.logging.logger import get_logger, setup_logger


log = get_logger("cli")

CommandKind = Literal["exit", "clear", "help", "stream", "send", "empty"]
STREAM_PREFIX = "/stream "

HELP_TEXT = """[bold yellow]Commands[/bold yellow]
  /stream \\[question] - Stream the AI response in real-time
  /clear             - Reset conversation history
  /help              - Show this help message
  /exit or /quit     - Exit the application

[bold yellow]Examples[/bold yellow]
  • What is dependency injection?
  • /stream Explain SOLID principles
  • How do I use async/await in C#?"""


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    text: str = ""


def parse_command(line: Optional[str]) -> Command:
    """Turn one input line into a command. Command names are case-insensitive."""

    stripped = (line or "").strip()
    if not stripped:
        return Command("empty")
    lowered = stripped.lower()
    if lowered in ("/exit", "/quit"):
        return Command("exit")
    if lowered == "/clear":
        return Command("clear")
    if lowered == "/help":
        return Command("help")
    if lowered.startswith(STREAM_PREFIX):
        text = stripped[len(STREAM_PREFIX):].strip()
        return Command("stream", text) if text else Command("empty")
    return Command("send", stripped)


class ChatConsole:
    """Read-eval-print loop around a ConversationOrchestrator."""

    def __init__(
        self,
        orchestrator: ConversationOrchestrator,
        console: Optional[Console] = None,
        read_line: Optional[Callable[[], str]] = None,
    ):
        self._orchestrator = orchestrator
        self._console = console or Console()
        self._read_line = read_line or (lambda: self._console.input("[bold green]You[/bold green]: "))

    def show_welcome(self) -> None:
        self._console.print(Panel(
            "[bold cyan]Knowledge Base AI Chat Assistant[/bold cyan]\n\n"
            "Ask me anything covered by the knowledge base!\n\n"
            "Commands: /stream \\[question] | /clear | /help | /exit",
            title="Welcome",
            border_style="cyan",
        ))

    def show_help(self) -> None:
        self._console.print(Panel(HELP_TEXT, title="Help", border_style="yellow"))

    def run(self) -> None:
        self.show_welcome()
        while True:
            try:
                line = self._read_line()
            except (EOFError, KeyboardInterrupt):
                self._console.print()
                break
            if not self.handle(parse_command(line)):
                break
        self._console.print("[cyan]Goodbye! Happy coding![/cyan]")

    def handle(self, command: Command) -> bool:
        """Execute one command. Returns False when the loop should stop."""

        if command.kind == "exit":
            return False
        if command.kind == "empty":
            return True
        if command.kind == "help":
            self.show_help()
            return True
        if command.kind == "clear":
            self._orchestrator.clear_history()
            self._console.print("[yellow]✓ Conversation history cleared.[/yellow]\n")
            return True

        self._console.print("[bold blue]AI:[/bold blue] ", end="")
        try:
            if command.kind == "stream":
                with closing(self._orchestrator.stream_message(command.text)) as fragments:
                    for fragment in fragments:
                        self._console.print(fragment, end="", markup=False, highlight=False, soft_wrap=True)
                self._console.print()
            else:
                reply = self._orchestrator.send_message(command.text)
                self._console.print(reply, markup=False, highlight=False)
        except BusinessError as exc:
            self._console.print()
            self._console.print(f"[red]Error: {escape(exc.message)}[/red]", highlight=False)
            log.error(
                "Error processing chat message",
                extra={"extra": {"code": exc.code, "error": exc.message}},
            )
        except KeyboardInterrupt:
            # Ctrl+C during a reply aborts only that reply
            self._console.print()
            self._console.print("[yellow]Response interrupted.[/yellow]")
        self._console.print(Rule(style="dim"))
        return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat with an LLM grounded in a markdown knowledge base")
    parser.add_argument("--config", type=str, default=None, help="Path to a config.yaml file")
    parser.add_argument("--knowledge-base", type=str, default=None, help="Directory holding the *.md documents")
    parser.add_argument("--provider", type=str, default=None, help="Provider name: openai, kimi or glm")
    parser.add_argument("--model", type=str, default=None, help="Backend model id (default: provider default)")
    parser.add_argument(
        "--cache",
        type=str,
        choices=["memory", "json", "none"],
        default=None,
        help="Response cache backend",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.config:
        os.environ[CONFIG_FILE_ENV] = args.config

    overrides = {
        "knowledge_base_path": args.knowledge_base,
        "default_provider": args.provider,
        "model_id": args.model,
        "cache_backend": args.cache,
    }
    console = Console()

    try:
        cfg = Settings(**{k: v for k, v in overrides.items() if v is not None})
        setup_logger(cfg)
        orchestrator = build_orchestrator(cfg)
    except (BusinessError, ValueError) as exc:
        console.print(f"[red]Error initializing chat: {escape(str(exc))}[/red]")
        console.print("\n[bold]Make sure you have:[/bold]")
        console.print("  1. Set OPENAI_API_KEY (or KIMI_API_KEY / GLM_API_KEY) in .env")
        console.print("  2. Pointed KNOWLEDGE_BASE_PATH at a directory of markdown files")
        return 1

    ChatConsole(orchestrator, console=console).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
