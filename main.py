"""
Hydra Agent - runs one coding session against a repository.
Reads a task document, streams the model's work to the terminal with Rich
and asks before any file write, edit or shell command.
"""

import asyncio
import argparse
import logging
import os
import signal
import sys
import threading
from typing import Optional

from rich.console import Console
from rich.markup import escape as rich_escape
from rich.prompt import Confirm
from rich.syntax import Syntax
from rich.text import Text

from agent import (
    AVAILABLE_TOOL_NAMES, Done, Error, OutcomeState, Session, TextDelta,
    ThinkingDelta, ToolAnswer, ToolRequest, ToolResultEvent,
)
from anthropic_service import AnthropicService, AnthropicServiceError
from bedrock_service import BedrockService, BedrockError
from config import app_config, model_config, get_credentials_info
from credentials import CredentialsError
from tools import ToolKind

# Configure logging to file so it doesn't interfere with terminal output
logging.basicConfig(
    filename=app_config.log_file,
    level=getattr(logging, app_config.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ============================================================
# Constants
# ============================================================

RESULT_PREVIEW_LINES = 12

TOOL_ICONS = {
    ToolKind.READ: "▸ ",
    ToolKind.WRITE: "✎ ",
    ToolKind.EDIT: "✎ ",
    ToolKind.SHELL: "$ ",
    ToolKind.LIST: "▸ ",
    ToolKind.SEARCH: "⌕ ",
}


# ============================================================
# Rendering
# ============================================================

class EventRenderer:
    """Prints session events to a Rich console."""

    def __init__(self, console: Console):
        self.console = console
        self._in_text = False

    def _end_text(self) -> None:
        if self._in_text:
            self.console.print()
            self._in_text = False

    def render(self, event) -> None:
        if isinstance(event, TextDelta):
            self.console.print(Text(event.text), end="")
            self._in_text = True
        elif isinstance(event, ThinkingDelta):
            self.console.print(Text(event.text, style="dim italic #8b949e"), end="")
            self._in_text = True
        elif isinstance(event, ToolRequest):
            self._end_text()
            self.render_request(event)
        elif isinstance(event, ToolResultEvent):
            self._end_text()
            self.render_result(event)
        elif isinstance(event, Done):
            self._end_text()
            reason = f" ({rich_escape(event.stop_reason)})" if event.stop_reason else ""
            self.console.print(f"\n[bold #3fb950]✓ Done{reason}[/bold #3fb950]")
        elif isinstance(event, Error):
            self._end_text()
            label = "Canceled" if event.cancelled else "Error"
            self.console.print(f"\n[bold #f85149]✗ {label}: {rich_escape(str(event.cause))}[/bold #f85149]")

    def render_request(self, event: ToolRequest) -> None:
        meta = event.metadata
        icon = TOOL_ICONS.get(meta.kind, "• ") if meta else "• "
        if meta is not None and meta.kind is ToolKind.SHELL:
            desc = f"[bold #e3b341]{rich_escape(meta.command or '?')}[/bold #e3b341]"
        else:
            path = meta.path if meta is not None and meta.path else event.input.get("path", "?")
            desc = f"[bold]{rich_escape(str(path))}[/bold]"
        self.console.print(f"   [#f0883e]{icon}{rich_escape(event.name)}[/#f0883e] {desc}")
        if not event.input and event.raw_input:
            # Input did not decode; show what the model actually sent
            self.console.print(f"     [#6e7681]{rich_escape(event.raw_input)}[/#6e7681]")
        if meta is not None and meta.diff:
            self.console.print(Syntax(meta.diff, "diff", theme="ansi_dark", word_wrap=True))
        elif meta is not None and meta.kind is ToolKind.WRITE and meta.content:
            self.console.print(Syntax(meta.content, "text", theme="ansi_dark", line_numbers=True))

    def render_result(self, event: ToolResultEvent) -> None:
        lines = event.content.splitlines() or [""]
        preview = lines[:RESULT_PREVIEW_LINES]
        color = "#f85149" if event.is_error else "#6e7681"
        for line in preview:
            self.console.print(f"     [{color}]{rich_escape(line)}[/{color}]")
        if len(lines) > RESULT_PREVIEW_LINES:
            self.console.print(f"     [#6e7681]… {len(lines) - RESULT_PREVIEW_LINES} more lines[/#6e7681]")


# ============================================================
# Session driver
# ============================================================

def ask_approval(console: Console, session: Session, event: ToolRequest) -> None:
    """Prompt on a worker thread and hand the decision back to the session."""
    approved = Confirm.ask(f"   Allow [bold]{rich_escape(event.name)}[/bold]?", console=console, default=False)
    if not session.answer(ToolAnswer(id=event.id, approved=approved)):
        logger.info(f"Answer for {event.id} arrived after the request closed")


async def drive(session: Session, document: str, console: Console, auto_approve: bool = False) -> int:
    """Run the session to completion, rendering events. Returns the exit status."""
    renderer = EventRenderer(console)
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.cancel)
    except NotImplementedError:
        logger.debug("SIGINT handler not supported on this platform")

    task = session.start(document)
    async for event in session.events():
        renderer.render(event)
        if isinstance(event, ToolRequest):
            if auto_approve:
                session.answer(ToolAnswer(id=event.id, approved=True))
            else:
                # Daemon thread so a prompt left open by Ctrl-C never blocks exit
                threading.Thread(
                    target=ask_approval, args=(console, session, event), daemon=True, name="approval-prompt"
                ).start()

    outcome = await task
    return 0 if outcome.state is OutcomeState.DONE else 1


def build_service(provider: str, model: Optional[str]):
    if provider == "anthropic":
        return AnthropicService(model=model)
    return BedrockService(model_id=model)


def read_document(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    with open(source, "r", encoding="utf-8") as f:
        return f.read()


# ============================================================
# Entry Point
# ============================================================

def main():
    parser = argparse.ArgumentParser(
        prog="hydra-agent",
        description="Hydra Agent - run one coding session against a repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  hydra-agent task.md                      Work on task.md in the current directory
  hydra-agent --repo ~/my-project task.md  Work in a specific repository
  cat task.md | hydra-agent --yes -        Read the task from stdin, approve everything
        """,
    )
    parser.add_argument(
        "document",
        metavar="DOCUMENT_FILE",
        help="Task document to send as the first message ('-' for stdin)",
    )
    parser.add_argument(
        "--repo",
        default=app_config.working_directory,
        help="Repository the agent works in (default: current directory)",
    )
    parser.add_argument(
        "--provider",
        choices=("bedrock", "anthropic"),
        default=model_config.provider,
        help="Model provider (default: %(default)s)",
    )
    parser.add_argument("--model", default=None, help="Model id for the chosen provider")
    parser.add_argument(
        "--yes",
        action="store_true",
        default=app_config.auto_approve,
        help="Approve every tool call without asking",
    )

    args = parser.parse_args()
    console = Console()

    repo = os.path.abspath(args.repo)
    if not os.path.isdir(repo):
        console.print(f"[bold #f85149]Error: {rich_escape(repo)} is not a directory[/bold #f85149]")
        sys.exit(1)

    try:
        document = read_document(args.document)
    except OSError as e:
        console.print(f"[bold #f85149]Error reading {rich_escape(args.document)}: {rich_escape(str(e))}[/bold #f85149]")
        sys.exit(1)

    try:
        service = build_service(args.provider, args.model)
    except (BedrockError, AnthropicServiceError, CredentialsError) as e:
        console.print(f"[bold #f85149]✗ Failed to initialize: {rich_escape(str(e))}[/bold #f85149]")
        sys.exit(1)

    if args.provider == "bedrock":
        console.print(f"[#6e7681]{rich_escape(get_credentials_info())}[/#6e7681]")
    console.print(f"[bold]{app_config.title}[/bold] [#6e7681]in {rich_escape(repo)}[/#6e7681]")
    console.print(f"[#6e7681]Tools: {AVAILABLE_TOOL_NAMES}[/#6e7681]\n")

    session = Session(
        service,
        repo,
        max_turns=app_config.max_tool_iterations,
        event_buffer=app_config.event_buffer_size,
        command_timeout=app_config.command_timeout,
    )
    sys.exit(asyncio.run(drive(session, document, console, auto_approve=args.yes)))


if __name__ == "__main__":
    main()
