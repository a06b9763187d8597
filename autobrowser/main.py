"""Command-line entry point: replay the learned ledger, then drive the model."""

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

from autobrowser import __version__
from autobrowser.backends.cdp import CDPBrowserBackend
from autobrowser.backends.chrome import ChromeLauncher
from autobrowser.clients.anthropic import AnthropicClient, AnthropicConfig
from autobrowser.clients.mcp import MCPBrowserBackend
from autobrowser.config import AgentConfig
from autobrowser.errors import AutobrowserError, LedgerFormatError, ModelServiceError
from autobrowser.graphs.conversation import ConversationDriver, build_task_prompt
from autobrowser.graphs.state import DriverRuntime
from autobrowser.models.ledger import ReplayStatus
from autobrowser.models.session import BrowserSession
from autobrowser.services.executor import ToolExecutor
from autobrowser.services.ledger import InvocationLedger
from autobrowser.services.llm import LLMService, ModelService
from autobrowser.services.replay import ReplayEngine
from autobrowser.utils.logging import LogConfig, get_logger, setup_logging

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autobrowser",
        description="Drive a browser with an LLM, learning and replaying successful tool calls.",
    )
    parser.add_argument("--file", "-f", type=Path, help="Task file with the numbered steps to automate")
    parser.add_argument("--env-file", type=Path, help="Environment file to load (defaults to .env)")
    parser.add_argument("--debug", action="store_true", help="Log full model requests and responses")
    parser.add_argument("--ledger", help="Ledger file to replay and save (default: learning.json)")
    parser.add_argument("--target-origin", help="Pause once for manual steps after navigating to this origin")
    parser.add_argument("--max-iterations", type=int, help="Maximum model iterations")
    parser.add_argument("--chrome", help="Chrome executable for the built-in backend")
    parser.add_argument("--no-replay", action="store_true", help="Skip replaying the saved ledger")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "backend",
        nargs=argparse.REMAINDER,
        help="MCP browser server command and arguments; the built-in Chrome backend is used when omitted",
    )
    return parser


def build_config(args: argparse.Namespace) -> AgentConfig:
    """Environment configuration overridden by command-line flags."""
    config = AgentConfig.from_env()
    if args.debug:
        config.debug = True
    if args.ledger:
        config.ledger_path = args.ledger
    if args.target_origin:
        config.target_origin = args.target_origin
    if args.max_iterations:
        config.max_iterations = args.max_iterations
    return config


def create_backend(args: argparse.Namespace) -> MCPBrowserBackend | CDPBrowserBackend:
    command = [part for part in args.backend if part != "--"]
    if command:
        return MCPBrowserBackend(command[0], command[1:])
    return CDPBrowserBackend(ChromeLauncher(executable=args.chrome))


class AutobrowserCLI:
    """One operator session: connect, replay, drive, save."""

    def __init__(
        self,
        args: argparse.Namespace,
        config: AgentConfig,
        model: ModelService,
        console: Console | None = None,
    ):
        self.args = args
        self.config = config
        self.model = model
        self.console = console or Console()

    async def ask(self, question: str, default: bool = True) -> bool:
        return await asyncio.to_thread(Confirm.ask, question, default=default, console=self.console)

    async def wait_for_operator(self, message: str) -> None:
        await asyncio.to_thread(Prompt.ask, f"[bold yellow]{message}[/bold yellow]", default="", console=self.console)

    async def run(self) -> int:
        """Run the session; returns the process exit code."""
        self.console.print(
            Panel.fit(
                f"[bold blue]autobrowser {__version__}[/bold blue]\n"
                f"Ledger: {escape(self.config.ledger_path)}  Max iterations: {self.config.max_iterations}",
                border_style="blue",
            )
        )

        try:
            task = self._read_task()
        except OSError as e:
            self.console.print(f"[red]Cannot read task file: {escape(str(e))}[/red]")
            return 1
        ledger = InvocationLedger.with_crash_directory()

        async with create_backend(self.args) as backend:
            session = await BrowserSession.open(backend, ledger)
            try:
                return await self._run_session(session, task)
            finally:
                self._save_ledger(session.ledger)

    def _save_ledger(self, ledger: InvocationLedger) -> None:
        """Save what this session learned; an empty session leaves the existing ledger file alone."""
        if not ledger and not ledger.recover():
            logger.info(f"Nothing recorded this session, keeping {self.config.ledger_path} unchanged")
            return
        ledger.save(self.config.ledger_path)

    def _read_task(self) -> str:
        if self.args.file is None:
            return build_task_prompt(None)
        return build_task_prompt(self.args.file.read_text(encoding="utf-8"))

    async def _run_session(self, session: BrowserSession, task: str) -> int:
        self._show_tools(session)

        if isinstance(session.backend, MCPBrowserBackend):
            await self.wait_for_operator("Connect your browser to the MCP server, then press Enter to continue")

        if not session.catalog.browser_tools():
            self.console.print("[yellow]No browser tools detected in the backend's tool list.[/yellow]")
            if not await self.ask("Continue with all available tools anyway?", default=False):
                return 1

        executor = ToolExecutor(session)

        if not self.args.no_replay:
            engine = ReplayEngine(
                session,
                executor,
                LLMService(self.model, temperature=self.config.temperature),
                replay_delay=self.config.replay_delay,
                console=self.console,
            )
            try:
                replay = await engine.replay(self.config.ledger_path)
            except LedgerFormatError as e:
                logger.error(f"Skipping replay: {e}")
                self.console.print(f"[red]Skipping replay: {escape(str(e))}[/red]")
            else:
                if replay.did_replay:
                    summary = ", ".join(f"{replay.count(status)} {status.value}" for status in ReplayStatus)
                    self.console.print(f"Replay summary: {summary}")
                    if not await self.ask("Do you want to proceed with the model interaction?"):
                        self.console.print("[green]Replay finished, not contacting the model.[/green]")
                        return 0

        runtime = DriverRuntime(
            session=session,
            model=self.model,
            executor=executor,
            tools=session.catalog.to_anthropic_tools(),
            config=self.config,
            console=self.console,
            wait_for_operator=self.wait_for_operator,
        )
        try:
            result = await ConversationDriver(runtime).run(task)
        except ModelServiceError as e:
            cause = f" (caused by {e.__cause__!r})" if e.__cause__ else ""
            self.console.print(f"[red]Model service error: {escape(str(e))}{escape(cause)}[/red]")
            return 1

        self.console.print(Panel("\n".join(escape(line) for line in result.transcript), title="Transcript"))
        if result.final_text:
            self.console.print(Panel(escape(result.final_text), title="[bold green]Final response[/bold green]"))
        usage = result.usage
        self.console.print(
            f"Tokens: {usage.input_tokens} in, {usage.output_tokens} out, cache hit rate {usage.cache_hit_rate:.1f}%"
        )
        return 0

    def _show_tools(self, session: BrowserSession) -> None:
        tool_list = "\n".join(
            f"• {escape(d.name)}: {escape(d.description.splitlines()[0] if d.description else '')}"
            for d in session.catalog.descriptors
        )
        self.console.print(Panel(tool_list or "(none)", title=f"Available tools ({len(session.catalog)})"))


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.env_file:
        load_dotenv(args.env_file)
    else:
        load_dotenv()
    config = build_config(args)
    setup_logging(LogConfig(level="DEBUG" if config.debug else "INFO"))

    console = Console()
    try:
        model = AnthropicClient(config=AnthropicConfig.from_env())
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        return 1

    try:
        return asyncio.run(AutobrowserCLI(args, config, model, console).run())
    except AutobrowserError as e:
        console.print(f"[red]{escape(type(e).__name__)}: {escape(str(e))}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
