"""Replay engine: re-execute a saved ledger and reconcile it with the live page."""

import asyncio
import hashlib
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape

from autobrowser.errors import AutobrowserError, BackendExecutionError, ModelServiceError, ToolNotFoundError
from autobrowser.models.ledger import Invocation, ReplayEntry, ReplayResult, ReplayStatus
from autobrowser.models.session import BrowserSession
from autobrowser.models.tools import ExecutionResult
from autobrowser.services.executor import ToolExecutor
from autobrowser.services.ledger import InvocationLedger
from autobrowser.services.llm import LLMService
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)

UPDATED_SUFFIX = ".updated"

_STATUS_STYLES = {
    ReplayStatus.CONFIRMED: "green",
    ReplayStatus.UPDATED: "yellow",
    ReplayStatus.REPAIRED: "cyan",
    ReplayStatus.FAILED: "red",
}


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def updated_ledger_path(ledger_path: str | Path) -> Path:
    """Sibling file the replayed ledger is written to."""
    return Path(f"{ledger_path}{UPDATED_SUFFIX}")


class ReplayEngine:
    """Replays recorded invocations and builds a reconciled ledger."""

    def __init__(
        self,
        session: BrowserSession,
        executor: ToolExecutor,
        llm_service: LLMService | None = None,
        replay_delay: float = 0.5,
        console: Console | None = None,
    ):
        """Initialize replay engine.

        Args:
            session: Session whose ledger is replaced after replay
            executor: Executor used to re-run invocations (never records)
            llm_service: Service used to repair failing steps; repair is
                skipped when absent
            replay_delay: Seconds to wait between entries
            console: Operator console
        """
        self.session = session
        self.executor = executor
        self.llm_service = llm_service
        self.replay_delay = replay_delay
        self.console = console or Console()

    async def replay(self, ledger_path: str | Path) -> ReplayResult:
        """Replay the ledger at ``ledger_path``.

        Returns:
            ReplayResult with did_replay False and an empty ledger when there
            is nothing to replay

        Raises:
            LedgerFormatError: The ledger file exists but is malformed
        """
        document = InvocationLedger.load(ledger_path)
        if document is None:
            self.console.print(f"No previous ledger found at {ledger_path}")
            return ReplayResult(did_replay=False, ledger=InvocationLedger())
        if not document.commands:
            self.console.print(f"Ledger {ledger_path} has no recorded commands")
            return ReplayResult(did_replay=False, ledger=InvocationLedger())

        total = len(document.commands)
        self.console.print(f"[bold]Replaying {total} recorded commands from {ledger_path}[/bold]")

        replayed = InvocationLedger(crash_dir=self.session.ledger.crash_dir)
        entries: list[ReplayEntry] = []

        for index, recorded in enumerate(document.commands):
            if index > 0 and self.replay_delay > 0:
                await asyncio.sleep(self.replay_delay)

            self.console.print(escape(f"[{index + 1}/{total}] {recorded.tool_name} {recorded.arguments}"))
            entry = await self._replay_one(index, recorded, replayed)
            entries.append(entry)

            style = _STATUS_STYLES[entry.status]
            detail = escape(f": {entry.error}") if entry.error else ""
            self.console.print(f"  [{style}]{entry.status.value}[/{style}]{detail}")

        output_path = updated_ledger_path(ledger_path)
        replayed.save(output_path)
        self.console.print(f"Updated ledger written to {output_path}")

        self.session.replace_ledger(replayed)
        return ReplayResult(did_replay=True, ledger=replayed, entries=entries)

    async def _replay_one(self, index: int, recorded: Invocation, replayed: InvocationLedger) -> ReplayEntry:
        try:
            outcome = await self.executor.execute(recorded.tool_name, recorded.arguments, record=False)
        except (ToolNotFoundError, BackendExecutionError) as e:
            logger.warning(f"Replay of {recorded.tool_name} failed, keeping recorded entry: {e}")
            replayed.append(recorded)
            return ReplayEntry(index=index, tool_name=recorded.tool_name, status=ReplayStatus.FAILED, error=str(e))

        arguments = recorded.arguments
        repaired = False
        error: str | None = None

        if outcome.is_error:
            error = outcome.text
            previous = replayed.invocations[-1] if len(replayed) else None
            if previous is not None:
                repair = await self._repair(recorded, previous, outcome)
                if repair is not None:
                    arguments, outcome = repair
                    repaired = True
                    error = None

        if content_hash(outcome.text) == content_hash(recorded.result):
            result_text = recorded.result
            status = ReplayStatus.CONFIRMED
        else:
            result_text = outcome.text
            status = ReplayStatus.REPAIRED if repaired else ReplayStatus.UPDATED

        replayed.append(Invocation(tool_name=recorded.tool_name, arguments=arguments, result=result_text))
        return ReplayEntry(index=index, tool_name=recorded.tool_name, status=status, error=error)

    async def _repair(
        self, recorded: Invocation, previous: Invocation, failed: ExecutionResult
    ) -> tuple[dict[str, Any], ExecutionResult] | None:
        """Ask the model for new arguments and re-execute once.

        Returns:
            The adopted arguments and result, or None when the repair did not
            produce a successful call
        """
        if self.llm_service is None:
            return None

        try:
            arguments = await self.llm_service.suggest_arguments(
                tool_name=recorded.tool_name,
                failed_arguments=recorded.arguments,
                previous_snapshot=previous.result,
                current_snapshot=recorded.result,
            )
        except (ModelServiceError, ValueError) as e:
            logger.warning(f"Repair of {recorded.tool_name} failed: {e}")
            return None

        self.console.print(escape(f"  retrying {recorded.tool_name} with repaired arguments {arguments}"))
        try:
            retried = await self.executor.execute(recorded.tool_name, arguments, record=False)
        except AutobrowserError as e:
            logger.warning(f"Repaired call to {recorded.tool_name} failed: {e}")
            return None

        if retried.is_error:
            logger.warning(f"Repaired call to {recorded.tool_name} still reports an error: {retried.text}")
            return None

        logger.info(f"Repaired {recorded.tool_name} (was: {failed.text})")
        return arguments, retried
