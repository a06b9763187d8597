"""Browser session state."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cuid2 import cuid_wrapper

from autobrowser.utils.logging import get_logger

if TYPE_CHECKING:
    from autobrowser.backends.base import BrowserBackend
    from autobrowser.services.catalog import ToolCatalog
    from autobrowser.services.ledger import InvocationLedger

logger = get_logger(__name__)

cuid_generator = cuid_wrapper()


@dataclass
class BrowserSession:
    """Everything a run shares: the backend, its tool catalog and the active ledger.

    Passed by reference to the executor, driver and replay engine. Replay
    swaps ``ledger`` for the ledger it built.
    """

    backend: "BrowserBackend"
    catalog: "ToolCatalog"
    ledger: "InvocationLedger"
    session_id: str = field(default_factory=cuid_generator)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    async def open(cls, backend: "BrowserBackend", ledger: "InvocationLedger") -> "BrowserSession":
        """Fetch the backend's catalog and start a session."""
        from autobrowser.services.catalog import ToolCatalog

        catalog = await ToolCatalog.from_backend(backend)
        session = cls(backend=backend, catalog=catalog, ledger=ledger)
        logger.info(f"Opened session {session.session_id} with {len(catalog)} tools")
        return session

    def replace_ledger(self, ledger: "InvocationLedger") -> None:
        logger.info(f"Session {self.session_id} ledger replaced ({len(self.ledger)} -> {len(ledger)} invocations)")
        self.ledger = ledger
