"""Invocation ledger and replay models."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from autobrowser.services.ledger import InvocationLedger


def utc_timestamp() -> str:
    """Current time as an RFC 3339 string."""
    return datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


class Invocation(BaseModel):
    """A successful tool call, recorded for later replay."""

    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: str
    timestamp: str = Field(default_factory=utc_timestamp)


class LedgerDocument(BaseModel):
    """On-disk ledger file format."""

    commands: list[Invocation] = Field(default_factory=list)


class ReplayStatus(StrEnum):
    """Outcome of replaying one ledger entry."""

    CONFIRMED = "confirmed"
    UPDATED = "updated"
    REPAIRED = "repaired"
    FAILED = "failed"


class ReplayEntry(BaseModel):
    """Per-entry replay report."""

    index: int
    tool_name: str
    status: ReplayStatus
    error: str | None = None


class ReplayResult:
    """Result of a replay pass."""

    def __init__(self, did_replay: bool, ledger: "InvocationLedger", entries: list[ReplayEntry] | None = None):
        self.did_replay = did_replay
        self.ledger = ledger
        self.entries = entries or []

    def count(self, status: ReplayStatus) -> int:
        return sum(1 for entry in self.entries if entry.status == status)
