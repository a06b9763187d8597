"""Invocation ledger: ordered record of successful tool calls.

Every recorded invocation is also written to its own file in a per-session
crash directory before ``record`` returns, so a crash mid-session loses no
recorded step. Saving an empty in-memory ledger recovers from that
directory.
"""

import re
import tempfile
import time
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from autobrowser.errors import LedgerFormatError
from autobrowser.models.ledger import Invocation, LedgerDocument
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)

CRASH_DIR_PREFIX = "mcp-commands-"
_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.-]")


class InvocationLedger:
    """Ordered, append-only sequence of invocations."""

    def __init__(self, crash_dir: Path | None = None, invocations: list[Invocation] | None = None):
        self.crash_dir = crash_dir
        self._invocations: list[Invocation] = list(invocations or [])
        self._last_file_ns = 0

    @classmethod
    def with_crash_directory(cls, base_dir: Path | None = None) -> "InvocationLedger":
        """Create a ledger that persists each invocation under a fresh timestamped directory.

        When the directory cannot be created the ledger still works, without
        per-invocation files.
        """
        root = Path(base_dir) if base_dir else Path(tempfile.gettempdir())
        crash_dir = root / f"{CRASH_DIR_PREFIX}{datetime.now().strftime('%Y%m%d-%H%M%S')}"
        try:
            crash_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Could not create invocation directory {crash_dir}: {e}")
            return cls()

        logger.info(f"Recording invocations to {crash_dir}")
        return cls(crash_dir=crash_dir)

    @property
    def invocations(self) -> list[Invocation]:
        return list(self._invocations)

    def __len__(self) -> int:
        return len(self._invocations)

    def __iter__(self) -> Iterator[Invocation]:
        return iter(list(self._invocations))

    def append(self, invocation: Invocation) -> None:
        """Append without writing a per-invocation file."""
        self._invocations.append(invocation)

    def record(self, invocation: Invocation) -> None:
        """Append an invocation and write its per-invocation file."""
        self._invocations.append(invocation)
        if self.crash_dir is not None:
            self._write_invocation_file(invocation)

    def _write_invocation_file(self, invocation: Invocation) -> None:
        # Strictly increasing so directory order is recording order
        file_ns = max(time.time_ns(), self._last_file_ns + 1)
        self._last_file_ns = file_ns

        safe_name = _UNSAFE_FILENAME_CHARS.sub("_", invocation.tool_name)
        path = self.crash_dir / f"{file_ns}-{safe_name}.json"
        try:
            path.write_text(invocation.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to write invocation file {path}: {e}")

    def recover(self) -> int:
        """Load invocations from the crash directory into an empty ledger.

        Entries are de-duplicated by (timestamp, tool_name) and kept in file
        order.

        Returns:
            Number of recovered invocations
        """
        if self._invocations or self.crash_dir is None or not self.crash_dir.is_dir():
            return 0

        seen: set[tuple[str, str]] = set()
        files = sorted(
            (p for p in self.crash_dir.glob("*.json") if p.name.split("-", 1)[0].isdigit()),
            key=lambda p: int(p.name.split("-", 1)[0]),
        )
        for path in files:
            try:
                invocation = Invocation.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as e:
                logger.warning(f"Skipping unreadable invocation file {path}: {e}")
                continue

            key = (invocation.timestamp, invocation.tool_name)
            if key in seen:
                continue
            seen.add(key)
            self._invocations.append(invocation)

        if self._invocations:
            logger.info(f"Recovered {len(self._invocations)} invocations from {self.crash_dir}")
        return len(self._invocations)

    def save(self, path: str | Path) -> Path:
        """Write the ledger document to ``path``."""
        if not self._invocations:
            self.recover()

        target = Path(path)
        document = LedgerDocument(commands=self._invocations)
        target.write_text(document.model_dump_json(indent=2), encoding="utf-8")
        logger.info(f"Saved {len(self._invocations)} invocations to {target}")
        return target

    @staticmethod
    def load(path: str | Path) -> LedgerDocument | None:
        """Read a ledger document.

        Returns:
            The document, or None if the file does not exist

        Raises:
            LedgerFormatError: If the file exists but is not a valid ledger
        """
        source = Path(path)
        if not source.exists():
            return None

        try:
            return LedgerDocument.model_validate_json(source.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            raise LedgerFormatError(f"Invalid ledger file {source}: {e}") from e
