"""Tests for the invocation ledger."""

import json

import pytest

from autobrowser.errors import LedgerFormatError
from autobrowser.models.ledger import Invocation
from autobrowser.services.ledger import CRASH_DIR_PREFIX, InvocationLedger


def make_invocation(tool_name: str = "navigate", timestamp: str = "2024-05-01T10:00:00Z", **arguments) -> Invocation:
    return Invocation(tool_name=tool_name, arguments=arguments, result=f"{tool_name} ok", timestamp=timestamp)


class TestLedgerFile:
    """Tests for saving and loading the ledger document."""

    def test_save_format(self, tmp_path):
        """Test the on-disk document format."""
        ledger = InvocationLedger()
        ledger.record(make_invocation(url="https://example.com"))
        path = tmp_path / "learning.json"

        ledger.save(path)

        data = json.loads(path.read_text())
        assert data == {
            "commands": [
                {
                    "tool_name": "navigate",
                    "arguments": {"url": "https://example.com"},
                    "result": "navigate ok",
                    "timestamp": "2024-05-01T10:00:00Z",
                }
            ]
        }

    def test_load_round_trip(self, tmp_path):
        """Test that a saved ledger loads back in order."""
        ledger = InvocationLedger()
        ledger.record(make_invocation("navigate", url="https://example.com"))
        ledger.record(make_invocation("click_button", selector="Search"))
        path = ledger.save(tmp_path / "learning.json")

        document = InvocationLedger.load(path)

        assert [c.tool_name for c in document.commands] == ["navigate", "click_button"]
        assert document.commands[1].arguments == {"selector": "Search"}

    def test_load_missing_file(self, tmp_path):
        """Test that a missing ledger file loads as None."""
        assert InvocationLedger.load(tmp_path / "absent.json") is None

    def test_load_malformed_file(self, tmp_path):
        """Test that a malformed ledger file raises LedgerFormatError."""
        path = tmp_path / "learning.json"
        path.write_text('{"commands": "nope"}')

        with pytest.raises(LedgerFormatError):
            InvocationLedger.load(path)

    def test_load_undecodable_file(self, tmp_path):
        """Test that a ledger file that is not UTF-8 raises LedgerFormatError."""
        path = tmp_path / "learning.json"
        path.write_bytes(b'{"commands": [\xff\xfe]}')

        with pytest.raises(LedgerFormatError):
            InvocationLedger.load(path)

    def test_load_unreadable_path(self, tmp_path):
        """Test that a ledger path that cannot be read raises LedgerFormatError."""
        path = tmp_path / "learning.json"
        path.mkdir()

        with pytest.raises(LedgerFormatError):
            InvocationLedger.load(path)

    def test_default_timestamp_is_rfc3339(self):
        """Test that new invocations get a UTC RFC 3339 timestamp."""
        invocation = Invocation(tool_name="navigate", result="ok")

        assert invocation.timestamp.endswith("Z")
        assert "T" in invocation.timestamp


class TestInvocationFiles:
    """Tests for per-invocation durability files and recovery."""

    def test_with_crash_directory(self, tmp_path):
        """Test that the crash directory is created with its timestamped prefix."""
        ledger = InvocationLedger.with_crash_directory(tmp_path)

        assert ledger.crash_dir.is_dir()
        assert ledger.crash_dir.name.startswith(CRASH_DIR_PREFIX)

    def test_file_names_strictly_increase(self, tmp_path):
        """Test that invocation files sort in recording order."""
        ledger = InvocationLedger(crash_dir=tmp_path)
        for index in range(5):
            ledger.record(make_invocation("click", timestamp=f"2024-05-01T10:00:0{index}Z"))

        stamps = [int(p.name.split("-", 1)[0]) for p in tmp_path.glob("*.json")]
        assert len(stamps) == 5
        assert len(set(stamps)) == 5

    def test_append_does_not_write_files(self, tmp_path):
        """Test that append only updates memory."""
        ledger = InvocationLedger(crash_dir=tmp_path)
        ledger.append(make_invocation())

        assert len(ledger) == 1
        assert list(tmp_path.iterdir()) == []

    def test_unsafe_tool_name_sanitized(self, tmp_path):
        """Test that tool names cannot escape the crash directory."""
        ledger = InvocationLedger(crash_dir=tmp_path)
        ledger.record(make_invocation("../evil/tool"))

        files = list(tmp_path.iterdir())
        assert len(files) == 1
        assert files[0].parent == tmp_path

    def test_recover_deduplicates(self, tmp_path):
        """Test that recovery drops entries with the same timestamp and tool."""
        writer = InvocationLedger(crash_dir=tmp_path)
        writer.record(make_invocation("navigate", timestamp="2024-05-01T10:00:00Z"))
        writer.record(make_invocation("navigate", timestamp="2024-05-01T10:00:00Z"))
        writer.record(make_invocation("click", timestamp="2024-05-01T10:00:00Z"))

        recovered = InvocationLedger(crash_dir=tmp_path)
        count = recovered.recover()

        assert count == 2
        assert [i.tool_name for i in recovered] == ["navigate", "click"]

    def test_recover_skips_when_not_empty(self, tmp_path):
        """Test that recovery does nothing once the ledger has entries."""
        InvocationLedger(crash_dir=tmp_path).record(make_invocation("navigate"))
        ledger = InvocationLedger(crash_dir=tmp_path, invocations=[make_invocation("click")])

        assert ledger.recover() == 0
        assert [i.tool_name for i in ledger] == ["click"]

    def test_recover_skips_unreadable_files(self, tmp_path):
        """Test that corrupt invocation files are skipped."""
        InvocationLedger(crash_dir=tmp_path).record(make_invocation("navigate"))
        (tmp_path / "1-broken.json").write_text("{")

        ledger = InvocationLedger(crash_dir=tmp_path)

        assert ledger.recover() == 1

    def test_save_empty_ledger_recovers(self, tmp_path):
        """Test that saving an empty ledger falls back to the invocation files."""
        crash_dir = tmp_path / "crash"
        crash_dir.mkdir()
        InvocationLedger(crash_dir=crash_dir).record(make_invocation("navigate", url="https://example.com"))

        path = InvocationLedger(crash_dir=crash_dir).save(tmp_path / "learning.json")

        document = InvocationLedger.load(path)
        assert [c.tool_name for c in document.commands] == ["navigate"]
