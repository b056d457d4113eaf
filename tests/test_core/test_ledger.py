"""Tests for slipstream_tools.core.ledger module."""

import json
from pathlib import Path

from slipstream_tools.core.ledger import MaterializationLedger
from slipstream_tools.core.types import UpdatePackage


def _package(name: str = "SP1") -> UpdatePackage:
    return UpdatePackage(
        name=name,
        url=f"http://example.test/{name.lower()}.exe",
        product="SP2013",
    )


class TestMaterializationLedger:
    """Test ledger bookkeeping and persistence."""

    def test_mark_materialized(self, tmp_path: Path):
        ledger = MaterializationLedger(tmp_path)
        updates = tmp_path / "SharePoint" / "Updates"

        assert not ledger.is_materialized(_package(), updates)
        ledger.mark_materialized(_package(), updates)

        assert ledger.is_materialized(_package(), updates)
        assert not ledger.is_materialized(_package(), tmp_path / "OfficeWebApps" / "Updates")
        assert not ledger.is_materialized(_package("CU"), updates)

    def test_save_and_load_roundtrip(self, tmp_path: Path):
        updates = tmp_path / "SharePoint" / "Updates"
        ledger = MaterializationLedger(tmp_path)
        ledger.mark_materialized(_package(), updates)

        data = json.loads(ledger.state_file_path.read_text())
        assert data == {"SharePoint/Updates": ["SP2013:SP1:sp1.exe"]}
        assert not ledger.state_file_path.with_suffix(".json.tmp").exists()

        loaded = MaterializationLedger.load(tmp_path)
        assert loaded.is_materialized(_package(), updates)

    def test_load_missing_state(self, tmp_path: Path):
        ledger = MaterializationLedger.load(tmp_path / "new")
        assert ledger.entries == {}

    def test_load_corrupt_state(self, tmp_path: Path):
        (tmp_path / MaterializationLedger.STATE_FILENAME).write_text("{not json")

        ledger = MaterializationLedger.load(tmp_path)
        assert ledger.entries == {}

    def test_destination_move_keeps_relative_keys(self, tmp_path: Path):
        first = tmp_path / "first"
        MaterializationLedger(first).mark_materialized(_package(), first / "SharePoint" / "Updates")

        moved = tmp_path / "moved"
        moved.mkdir()
        state_file = MaterializationLedger.STATE_FILENAME
        (first / state_file).rename(moved / state_file)

        ledger = MaterializationLedger.load(moved)
        assert ledger.is_materialized(_package(), moved / "SharePoint" / "Updates")
