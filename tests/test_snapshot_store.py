"""
Tests for JsonSnapshotStore and Snapshot
"""
import json
import shutil
from pathlib import Path

import pytest

from dispute_lib import (
    Dispute,
    LoanStatus,
    SnapshotError,
    SnapshotIntegrityError,
    UnknownLoanError,
    reconcile,
)
from dispute_lib.snapshot_store import JsonSnapshotStore, Snapshot

SAMPLE_DATA = Path(__file__).parent / "sample_data.json"
LEGACY_DATA = Path(__file__).parent / "legacy_data.json"


@pytest.fixture
def store(tmp_path):
    path = tmp_path / "data.json"
    shutil.copy(SAMPLE_DATA, path)
    return JsonSnapshotStore(path)


class TestLoad:
    """Test loading snapshot files."""

    def test_load_sample(self, store):
        snapshot = store.load()

        assert set(snapshot.loans) == {"L1", "L2", "L3"}
        assert snapshot.get_loan("L2").status is LoanStatus.FRAUDULENT
        assert snapshot.get_loan("L3").status is None
        assert snapshot.history_for("L1")[0].created_at == 1
        assert snapshot.history_for("L3") == []
        assert len(snapshot.user_interactions) == 7
        assert snapshot.modified is False

    def test_missing_file_is_empty(self, tmp_path):
        snapshot = JsonSnapshotStore(tmp_path / "absent.json").load()

        assert snapshot.loans == {}
        assert snapshot.disputes == {}
        assert snapshot.user_interactions == []

    def test_legacy_flat_dispute_list(self, tmp_path):
        path = tmp_path / "legacy.json"
        shutil.copy(LEGACY_DATA, path)

        snapshot = JsonSnapshotStore(path).load()

        history = snapshot.history_for(1)
        assert [(d.dispute_index, d.created_at) for d in history] == [(0, 3), (1, 6)]
        assert snapshot.history_for("2")[0].loan_id == "2"

    def test_history_for_returns_copy(self, store):
        snapshot = store.load()
        snapshot.history_for("L1").clear()
        assert len(snapshot.history_for("L1")) == 1

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("{not json")

        with pytest.raises(SnapshotError):
            JsonSnapshotStore(path).load()

    def test_root_must_be_object(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("[]")

        with pytest.raises(SnapshotIntegrityError):
            JsonSnapshotStore(path).load()

    def test_schema_violations_listed(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text(json.dumps({
            "loans": {"L1": {"status": "unknown"}},
            "userInteractions": "nope",
        }))

        with pytest.raises(SnapshotIntegrityError) as exc_info:
            JsonSnapshotStore(path).load()

        assert len(exc_info.value.violations) == 2

    def test_stored_index_must_match_position(self):
        document = {
            "loans": {"L1": {"status": "open"}},
            "disputes": {"L1": [{"disputeIndex": 1, "state": "open", "createdAt": 1}]},
        }
        with pytest.raises(SnapshotIntegrityError) as exc_info:
            Snapshot.from_dict(document)
        assert "does not match position" in exc_info.value.violations[0]

    def test_unknown_loan_fields_preserved(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text(json.dumps({"loans": {"L1": {"status": "open", "owner": "ops"}}}))
        store = JsonSnapshotStore(path)

        store.save(store.load())

        assert json.loads(path.read_text())["loans"]["L1"] == {"status": "open", "owner": "ops"}


class TestSave:
    """Test atomic writes."""

    def test_round_trip(self, store):
        snapshot = store.load()
        store.save(snapshot)
        assert store.load() == snapshot

    def test_legacy_file_saved_per_loan(self, tmp_path):
        path = tmp_path / "legacy.json"
        shutil.copy(LEGACY_DATA, path)
        store = JsonSnapshotStore(path)

        store.save(store.load())

        disputes = json.loads(path.read_text())["disputes"]
        assert set(disputes) == {"1", "2"}
        assert [d["disputeIndex"] for d in disputes["1"]] == [0, 1]

    def test_no_temp_files_left(self, store):
        store.save(store.load())
        assert [p.name for p in store.path.parent.iterdir()] == ["data.json"]

    def test_creates_parent_directory(self, tmp_path):
        store = JsonSnapshotStore(tmp_path / "nested" / "data.json")
        store.save(Snapshot())
        assert store.path.exists()


class TestTransaction:
    """Test load-modify-save transactions."""

    def test_accepted_change_is_saved(self, store):
        with store.transaction() as snapshot:
            incoming = Dispute("L1", 1, "closed", 2)
            result = reconcile(snapshot.get_loan("L1"), snapshot.history_for("L1"), incoming)
            snapshot.apply("L1", result)

        assert len(store.load().history_for("L1")) == 2

    def test_stale_change_not_saved(self, store):
        before = store.path.read_text()

        with store.transaction() as snapshot:
            incoming = Dispute("L1", 0, "closed", 1)
            result = reconcile(snapshot.get_loan("L1"), snapshot.history_for("L1"), incoming)
            snapshot.apply("L1", result)
            assert snapshot.modified is False

        assert store.path.read_text() == before

    def test_exception_in_body_not_saved(self, store):
        before = store.path.read_text()

        with pytest.raises(UnknownLoanError):
            with store.transaction() as snapshot:
                snapshot.loans["L1"].status = LoanStatus.CLOSED
                snapshot.modified = True
                raise UnknownLoanError("L9")

        assert store.path.read_text() == before

    def test_transactions_are_reentrant(self, store):
        with store.transaction():
            with store.transaction() as inner:
                assert inner.get_loan("L1") is not None
