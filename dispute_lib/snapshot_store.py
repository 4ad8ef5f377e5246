"""
JSON snapshot persistence.

The data file has three top-level keys:

    {
      "loans": {"L1": {"status": "open"}, ...},
      "disputes": {"L1": [{"state": "open", "createdAt": 1}, ...], ...},
      "userInteractions": [{"userId": "u1", "type": "click", "timestamp": 5}, ...]
    }

Disputes are stored positionally per loan. A flat ``disputes`` list whose entries
carry ``loanId`` (the older file layout) is grouped per loan in file order on load;
saves always write the per-loan mapping.
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .errors import DisputeLibError, SnapshotError, SnapshotIntegrityError
from .models import Dispute, Loan, ReconcileResult, normalize_loan_id
from .schema_validator import validate_snapshot

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """In-memory dataset handed to the core and written back by the store."""

    loans: Dict[str, Loan] = field(default_factory=dict)
    disputes: Dict[str, List[Dispute]] = field(default_factory=dict)
    user_interactions: List[Dict[str, Any]] = field(default_factory=list)
    modified: bool = field(default=False, compare=False)

    @classmethod
    def from_dict(cls, document: Dict[str, Any], source: str = "<memory>") -> "Snapshot":
        """
        Build a Snapshot from a parsed data file.

        Raises:
            SnapshotIntegrityError: If the document fails the schema or a stored
                disputeIndex disagrees with its position
        """
        validate_snapshot(document, source)

        loans = {
            normalize_loan_id(loan_id): Loan.from_dict(loan_id, data)
            for loan_id, data in (document.get("loans") or {}).items()
        }

        raw_disputes = document.get("disputes") or {}
        if isinstance(raw_disputes, list):
            grouped: Dict[str, List[Dict[str, Any]]] = {}
            for entry in raw_disputes:
                grouped.setdefault(normalize_loan_id(entry["loanId"]), []).append(entry)
            raw_disputes = grouped

        violations = []
        disputes = {}
        for loan_id, entries in raw_disputes.items():
            loan_id = normalize_loan_id(loan_id)
            history = []
            for position, entry in enumerate(entries):
                stored_index = entry.get("disputeIndex", position)
                if stored_index != position:
                    violations.append(
                        f"disputes -> {loan_id} -> {position}: disputeIndex {stored_index} "
                        f"does not match position {position}"
                    )
                    continue
                try:
                    history.append(
                        Dispute.from_dict({**entry, "loanId": loan_id}, dispute_index=position)
                    )
                except DisputeLibError as e:
                    violations.append(f"disputes -> {loan_id} -> {position}: {e}")
            disputes[loan_id] = history

        if violations:
            raise SnapshotIntegrityError(source, violations)

        return cls(
            loans=loans,
            disputes=disputes,
            user_interactions=list(document.get("userInteractions") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        loans = {}
        for loan_id, loan in self.loans.items():
            data = loan.to_dict()
            data.pop("loanId")
            loans[loan_id] = data
        return {
            "loans": loans,
            "disputes": {
                loan_id: [d.to_dict() for d in history]
                for loan_id, history in self.disputes.items()
            },
            "userInteractions": list(self.user_interactions),
        }

    def get_loan(self, loan_id) -> Optional[Loan]:
        return self.loans.get(normalize_loan_id(loan_id))

    def history_for(self, loan_id) -> List[Dispute]:
        """The loan's dispute history (a copy; empty if none filed yet)."""
        return list(self.disputes.get(normalize_loan_id(loan_id), []))

    def apply(self, loan_id, result: ReconcileResult) -> None:
        """Commit an accepted reconciliation into this snapshot."""
        if not result.accepted:
            return
        loan_id = normalize_loan_id(loan_id)
        self.disputes[loan_id] = list(result.new_history)
        self.loans[loan_id].status = result.new_status
        self.modified = True


class JsonSnapshotStore:
    """
    Reads and writes a Snapshot as a JSON file.

    ``transaction()`` holds a store-wide lock for the whole load-modify-save
    cycle. The lock is per store instance, so share one store per data file
    within a process.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.RLock()

    def load(self) -> Snapshot:
        """
        Load the snapshot. A missing file yields an empty snapshot.

        Raises:
            SnapshotError: If the file cannot be read or parsed
            SnapshotIntegrityError: If its content has the wrong shape
        """
        if not self.path.exists():
            logger.debug("Snapshot file missing, starting empty", extra={"path": str(self.path)})
            return Snapshot()

        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise SnapshotError(f"Snapshot {self.path} is not valid JSON: {e}") from e
        except OSError as e:
            raise SnapshotError(f"Failed to read snapshot {self.path}: {e}") from e

        if not isinstance(document, dict):
            raise SnapshotIntegrityError(str(self.path), ["root: snapshot must be a JSON object"])

        return Snapshot.from_dict(document, source=str(self.path))

    def save(self, snapshot: Snapshot) -> None:
        """
        Write the snapshot atomically (temp file in the same directory, then rename).

        Raises:
            SnapshotError: If the file cannot be written
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise SnapshotError(f"Failed to write snapshot {self.path}: {e}") from e

        snapshot.modified = False
        logger.debug("Snapshot saved", extra={"path": str(self.path)})

    @contextmanager
    def transaction(self) -> Iterator[Snapshot]:
        """
        Load, yield for modification, and save if the snapshot was modified.

        Nothing is written if the body raises.

        Example:
            with store.transaction() as snapshot:
                result = reconcile(snapshot.get_loan("L1"), snapshot.history_for("L1"), dispute)
                snapshot.apply("L1", result)
        """
        with self._lock:
            snapshot = self.load()
            yield snapshot
            if snapshot.modified:
                self.save(snapshot)
