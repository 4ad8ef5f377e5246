"""
dispute-lib: Loan dispute reconciliation and user event aggregation

This library provides:
- Dispute reconciliation with loan status derivation (open / closed / fraudulent)
- Per-user aggregation of click / view / purchase events, with shard merging
- JSON snapshot persistence with transactional load-modify-save
- A JSON-RPC 2.0 server and a Fiscal Data API proxy

Example:
    from dispute_lib import DisputeService

    service = DisputeService(data_path="data.json")
    outcome = service.add_dispute("L1", 0, "open", 1)
    summary = service.aggregate_user_events()
"""

from .aggregator import EventAggregator, aggregate, merge_aggregates
from .api import DisputeService
from .errors import (
    DisputeLibError,
    FiscalDataError,
    InvalidDisputeError,
    MalformedEventError,
    OutOfRangeIndexError,
    SnapshotError,
    SnapshotIntegrityError,
    UnknownLoanError,
    ValidationError,
)
from .models import (
    Dispute,
    DisputeState,
    EventType,
    Interaction,
    Loan,
    LoanStatus,
    ReconcileResult,
    UserEventAggregate,
)
from .reconciler import DisputeReconciler, reconcile

__version__ = "0.1.0"
__all__ = [
    "DisputeService",
    "DisputeReconciler",
    "reconcile",
    "EventAggregator",
    "aggregate",
    "merge_aggregates",
    "Loan",
    "LoanStatus",
    "Dispute",
    "DisputeState",
    "Interaction",
    "EventType",
    "UserEventAggregate",
    "ReconcileResult",
    "DisputeLibError",
    "ValidationError",
    "UnknownLoanError",
    "OutOfRangeIndexError",
    "InvalidDisputeError",
    "MalformedEventError",
    "SnapshotError",
    "SnapshotIntegrityError",
    "FiscalDataError",
]
