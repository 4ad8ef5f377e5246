"""
Public API for dispute-lib

This is the "front door": it loads the snapshot, runs the reconciler or the
aggregator over it, and persists or returns the outcome.
"""

import os
import logging
import multiprocessing
from concurrent.futures import ProcessPoolExecutor
from typing import Any, Dict, List, Optional

from .aggregator import EventAggregator, aggregate, aggregates_to_dict, merge_aggregates
from .config_loader import ConfigLoader
from .fiscal_data_proxy import FiscalDataProxy
from .models import Dispute, Interaction, UserEventAggregate
from .reconciler import APPENDED, DisputeReconciler
from .schema_validator import validate_dispute_request
from .snapshot_store import JsonSnapshotStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level task function
#
# Must live at module level (not inside the class) so it is picklable by the
# multiprocessing 'spawn' context used for ProcessPoolExecutor workers.
# ---------------------------------------------------------------------------


def _aggregate_shard(events: List[Dict[str, Any]], offset: int) -> Dict[str, UserEventAggregate]:
    """
    Aggregate one contiguous shard of the interaction list.

    Args:
        events: Raw event dicts in this shard
        offset: Position of the shard's first event in the full list, so
            MalformedEventError reports the global position

    Returns:
        Partial per-user aggregates for this shard
    """
    aggregator = EventAggregator()
    for position, event in enumerate(events, start=offset):
        aggregator.add(Interaction.from_dict(event, position=position))
    return aggregator.results()


class DisputeService:
    """
    Main dispute service class.

    Reconciles incoming disputes against the stored snapshot and summarises
    stored user interactions.

    Example:
        from dispute_lib import DisputeService

        service = DisputeService(data_path="data.json")
        outcome = service.add_dispute("L1", 0, "open", 1700000000)
        print(outcome["updated_loan_status"])

        summary = service.aggregate_user_events()
    """

    def __init__(self, config_path: Optional[str] = None, data_path: Optional[str] = None):
        """
        Initialize the dispute service.

        Args:
            config_path: Optional YAML config; defaults to the bundled local-config.yaml
            data_path: Optional snapshot file; overrides data_file_location from config
        """
        self.config_loader = ConfigLoader(config_path)
        self.data_path = data_path or str(self.config_loader.get_data_file_path())
        self.store = JsonSnapshotStore(self.data_path)
        self.reconciler = DisputeReconciler()
        self.fiscal_data_proxy = FiscalDataProxy(
            self.config_loader.get_fiscal_data_service_config()
        )
        self._pool: Optional[ProcessPoolExecutor] = None
        self._create_pool()

    def _create_pool(self) -> None:
        """
        Create the ProcessPoolExecutor used by batch_aggregate_user_events().

        No-op when batch_parallelism is false. Uses an explicit 'spawn' context
        so behaviour matches across platforms and threaded hosts. Workers are not
        started until the first submit().
        """
        if not self.config_loader.get_batch_parallelism():
            return
        max_workers = self.config_loader.get_batch_max_workers()
        ctx = multiprocessing.get_context("spawn")
        self._pool = ProcessPoolExecutor(max_workers=max_workers, mp_context=ctx)
        logger.debug(
            f"Aggregation worker pool created (max_workers={max_workers or os.cpu_count()})"
        )

    def add_dispute(self, loan_id, dispute_index, state, created_at) -> Dict[str, Any]:
        """
        File a new dispute or update an existing one, and update the loan status.

        The load-reconcile-save cycle runs inside a store transaction, so
        concurrent calls on one service do not lose updates. The snapshot is
        only written when the dispute is accepted.

        Args:
            loan_id: Loan the dispute is filed against
            dispute_index: Position in the loan's dispute history
            state: "open", "closed" or "fraud_investigation"
            created_at: Integer logical timestamp

        Returns:
            Dict with:
                - ok: True
                - loan_id: Normalised loan id
                - accepted: Whether the dispute was appended or superseded
                - action: "appended", "superseded" or "stale"
                - did_add_dispute: True when a new dispute was appended
                - updated_loan_status: Loan status after reconciliation

        Raises:
            InvalidDisputeError: If the payload is malformed
            UnknownLoanError: If the loan does not exist
            OutOfRangeIndexError: If dispute_index would leave a gap
            SnapshotError: If the snapshot cannot be read or written

        Example:
            outcome = service.add_dispute("L1", 1, "closed", 1700000500)
            if not outcome["accepted"]:
                print("Stale update ignored")
        """
        payload = {
            "loanId": loan_id,
            "disputeIndex": dispute_index,
            "state": state,
            "createdAt": created_at,
        }
        validate_dispute_request(payload)
        incoming = Dispute.from_dict(payload)

        with self.store.transaction() as snapshot:
            result = self.reconciler.reconcile(
                snapshot.get_loan(incoming.loan_id),
                snapshot.history_for(incoming.loan_id),
                incoming,
            )
            snapshot.apply(incoming.loan_id, result)

        status = result.new_status.value if result.new_status else None
        logger.info(
            "Dispute reconciled",
            extra={
                "loan_id": incoming.loan_id,
                "dispute_index": incoming.dispute_index,
                "action": result.action,
                "loan_status": status,
            },
        )

        return {
            "ok": True,
            "loan_id": incoming.loan_id,
            "accepted": result.accepted,
            "action": result.action,
            "did_add_dispute": result.action == APPENDED,
            "updated_loan_status": status,
        }

    def get_loan(self, loan_id) -> Optional[Dict[str, Any]]:
        """
        Look up a loan and its dispute history.

        Returns:
            {"loan": {...}, "disputes": [...]} or None if the loan does not exist
        """
        snapshot = self.store.load()
        loan = snapshot.get_loan(loan_id)
        if loan is None:
            return None
        return {
            "loan": loan.to_dict(),
            "disputes": [d.to_dict() for d in snapshot.history_for(loan.loan_id)],
        }

    def aggregate_user_events(self) -> Dict[str, Dict[str, Any]]:
        """
        Summarise every stored user interaction per user, in a single pass.

        Returns:
            Dict mapping userId to its aggregate (totalEvents, eventCounts,
            totalPurchaseValue, firstEventTimestamp, lastEventTimestamp)

        Raises:
            MalformedEventError: If any stored event cannot be aggregated
        """
        snapshot = self.store.load()
        return aggregates_to_dict(aggregate(snapshot.user_interactions))

    def batch_aggregate_user_events(self) -> Dict[str, Dict[str, Any]]:
        """
        Sharded variant of aggregate_user_events().

        Splits the stored interactions into aggregation_shard_size slices,
        aggregates each (in the worker pool when batch_parallelism is enabled,
        otherwise sequentially) and merges the partial results. The result is
        identical to aggregate_user_events().
        """
        snapshot = self.store.load()
        events = snapshot.user_interactions
        shard_size = self.config_loader.get_aggregation_shard_size()
        shards = [
            (events[start:start + shard_size], start)
            for start in range(0, len(events), shard_size)
        ]

        if self._pool is not None:
            # Collected in submission order so the first failing shard is reported
            futures = [self._pool.submit(_aggregate_shard, shard, offset) for shard, offset in shards]
            partials = [f.result() for f in futures]
        else:
            partials = [_aggregate_shard(shard, offset) for shard, offset in shards]

        logger.debug(
            "Batch aggregation complete",
            extra={"events": len(events), "shards": len(shards), "parallel": self._pool is not None},
        )
        return aggregates_to_dict(merge_aggregates(*partials))

    def aggregate_events(self, events) -> Dict[str, Dict[str, Any]]:
        """
        Summarise caller-supplied events without touching the snapshot.

        Args:
            events: List of raw event dicts

        Raises:
            MalformedEventError: If any event cannot be aggregated
        """
        return aggregates_to_dict(aggregate(events))

    def fetch_debt_subject_to_limit(self, fields: str) -> Dict[str, Any]:
        """
        Proxy a query to the Fiscal Data "debt subject to limit" dataset.

        Raises:
            FiscalDataError: If the proxy is disabled or the request fails
        """
        return self.fiscal_data_proxy.get_debt_subject_to_limit(fields)

    def close(self) -> None:
        """
        Shut down the worker pool and the HTTP session.

        Safe to call multiple times.

        Example:
            service = DisputeService()
            try:
                summary = service.batch_aggregate_user_events()
            finally:
                service.close()
        """
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None
        self.fiscal_data_proxy.close()
