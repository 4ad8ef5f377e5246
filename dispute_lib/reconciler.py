"""
Dispute reconciliation and loan status derivation.

Given a loan, its current dispute history and an incoming dispute, decide whether
the dispute is accepted and recompute the loan status from the whole history.

Acceptance:
- index == len(history): append
- index <  len(history): supersede only if incoming.created_at is strictly newer,
  otherwise the update is stale and ignored (not an error)
- index >  len(history): OutOfRangeIndexError (no gaps in the sequence)

Status (recomputed only when a dispute was accepted):
- fraudulent if the incoming dispute is a fraud investigation, the loan is already
  fraudulent, or any dispute on file is a fraud investigation; fraudulent is final
- otherwise open if any dispute on file is open
- otherwise closed

Pure: inputs are never mutated, nothing is logged, persistence is the caller's job.
The caller must serialise reconciliations against the same loan.
"""

from typing import Optional, Sequence

from .errors import InvalidDisputeError, OutOfRangeIndexError, UnknownLoanError
from .models import Dispute, DisputeState, Loan, LoanStatus, ReconcileResult

APPENDED = "appended"
SUPERSEDED = "superseded"
STALE = "stale"


class DisputeReconciler:
    """Stateless reconciler; safe to share between threads."""

    def reconcile(
        self,
        loan: Optional[Loan],
        dispute_history: Sequence[Dispute],
        incoming: Dispute,
    ) -> ReconcileResult:
        """
        Reconcile one incoming dispute against a loan's history.

        Args:
            loan: The loan snapshot, or None if the loan does not exist
            dispute_history: The loan's disputes, ordered by index
            incoming: The dispute being filed or updated

        Returns:
            ReconcileResult with the new history and status

        Raises:
            UnknownLoanError: If loan is None
            InvalidDisputeError: If the dispute belongs to a different loan
            OutOfRangeIndexError: If the index would leave a gap
        """
        if loan is None:
            raise UnknownLoanError(incoming.loan_id)
        if incoming.loan_id != loan.loan_id:
            raise InvalidDisputeError(
                f"Dispute for loan {incoming.loan_id} cannot be reconciled against loan {loan.loan_id}"
            )

        history = list(dispute_history)
        index = incoming.dispute_index

        if index > len(history):
            raise OutOfRangeIndexError(loan.loan_id, index, len(history))

        if index == len(history):
            history.append(incoming)
            action = APPENDED
        elif incoming.created_at > history[index].created_at:
            history[index] = incoming
            action = SUPERSEDED
        else:
            return ReconcileResult(
                accepted=False, new_status=loan.status, new_history=history, action=STALE
            )

        return ReconcileResult(
            accepted=True,
            new_status=derive_status(loan.status, history, incoming),
            new_history=history,
            action=action,
        )


def derive_status(
    current: Optional[LoanStatus],
    history: Sequence[Dispute],
    incoming: Optional[Dispute] = None,
) -> LoanStatus:
    """Loan status implied by the full dispute history."""
    if current is LoanStatus.FRAUDULENT:
        return LoanStatus.FRAUDULENT
    if incoming is not None and incoming.state is DisputeState.FRAUD_INVESTIGATION:
        return LoanStatus.FRAUDULENT

    states = {d.state for d in history}
    if DisputeState.FRAUD_INVESTIGATION in states:
        return LoanStatus.FRAUDULENT
    if DisputeState.OPEN in states:
        return LoanStatus.OPEN
    return LoanStatus.CLOSED


_default_reconciler = DisputeReconciler()


def reconcile(
    loan: Optional[Loan], dispute_history: Sequence[Dispute], incoming: Dispute
) -> ReconcileResult:
    """Module-level shortcut for ``DisputeReconciler().reconcile``."""
    return _default_reconciler.reconcile(loan, dispute_history, incoming)
