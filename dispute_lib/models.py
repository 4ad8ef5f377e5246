"""
Value types shared by the reconciler, the aggregator and the service layer.

Field names follow Python conventions; ``from_dict``/``to_dict`` translate to and
from the camelCase wire names used by the JSON data file (loanId, createdAt,
userId, totalEvents, ...).
"""

from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from math import isfinite
from numbers import Real
from typing import Any, Dict, List, Optional

from .errors import InvalidDisputeError, MalformedEventError


class LoanStatus(str, Enum):
    """Derived loan status. A loan with no disputes has no status (None)."""

    OPEN = "open"
    CLOSED = "closed"
    FRAUDULENT = "fraudulent"


class DisputeState(str, Enum):
    """Lifecycle state of a single dispute."""

    OPEN = "open"
    CLOSED = "closed"
    FRAUD_INVESTIGATION = "fraud_investigation"


class EventType(str, Enum):
    """Kinds of user interaction tracked by the aggregator."""

    CLICK = "click"
    VIEW = "view"
    PURCHASE = "purchase"


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def normalize_loan_id(loan_id) -> str:
    """Loan ids are string keys in the snapshot; integer ids map to their decimal form."""
    if _is_int(loan_id):
        return str(loan_id)
    if isinstance(loan_id, str) and loan_id:
        return loan_id
    raise InvalidDisputeError(f"loanId must be a non-empty string or integer, got {loan_id!r}")


@dataclass
class Loan:
    """A loan record. ``status`` is None until the first dispute is reconciled."""

    loan_id: str
    status: Optional[LoanStatus] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, loan_id, data: Dict[str, Any]) -> "Loan":
        """
        Build a Loan from its snapshot entry.

        Unknown keys are preserved in ``extra`` so a load/save cycle does not drop
        fields owned by other systems.
        """
        data = dict(data or {})
        raw_status = data.pop("status", None)
        data.pop("loanId", None)
        status = LoanStatus(raw_status) if raw_status else None
        return cls(loan_id=normalize_loan_id(loan_id), status=status, extra=data)

    def to_dict(self) -> Dict[str, Any]:
        result = dict(self.extra)
        result["loanId"] = self.loan_id
        result["status"] = self.status.value if self.status else None
        return result


@dataclass(frozen=True)
class Dispute:
    """
    A dispute filed against a loan.

    Disputes are addressed by position (``dispute_index``) within their loan's
    history rather than by a global id.

    Example:
        >>> Dispute.from_dict({"loanId": "L1", "disputeIndex": 0,
        ...                    "state": "open", "createdAt": 1}).state
        <DisputeState.OPEN: 'open'>
    """

    loan_id: str
    dispute_index: int
    state: DisputeState
    created_at: int

    def __post_init__(self):
        if not _is_int(self.dispute_index) or self.dispute_index < 0:
            raise InvalidDisputeError(
                f"disputeIndex must be an integer >= 0, got {self.dispute_index!r}"
            )
        if not _is_int(self.created_at):
            raise InvalidDisputeError(
                f"createdAt must be an integer, got {self.created_at!r}"
            )
        if not isinstance(self.state, DisputeState):
            try:
                object.__setattr__(self, "state", DisputeState(self.state))
            except ValueError:
                valid = ", ".join(s.value for s in DisputeState)
                raise InvalidDisputeError(
                    f"Invalid dispute state {self.state!r}. Must be one of: {valid}"
                ) from None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], dispute_index: Optional[int] = None) -> "Dispute":
        """
        Build a Dispute from its wire form.

        Args:
            data: Dict with loanId, state, createdAt and (optionally) disputeIndex
            dispute_index: Position to use when the dict does not carry one
                (stored histories are positional)

        Raises:
            InvalidDisputeError: If a required field is missing or invalid
        """
        missing = [k for k in ("loanId", "state", "createdAt") if k not in data]
        if missing:
            raise InvalidDisputeError(f"Dispute missing required field(s): {', '.join(missing)}")
        index = data.get("disputeIndex", dispute_index)
        if index is None:
            raise InvalidDisputeError("Dispute missing required field(s): disputeIndex")
        return cls(
            loan_id=normalize_loan_id(data["loanId"]),
            dispute_index=index,
            state=data["state"],
            created_at=data["createdAt"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loanId": self.loan_id,
            "disputeIndex": self.dispute_index,
            "state": self.state.value,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class Interaction:
    """One user interaction event. Immutable."""

    user_id: str
    timestamp: int
    type: EventType
    value: Optional[Real] = None

    @classmethod
    def from_dict(cls, data: Any, position: Optional[int] = None) -> "Interaction":
        """
        Parse a raw event dict.

        Args:
            data: Dict with userId, timestamp, type and optional metadata.value
            position: Index of the event in its stream, used in error messages

        Raises:
            MalformedEventError: If the event cannot be aggregated
        """
        if not isinstance(data, dict):
            raise MalformedEventError(
                f"event must be an object, got {type(data).__name__}", position
            )

        user_id = data.get("userId")
        if user_id is None or user_id == "":
            raise MalformedEventError("missing userId", position)
        if not isinstance(user_id, str):
            raise MalformedEventError(f"userId must be a string, got {user_id!r}", position)

        try:
            event_type = EventType(data.get("type"))
        except ValueError:
            raise MalformedEventError(
                f"unrecognized event type {data.get('type')!r}", position
            ) from None

        timestamp = data.get("timestamp")
        if not _is_int(timestamp):
            raise MalformedEventError(
                f"timestamp must be an integer, got {timestamp!r}", position
            )

        metadata = data.get("metadata")
        if metadata is None:
            metadata = {}
        if not isinstance(metadata, dict):
            raise MalformedEventError("metadata must be an object", position)
        value = metadata.get("value")
        if value is not None and (
            not isinstance(value, Real) or isinstance(value, bool) or not isfinite(value)
        ):
            raise MalformedEventError(
                f"metadata.value must be a finite number, got {value!r}", position
            )

        return cls(user_id=user_id, timestamp=timestamp, type=event_type, value=value)

    def to_dict(self) -> Dict[str, Any]:
        result = {"userId": self.user_id, "timestamp": self.timestamp, "type": self.type.value}
        if self.value is not None:
            result["metadata"] = {"value": self.value}
        return result


def _exact(value: Real) -> Fraction:
    """Exact form of a purchase value; floats are taken at their shortest decimal repr."""
    if isinstance(value, float):
        return Fraction(repr(value))
    return Fraction(value)


@dataclass
class UserEventAggregate:
    """
    Per-user rollup produced by one aggregation run.

    Purchase values are summed as exact fractions so the total does not depend on
    event order or shard boundaries. ``total_purchase_value`` converts back to an
    int when every contributing value was an int, otherwise to a float.
    """

    first_event_timestamp: int
    last_event_timestamp: int
    total_events: int = 0
    event_counts: Dict[str, int] = field(
        default_factory=lambda: {t.value: 0 for t in EventType}
    )
    purchase_value_sum: Fraction = Fraction(0)
    has_fractional_values: bool = False

    @classmethod
    def empty(cls, timestamp: int) -> "UserEventAggregate":
        """Zeroed aggregate anchored at the first event seen for a user."""
        return cls(first_event_timestamp=timestamp, last_event_timestamp=timestamp)

    @property
    def total_purchase_value(self) -> Real:
        if self.has_fractional_values or self.purchase_value_sum.denominator != 1:
            return float(self.purchase_value_sum)
        return int(self.purchase_value_sum)

    def add(self, interaction: Interaction) -> None:
        """Fold one event in."""
        self.total_events += 1
        self.event_counts[interaction.type.value] += 1
        if interaction.type is EventType.PURCHASE and interaction.value is not None:
            self.purchase_value_sum += _exact(interaction.value)
            if not isinstance(interaction.value, int):
                self.has_fractional_values = True
        self.first_event_timestamp = min(self.first_event_timestamp, interaction.timestamp)
        self.last_event_timestamp = max(self.last_event_timestamp, interaction.timestamp)

    def merge(self, other: "UserEventAggregate") -> None:
        """Combine another partial aggregate for the same user into this one."""
        self.total_events += other.total_events
        for event_type, count in other.event_counts.items():
            self.event_counts[event_type] = self.event_counts.get(event_type, 0) + count
        self.purchase_value_sum += other.purchase_value_sum
        self.has_fractional_values = self.has_fractional_values or other.has_fractional_values
        self.first_event_timestamp = min(self.first_event_timestamp, other.first_event_timestamp)
        self.last_event_timestamp = max(self.last_event_timestamp, other.last_event_timestamp)

    def copy(self) -> "UserEventAggregate":
        return UserEventAggregate(
            first_event_timestamp=self.first_event_timestamp,
            last_event_timestamp=self.last_event_timestamp,
            total_events=self.total_events,
            event_counts=dict(self.event_counts),
            purchase_value_sum=self.purchase_value_sum,
            has_fractional_values=self.has_fractional_values,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalEvents": self.total_events,
            "eventCounts": dict(self.event_counts),
            "totalPurchaseValue": self.total_purchase_value,
            "firstEventTimestamp": self.first_event_timestamp,
            "lastEventTimestamp": self.last_event_timestamp,
        }


@dataclass(frozen=True)
class ReconcileResult:
    """
    Outcome of reconciling one incoming dispute.

    Attributes:
        accepted: True if the dispute was appended or superseded an older one
        new_status: Loan status after reconciliation (unchanged when stale)
        new_history: The loan's dispute history after reconciliation
        action: "appended", "superseded" or "stale"
    """

    accepted: bool
    new_status: Optional[LoanStatus]
    new_history: List[Dispute]
    action: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "newStatus": self.new_status.value if self.new_status else None,
            "newHistory": [d.to_dict() for d in self.new_history],
            "action": self.action,
        }
