"""
Per-user aggregation of interaction events.

Single pass, no pre-sort: every field is combined with an order-independent rule
(counts and sums add, first/last timestamps are min/max), so the result does not
depend on arrival order and partial results from disjoint shards can be merged.
"""

from typing import Any, Dict, Iterable, Mapping, Union

from .models import Interaction, UserEventAggregate

EventLike = Union[Interaction, Dict[str, Any]]


class EventAggregator:
    """
    Mutable per-user accumulator.

    Example:
        aggregator = EventAggregator()
        aggregator.add_all(events)
        summary = aggregator.results()
    """

    def __init__(self):
        self._aggregates: Dict[str, UserEventAggregate] = {}
        self._seen = 0

    def add(self, event: EventLike) -> None:
        """
        Fold one event in.

        Raises:
            MalformedEventError: If a raw dict cannot be parsed
        """
        if not isinstance(event, Interaction):
            event = Interaction.from_dict(event, position=self._seen)
        self._seen += 1

        aggregate = self._aggregates.get(event.user_id)
        if aggregate is None:
            aggregate = UserEventAggregate.empty(event.timestamp)
            self._aggregates[event.user_id] = aggregate
        aggregate.add(event)

    def add_all(self, events: Iterable[EventLike]) -> "EventAggregator":
        for event in events:
            self.add(event)
        return self

    def merge(self, other: Union["EventAggregator", Mapping[str, UserEventAggregate]]) -> "EventAggregator":
        """Merge another shard's results into this accumulator."""
        partial = other.results() if isinstance(other, EventAggregator) else other
        for user_id, aggregate in partial.items():
            existing = self._aggregates.get(user_id)
            if existing is None:
                self._aggregates[user_id] = aggregate.copy()
            else:
                existing.merge(aggregate)
        return self

    def results(self) -> Dict[str, UserEventAggregate]:
        """Copies of the current per-user aggregates."""
        return {user_id: agg.copy() for user_id, agg in self._aggregates.items()}


def aggregate(events: Iterable[EventLike]) -> Dict[str, UserEventAggregate]:
    """
    Aggregate a collection of interaction events per user.

    The whole run fails on the first malformed event; no partial summary is
    returned.

    Args:
        events: Interaction objects or raw event dicts

    Returns:
        Dict mapping userId to its UserEventAggregate

    Raises:
        MalformedEventError: If any event is missing userId, has an unknown type,
            or carries an invalid timestamp or value

    Example:
        >>> summary = aggregate([
        ...     {"userId": "u1", "type": "click", "timestamp": 5},
        ...     {"userId": "u1", "type": "purchase", "timestamp": 10,
        ...      "metadata": {"value": 20}},
        ... ])
        >>> summary["u1"].total_purchase_value
        20
    """
    return EventAggregator().add_all(events).results()


def merge_aggregates(*partials: Mapping[str, UserEventAggregate]) -> Dict[str, UserEventAggregate]:
    """Combine per-shard aggregation results into one."""
    merged = EventAggregator()
    for partial in partials:
        merged.merge(partial)
    return merged.results()


def aggregates_to_dict(aggregates: Mapping[str, UserEventAggregate]) -> Dict[str, Dict[str, Any]]:
    """Wire form keyed by userId."""
    return {user_id: agg.to_dict() for user_id, agg in aggregates.items()}
