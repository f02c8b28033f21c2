"""
Token-flow replay of partial orders.

Fires a partially ordered trace through a Petri net and reports the
places whose token count would have to become negative:

  1. Extend the order with a synthetic initial event (before all
     initial events) and a synthetic final event (after all final
     events).
  2. Linearise it consistently with the order.
  3. Forward pass: seed the initial event with the net's marking, fire
     every event in order and push the remaining marking to the first
     successor.  Places still holding tokens at a fork are *branch
     places*.
  4. Backward pass: the same from the final event with the roles of
     pre- and post-sets swapped.
  5. A place is invalid iff it went negative in both passes and, for
     branch places, the max-flow check cannot route enough tokens.

The module also hosts the implicit-place heuristic, which compares the
local markings observed during forward replay.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from region_repair.max_flow import is_feasible
from region_repair.models import (
    FINAL_EVENT_ID,
    INITIAL_EVENT_ID,
    Arc,
    EventItem,
    PartialOrder,
    PetriNet,
    StructuralInputError,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReplayResult:
    """Outcome of replaying one partial order.

    Attributes:
        invalid_places:  Ids of places that cannot be fed.
        markings:        Local marking before each firing of a net
                         transition, in forward order (one vector per
                         fired event, indexed like ``net.places``).
    """

    invalid_places: set[str] = field(default_factory=set)
    markings: list[np.ndarray] = field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════════
# 1.  Extension and linearisation
# ═══════════════════════════════════════════════════════════════════════════

def extend_partial_order(partial_order: PartialOrder) -> PartialOrder:
    """Return a copy of *partial_order* framed by synthetic start/end events."""
    extended = partial_order.deep_copy()
    initial_events = list(extended.initial_events)
    final_events = list(extended.final_events)

    for reserved in (INITIAL_EVENT_ID, FINAL_EVENT_ID):
        if any(e.id == reserved for e in extended.events):
            raise StructuralInputError(f"Event id '{reserved}' is reserved")

    extended.add_event(INITIAL_EVENT_ID, INITIAL_EVENT_ID)
    extended.add_event(FINAL_EVENT_ID, FINAL_EVENT_ID)
    for event_id in initial_events:
        extended.add_arc(INITIAL_EVENT_ID, event_id)
    for event_id in final_events:
        extended.add_arc(event_id, FINAL_EVENT_ID)

    extended.determine_initial_and_final_events()
    return extended


def linearize(partial_order: PartialOrder) -> list[EventItem]:
    """Return the events in an order where every event follows its predecessors."""
    events = partial_order.event_map()
    ordered = [events[event_id] for event_id in partial_order.initial_events]
    placed = set(partial_order.initial_events)
    pending = [e for e in partial_order.events if e.id not in placed]

    while pending:
        remaining: list[EventItem] = []
        for event in pending:
            if all(p in placed for p in event.previous_events):
                ordered.append(event)
                placed.add(event.id)
            else:
                remaining.append(event)
        if len(remaining) == len(pending):
            raise StructuralInputError(
                "Partial order contains a cycle through "
                + ", ".join(e.id for e in remaining)
            )
        pending = remaining

    return ordered


# ═══════════════════════════════════════════════════════════════════════════
# 2.  Replayer
# ═══════════════════════════════════════════════════════════════════════════

class PartialOrderReplayer:
    """Fires one partial order through one net.

    Both inputs are copied on construction; local markings live on the
    private copy of the order and are discarded with the replayer.
    """

    def __init__(self, net: PetriNet, partial_order: PartialOrder) -> None:
        self._net = net.deep_copy()
        self._order = extend_partial_order(partial_order)
        self._events = self._order.event_map()
        self._place_index = {p.id: i for i, p in enumerate(self._net.places)}
        self._transitions = self._net.transitions_by_label()

    def replay(self) -> ReplayResult:
        places = self._net.places
        total_order = linearize(self._order)

        for event in total_order:
            event.local_marking = np.zeros(len(places), dtype=np.int64)
        self._events[INITIAL_EVENT_ID].local_marking[:] = [p.marking for p in places]

        final_event = self._events[FINAL_EVENT_ID]
        if FINAL_EVENT_ID not in self._order.final_events:
            raise StructuralInputError("Final event not found")

        # Forward
        result = ReplayResult()
        branch_places: set[int] = set()
        forward_valid = np.ones(len(places), dtype=bool)
        self._fire(total_order, forward_valid, branch_places, backwards=False,
                   snapshots=result.markings)
        final_negative = final_event.local_marking < 0

        # Backward: the final event keeps its forward marking; forks found
        # here are not flow-checked.
        backward_order = [final_event]
        for event in reversed(total_order):
            if event is not final_event:
                event.local_marking = np.zeros(len(places), dtype=np.int64)
                backward_order.append(event)
        backward_valid = ~final_negative
        self._fire(backward_order, backward_valid, set(), backwards=True)

        for i, place in enumerate(places):
            if forward_valid[i] or backward_valid[i]:
                continue
            if (
                i in branch_places
                and not final_negative[i]
                and is_feasible(place, self._order.events, self._transitions)
            ):
                logger.debug("Place %s rescued by flow check", place.id)
                continue
            result.invalid_places.add(place.id)

        return result

    def _fire(
        self,
        queue: list[EventItem],
        valid: np.ndarray,
        branch_places: set[int],
        *,
        backwards: bool,
        snapshots: list[np.ndarray] | None = None,
    ) -> None:
        for event in queue:
            transition = None
            if event.id not in (INITIAL_EVENT_ID, FINAL_EVENT_ID):
                transition = self._transitions.get(event.label)

            if transition is not None:
                if snapshots is not None:
                    snapshots.append(event.local_marking.copy())
                consumed = transition.outgoing_arcs if backwards else transition.incoming_arcs
                produced = transition.incoming_arcs if backwards else transition.outgoing_arcs
                for arc in consumed:
                    index = self._place_index[arc.target if backwards else arc.source]
                    event.local_marking[index] -= arc.weight
                    if event.local_marking[index] < 0:
                        valid[index] = False
                for arc in produced:
                    index = self._place_index[arc.source if backwards else arc.target]
                    event.local_marking[index] += arc.weight

            successors = event.previous_events if backwards else event.next_events
            if len(successors) > 1:
                branch_places.update(np.flatnonzero(event.local_marking > 0).tolist())
            if successors:
                self._events[successors[0]].local_marking += event.local_marking


def replay(net: PetriNet, partial_order: PartialOrder) -> ReplayResult:
    """Replay *partial_order* on *net*; see :class:`PartialOrderReplayer`."""
    return PartialOrderReplayer(net, partial_order).replay()


def invalid_place_counts(net: PetriNet, partial_orders: list[PartialOrder]) -> dict[str, int]:
    """Count, per place id, the partial orders in which the place is invalid."""
    counts: dict[str, int] = {}
    for order in partial_orders:
        for place_id in replay(net, order).invalid_places:
            counts[place_id] = counts.get(place_id, 0) + 1
    return {p.id: counts[p.id] for p in net.places if p.id in counts}


# ═══════════════════════════════════════════════════════════════════════════
# 3.  Implicit places
# ═══════════════════════════════════════════════════════════════════════════

def _summed(arcs: list[Arc], endpoint: str) -> dict[str, int]:
    weights: dict[str, int] = {}
    for arc in arcs:
        key = getattr(arc, endpoint)
        weights[key] = weights.get(key, 0) + arc.weight
    return weights


def find_implicit_places(
    net: PetriNet,
    partial_orders: list[PartialOrder],
) -> dict[str, int]:
    """Best-effort detection of places that never restrict the net's behaviour.

    A place  p  is reported when another place  q  exists with

      • p• ⊆ q•  and  W(p, t) ≤ W(q, t)  for every  t ∈ p•,
      • •q ⊆ •p  and  W(t, p) ≥ W(t, q)  for every  t ∈ •q,
      • m0(p) ≥ m0(q), and
      • m(p) ≥ m(q)  in every local marking seen before a firing.

    The first three conditions make  m(p) − m(q)  non-decreasing under
    every firing, so  m(p) ≥ m(q)  holds in every reachable marking.
    Whenever  q  enables a consumer  t  we then have
    m(p) ≥ m(q) ≥ W(q, t) ≥ W(p, t), and  p  never blocks  t.  Two
    places that dominate each other are structurally identical; only
    the later one is reported, and a reported place is never used as
    the witness  q  of another.  Places without consumers and places
    that fail replay are skipped.

    Returns a map place id → number of partial orders replayed.
    """
    if not partial_orders:
        return {}

    places = net.places
    invalid: set[str] = set()
    samples: list[np.ndarray] = []
    for order in partial_orders:
        result = replay(net, order)
        invalid |= result.invalid_places
        samples.extend(result.markings)

    if not samples:
        return {}
    markings = np.clip(np.vstack(samples), 0, None)

    consumption = [_summed(place.outgoing_arcs, "target") for place in places]
    production = [_summed(place.incoming_arcs, "source") for place in places]

    implicit: list[str] = []
    for i, place in enumerate(places):
        if not place.outgoing_arcs or place.id in invalid:
            continue
        for j, witness in enumerate(places):
            if j == i or witness.id in invalid or witness.id in implicit:
                continue
            if place.marking < witness.marking:
                continue
            if not all(
                weight <= consumption[j].get(target, 0)
                for target, weight in consumption[i].items()
            ):
                continue
            if not all(
                weight <= production[i].get(source, 0)
                for source, weight in production[j].items()
            ):
                continue
            if not np.all(markings[:, i] >= markings[:, j]):
                continue
            mutual = (
                place.marking == witness.marking
                and consumption[i] == consumption[j]
                and production[i] == production[j]
            )
            if mutual and i < j:
                continue
            logger.debug("Place %s is implicit with respect to %s", place.id, witness.id)
            implicit.append(place.id)
            break

    return {place_id: len(partial_orders) for place_id in implicit}
