"""
Core data structures for Petri-net fitness and precision repair.

  - Petri net: places, transitions and weighted arcs
  - Partial orders: events with a happens-before relation
  - Wrong continuations: model behaviour never observed in the log

Every analysis component receives caller-owned nets and partial orders
and works on a ``deep_copy()`` of them, so the caller's objects are never
mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

import numpy as np


INITIAL_EVENT_ID = "initial_marking"
FINAL_EVENT_ID = "final_marking"


class StructuralInputError(ValueError):
    """A net or partial order violates a structural invariant.

    Raised for arcs that reference unknown elements or connect two
    elements of the same kind, for missing final events and for cyclic
    partial orders.  Aborts the analysis call that encountered it.
    """


class IssueStatus(Enum):
    """Diagnosis tag attached to a place or transition of a result net."""

    WARNING = "warning"
    ERROR = "error"
    POSSIBILITY = "possibility"
    IMPLICIT = "implicit"


# ---------------------------------------------------------------------------
# Petri net
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class Arc:
    """A weighted arc between two element ids."""

    source: str
    target: str
    weight: int = 1


@dataclass(slots=True)
class Place:
    """A place  p ∈ P  with its current marking."""

    id: str
    marking: int = 0
    incoming_arcs: list[Arc] = field(default_factory=list)
    outgoing_arcs: list[Arc] = field(default_factory=list)
    issue_status: Optional[IssueStatus] = None


@dataclass(slots=True)
class Transition:
    """A transition  t ∈ T.  The ``label`` is the activity it denotes."""

    id: str
    label: str
    incoming_arcs: list[Arc] = field(default_factory=list)
    outgoing_arcs: list[Arc] = field(default_factory=list)
    issue_status: Optional[IssueStatus] = None


@dataclass(slots=True)
class PetriNet:
    """Place/transition net  N = (P, T, F, W, m₀).

    ``arcs`` is the flow relation; every arc is also referenced from the
    ``incoming_arcs`` / ``outgoing_arcs`` lists of its two endpoints.
    Use :meth:`build` to construct a net with these references linked.
    """

    places: list[Place] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)
    arcs: list[Arc] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        places: Iterable[Place],
        transitions: Iterable[Transition],
        arcs: Iterable[Arc],
    ) -> PetriNet:
        """Create a net from unlinked elements and validate its arcs."""
        net = cls(
            places=[
                Place(id=p.id, marking=p.marking, issue_status=p.issue_status)
                for p in places
            ],
            transitions=[
                Transition(id=t.id, label=t.label, issue_status=t.issue_status)
                for t in transitions
            ],
        )
        for arc in arcs:
            net.add_arc(Arc(arc.source, arc.target, arc.weight))
        return net

    # ----- lookups ---------------------------------------------------------

    def place_by_id(self, place_id: str) -> Place | None:
        return next((p for p in self.places if p.id == place_id), None)

    def transition_by_id(self, transition_id: str) -> Transition | None:
        return next((t for t in self.transitions if t.id == transition_id), None)

    def transitions_by_label(self) -> dict[str, Transition]:
        """Map each label to a transition; of duplicated labels the last wins."""
        return {t.label: t for t in self.transitions}

    def id_to_label(self) -> dict[str, str]:
        return {t.id: t.label for t in self.transitions}

    def labels(self) -> list[str]:
        """Unique transition labels in net order."""
        return list(dict.fromkeys(t.label for t in self.transitions))

    # ----- mutation (only ever applied to private copies) ------------------

    def add_arc(self, arc: Arc) -> bool:
        """Link *arc* into the net.  Returns ``False`` for a duplicate.

        Raises ``StructuralInputError`` when an endpoint does not exist
        or both endpoints are of the same kind.
        """
        if arc.weight < 1:
            raise StructuralInputError(
                f"Arc {arc.source} → {arc.target} has non-positive weight {arc.weight}"
            )
        source_place = self.place_by_id(arc.source)
        target_place = self.place_by_id(arc.target)
        source_transition = self.transition_by_id(arc.source)
        target_transition = self.transition_by_id(arc.target)

        if source_place is not None and target_transition is not None:
            source, target = source_place, target_transition
        elif source_transition is not None and target_place is not None:
            source, target = source_transition, target_place
        else:
            raise StructuralInputError(
                f"An arc between {arc.source} and {arc.target} is invalid"
            )

        if any(a.source == arc.source and a.target == arc.target for a in self.arcs):
            return False

        self.arcs.append(arc)
        source.outgoing_arcs.append(arc)
        target.incoming_arcs.append(arc)
        return True

    def deep_copy(self) -> PetriNet:
        """Return an independent copy (explicit value construction)."""
        return PetriNet.build(self.places, self.transitions, self.arcs)


# ---------------------------------------------------------------------------
# Partial orders
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class EventItem:
    """One event of a partial order.

    ``local_marking`` holds one token count per net place and is only
    populated by the replayer while it fires the order.
    """

    id: str
    label: str
    next_events: list[str] = field(default_factory=list)
    previous_events: list[str] = field(default_factory=list)
    local_marking: Optional[np.ndarray] = None


@dataclass(slots=True)
class PartialOrder:
    """A partially ordered trace  (E, ≺, λ)."""

    events: list[EventItem] = field(default_factory=list)
    arcs: list[Arc] = field(default_factory=list)
    initial_events: list[str] = field(default_factory=list)
    final_events: list[str] = field(default_factory=list)

    @classmethod
    def sequence(cls, labels: Iterable[str]) -> PartialOrder:
        """Build a totally ordered trace from a label sequence."""
        order = cls()
        last: str | None = None
        for label in labels:
            event_id = order.add_event(label, label)
            if last is not None:
                order.add_arc(last, event_id)
            last = event_id
        order.determine_initial_and_final_events()
        return order

    def event_map(self) -> dict[str, EventItem]:
        return {e.id: e for e in self.events}

    def labels(self) -> list[str]:
        return [e.label for e in self.events]

    def add_event(self, event_id: str, label: str) -> str:
        """Append an event and return its id, made unique with ``_`` suffixes."""
        existing = {e.id for e in self.events}
        while event_id in existing:
            event_id += "_"
        self.events.append(EventItem(id=event_id, label=label))
        return event_id

    def add_arc(self, source: str, target: str) -> bool:
        """Add  source ≺ target.  Returns ``False`` for a duplicate."""
        events = self.event_map()
        if source not in events or target not in events:
            raise StructuralInputError(
                f"An arc between events {source} and {target} is invalid"
            )
        if any(a.source == source and a.target == target for a in self.arcs):
            return False
        self.arcs.append(Arc(source, target, 1))
        events[source].next_events.append(target)
        events[target].previous_events.append(source)
        return True

    def determine_initial_and_final_events(self) -> None:
        self.initial_events = [e.id for e in self.events if not e.previous_events]
        self.final_events = [e.id for e in self.events if not e.next_events]

    def deep_copy(self) -> PartialOrder:
        copy = PartialOrder(
            events=[
                EventItem(
                    id=e.id,
                    label=e.label,
                    next_events=list(e.next_events),
                    previous_events=list(e.previous_events),
                )
                for e in self.events
            ],
            arcs=[Arc(a.source, a.target, a.weight) for a in self.arcs],
        )
        copy.determine_initial_and_final_events()
        return copy


# ---------------------------------------------------------------------------
# Wrong continuations
# ---------------------------------------------------------------------------

class ContinuationType(Enum):
    UNKNOWN = "unknown"
    REPAIRABLE = "repairable"
    NOT_REPAIRABLE = "not repairable"


@dataclass(slots=True)
class WrongContinuation:
    """A label sequence the net permits but the log never shows.

    Attributes:
        id:                        Stable identifier (``wc1``, ``wc2``, …).
        continuation:              The label sequence.
        first_invalid_transition:  Id of the transition at which the
                                   sequence leaves the observed prefixes.
        divergence_index:          Position of that transition in
                                   ``continuation``.
        type:                      Classification after repair synthesis.
    """

    id: str
    continuation: tuple[str, ...]
    first_invalid_transition: str
    divergence_index: int
    type: ContinuationType = ContinuationType.UNKNOWN

    @property
    def text(self) -> str:
        return ",".join(self.continuation)

    def deep_copy(self) -> WrongContinuation:
        return WrongContinuation(
            id=self.id,
            continuation=tuple(self.continuation),
            first_invalid_transition=self.first_invalid_transition,
            divergence_index=self.divergence_index,
            type=self.type,
        )
