"""
Plain-text formats for nets (``.type pn``) and logs (``.type log``).

Net file::

    .type pn
    .transitions
    t1 a
    .places
    p0 1
    .arcs
    p0 t1
    t1 p1 2

Log file (columns are declared under ``.attributes``)::

    .type log
    .attributes
    case-id
    concept:name
    event-id
    follows[]
    .events
    1 a e1 []
    1 b e2 [e1]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from region_repair.models import Arc, PartialOrder, PetriNet, Place, Transition

logger = logging.getLogger(__name__)

NET_TYPE = ".type pn"
LOG_TYPE = ".type log"
TRANSITIONS = ".transitions"
PLACES = ".places"
ARCS = ".arcs"
ATTRIBUTES = ".attributes"
EVENTS = ".events"

CASE_ID = "case-id"
CONCEPT_NAME = "concept:name"
EVENT_ID = "event-id"
FOLLOWS = "follows[]"


class ParseError(ValueError):
    """Raised when text input does not follow the expected layout."""


class _Section(Enum):
    TYPE = "type"
    TRANSITIONS = TRANSITIONS
    PLACES = PLACES
    ARCS = ARCS


def _lines(content: str) -> list[str]:
    return [line.strip() for line in content.splitlines() if line.strip()]


# ═══════════════════════════════════════════════════════════════════════════
# Petri nets
# ═══════════════════════════════════════════════════════════════════════════

_NET_SECTIONS = {
    TRANSITIONS: _Section.TRANSITIONS,
    PLACES: _Section.PLACES,
    ARCS: _Section.ARCS,
}


def parse_petri_net(content: str) -> PetriNet:
    """Parse a ``.type pn`` document.

    Duplicate places, transitions and arcs are ignored with a warning.
    An arc with an unknown endpoint raises ``StructuralInputError``.
    """
    lines = _lines(content)
    if not lines or lines[0] != NET_TYPE:
        raise ParseError(f"The type of the file with the net has to be '{NET_TYPE}'")

    places: dict[str, Place] = {}
    transitions: dict[str, Transition] = {}
    arcs: list[Arc] = []
    section = _Section.TYPE

    for line in lines[1:]:
        if line in _NET_SECTIONS:
            section = _NET_SECTIONS[line]
            continue

        parts = line.split()
        match section:
            case _Section.TRANSITIONS:
                transition_id = parts[0]
                label = " ".join(parts[1:]) or transition_id
                if transition_id in transitions:
                    logger.warning("Duplicate transition %s ignored", transition_id)
                    continue
                transitions[transition_id] = Transition(id=transition_id, label=label)

            case _Section.PLACES:
                marking = int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else 0
                if parts[0] in places:
                    logger.warning("Duplicate place %s ignored", parts[0])
                    continue
                places[parts[0]] = Place(id=parts[0], marking=marking)

            case _Section.ARCS:
                if len(parts) < 2 or (len(parts) > 2 and not parts[2].isdigit()):
                    logger.warning("Invalid arc line '%s' ignored", line)
                    continue
                weight = int(parts[2]) if len(parts) > 2 else 1
                arcs.append(Arc(parts[0], parts[1], weight or 1))

            case _:
                raise ParseError(f"The file contains invalid parts: '{line}'")

    if not transitions and not arcs:
        raise ParseError("Petri net does not contain transitions and arcs")

    net = PetriNet.build(places.values(), transitions.values(), [])
    for arc in arcs:
        if not net.add_arc(arc):
            logger.warning("Duplicate arc %s → %s ignored", arc.source, arc.target)
    return net


def serialize_petri_net(net: PetriNet) -> str:
    lines = [NET_TYPE, TRANSITIONS]
    lines += [f"{t.id} {t.label}" for t in net.transitions]
    lines.append(PLACES)
    lines += [f"{p.id} {p.marking}" for p in net.places]
    lines.append(ARCS)
    lines += [
        f"{a.source} {a.target}" if a.weight == 1 else f"{a.source} {a.target} {a.weight}"
        for a in net.arcs
    ]
    return "\n".join(lines) + "\n"


# ═══════════════════════════════════════════════════════════════════════════
# Logs
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(slots=True)
class _CaseBuilder:
    """Collects the events of one case until the case id changes."""

    order: PartialOrder = field(default_factory=PartialOrder)
    pending: list[tuple[str, str]] = field(default_factory=list)
    last_event: str | None = None

    def finish(self) -> PartialOrder:
        for source, target in self.pending:
            if not self.order.add_arc(source, target):
                logger.warning("Duplicate arc %s → %s ignored", source, target)
        self.order.determine_initial_and_final_events()
        return self.order


def _follows(column: str) -> list[str] | None:
    if "[" not in column or "]" not in column:
        return None
    inner = column.replace("[", "").replace("]", "")
    return [item.strip() for item in inner.split(",") if item.strip()]


def parse_partial_orders(content: str) -> list[PartialOrder]:
    """Parse a ``.type log`` document into one partial order per case.

    Events listing predecessors in a ``follows[]`` column are ordered
    after exactly those events; all other events follow the previous
    event of their case.
    """
    lines = _lines(content)
    if not lines or lines[0] != LOG_TYPE:
        raise ParseError(f"The type of the file with the log has to be '{LOG_TYPE}'")
    if len(lines) < 2 or lines[1] != ATTRIBUTES:
        raise ParseError("The log has to declare its '.attributes'")

    columns = {CASE_ID: 0, CONCEPT_NAME: 1}
    position = 0
    index = 2
    while index < len(lines) and lines[index] != EVENTS:
        if lines[index] in (CASE_ID, CONCEPT_NAME, EVENT_ID, FOLLOWS):
            columns[lines[index]] = position
        position += 1
        index += 1
    if index == len(lines):
        raise ParseError("The log does not contain an '.events' section")
    width = max(position, 2)

    orders: list[PartialOrder] = []
    case: _CaseBuilder | None = None
    case_id: str | None = None

    for line in lines[index + 1:]:
        parts = line.split(maxsplit=width - 1)
        if len(parts) < 2:
            logger.warning("Unparsable event line '%s' ignored", line)
            continue
        if max(columns[CASE_ID], columns[CONCEPT_NAME]) >= len(parts):
            logger.warning("Unparsable event line '%s' ignored", line)
            continue

        label = parts[columns[CONCEPT_NAME]]
        event_column = columns.get(EVENT_ID)
        event_id = parts[event_column] if event_column is not None and event_column < len(parts) else label
        follows_column = columns.get(FOLLOWS)
        follows = (
            _follows(parts[follows_column])
            if follows_column is not None and follows_column < len(parts)
            else None
        )

        if case is None or parts[columns[CASE_ID]] != case_id:
            if case is not None:
                orders.append(case.finish())
            case = _CaseBuilder()
            case_id = parts[columns[CASE_ID]]

        event_id = case.order.add_event(event_id, label)
        if follows is not None:
            case.pending += [(predecessor, event_id) for predecessor in follows]
        elif case.last_event is not None:
            case.pending.append((case.last_event, event_id))
        case.last_event = event_id

    if case is not None:
        orders.append(case.finish())
    if not orders:
        raise ParseError("No parsable traces were found in the log")
    return orders


def serialize_partial_orders(partial_orders: list[PartialOrder]) -> str:
    lines = [LOG_TYPE, ATTRIBUTES, CASE_ID, CONCEPT_NAME, EVENT_ID, FOLLOWS, EVENTS]
    for case_number, order in enumerate(partial_orders, start=1):
        for event in order.events:
            follows = ",".join(event.previous_events)
            lines.append(f"{case_number} {event.label} {event.id} [{follows}]")
    return "\n".join(lines) + "\n"
