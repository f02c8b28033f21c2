"""
Applying repair proposals.

Every command returns a new net (or log); the inputs are never touched.
Transitions required by a repair but absent from the net are created
with their label as id, suffixed with ``_`` until unique.
"""

from __future__ import annotations

import logging
from typing import Iterable

from region_repair.models import Arc, PartialOrder, PetriNet, Place, Transition
from region_repair.repair_model import (
    AddPlaceRepair,
    AddTraceRepair,
    ArcDefinition,
    AutoRepair,
    MarkingRepair,
    ModifyPlaceRepair,
    PlaceDefinition,
    RemovePlaceRepair,
    ReplacePlaceRepair,
)

logger = logging.getLogger(__name__)


def _required_labels(repair: AutoRepair) -> list[str]:
    match repair:
        case ModifyPlaceRepair(incoming=incoming, outgoing=outgoing) | AddPlaceRepair(
            incoming=incoming, outgoing=outgoing
        ):
            arcs = [*incoming, *outgoing]
        case ReplacePlaceRepair(places=places):
            arcs = [arc for place in places for arc in (*place.incoming, *place.outgoing)]
        case _:
            arcs = []
    return list(dict.fromkeys(arc.transition_label for arc in arcs))


def _unique(candidate: str, taken: set[str]) -> str:
    while candidate in taken:
        candidate += "_"
    return candidate


def _label_ids(net: PetriNet, labels: Iterable[str]) -> tuple[dict[str, str], list[Transition]]:
    """Resolve labels to transition ids, creating transitions where needed."""
    by_label = {label: t.id for label, t in net.transitions_by_label().items()}
    taken = {t.id for t in net.transitions} | {p.id for p in net.places}
    created: list[Transition] = []
    for label in labels:
        if label in by_label:
            continue
        transition_id = _unique(label, taken)
        taken.add(transition_id)
        by_label[label] = transition_id
        created.append(Transition(id=transition_id, label=label))
        logger.debug("Creating transition %s for label %s", transition_id, label)
    return by_label, created


def _arcs(
    place_id: str,
    incoming: list[ArcDefinition],
    outgoing: list[ArcDefinition],
    ids: dict[str, str],
) -> list[Arc]:
    return [
        *(Arc(ids[arc.transition_label], place_id, arc.weight) for arc in incoming),
        *(Arc(place_id, ids[arc.transition_label], arc.weight) for arc in outgoing),
    ]


def _rebuild(
    net: PetriNet,
    *,
    dropped: str | None = None,
    places: list[Place] | None = None,
    transitions: list[Transition] | None = None,
    arcs: list[Arc] | None = None,
) -> PetriNet:
    kept_places = [p for p in net.places if p.id != dropped]
    kept_arcs = [a for a in net.arcs if dropped not in (a.source, a.target)]
    return PetriNet.build(
        [*kept_places, *(places or [])],
        [*net.transitions, *(transitions or [])],
        [*kept_arcs, *(arcs or [])],
    )


def apply_place_repair(net: PetriNet, place_id: str, repair: AutoRepair) -> PetriNet:
    """Return a copy of *net* with *repair* applied to place *place_id*."""
    place = net.place_by_id(place_id)
    if place is None:
        raise KeyError(f"Place {place_id} not found")

    ids, created = _label_ids(net, _required_labels(repair))

    match repair:
        case MarkingRepair(new_marking=marking):
            repaired = net.deep_copy()
            repaired.place_by_id(place_id).marking = marking
            return repaired

        case ModifyPlaceRepair(incoming=incoming, outgoing=outgoing, new_marking=marking):
            replacement = Place(
                id=place_id, marking=place.marking if marking is None else marking
            )
            return _rebuild(
                net,
                dropped=place_id,
                places=[replacement],
                transitions=created,
                arcs=_arcs(place_id, incoming, outgoing, ids),
            )

        case AddPlaceRepair(incoming=incoming, outgoing=outgoing, new_marking=marking):
            new_id = fresh_place_id(net)
            return _rebuild(
                net,
                places=[Place(id=new_id, marking=marking or 0)],
                transitions=created,
                arcs=_arcs(new_id, incoming, outgoing, ids),
            )

        case ReplacePlaceRepair(places=definitions):
            new_places, new_arcs = _split(place_id, definitions, ids)
            return _rebuild(
                net,
                dropped=place_id,
                places=new_places,
                transitions=created,
                arcs=new_arcs,
            )

        case RemovePlaceRepair():
            return _rebuild(net, dropped=place_id)

        case AddTraceRepair():
            return net.deep_copy()

    raise TypeError(f"Unsupported repair {repair!r}")


def _split(
    place_id: str,
    definitions: list[PlaceDefinition],
    ids: dict[str, str],
) -> tuple[list[Place], list[Arc]]:
    places: list[Place] = []
    arcs: list[Arc] = []
    for index, definition in enumerate(definitions):
        new_id = f"{place_id}_{index}"
        places.append(Place(id=new_id, marking=definition.new_marking or 0))
        arcs += _arcs(new_id, definition.incoming, definition.outgoing, ids)
    return places, arcs


def fresh_place_id(net: PetriNet) -> str:
    return _unique(f"p{len(net.places)}", {p.id for p in net.places} | {t.id for t in net.transitions})


def apply_transition_repair(net: PetriNet, label: str, repair: AutoRepair) -> PetriNet:
    """Add a transition for the missing *label* and the place of *repair*."""
    _, created = _label_ids(net, [label])
    place_id = fresh_place_id(net)
    extended = _rebuild(net, places=[Place(id=place_id)], transitions=created)
    return apply_place_repair(extended, place_id, repair)


def add_trace(partial_orders: list[PartialOrder], labels: Iterable[str]) -> list[PartialOrder]:
    """Return the log extended by one sequential case over *labels*."""
    return [*(order.deep_copy() for order in partial_orders), PartialOrder.sequence(labels)]
