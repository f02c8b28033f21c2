"""
Interpretation of raw ILP assignments as repair proposals.

  1. ``handle_solutions`` decodes every assignment into *parts*
     (new marking, incoming arc, outgoing arc) through the builder's
     inverse variable map and drops empty and duplicate sub-solutions.
  2. ``parse_solution`` turns the parts of each specialisation into
     ``AutoRepair`` variants:
       – several sub-solutions       → ``replace-place``
       – only a marking              → ``marking``
       – arcs equal to the existing  → ``marking`` (possibly unchanged)
       – uniform arcs on one side    → one place per pairing
       – otherwise                   → ``modify-place``
     ``addPlace`` sub-solutions always become ``add-place`` and
     ``removePlace`` becomes ``remove-place``.
  3. Structurally identical repairs are removed and wrong-continuation
     fallbacks (``add-trace``) are appended.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from region_repair.models import ContinuationType, Place, WrongContinuation
from region_repair.region_ilp import ProblemSolution, SolutionVariable, VariableType
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
    SolutionType,
    to_dict,
)


@dataclass(frozen=True, slots=True)
class IncreaseMarkingPart:
    new_marking: int


@dataclass(frozen=True, slots=True)
class IncomingArcPart:
    transition_label: str
    weight: int


@dataclass(frozen=True, slots=True)
class OutgoingArcPart:
    transition_label: str
    weight: int


SolutionPart = Union[IncreaseMarkingPart, IncomingArcPart, OutgoingArcPart]


@dataclass(slots=True)
class ParsableSolution:
    """Decoded sub-solutions of one specialisation."""

    type: SolutionType
    parts: list[list[SolutionPart]] = field(default_factory=list)
    region_size: int = 0
    continuation: Optional[WrongContinuation] = None


# ═══════════════════════════════════════════════════════════════════════════
# 1.  Decoding
# ═══════════════════════════════════════════════════════════════════════════

def decode_assignment(
    variables: dict[str, int],
    decode: Callable[[str], SolutionVariable | None],
) -> list[SolutionPart]:
    """Parts of one assignment: marking first, then arcs sorted by label."""
    marking: list[SolutionPart] = []
    incoming: list[IncomingArcPart] = []
    outgoing: list[OutgoingArcPart] = []

    for name, value in variables.items():
        if value == 0:
            continue
        variable = decode(name)
        if variable is None:
            continue
        match variable.type:
            case VariableType.INITIAL_MARKING:
                marking = [IncreaseMarkingPart(value)]
            case VariableType.INCOMING_TRANSITION_WEIGHT:
                incoming.append(IncomingArcPart(variable.label, value))
            case VariableType.OUTGOING_TRANSITION_WEIGHT:
                outgoing.append(OutgoingArcPart(variable.label, value))

    return (
        marking
        + sorted(incoming, key=lambda part: part.transition_label)
        + sorted(outgoing, key=lambda part: part.transition_label)
    )


def handle_solutions(
    solutions: list[ProblemSolution],
    decode: Callable[[str], SolutionVariable | None],
) -> list[ParsableSolution]:
    """Decode raw solutions and drop empty or repeated sub-solutions.

    A specialisation whose sub-solutions repeat those of an earlier one
    is dropped entirely.  Empty ``addPlace`` results are kept because
    they mark a wrong continuation as not repairable.
    """
    result: list[ParsableSolution] = []
    for solution in solutions:
        parsed = ParsableSolution(
            type=solution.type,
            region_size=solution.region_size,
            continuation=solution.continuation,
        )
        for variables in solution.solutions:
            parts = decode_assignment(variables, decode)
            if parts and parts not in parsed.parts:
                parsed.parts.append(parts)

        if not parsed.parts and parsed.continuation is None:
            continue
        if parsed.parts and any(parsed.parts == other.parts for other in result):
            continue
        result.append(parsed)
    return result


# ═══════════════════════════════════════════════════════════════════════════
# 2.  Place definitions
# ═══════════════════════════════════════════════════════════════════════════

def place_definition(parts: list[SolutionPart]) -> PlaceDefinition:
    definition = PlaceDefinition()
    for part in parts:
        match part:
            case IncreaseMarkingPart(new_marking=marking):
                if definition.new_marking is not None:
                    raise ValueError("A solution cannot carry two markings")
                definition.new_marking = marking
            case IncomingArcPart(transition_label=label, weight=weight):
                definition.incoming.append(ArcDefinition(label, weight))
            case OutgoingArcPart(transition_label=label, weight=weight):
                definition.outgoing.append(ArcDefinition(label, weight))
    return definition


def merge_arcs(arcs: list[ArcDefinition]) -> list[ArcDefinition]:
    """Sum the weights of arcs to the same transition label."""
    weights: dict[str, int] = {}
    for arc in arcs:
        weights[arc.transition_label] = weights.get(arc.transition_label, 0) + arc.weight
    return [ArcDefinition(label, weight) for label, weight in weights.items()]


def merge_place(definition: PlaceDefinition) -> PlaceDefinition:
    return PlaceDefinition(
        incoming=merge_arcs(definition.incoming),
        outgoing=merge_arcs(definition.outgoing),
        new_marking=definition.new_marking,
    )


def split_place(definition: PlaceDefinition) -> list[PlaceDefinition]:
    """Split a place whose arcs on one side all lead to one label.

    With  n > 1  incoming arcs of the same label and at least  n
    outgoing arcs, the  k-th incoming arc is paired with the  k-th
    outgoing arc (the last place takes the remaining outgoing arcs);
    symmetrically for uniform outgoing arcs.
    """
    incoming, outgoing = definition.incoming, definition.outgoing

    def uniform(arcs: list[ArcDefinition]) -> bool:
        return len(arcs) > 1 and len({a.transition_label for a in arcs}) == 1

    if uniform(incoming) and len(outgoing) >= len(incoming):
        places = [
            PlaceDefinition([arc_in], [arc_out])
            for arc_in, arc_out in zip(incoming, outgoing)
        ]
        places[-1].outgoing.extend(outgoing[len(incoming):])
    elif uniform(outgoing) and len(incoming) >= len(outgoing):
        places = [
            PlaceDefinition([arc_in], [arc_out])
            for arc_in, arc_out in zip(incoming, outgoing)
        ]
        places[-1].incoming.extend(incoming[len(outgoing):])
    else:
        return [definition]

    places[0].new_marking = definition.new_marking
    return places


def _existing_arcs(
    place: Place,
    id_to_label: dict[str, str],
) -> tuple[list[ArcDefinition], list[ArcDefinition]]:
    incoming = merge_arcs([
        ArcDefinition(id_to_label[arc.source], arc.weight) for arc in place.incoming_arcs
    ])
    outgoing = merge_arcs([
        ArcDefinition(id_to_label[arc.target], arc.weight) for arc in place.outgoing_arcs
    ])
    return incoming, outgoing


def _same_arcs(first: list[ArcDefinition], second: list[ArcDefinition]) -> bool:
    return sorted((a.transition_label, a.weight) for a in first) == sorted(
        (a.transition_label, a.weight) for a in second
    )


# ═══════════════════════════════════════════════════════════════════════════
# 3.  AutoRepair construction
# ═══════════════════════════════════════════════════════════════════════════

def _single_place_repair(
    definition: PlaceDefinition,
    existing_place: Place | None,
    id_to_label: dict[str, str],
    solution: ParsableSolution,
) -> AutoRepair:
    if existing_place is not None:
        incoming, outgoing = _existing_arcs(existing_place, id_to_label)
        if _same_arcs(definition.incoming, incoming) and _same_arcs(definition.outgoing, outgoing):
            return MarkingRepair(
                new_marking=definition.new_marking or 0,
                region_size=solution.region_size,
                repair_type=solution.type,
            )
    return ModifyPlaceRepair(
        incoming=definition.incoming,
        outgoing=definition.outgoing,
        new_marking=definition.new_marking,
        region_size=solution.region_size,
        repair_type=solution.type,
    )


def _repairs_for(
    solution: ParsableSolution,
    existing_place: Place | None,
    id_to_label: dict[str, str],
) -> list[AutoRepair]:
    if not solution.parts:
        return []

    if solution.type is SolutionType.REMOVE_PLACE:
        return [RemovePlaceRepair(region_size=solution.region_size)]

    if solution.type is SolutionType.ADD_PLACE:
        repairs: list[AutoRepair] = []
        for parts in solution.parts:
            definition = merge_place(place_definition(parts))
            repairs.append(AddPlaceRepair(
                incoming=definition.incoming,
                outgoing=definition.outgoing,
                new_marking=definition.new_marking,
                region_size=solution.region_size,
            ))
        return repairs

    if len(solution.parts) > 1:
        return [ReplacePlaceRepair(
            places=[merge_place(place_definition(parts)) for parts in solution.parts],
            region_size=solution.region_size,
            repair_type=solution.type,
        )]

    definition = place_definition(solution.parts[0])
    if not definition.incoming and not definition.outgoing:
        return [MarkingRepair(
            new_marking=definition.new_marking or 0,
            region_size=solution.region_size,
            repair_type=solution.type,
        )]

    if definition.new_marking is not None:
        return [_single_place_repair(merge_place(definition), existing_place, id_to_label, solution)]

    places = [merge_place(p) for p in split_place(definition)]
    if len(places) == 1:
        return [_single_place_repair(places[0], existing_place, id_to_label, solution)]
    return [ReplacePlaceRepair(
        places=places,
        region_size=solution.region_size,
        repair_type=solution.type,
    )]


def fingerprint(repair: AutoRepair) -> str:
    return json.dumps(to_dict(repair), sort_keys=True)


def deduplicate(repairs: list[AutoRepair]) -> list[AutoRepair]:
    """Remove exact duplicates; repairs differing only in region size stay."""
    seen: set[str] = set()
    unique: list[AutoRepair] = []
    for repair in repairs:
        key = fingerprint(repair)
        if key not in seen:
            seen.add(key)
            unique.append(repair)
    return unique


def parse_solution(
    solutions: list[ParsableSolution],
    existing_place: Place | None,
    id_to_label: dict[str, str],
    wrong_continuations: list[WrongContinuation] | None = None,
) -> list[AutoRepair]:
    """Ranked repairs for one diagnosed issue.

    Repairs are parsed per diagnosed issue: the caller groups the wrong
    continuations by their first invalid transition and passes one
    group, so no invalid-transition map or issue index is needed here.

    Parameters
    ----------
    solutions : list[ParsableSolution]
        Output of :func:`handle_solutions`.
    existing_place : Place | None
        The place the repairs refer to (``None`` for new places).
    id_to_label : dict[str, str]
        Transition id → label map of the net.
    wrong_continuations : list[WrongContinuation] | None
        Classified continuations; each yields an ``add-trace``
        fallback.  Those classified *not repairable* are ranked first.
    """
    repairs: list[AutoRepair] = []
    for solution in solutions:
        repairs.extend(_repairs_for(solution, existing_place, id_to_label))
    repairs = sorted(deduplicate(repairs), key=lambda repair: repair.region_size)

    alerts: list[AutoRepair] = []
    fallbacks: list[AutoRepair] = []
    for continuation in wrong_continuations or []:
        if continuation.type is ContinuationType.NOT_REPAIRABLE:
            alerts.append(AddTraceRepair(
                continuation=continuation.continuation,
                wrong_continuation_not_repairable=True,
            ))
        else:
            fallbacks.append(AddTraceRepair(continuation=continuation.continuation))

    return deduplicate(alerts) + repairs + deduplicate(fallbacks)
