"""Tests for turning raw ILP assignments into repair proposals."""

from __future__ import annotations

import pytest

from region_repair.models import ContinuationType, WrongContinuation
from region_repair.region_ilp import ProblemSolution, SolutionVariable, VariableType
from region_repair.repair_model import (
    AddPlaceRepair,
    AddTraceRepair,
    ArcDefinition,
    MarkingRepair,
    ModifyPlaceRepair,
    PlaceDefinition,
    RemovePlaceRepair,
    ReplacePlaceRepair,
    SolutionType,
    to_dict,
)
from region_repair.solutions import (
    IncomingArcPart,
    IncreaseMarkingPart,
    OutgoingArcPart,
    decode_assignment,
    deduplicate,
    handle_solutions,
    parse_solution,
    place_definition,
    split_place,
)

VARIABLES = {
    "m0": SolutionVariable(VariableType.INITIAL_MARKING),
    "in_a": SolutionVariable(VariableType.INCOMING_TRANSITION_WEIGHT, "a"),
    "in_b": SolutionVariable(VariableType.INCOMING_TRANSITION_WEIGHT, "b"),
    "out_b": SolutionVariable(VariableType.OUTGOING_TRANSITION_WEIGHT, "b"),
    "out_c": SolutionVariable(VariableType.OUTGOING_TRANSITION_WEIGHT, "c"),
    "out_d": SolutionVariable(VariableType.OUTGOING_TRANSITION_WEIGHT, "d"),
}

ID_TO_LABEL = {"ta": "a", "tb": "b", "tc": "c"}


def _parse(groups: list[ProblemSolution], place=None, continuations=None):
    parsable = handle_solutions(groups, VARIABLES.get)
    return parse_solution(parsable, place, ID_TO_LABEL, continuations)


class TestDecoding:
    def test_marking_then_sorted_arcs(self) -> None:
        parts = decode_assignment(
            {"out_c": 1, "in_b": 2, "0_Arc_a_to_b": 4, "in_a": 1, "m0": 3, "out_b": 0},
            VARIABLES.get,
        )
        assert parts == [
            IncreaseMarkingPart(3),
            IncomingArcPart("a", 1),
            IncomingArcPart("b", 2),
            OutgoingArcPart("c", 1),
        ]

    def test_empty_and_duplicate_sub_solutions_dropped(self) -> None:
        group = ProblemSolution(
            SolutionType.MULTIPLE_PLACES,
            [{"in_a": 1, "out_c": 1}, {"in_a": 0}, {"in_a": 1, "out_c": 1}],
        )
        (parsed,) = handle_solutions([group], VARIABLES.get)
        assert parsed.parts == [[IncomingArcPart("a", 1), OutgoingArcPart("c", 1)]]

    def test_identical_groups_dropped(self) -> None:
        first = ProblemSolution(SolutionType.CHANGE_INCOMING, [{"in_a": 1}], 2)
        second = ProblemSolution(SolutionType.MULTIPLE_PLACES, [{"in_a": 1}], 2)
        assert [p.type for p in handle_solutions([first, second], VARIABLES.get)] == [
            SolutionType.CHANGE_INCOMING
        ]

    def test_empty_add_place_kept(self) -> None:
        wc = WrongContinuation("wc1", ("a", "b"), "tb", 1)
        group = ProblemSolution(SolutionType.ADD_PLACE, [], continuation=wc)
        (parsed,) = handle_solutions([group], VARIABLES.get)
        assert parsed.parts == []
        assert parsed.continuation is wc


class TestPlaceDefinition:
    def test_two_markings_rejected(self) -> None:
        with pytest.raises(ValueError):
            place_definition([IncreaseMarkingPart(1), IncreaseMarkingPart(2)])

    def test_split_uniform_incoming(self) -> None:
        definition = PlaceDefinition(
            incoming=[ArcDefinition("a", 1), ArcDefinition("a", 1)],
            outgoing=[ArcDefinition("b", 1), ArcDefinition("c", 1), ArcDefinition("d", 1)],
        )
        places = split_place(definition)
        assert [(p.incoming, p.outgoing) for p in places] == [
            ([ArcDefinition("a", 1)], [ArcDefinition("b", 1)]),
            ([ArcDefinition("a", 1)], [ArcDefinition("c", 1), ArcDefinition("d", 1)]),
        ]

    def test_no_split_for_mixed_arcs(self) -> None:
        definition = PlaceDefinition(
            incoming=[ArcDefinition("a", 1), ArcDefinition("b", 1)],
            outgoing=[ArcDefinition("c", 1)],
        )
        assert split_place(definition) == [definition]


class TestParseSolution:
    def test_fitness_repairs_ranked(self, skip_net) -> None:
        groups = [
            ProblemSolution(
                SolutionType.MULTIPLE_PLACES,
                [{"in_a": 1, "in_b": 1, "out_b": 1, "out_c": 1}], 3,
            ),
            ProblemSolution(SolutionType.CHANGE_MARKING, [{"m0": 1, "in_b": 1, "out_c": 1}], 7),
            ProblemSolution(SolutionType.CHANGE_INCOMING, [{"in_a": 1, "in_b": 1, "out_c": 1}], 5),
        ]
        repairs = _parse(groups, skip_net.place_by_id("p2"))

        assert [type(r) for r in repairs] == [ModifyPlaceRepair, ModifyPlaceRepair, MarkingRepair]
        assert [r.region_size for r in repairs] == [3, 5, 7]
        assert repairs[0].incoming == [ArcDefinition("a", 1), ArcDefinition("b", 1)]
        assert repairs[0].outgoing == [ArcDefinition("b", 1), ArcDefinition("c", 1)]
        assert repairs[0].repair_type is SolutionType.MULTIPLE_PLACES
        assert repairs[2].new_marking == 1

    def test_marking_only(self) -> None:
        (repair,) = _parse([ProblemSolution(SolutionType.CHANGE_MARKING, [{"m0": 2}], 1)])
        assert repair == MarkingRepair(2, 1, SolutionType.CHANGE_MARKING)

    def test_unchanged_arcs_become_marking(self, skip_net) -> None:
        (repair,) = _parse(
            [ProblemSolution(SolutionType.CHANGE_MARKING, [{"in_b": 1, "out_c": 1}], 1)],
            skip_net.place_by_id("p2"),
        )
        assert repair == MarkingRepair(0, 1, SolutionType.CHANGE_MARKING)

    def test_several_places_replace(self) -> None:
        (repair,) = _parse([
            ProblemSolution(
                SolutionType.MULTIPLE_PLACES,
                [{"in_a": 1, "out_b": 1}, {"in_b": 1, "out_c": 1}],
                2,
            )
        ])
        assert isinstance(repair, ReplacePlaceRepair)
        assert [(p.incoming, p.outgoing) for p in repair.places] == [
            ([ArcDefinition("a", 1)], [ArcDefinition("b", 1)]),
            ([ArcDefinition("b", 1)], [ArcDefinition("c", 1)]),
        ]

    def test_add_place(self) -> None:
        (repair,) = _parse([ProblemSolution(SolutionType.ADD_PLACE, [{"in_a": 1, "out_b": 1}], 3)])
        assert repair == AddPlaceRepair([ArcDefinition("a", 1)], [ArcDefinition("b", 1)], None, 3)

    def test_remove_place(self) -> None:
        (repair,) = _parse([ProblemSolution(SolutionType.REMOVE_PLACE, [{"in_a": 1, "out_b": 1}], 1)])
        assert repair == RemovePlaceRepair(region_size=1)

    def test_continuation_fallbacks(self) -> None:
        repairable = WrongContinuation("wc1", ("a", "b", "b"), "tb", 2, ContinuationType.REPAIRABLE)
        blocked = WrongContinuation("wc2", ("a", "c"), "tc", 1, ContinuationType.NOT_REPAIRABLE)
        groups = [
            ProblemSolution(SolutionType.ADD_PLACE, [{"in_a": 1, "out_b": 1}], 3, repairable),
            ProblemSolution(SolutionType.ADD_PLACE, [], 0, blocked),
        ]
        repairs = _parse(groups, continuations=[repairable, blocked])
        assert repairs == [
            AddTraceRepair(("a", "c"), wrong_continuation_not_repairable=True),
            AddPlaceRepair([ArcDefinition("a", 1)], [ArcDefinition("b", 1)], None, 3),
            AddTraceRepair(("a", "b", "b")),
        ]

    def test_serialisation_tags(self) -> None:
        data = to_dict(ModifyPlaceRepair([ArcDefinition("a", 1)], [], None, 3, SolutionType.CHANGE_INCOMING))
        assert data == {
            "type": "modify-place",
            "incoming": [{"transition_label": "a", "weight": 1}],
            "outgoing": [],
            "new_marking": None,
            "region_size": 3,
            "repair_type": "changeIncoming",
        }


class TestDeduplicate:
    def test_exact_duplicates_removed(self) -> None:
        first = ModifyPlaceRepair([ArcDefinition("a", 1)], [ArcDefinition("c", 1)], None, 3)
        copy = ModifyPlaceRepair([ArcDefinition("a", 1)], [ArcDefinition("c", 1)], None, 3)
        assert deduplicate([first, copy]) == [first]

    def test_region_size_variants_kept(self) -> None:
        small = MarkingRepair(1, 3, SolutionType.CHANGE_MARKING)
        large = MarkingRepair(1, 5, SolutionType.CHANGE_MARKING)
        assert deduplicate([small, large, small]) == [small, large]

    def test_idempotent(self) -> None:
        repairs = [
            MarkingRepair(1, 3, SolutionType.CHANGE_MARKING),
            MarkingRepair(1, 3, SolutionType.CHANGE_MARKING),
            AddTraceRepair(("a", "c")),
            AddTraceRepair(("a", "c")),
            RemovePlaceRepair(region_size=1),
        ]
        once = deduplicate(repairs)
        assert deduplicate(once) == once
        assert len(once) == 3
