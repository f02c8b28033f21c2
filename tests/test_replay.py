"""Tests for token-flow replay and the implicit-place heuristic."""

from __future__ import annotations

import pytest

from region_repair.examples import load_example
from region_repair.models import (
    FINAL_EVENT_ID,
    INITIAL_EVENT_ID,
    PartialOrder,
    StructuralInputError,
)
from region_repair.replay import (
    extend_partial_order,
    find_implicit_places,
    invalid_place_counts,
    linearize,
    replay,
)
from tests.helpers import build_net, build_order, chain_net


# ═══════════════════════════════════════════════════════════════════════════
# Extension and linearisation
# ═══════════════════════════════════════════════════════════════════════════


class TestExtension:
    def test_synthetic_events_frame_the_order(self, and_order) -> None:
        extended = extend_partial_order(and_order)
        events = extended.event_map()
        assert extended.initial_events == [INITIAL_EVENT_ID]
        assert extended.final_events == [FINAL_EVENT_ID]
        assert events[INITIAL_EVENT_ID].next_events == ["e1"]
        assert events[FINAL_EVENT_ID].previous_events == ["e4"]

    def test_input_untouched(self, and_order) -> None:
        extend_partial_order(and_order)
        assert len(and_order.events) == 4

    def test_reserved_id_rejected(self) -> None:
        order = PartialOrder.sequence(["a"])
        order.events[0].id = INITIAL_EVENT_ID
        with pytest.raises(StructuralInputError):
            extend_partial_order(order)


class TestLinearize:
    def test_predecessors_first(self, and_order) -> None:
        ordered = [e.id for e in linearize(extend_partial_order(and_order))]
        assert ordered[0] == INITIAL_EVENT_ID
        assert ordered[-1] == FINAL_EVENT_ID
        assert ordered.index("e1") < ordered.index("e2") < ordered.index("e4")
        assert ordered.index("e3") < ordered.index("e4")

    def test_cycle_rejected(self) -> None:
        order = build_order({"x": "a", "y": "b", "z": "c"}, [("x", "y"), ("y", "z"), ("z", "y")])
        with pytest.raises(StructuralInputError):
            linearize(order)


# ═══════════════════════════════════════════════════════════════════════════
# Replay
# ═══════════════════════════════════════════════════════════════════════════


class TestReplay:
    def test_fitting_trace(self, skip_net) -> None:
        assert replay(skip_net, PartialOrder.sequence("abc")).invalid_places == set()

    def test_skipped_transition(self, skip_net) -> None:
        assert replay(skip_net, PartialOrder.sequence("ac")).invalid_places == {"p2"}

    def test_two_skipped_transitions(self) -> None:
        result = replay(chain_net(), PartialOrder.sequence("abcdfh"))
        assert result.invalid_places == {"p5", "p7"}

    def test_concurrent_branches_fit(self, and_net, and_order) -> None:
        assert replay(and_net, and_order).invalid_places == set()

    def test_unknown_labels_are_ignored(self, skip_net) -> None:
        assert replay(skip_net, PartialOrder.sequence("axbc")).invalid_places == set()

    def test_markings_recorded_per_firing(self, skip_net) -> None:
        result = replay(skip_net, PartialOrder.sequence("abc"))
        assert len(result.markings) == 3
        assert result.markings[0].tolist() == [1, 0, 0]
        assert result.markings[2].tolist() == [0, 0, 1]

    def test_inputs_untouched(self, skip_net) -> None:
        order = PartialOrder.sequence("ac")
        replay(skip_net, order)
        assert all(e.local_marking is None for e in order.events)
        assert skip_net.place_by_id("p2").marking == 0

    def test_counts_per_trace(self, skip_net, skip_log) -> None:
        log = skip_log + [PartialOrder.sequence("ac")]
        assert invalid_place_counts(skip_net, log) == {"p2": 2}

    def test_duplicated_label_fires_last_transition(self) -> None:
        net = build_net(
            [("p0", 0), ("p1", 1)],
            [("t1", "a"), ("t2", "a")],
            [("p0", "t1"), ("p1", "t2")],
        )
        assert replay(net, PartialOrder.sequence("a")).invalid_places == set()


class TestFlowRescue:
    """Place p links a to c; a forks into y and c, x also precedes c."""

    @staticmethod
    def _net(weight: int):
        return build_net(
            [("p", 0)],
            [("tx", "x"), ("ta", "a"), ("ty", "y"), ("tc", "c")],
            [("ta", "p"), ("p", "tc", weight)],
        )

    @staticmethod
    def _order():
        return build_order(
            {"x": "x", "a": "a", "y": "y", "c": "c"},
            [("a", "y"), ("x", "c"), ("a", "c")],
        )

    def test_token_routed_along_fork_is_accepted(self) -> None:
        assert replay(self._net(1), self._order()).invalid_places == set()

    def test_insufficient_flow_stays_invalid(self) -> None:
        assert replay(self._net(2), self._order()).invalid_places == {"p"}

    def test_backward_forks_are_not_flow_checked(self, monkeypatch) -> None:
        checked: list[str] = []

        def record(place, events, transitions):
            checked.append(place.id)
            return True

        monkeypatch.setattr("region_repair.replay.is_feasible", record)
        net = build_net(
            [("p", 0)],
            [("ta", "a"), ("tc", "c")],
            [("ta", "p"), ("p", "tc")],
        )
        order = build_order(
            {"x": "x", "y": "y", "c": "c", "a1": "a", "a2": "a"},
            [("x", "c"), ("y", "c"), ("c", "a1"), ("c", "a2")],
        )
        assert replay(net, order).invalid_places == {"p"}
        assert checked == []


# ═══════════════════════════════════════════════════════════════════════════
# Implicit places
# ═══════════════════════════════════════════════════════════════════════════


class TestImplicitPlaces:
    def test_duplicate_place(self, duplicate_place_net) -> None:
        log = [PartialOrder.sequence("ab"), PartialOrder.sequence("ab")]
        assert find_implicit_places(duplicate_place_net, log) == {"p2": 2}

    def test_sequence_has_none(self, skip_net) -> None:
        assert find_implicit_places(skip_net, [PartialOrder.sequence("abc")]) == {}

    def test_empty_log(self, duplicate_place_net) -> None:
        assert find_implicit_places(duplicate_place_net, []) == {}

    def test_surplus_place_is_implicit(self) -> None:
        net = build_net(
            [("p0", 1), ("p1", 0), ("p2", 5)],
            [("ta", "a"), ("tb", "b")],
            [("p0", "ta"), ("ta", "p1"), ("ta", "p2"), ("p1", "tb"), ("p2", "tb")],
        )
        assert find_implicit_places(net, [PartialOrder.sequence("ab")]) == {"p2": 1}

    def test_and_join_inputs_are_needed(self, and_net, and_order) -> None:
        assert find_implicit_places(and_net, [and_order]) == {}

    @pytest.mark.parametrize("name", ["coffee", "travel"])
    def test_bundled_examples_have_none(self, name) -> None:
        net, log = load_example(name)
        assert find_implicit_places(net, log) == {}
