"""Tests for the push/relabel max-flow and the place feasibility check."""

from __future__ import annotations

import pytest

from region_repair.max_flow import MaxFlowPreflow, is_feasible
from region_repair.models import PartialOrder
from region_repair.replay import extend_partial_order
from tests.helpers import build_net


class TestMaxFlowPreflow:
    def test_textbook_network(self) -> None:
        # Cormen et al., Figure 26.1
        network = MaxFlowPreflow(6)
        for u, v, c in [
            (0, 1, 16), (0, 2, 13), (2, 1, 4), (1, 3, 12), (3, 2, 9),
            (2, 4, 14), (4, 3, 7), (3, 5, 20), (4, 5, 4),
        ]:
            network.set_capacity(u, v, c)
        assert network.max_flow(0, 5) == 23

    def test_unbounded_inner_edges(self) -> None:
        network = MaxFlowPreflow(4)
        network.set_capacity(0, 1, 3)
        network.set_unbounded(1, 2)
        network.set_capacity(2, 3, 5)
        assert network.max_flow(0, 3) == 3

    def test_disconnected_sink(self) -> None:
        network = MaxFlowPreflow(3)
        network.set_capacity(0, 1, 7)
        assert network.max_flow(0, 2) == 0

    def test_unbounded_source_edge_rejected(self) -> None:
        network = MaxFlowPreflow(3)
        network.set_unbounded(0, 1)
        network.set_capacity(1, 2, 1)
        with pytest.raises(ValueError):
            network.max_flow(0, 2)


class TestIsFeasible:
    def test_token_reaches_concurrent_consumer(self, and_net, and_order) -> None:
        events = extend_partial_order(and_order).events
        place = and_net.place_by_id("p2")
        assert is_feasible(place, events, and_net.transitions_by_label())

    def test_demand_exceeds_supply(self, and_order) -> None:
        net = build_net(
            [("p0", 1), ("p1", 0), ("p2", 0), ("p3", 0), ("p4", 0), ("p5", 0)],
            [("ta", "a"), ("tb", "b"), ("tc", "c"), ("td", "d")],
            [
                ("p0", "ta"), ("ta", "p1"), ("ta", "p2"),
                ("p1", "tb"), ("tb", "p3"),
                ("p2", "tc", 2), ("tc", "p4"),
                ("p3", "td"), ("p4", "td"), ("td", "p5"),
            ],
        )
        events = extend_partial_order(and_order).events
        assert not is_feasible(net.place_by_id("p2"), events, net.transitions_by_label())

    def test_initial_marking_feeds_consumer(self, skip_net) -> None:
        events = extend_partial_order(PartialOrder.sequence("a")).events
        assert is_feasible(skip_net.place_by_id("p0"), events, skip_net.transitions_by_label())

    def test_producer_after_consumer(self, skip_net) -> None:
        events = extend_partial_order(PartialOrder.sequence("cb")).events
        assert not is_feasible(skip_net.place_by_id("p2"), events, skip_net.transitions_by_label())

    def test_unknown_label_supplies_nothing(self) -> None:
        net = build_net([("p", 1)], [("tc", "c")], [("p", "tc", 2)])
        events = extend_partial_order(PartialOrder.sequence("xc")).events
        assert not is_feasible(net.place_by_id("p"), events, net.transitions_by_label())
