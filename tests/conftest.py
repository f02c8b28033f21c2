"""Shared net and log fixtures."""

from __future__ import annotations

import pytest

from region_repair.models import PartialOrder, PetriNet
from tests.helpers import build_net, build_order


@pytest.fixture
def skip_net() -> PetriNet:
    """a → b → c in sequence; b cannot be skipped."""
    return build_net(
        [("p0", 1), ("p1", 0), ("p2", 0)],
        [("ta", "a"), ("tb", "b"), ("tc", "c")],
        [("p0", "ta"), ("ta", "p1"), ("p1", "tb"), ("tb", "p2"), ("p2", "tc")],
    )


@pytest.fixture
def skip_log() -> list[PartialOrder]:
    return [PartialOrder.sequence("abc"), PartialOrder.sequence("ac")]


@pytest.fixture
def loop_net() -> PetriNet:
    """a, then any number of b, then c."""
    return build_net(
        [("p0", 1), ("p1", 0), ("p2", 0)],
        [("ta", "a"), ("tb", "b"), ("tc", "c")],
        [("p0", "ta"), ("ta", "p1"), ("p1", "tb"), ("tb", "p1"), ("p1", "tc"), ("tc", "p2")],
    )


@pytest.fixture
def loop_log() -> list[PartialOrder]:
    return [PartialOrder.sequence("abc"), PartialOrder.sequence("ac")]


@pytest.fixture
def and_net() -> PetriNet:
    """a forks into b ∥ c, joined by d."""
    return build_net(
        [("p0", 1), ("p1", 0), ("p2", 0), ("p3", 0), ("p4", 0), ("p5", 0)],
        [("ta", "a"), ("tb", "b"), ("tc", "c"), ("td", "d")],
        [
            ("p0", "ta"), ("ta", "p1"), ("ta", "p2"),
            ("p1", "tb"), ("tb", "p3"),
            ("p2", "tc"), ("tc", "p4"),
            ("p3", "td"), ("p4", "td"), ("td", "p5"),
        ],
    )


@pytest.fixture
def and_order() -> PartialOrder:
    return build_order(
        {"e1": "a", "e2": "b", "e3": "c", "e4": "d"},
        [("e1", "e2"), ("e1", "e3"), ("e2", "e4"), ("e3", "e4")],
    )


@pytest.fixture
def duplicate_place_net() -> PetriNet:
    """p1 and p2 both connect a to b."""
    return build_net(
        [("p0", 1), ("p1", 0), ("p2", 0)],
        [("ta", "a"), ("tb", "b")],
        [("p0", "ta"), ("ta", "p1"), ("p1", "tb"), ("ta", "p2"), ("p2", "tb")],
    )
