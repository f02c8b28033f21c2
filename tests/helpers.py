"""Builders for small nets and partial orders."""

from __future__ import annotations

from region_repair.models import Arc, PartialOrder, PetriNet, Place, Transition


def build_net(
    places: list[tuple[str, int]],
    transitions: list[tuple[str, str]],
    arcs: list[tuple[str, str] | tuple[str, str, int]],
) -> PetriNet:
    return PetriNet.build(
        [Place(id=p, marking=m) for p, m in places],
        [Transition(id=t, label=label) for t, label in transitions],
        [Arc(*arc) for arc in arcs],
    )


def build_order(labels: dict[str, str], arcs: list[tuple[str, str]]) -> PartialOrder:
    order = PartialOrder()
    for event_id, label in labels.items():
        order.add_event(event_id, label)
    for source, target in arcs:
        order.add_arc(source, target)
    order.determine_initial_and_final_events()
    return order


def chain_net() -> PetriNet:
    """p0 → t1 → p1 → … → t8 → p8 with labels a … h."""
    labels = "abcdefgh"
    return build_net(
        [(f"p{k}", 1 if k == 0 else 0) for k in range(9)],
        [(f"t{k + 1}", labels[k]) for k in range(8)],
        [arc for k in range(1, 9) for arc in ((f"p{k - 1}", f"t{k}"), (f"t{k}", f"p{k}"))],
    )
