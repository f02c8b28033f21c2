"""
Max-flow feasibility check for places left ambiguous by the replayer.

For a place  p  and the events of an extended partial order the check
builds a flow network with two nodes per event (start, end) plus a
global source and sink:

  • start(e) → end(e)        unbounded
  • end(e)   → start(e')     unbounded for every successor  e'  of  e
  • source   → end(e)        tokens  e  produces into  p
                             (the initial marking for the synthetic
                             initial event)
  • start(e) → sink          tokens  e  consumes from  p

The place can be fed along the partial order iff the maximum flow
saturates every edge into the sink.

The maximum flow is computed with the preflow push/relabel method
(Goldberg & Tarjan 1988) in its FIFO variant, O(V³).
"""

from __future__ import annotations

import math
from collections import deque
from typing import Mapping, Sequence

from region_repair.models import INITIAL_EVENT_ID, EventItem, Place, Transition

UNBOUNDED = math.inf


class MaxFlowPreflow:
    """Push/relabel maximum flow on a dense capacity matrix."""

    def __init__(self, n: int) -> None:
        self._n = n
        self._capacity: list[list[float]] = [[0] * n for _ in range(n)]

    @property
    def node_count(self) -> int:
        return self._n

    def set_capacity(self, u: int, v: int, capacity: float) -> None:
        self._capacity[u][v] = capacity

    def set_unbounded(self, u: int, v: int) -> None:
        self._capacity[u][v] = UNBOUNDED

    def capacity(self, u: int, v: int) -> float:
        return self._capacity[u][v]

    def max_flow(self, source: int, sink: int) -> int:
        """Return the value of a maximum  source → sink  flow.

        Edges leaving *source* must have finite capacity.
        """
        n = self._n
        residual = [row[:] for row in self._capacity]
        height = [0] * n
        excess: list[float] = [0] * n
        queued = [False] * n
        active: deque[int] = deque()

        height[source] = n
        for v in range(n):
            capacity = residual[source][v]
            if v == source or capacity <= 0:
                continue
            if capacity == UNBOUNDED:
                raise ValueError(f"Edge {source} → {v} leaving the source is unbounded")
            residual[source][v] = 0
            residual[v][source] += capacity
            excess[v] += capacity
            excess[source] -= capacity
            if v != sink and not queued[v]:
                queued[v] = True
                active.append(v)

        while active:
            u = active.popleft()
            queued[u] = False
            while excess[u] > 0:
                for v in range(n):
                    if excess[u] == 0:
                        break
                    if residual[u][v] > 0 and height[u] == height[v] + 1:
                        delta = min(excess[u], residual[u][v])
                        residual[u][v] -= delta
                        residual[v][u] += delta
                        excess[u] -= delta
                        excess[v] += delta
                        if v != source and v != sink and not queued[v]:
                            queued[v] = True
                            active.append(v)
                if excess[u] > 0:
                    # relabel
                    height[u] = 1 + min(
                        height[v] for v in range(n) if residual[u][v] > 0
                    )

        return int(excess[sink])


def _start(index: int) -> int:
    return 2 * index + 1


def _end(index: int) -> int:
    return 2 * index + 2


def is_feasible(
    place: Place,
    events: Sequence[EventItem],
    transitions: Mapping[str, Transition],
) -> bool:
    """Decide whether every consumption of *place* along *events* can be fed.

    Parameters
    ----------
    place : Place
        The place under test.
    events : Sequence[EventItem]
        Events of the extended partial order (including the synthetic
        initial and final events).
    transitions : Mapping[str, Transition]
        Label → transition map of the net.  Events whose label is not
        in the map neither produce nor consume.

    Returns
    -------
    bool
        ``True`` iff the maximum flow equals the total demand.
    """
    network = MaxFlowPreflow(2 * len(events) + 2)
    source, sink = 0, network.node_count - 1
    index = {event.id: i for i, event in enumerate(events)}

    for i, event in enumerate(events):
        network.set_unbounded(_start(i), _end(i))

        # The marking is supplied once, by the synthetic initial event;
        # unknown labels neither produce nor consume.
        if event.id == INITIAL_EVENT_ID:
            if place.marking > 0:
                network.set_capacity(source, _end(i), place.marking)
        elif (transition := transitions.get(event.label)) is not None:
            for arc in transition.outgoing_arcs:
                if arc.target == place.id:
                    network.set_capacity(source, _end(i), arc.weight)
            for arc in transition.incoming_arcs:
                if arc.source == place.id:
                    network.set_capacity(_start(i), sink, arc.weight)

        for successor in event.next_events:
            network.set_unbounded(_end(i), _start(index[successor]))

    demand = sum(network.capacity(_start(i), sink) for i in range(len(events)))
    return network.max_flow(source, sink) == demand
