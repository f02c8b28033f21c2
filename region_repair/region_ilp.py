"""
Region synthesis by integer linear programming.

A *region* is a candidate place: an initial marking  m0  plus a weight
for every (transition, direction) pair, such that every observed
partial order can be replayed on it.  For partial order  i  the encoding
introduces non-negative flow variables for the tokens that travel

  • from the initial marking to an event without predecessors
    (``{i}_m0_{event}``),
  • along an arc of the order (``{i}_Arc_{src}_to_{dst}``),
  • from an event without successors to the final marking
    (``{i}_Arc_{event}_to_mf``),

and emits per event  e  labelled  a:

  firing rule     Σ flow(into e)                   ≥  out_a
  token flow      Σ flow(into e) − Σ flow(out of e) − out_a + in_a  =  0

plus  m0 = Σ start flows  per order.  Minimising the sum of all flow
variables yields the smallest region.  ``out_a`` is the weight of the
arc place → a, ``in_a`` the weight of the arc a → place.

Events whose label is not a net transition are kept out of the base
problem; their constraints are stored per label and added only by the
specialisations that need them.

Specialisations:
  • changeMarking    – same arcs as an existing place, only  m0  free.
  • changeIncoming   – same consumers, producers may grow.
  • multiplePlaces   – a (producer, consumer) pair must be connected.
  • addPlace         – forbid a wrong continuation.
  • removePlace      – any region covering an implicit place's consumers.

Reference: Bergenthum, Desel, Lorenz, Mauser.  *Synthesis of Petri
Nets from Finite Partial Languages*  (Fundamenta Informaticae 2008).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from region_repair.models import PartialOrder, PetriNet, Place, WrongContinuation
from region_repair.repair_model import SolutionType
from region_repair.solver import (
    Bound,
    BoundKind,
    IlpProblem,
    IlpSolver,
    SolverResult,
    SubjectTo,
    Term,
)

logger = logging.getLogger(__name__)

INITIAL_MARKING = "m0"
OUTGOING_PREFIX = "out"
INCOMING_PREFIX = "in"


class VariableType(Enum):
    INITIAL_MARKING = "initialMarking"
    OUTGOING_TRANSITION_WEIGHT = "outgoingTransitionWeight"  # place → transition
    INCOMING_TRANSITION_WEIGHT = "incomingTransitionWeight"  # transition → place


@dataclass(frozen=True, slots=True)
class SolutionVariable:
    type: VariableType
    label: Optional[str] = None


# ---------------------------------------------------------------------------
# Request descriptors
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class RepairPlaceRequest:
    """A place that went negative during replay."""

    place_id: str


@dataclass(frozen=True, slots=True)
class WarningPlaceRequest:
    """A marked place that may hold more tokens than needed."""

    place_id: str


@dataclass(frozen=True, slots=True)
class MissingTransitionRequest:
    """A log label without a transition."""

    label: str


@dataclass(frozen=True, slots=True)
class ImplicitPlaceRequest:
    place_id: str


@dataclass(frozen=True, slots=True)
class PossibilityRequest:
    """Wrong continuations diverging at ``transition_id``."""

    transition_id: str
    wrong_continuations: tuple[WrongContinuation, ...]


RegionRequest = Union[
    RepairPlaceRequest,
    WarningPlaceRequest,
    MissingTransitionRequest,
    ImplicitPlaceRequest,
    PossibilityRequest,
]


@dataclass(slots=True)
class ProblemSolution:
    """Raw solutions of one specialisation.

    ``region_size`` is the largest objective value among ``solutions``.
    ``continuation`` is set for ``addPlace`` results and names the wrong
    continuation the solutions forbid.
    """

    type: SolutionType
    solutions: list[dict[str, int]] = field(default_factory=list)
    region_size: int = 0
    continuation: Optional[WrongContinuation] = None


# ---------------------------------------------------------------------------
# Directly-follows pairs
# ---------------------------------------------------------------------------

class DirectlyFollowsExtractor:
    """Collects (predecessor label, successor label) pairs of the log."""

    def __init__(self) -> None:
        self._pairs: dict[tuple[str, str], None] = {}

    def add(self, successor: str, predecessor: str) -> None:
        self._pairs.setdefault((predecessor, successor), None)

    def one_way_directly_follows(self) -> list[tuple[str, str]]:
        """Pairs  (a, b)  observed without  (b, a)."""
        return [
            (a, b) for a, b in self._pairs if (b, a) not in self._pairs
        ]


# ═══════════════════════════════════════════════════════════════════════════
# Builder
# ═══════════════════════════════════════════════════════════════════════════

class RegionIlpBuilder:
    """Builds the shared base problem once and solves specialisations of it.

    All name maps are filled while the base is built; solving a request
    only reads them, so requests can be processed concurrently.
    """

    def __init__(
        self,
        net: PetriNet,
        partial_orders: list[PartialOrder],
        solver: IlpSolver,
        semaphore: asyncio.Semaphore | None = None,
    ) -> None:
        self._net = net.deep_copy()
        self._orders = [order.deep_copy() for order in partial_orders]
        self._solver = solver
        self._semaphore = semaphore

        self._variable_count = 0
        self._constraint_count = 0
        self._variables: dict[tuple[str, VariableType], str] = {}
        self._inverse: dict[str, SolutionVariable] = {
            INITIAL_MARKING: SolutionVariable(VariableType.INITIAL_MARKING),
        }
        self._po_variables: dict[str, None] = {}
        self._directly_follows = DirectlyFollowsExtractor()
        self._new_transition_constraints: dict[str, list[SubjectTo]] = {}

        self._id_to_label = self._net.id_to_label()
        self._net_labels = self._net.labels()
        for label in self._net_labels + [
            e.label for order in self._orders for e in order.events
        ]:
            self._transition_variable(label, VariableType.INCOMING_TRANSITION_WEIGHT)
            self._transition_variable(label, VariableType.OUTGOING_TRANSITION_WEIGHT)

        self._base = self._build_base()
        logger.debug(
            "Base ILP: %d constraints, %d flow variables, %d unmodelled labels",
            len(self._base.constraints),
            len(self._po_variables),
            len(self._new_transition_constraints),
        )

    # ----- variable naming -------------------------------------------------

    def _transition_variable(self, label: str, kind: VariableType) -> str:
        key = (label, kind)
        if key not in self._variables:
            prefix = (
                OUTGOING_PREFIX
                if kind is VariableType.OUTGOING_TRANSITION_WEIGHT
                else INCOMING_PREFIX
            )
            name = f"{prefix}_{label}_{self._variable_count}"
            self._variable_count += 1
            self._variables[key] = name
            self._inverse[name] = SolutionVariable(kind, label)
        return self._variables[key]

    def _in(self, label: str) -> str:
        return self._transition_variable(label, VariableType.INCOMING_TRANSITION_WEIGHT)

    def _out(self, label: str) -> str:
        return self._transition_variable(label, VariableType.OUTGOING_TRANSITION_WEIGHT)

    def _po_variable(self, name: str) -> str:
        self._po_variables.setdefault(name, None)
        return name

    def _start_variable(self, index: int, event_id: str) -> str:
        return self._po_variable(f"{index}_{INITIAL_MARKING}_{event_id}")

    def _arc_variable(self, index: int, source: str, target: str) -> str:
        return self._po_variable(f"{index}_Arc_{source}_to_{target}")

    def _final_variable(self, index: int, event_id: str) -> str:
        return self._po_variable(f"{index}_Arc_{event_id}_to_mf")

    def inverse_variable(self, name: str) -> SolutionVariable | None:
        """Decode a variable name; flow variables decode to ``None``."""
        return self._inverse.get(name)

    @property
    def flow_variables(self) -> list[str]:
        return list(self._po_variables)

    @property
    def directly_follows(self) -> DirectlyFollowsExtractor:
        return self._directly_follows

    # ----- base problem ----------------------------------------------------

    def _constraint(self, terms: list[Term], kind: BoundKind, value: int) -> SubjectTo:
        constraint = SubjectTo(f"c{self._constraint_count}", tuple(terms), Bound(kind, value))
        self._constraint_count += 1
        return constraint

    def _build_base(self) -> IlpProblem:
        base = IlpProblem(name="base")
        for index, order in enumerate(self._orders):
            events = order.event_map()
            for event in order.events:
                incoming: list[Term] = []
                if not event.previous_events:
                    incoming.append(Term(self._start_variable(index, event.id), 1))
                for predecessor in event.previous_events:
                    incoming.append(Term(self._arc_variable(index, predecessor, event.id), 1))
                    self._directly_follows.add(event.label, events[predecessor].label)

                outgoing = [
                    Term(self._arc_variable(index, event.id, successor), -1)
                    for successor in event.next_events
                ] or [Term(self._final_variable(index, event.id), -1)]

                firing_rule = self._constraint(
                    incoming + [Term(self._out(event.label), -1)],
                    BoundKind.LOWER,
                    0,
                )
                token_flow = self._constraint(
                    incoming
                    + outgoing
                    + [Term(self._out(event.label), -1), Term(self._in(event.label), 1)],
                    BoundKind.FIXED,
                    0,
                )
                if event.label in self._net_labels:
                    base.extend([firing_rule, token_flow])
                else:
                    self._new_transition_constraints.setdefault(event.label, []).extend(
                        [firing_rule, token_flow]
                    )

            base.extend([
                self._constraint(
                    [Term(INITIAL_MARKING, 1)]
                    + [
                        Term(self._start_variable(index, event_id), -1)
                        for event_id in order.initial_events
                    ],
                    BoundKind.FIXED,
                    0,
                )
            ])

        base.objective = [Term(name, 1) for name in self._po_variables]
        base.integers.update(self._po_variables)
        return base

    # ----- specialisations -------------------------------------------------

    def _place_weights(self, place: Place) -> tuple[dict[str, int], dict[str, int]]:
        """Producer and consumer weights of *place*, keyed by label."""
        incoming: dict[str, int] = {}
        outgoing: dict[str, int] = {}
        for arc in place.incoming_arcs:
            label = self._id_to_label[arc.source]
            incoming[label] = incoming.get(label, 0) + arc.weight
        for arc in place.outgoing_arcs:
            label = self._id_to_label[arc.target]
            outgoing[label] = outgoing.get(label, 0) + arc.weight
        return incoming, outgoing

    def _pin(self, problem: IlpProblem, variable: str, value: int) -> None:
        problem.add([Term(variable, 1)], BoundKind.FIXED, value)

    def _zero_unmodelled(self, problem: IlpProblem, allowed: str | None = None) -> None:
        """Add the constraints of unmodelled labels; all but *allowed* get no arcs."""
        for label, constraints in self._new_transition_constraints.items():
            if label != allowed:
                self._pin(problem, self._out(label), 0)
                self._pin(problem, self._in(label), 0)
            problem.extend(constraints)

    def same_weights_problem(self, place: Place, name: str) -> IlpProblem:
        """changeMarking: every weight equals the place's, only m0 is free."""
        problem = self._base.clone(name)
        incoming, outgoing = self._place_weights(place)
        for label in self._net_labels:
            self._pin(problem, self._in(label), incoming.get(label, 0))
            self._pin(problem, self._out(label), outgoing.get(label, 0))
        self._zero_unmodelled(problem)
        return problem

    def same_outgoing_weights_problem(self, place: Place, name: str) -> IlpProblem:
        """changeIncoming: consumers fixed, producers at least as heavy."""
        problem = self._base.clone(name)
        incoming, outgoing = self._place_weights(place)
        for label, weight in incoming.items():
            problem.add([Term(self._in(label), 1)], BoundKind.LOWER, weight)
        for label in self._net_labels:
            self._pin(problem, self._out(label), outgoing.get(label, 0))
        self._zero_unmodelled(problem)
        return problem

    def causal_pair_problem(
        self,
        pair: tuple[str | None, str],
        name: str,
        new_label: str | None = None,
        first_try: bool = True,
    ) -> IlpProblem:
        """multiplePlaces: the region must feed ``pair[1]``.

        On the first try an unmarked region fed by ``pair[0]`` is
        requested; the retry drops both requirements.  Only *new_label*
        among the unmodelled labels may get arcs.
        """
        problem = self._base.clone(name)
        self._zero_unmodelled(problem, allowed=new_label)
        producer, consumer = pair
        if first_try and producer is not None:
            self._pin(problem, INITIAL_MARKING, 0)
            problem.add([Term(self._in(producer), 1)], BoundKind.LOWER, 1)
        problem.add([Term(self._out(consumer), 1)], BoundKind.LOWER, 1)
        return problem

    def continuation_problem(self, continuation: WrongContinuation, name: str) -> IlpProblem:
        """addPlace: a region that blocks *continuation* at its divergence.

        With  d  the divergence index and  l_k  the labels of the
        continuation the region must satisfy

            m0 + Σ_{k<d} (in_{l_k} − out_{l_k}) − out_{l_d}  ≤  −1

        i.e. the tokens left after the observed prefix do not suffice to
        fire  l_d.  Transitions off the continuation get no arcs.
        """
        problem = self._base.clone(name)
        word = continuation.continuation
        divergence = continuation.divergence_index

        on_path = set(word)
        for label in self._net_labels:
            if label not in on_path:
                self._pin(problem, self._in(label), 0)
                self._pin(problem, self._out(label), 0)
        self._zero_unmodelled(problem)

        coefficients: dict[str, int] = {INITIAL_MARKING: 1}
        for label in word[:divergence]:
            coefficients[self._in(label)] = coefficients.get(self._in(label), 0) + 1
            coefficients[self._out(label)] = coefficients.get(self._out(label), 0) - 1
        blocked = self._out(word[divergence])
        coefficients[blocked] = coefficients.get(blocked, 0) - 1

        problem.add(
            [Term(variable, coef) for variable, coef in coefficients.items() if coef != 0],
            BoundKind.UPPER,
            -1,
        )
        return problem

    def implicit_problem(self, place: Place, name: str) -> IlpProblem:
        """removePlace: any region consuming at least what *place* consumes."""
        problem = self._base.clone(name)
        _, outgoing = self._place_weights(place)
        for label, weight in outgoing.items():
            problem.add([Term(self._out(label), 1)], BoundKind.LOWER, weight)
        self._zero_unmodelled(problem)
        return problem

    # ----- solving ---------------------------------------------------------

    def region_size(self, variables: dict[str, int]) -> int:
        """Sum of the flow variables of a solution."""
        return sum(variables.get(name, 0) for name in self._po_variables)

    async def _solve(self, problem: IlpProblem) -> SolverResult:
        try:
            if self._semaphore is None:
                return await asyncio.to_thread(self._solver.solve, problem)
            async with self._semaphore:
                return await asyncio.to_thread(self._solver.solve, problem)
        except Exception:
            logger.exception("Solver failed on ILP %s", problem.name)
            return SolverResult.no_solution()

    async def compute_solutions(self, request: RegionRequest) -> list[ProblemSolution]:
        """Solve every specialisation *request* calls for."""
        match request:
            case MissingTransitionRequest(label=label):
                return await self._missing_transition(label)
            case PossibilityRequest(wrong_continuations=continuations):
                return await self._possibility(continuations)

        place = self._net.place_by_id(request.place_id)
        if place is None:
            logger.warning("Request for unknown place %s ignored", request.place_id)
            return []

        match request:
            case WarningPlaceRequest():
                result = await self._solve(
                    self.same_weights_problem(place, f"warning_{place.id}")
                )
                if not result.solved:
                    return []
                return [self._single(SolutionType.CHANGE_MARKING, result)]
            case ImplicitPlaceRequest():
                result = await self._solve(
                    self.implicit_problem(place, f"implicit_{place.id}")
                )
                if not result.solved:
                    return []
                return [self._single(SolutionType.REMOVE_PLACE, result)]
            case RepairPlaceRequest():
                return await self._repair(place)

        raise TypeError(f"Unsupported request {request!r}")

    def _single(self, kind: SolutionType, result: SolverResult) -> ProblemSolution:
        return ProblemSolution(kind, [result.variables], self.region_size(result.variables))

    async def _missing_transition(self, label: str) -> list[ProblemSolution]:
        pairs: list[tuple[str | None, str]] = [
            pair
            for pair in self._directly_follows.one_way_directly_follows()
            if pair[1] == label
        ] or [(None, label)]
        results = await asyncio.gather(*(
            self._solve(self.causal_pair_problem(pair, f"transition_{label}_{k}", new_label=label))
            for k, pair in enumerate(pairs)
        ))
        solved = [r.variables for r in results if r.solved]
        if not solved:
            return []
        return [
            ProblemSolution(
                SolutionType.MULTIPLE_PLACES,
                solved,
                max(self.region_size(v) for v in solved),
            )
        ]

    async def _possibility(
        self,
        continuations: tuple[WrongContinuation, ...],
    ) -> list[ProblemSolution]:
        results = await asyncio.gather(*(
            self._solve(self.continuation_problem(wc, f"possibility_{wc.id}"))
            for wc in continuations
        ))
        return [
            ProblemSolution(
                SolutionType.ADD_PLACE,
                [result.variables] if result.solved else [],
                self.region_size(result.variables) if result.solved else 0,
                continuation=wc,
            )
            for wc, result in zip(continuations, results)
        ]

    def unhandled_pairs(self, place: Place) -> list[tuple[str | None, str]]:
        """(producer, consumer) label pairs the place connects."""
        pairs: dict[tuple[str | None, str], None] = {}
        for outgoing in place.outgoing_arcs:
            consumer = self._id_to_label[outgoing.target]
            if not place.incoming_arcs:
                pairs.setdefault((None, consumer), None)
            for incoming in place.incoming_arcs:
                pairs.setdefault((self._id_to_label[incoming.source], consumer), None)
        return list(pairs)

    async def _repair(self, place: Place) -> list[ProblemSolution]:
        async def solve_pair(k: int, pair: tuple[str | None, str]) -> SolverResult:
            result = await self._solve(
                self.causal_pair_problem(pair, f"repair_{place.id}_{k}")
            )
            if result.solved:
                return result
            return await self._solve(
                self.causal_pair_problem(pair, f"repair_{place.id}_{k}_retry", first_try=False)
            )

        pair_results, marking, incoming = await asyncio.gather(
            asyncio.gather(*(
                solve_pair(k, pair) for k, pair in enumerate(self.unhandled_pairs(place))
            )),
            self._solve(self.same_weights_problem(place, f"marking_{place.id}")),
            self._solve(self.same_outgoing_weights_problem(place, f"incoming_{place.id}")),
        )

        groups = {
            kind: ProblemSolution(kind)
            for kind in (
                SolutionType.CHANGE_INCOMING,
                SolutionType.MULTIPLE_PLACES,
                SolutionType.CHANGE_MARKING,
            )
        }
        candidates = [
            (SolutionType.CHANGE_MARKING, marking),
            (SolutionType.CHANGE_INCOMING, incoming),
        ] + [(SolutionType.MULTIPLE_PLACES, result) for result in pair_results]

        for kind, result in candidates:
            if not result.solved:
                continue
            group = groups[kind]
            group.region_size = max(group.region_size, self.region_size(result.variables))
            group.solutions.append(result.variables)

        found = sorted(
            (group for group in groups.values() if group.solutions),
            key=lambda group: group.region_size,
        )
        unique: list[ProblemSolution] = []
        for group in found:
            if all(group.solutions != other.solutions for other in unique):
                unique.append(group)
        return unique
