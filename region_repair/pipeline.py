"""
Repair orchestrator: diagnoses a net against a log and synthesises repairs.

    1. Diagnosis
         • token-flow replay of every partial order (invalid places)
         • log labels without a transition (missing transitions)
         • precision mode: wrong continuations and implicit places
    2. Fan-out: one region request per diagnosed issue, all solved
       concurrently against one shared base ILP
    3. Fan-in: raw solutions interpreted into ranked repair proposals

Every entry point copies the caller's net and partial orders first.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from region_repair.continuations import ContinuationAnalyzer, invalid_transitions
from region_repair.models import (
    ContinuationType,
    IssueStatus,
    PartialOrder,
    PetriNet,
    WrongContinuation,
)
from region_repair.region_ilp import (
    INITIAL_MARKING,
    ImplicitPlaceRequest,
    MissingTransitionRequest,
    PossibilityRequest,
    RegionIlpBuilder,
    RegionRequest,
    RepairPlaceRequest,
    WarningPlaceRequest,
)
from region_repair.repair_model import (
    ErrorSolution,
    ImplicitSolution,
    MarkingRepair,
    NewTransitionSolution,
    PlaceSolution,
    PossibilitySolution,
    WarningSolution,
    to_dict,
)
from region_repair.replay import find_implicit_places, invalid_place_counts
from region_repair.solutions import handle_solutions, parse_solution
from region_repair.solver import IlpSolver, Z3IlpSolver

logger = logging.getLogger(__name__)


class AnalysisMode(Enum):
    FITNESS = "fitness"
    PRECISION = "precision"


@dataclass(slots=True)
class RepairSettings:
    """Tunables of one repair run.

    Attributes:
        solver_timeout_ms:    Per-ILP time limit of the default solver.
        max_parallel_solves:  Solver calls allowed to run at once.
        max_loop_expansion:   Occurrences of one transition per generated
                              continuation (default: longest observed
                              repetition + 1).
        max_continuations:    Cap on generated continuations.
        max_linearizations:   Linearisations enumerated per partial order.
        include_warnings:     Also check marked places for surplus tokens.
        solver:               Replaces the default ``Z3IlpSolver``.
    """

    solver_timeout_ms: int = 10_000
    max_parallel_solves: int = 4
    max_loop_expansion: Optional[int] = None
    max_continuations: int = 5_000
    max_linearizations: int = 500
    include_warnings: bool = True
    solver: Optional[IlpSolver] = None


@dataclass(slots=True)
class Analysis:
    """Diagnosis of a net against a log, before any repair synthesis."""

    invalid_places: dict[str, int] = field(default_factory=dict)
    missing_transitions: dict[str, int] = field(default_factory=dict)
    wrong_continuations: list[WrongContinuation] = field(default_factory=list)
    invalid_transitions: dict[str, int] = field(default_factory=dict)
    implicit_places: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "invalid_places": dict(self.invalid_places),
            "missing_transitions": dict(self.missing_transitions),
            "wrong_continuations": [
                {
                    "id": wc.id,
                    "type": wc.type.value,
                    "continuation": list(wc.continuation),
                    "first_invalid_transition": wc.first_invalid_transition,
                }
                for wc in self.wrong_continuations
            ],
            "invalid_transitions": dict(self.invalid_transitions),
            "implicit_places": dict(self.implicit_places),
        }


@dataclass(slots=True)
class RepairReport:
    mode: AnalysisMode
    analysis: Analysis
    solutions: list[PlaceSolution]
    net: PetriNet

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "analysis": self.analysis.to_dict(),
            "solutions": [to_dict(solution) for solution in self.solutions],
        }


# ═══════════════════════════════════════════════════════════════════════════
# 1.  Diagnosis
# ═══════════════════════════════════════════════════════════════════════════

def missing_transition_counts(
    net: PetriNet,
    partial_orders: list[PartialOrder],
) -> dict[str, int]:
    """Map each log label without a transition to its number of events."""
    known = set(net.labels())
    counts: dict[str, int] = {}
    for order in partial_orders:
        for label in order.labels():
            if label not in known:
                counts[label] = counts.get(label, 0) + 1
    return counts


def analyze(
    net: PetriNet,
    partial_orders: list[PartialOrder],
    mode: AnalysisMode = AnalysisMode.FITNESS,
    settings: RepairSettings | None = None,
) -> Analysis:
    """Diagnose *net* against *partial_orders*.

    Wrong continuations and implicit places are only derived in
    precision mode.
    """
    settings = settings or RepairSettings()
    net = net.deep_copy()
    orders = [order.deep_copy() for order in partial_orders]

    analysis = Analysis(
        invalid_places=invalid_place_counts(net, orders),
        missing_transitions=missing_transition_counts(net, orders),
    )

    if mode is AnalysisMode.PRECISION:
        continuation_analysis = ContinuationAnalyzer(
            net,
            orders,
            max_linearizations=settings.max_linearizations,
            max_continuations=settings.max_continuations,
            max_repetitions=settings.max_loop_expansion,
        ).analyze()
        analysis.wrong_continuations = continuation_analysis.wrong_continuations
        analysis.invalid_transitions = invalid_transitions(analysis.wrong_continuations)
        analysis.implicit_places = find_implicit_places(net, orders)

    return analysis


# ═══════════════════════════════════════════════════════════════════════════
# 2.  Fan-out / fan-in
# ═══════════════════════════════════════════════════════════════════════════

def _builder(
    net: PetriNet,
    partial_orders: list[PartialOrder],
    settings: RepairSettings,
) -> RegionIlpBuilder:
    solver = settings.solver or Z3IlpSolver(timeout_ms=settings.solver_timeout_ms)
    return RegionIlpBuilder(
        net,
        partial_orders,
        solver,
        semaphore=asyncio.Semaphore(settings.max_parallel_solves),
    )


def _warning_requests(
    net: PetriNet,
    excluded: set[str],
    settings: RepairSettings,
) -> list[tuple[RegionRequest, int]]:
    if not settings.include_warnings:
        return []
    return [
        (WarningPlaceRequest(place.id), 0)
        for place in net.places
        if place.marking > 0 and place.id not in excluded
    ]


async def _handle(
    builder: RegionIlpBuilder,
    net: PetriNet,
    request: RegionRequest,
    count: int,
) -> PlaceSolution | None:
    raw = await builder.compute_solutions(request)
    parsable = handle_solutions(raw, builder.inverse_variable)
    id_to_label = net.id_to_label()
    logger.debug("%s: %d raw solution groups", request, len(raw))

    match request:
        case RepairPlaceRequest(place_id=place_id):
            place = net.place_by_id(place_id)
            repairs = parse_solution(parsable, place, id_to_label)
            marking = next(
                (r.new_marking for r in repairs if isinstance(r, MarkingRepair)), None
            )
            return ErrorSolution(
                place=place_id,
                solutions=repairs,
                invalid_trace_count=count,
                missing_tokens=None if marking is None else marking - place.marking,
            )

        case WarningPlaceRequest(place_id=place_id):
            place = net.place_by_id(place_id)
            markings = [
                variables.get(INITIAL_MARKING, 0)
                for solution in raw
                for variables in solution.solutions
            ]
            if not markings or max(markings) >= place.marking:
                return None
            needed = max(markings)
            return WarningSolution(
                place=place_id,
                reduce_tokens_to=needed,
                too_many_tokens=place.marking - needed,
                region_size=raw[0].region_size,
            )

        case MissingTransitionRequest(label=label):
            return NewTransitionSolution(
                missing_transition=label,
                solutions=parse_solution(parsable, None, id_to_label),
                invalid_trace_count=count,
            )

        case ImplicitPlaceRequest(place_id=place_id):
            return ImplicitSolution(
                place=place_id,
                solutions=parse_solution(parsable, net.place_by_id(place_id), id_to_label),
                invalid_trace_count=count,
            )

        case PossibilityRequest(transition_id=transition_id):
            classified: list[WrongContinuation] = []
            for solution in raw:
                continuation = solution.continuation.deep_copy()
                continuation.type = (
                    ContinuationType.REPAIRABLE
                    if solution.solutions
                    else ContinuationType.NOT_REPAIRABLE
                )
                classified.append(continuation)
            return PossibilitySolution(
                transition=transition_id,
                solutions=parse_solution(parsable, None, id_to_label, classified),
                invalid_trace_count=count,
                wrong_continuations=classified,
            )

    raise TypeError(f"Unsupported request {request!r}")


async def _fan_out(
    net: PetriNet,
    partial_orders: list[PartialOrder],
    requests: list[tuple[RegionRequest, int]],
    settings: RepairSettings,
) -> list[PlaceSolution]:
    if not requests:
        return []
    builder = _builder(net, partial_orders, settings)
    results = await asyncio.gather(*(
        _handle(builder, net, request, count) for request, count in requests
    ))
    return [result for result in results if result is not None]


async def compute_solutions(
    net: PetriNet,
    partial_orders: list[PartialOrder],
    invalid_places: dict[str, int],
    settings: RepairSettings | None = None,
    missing_transitions: dict[str, int] | None = None,
) -> list[PlaceSolution]:
    """Fitness repairs: invalid places, surplus markings, missing transitions."""
    settings = settings or RepairSettings()
    net = net.deep_copy()
    orders = [order.deep_copy() for order in partial_orders]
    if missing_transitions is None:
        missing_transitions = missing_transition_counts(net, orders)

    requests: list[tuple[RegionRequest, int]] = [
        (RepairPlaceRequest(place.id), invalid_places[place.id])
        for place in net.places
        if place.id in invalid_places
    ]
    requests += _warning_requests(net, set(invalid_places), settings)
    requests += [
        (MissingTransitionRequest(label), count)
        for label, count in missing_transitions.items()
    ]
    return await _fan_out(net, orders, requests, settings)


async def compute_precision_solutions(
    net: PetriNet,
    partial_orders: list[PartialOrder],
    wrong_continuations: list[WrongContinuation],
    invalid_transitions: dict[str, int],
    implicit_places: dict[str, int],
    settings: RepairSettings | None = None,
    missing_transitions: dict[str, int] | None = None,
) -> list[PlaceSolution]:
    """Precision repairs: wrong continuations, implicit places, surplus markings."""
    settings = settings or RepairSettings()
    net = net.deep_copy()
    orders = [order.deep_copy() for order in partial_orders]
    if missing_transitions is None:
        missing_transitions = missing_transition_counts(net, orders)

    requests: list[tuple[RegionRequest, int]] = [
        (
            PossibilityRequest(
                transition_id,
                tuple(
                    wc.deep_copy()
                    for wc in wrong_continuations
                    if wc.first_invalid_transition == transition_id
                ),
            ),
            count,
        )
        for transition_id, count in invalid_transitions.items()
    ]
    requests += [
        (ImplicitPlaceRequest(place_id), count)
        for place_id, count in implicit_places.items()
    ]
    requests += _warning_requests(net, set(implicit_places), settings)
    requests += [
        (MissingTransitionRequest(label), count)
        for label, count in missing_transitions.items()
    ]
    return await _fan_out(net, orders, requests, settings)


# ═══════════════════════════════════════════════════════════════════════════
# 3.  Entry point
# ═══════════════════════════════════════════════════════════════════════════

def tag_issues(net: PetriNet, solutions: list[PlaceSolution]) -> PetriNet:
    """Return a copy of *net* whose elements carry their issue tags."""
    tagged = net.deep_copy()
    for solution in solutions:
        match solution:
            case ErrorSolution(place=place_id):
                status, element = IssueStatus.ERROR, tagged.place_by_id(place_id)
            case WarningSolution(place=place_id):
                status, element = IssueStatus.WARNING, tagged.place_by_id(place_id)
            case ImplicitSolution(place=place_id):
                status, element = IssueStatus.IMPLICIT, tagged.place_by_id(place_id)
            case PossibilitySolution(transition=transition_id):
                status, element = IssueStatus.POSSIBILITY, tagged.transition_by_id(transition_id)
            case _:
                continue
        if element is not None:
            element.issue_status = status
    return tagged


def run_repair(
    net: PetriNet,
    partial_orders: list[PartialOrder],
    mode: AnalysisMode = AnalysisMode.FITNESS,
    settings: RepairSettings | None = None,
) -> RepairReport:
    """Diagnose *net* against *partial_orders* and propose repairs.

    Parameters
    ----------
    net : PetriNet
        The model to check.
    partial_orders : list[PartialOrder]
        The observed behaviour.
    mode : AnalysisMode
        ``FITNESS``: repair places that cannot replay the log.
        ``PRECISION``: restrict behaviour the log never shows.
    settings : RepairSettings | None
        Solver and enumeration limits.

    Returns
    -------
    RepairReport
        The diagnosis, the ranked solution records and a tagged copy of
        the net.
    """
    settings = settings or RepairSettings()

    # ── Step 1: Diagnosis ───────────────────────────────────────────────
    logger.info(
        "Step 1  ▸  Replaying %d partial orders on %d places / %d transitions",
        len(partial_orders),
        len(net.places),
        len(net.transitions),
    )
    analysis = analyze(net, partial_orders, mode, settings)
    logger.info(
        "         Invalid places = %s  |  Missing transitions = %s",
        analysis.invalid_places,
        analysis.missing_transitions,
    )
    if mode is AnalysisMode.PRECISION:
        logger.info(
            "         Wrong continuations = %d  |  Invalid transitions = %s  |  Implicit places = %s",
            len(analysis.wrong_continuations),
            analysis.invalid_transitions,
            analysis.implicit_places,
        )

    # ── Step 2: Region synthesis ─────────────────────────────────────────
    logger.info("Step 2  ▸  Synthesising regions (mode=%s)", mode.value)
    if mode is AnalysisMode.PRECISION:
        solutions = asyncio.run(compute_precision_solutions(
            net,
            partial_orders,
            analysis.wrong_continuations,
            analysis.invalid_transitions,
            analysis.implicit_places,
            settings,
            analysis.missing_transitions,
        ))
    else:
        solutions = asyncio.run(compute_solutions(
            net,
            partial_orders,
            analysis.invalid_places,
            settings,
            analysis.missing_transitions,
        ))

    # ── Step 3: Report ───────────────────────────────────────────────────
    logger.info(
        "Step 3  ▸  %d issues, %d repair proposals",
        len(solutions),
        sum(len(getattr(s, "solutions", [])) for s in solutions),
    )
    return RepairReport(mode, analysis, solutions, tag_issues(net, solutions))
