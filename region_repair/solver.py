"""
Integer-linear-programming boundary.

An ``IlpProblem`` is a plain request: a minimisation objective over
named variables, named linear constraints each with a fixed, lower or
upper bound, and the set of integer variables.  Every variable is
non-negative.  A solver answers with a ``SolverResult`` whose status is
``optimal``, ``no-solution`` or ``infeasible``.

``Z3IlpSolver`` answers requests with Z3's ``Optimize`` engine.  Each
call gets its own ``z3.Context`` so independent problems can be solved
from different threads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import z3

logger = logging.getLogger(__name__)


class BoundKind(Enum):
    FIXED = "fixed"
    LOWER = "lower"
    UPPER = "upper"


class SolverStatus(Enum):
    OPTIMAL = "optimal"
    NO_SOLUTION = "no-solution"
    INFEASIBLE = "infeasible"


@dataclass(frozen=True, slots=True)
class Term:
    name: str
    coef: int


@dataclass(frozen=True, slots=True)
class Bound:
    kind: BoundKind
    value: int


@dataclass(frozen=True, slots=True)
class SubjectTo:
    """A named constraint  Σ coef·var  (= | ≥ | ≤)  value."""

    name: str
    terms: tuple[Term, ...]
    bound: Bound


@dataclass(slots=True)
class IlpProblem:
    """A minimisation problem over non-negative variables."""

    name: str
    objective: list[Term] = field(default_factory=list)
    constraints: list[SubjectTo] = field(default_factory=list)
    integers: set[str] = field(default_factory=set)

    def clone(self, name: str) -> IlpProblem:
        return IlpProblem(
            name=name,
            objective=list(self.objective),
            constraints=list(self.constraints),
            integers=set(self.integers),
        )

    def add(self, terms: list[Term], kind: BoundKind, value: int) -> SubjectTo:
        """Append a constraint named after this problem and return it."""
        constraint = SubjectTo(
            name=f"{self.name}_{len(self.constraints)}",
            terms=tuple(terms),
            bound=Bound(kind, value),
        )
        self.constraints.append(constraint)
        self.integers.update(t.name for t in terms)
        return constraint

    def extend(self, constraints: list[SubjectTo]) -> None:
        self.constraints.extend(constraints)
        for constraint in constraints:
            self.integers.update(t.name for t in constraint.terms)

    def variables(self) -> list[str]:
        names: dict[str, None] = {}
        for term in self.objective:
            names.setdefault(term.name, None)
        for constraint in self.constraints:
            for term in constraint.terms:
                names.setdefault(term.name, None)
        return list(names)


@dataclass(slots=True)
class SolverResult:
    status: SolverStatus
    variables: dict[str, int] = field(default_factory=dict)

    @property
    def solved(self) -> bool:
        return self.status is SolverStatus.OPTIMAL

    @classmethod
    def no_solution(cls) -> SolverResult:
        return cls(SolverStatus.NO_SOLUTION)


class IlpSolver(Protocol):
    """Anything that can answer an ``IlpProblem``."""

    def solve(self, problem: IlpProblem) -> SolverResult: ...


# ═══════════════════════════════════════════════════════════════════════════
# Z3 backend
# ═══════════════════════════════════════════════════════════════════════════

class Z3IlpSolver:
    """Solve ``IlpProblem`` requests with ``z3.Optimize``."""

    def __init__(self, timeout_ms: int = 10_000) -> None:
        self._timeout_ms = timeout_ms

    def solve(self, problem: IlpProblem) -> SolverResult:
        ctx = z3.Context()
        variables: dict[str, z3.ArithRef] = {
            name: z3.Int(name, ctx) if name in problem.integers else z3.Real(name, ctx)
            for name in problem.variables()
        }

        optimizer = z3.Optimize(ctx=ctx)
        optimizer.set("timeout", self._timeout_ms)

        for variable in variables.values():
            optimizer.add(variable >= 0)

        for constraint in problem.constraints:
            expression = _linear(constraint.terms, variables, ctx)
            match constraint.bound.kind:
                case BoundKind.FIXED:
                    optimizer.add(expression == constraint.bound.value)
                case BoundKind.LOWER:
                    optimizer.add(expression >= constraint.bound.value)
                case BoundKind.UPPER:
                    optimizer.add(expression <= constraint.bound.value)

        optimizer.minimize(_linear(problem.objective, variables, ctx))

        outcome = optimizer.check()
        if outcome == z3.sat:
            model = optimizer.model()
            return SolverResult(
                SolverStatus.OPTIMAL,
                {
                    name: _value(model.eval(variable, model_completion=True))
                    for name, variable in variables.items()
                },
            )
        if outcome == z3.unsat:
            logger.debug("ILP %s is infeasible", problem.name)
            return SolverResult(SolverStatus.INFEASIBLE)

        logger.debug("ILP %s: solver gave up (%s)", problem.name, optimizer.reason_unknown())
        return SolverResult.no_solution()


def _linear(
    terms: tuple[Term, ...] | list[Term],
    variables: dict[str, z3.ArithRef],
    ctx: z3.Context,
) -> z3.ArithRef:
    if not terms:
        return z3.IntVal(0, ctx)
    return z3.Sum([term.coef * variables[term.name] for term in terms])


def _value(value: z3.ExprRef) -> int:
    if z3.is_int_value(value):
        return value.as_long()
    return round(float(value.as_fraction()))
