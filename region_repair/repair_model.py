"""
Repair proposals and the tagged records handed back to callers.

``AutoRepair`` variants describe one structural change of a place
(``marking``, ``modify-place``, ``replace-place``, ``add-place``,
``remove-place``) or the fallback of adding a trace to the log
(``add-trace``).  Solution records bundle the ranked repairs for one
diagnosed issue: ``error``, ``warning``, ``newTransition``,
``possibility`` and ``implicit``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from region_repair.models import WrongContinuation


class SolutionType(Enum):
    """The ILP specialisation a raw solution came from."""

    CHANGE_MARKING = "changeMarking"
    CHANGE_INCOMING = "changeIncoming"
    MULTIPLE_PLACES = "multiplePlaces"
    ADD_PLACE = "addPlace"
    REMOVE_PLACE = "removePlace"


@dataclass(frozen=True, slots=True)
class ArcDefinition:
    transition_label: str
    weight: int


@dataclass(slots=True)
class PlaceDefinition:
    incoming: list[ArcDefinition] = field(default_factory=list)
    outgoing: list[ArcDefinition] = field(default_factory=list)
    new_marking: Optional[int] = None


# ---------------------------------------------------------------------------
# AutoRepair variants
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class MarkingRepair:
    type: ClassVar[str] = "marking"

    new_marking: int
    region_size: int = 0
    repair_type: Optional[SolutionType] = None


@dataclass(slots=True)
class ModifyPlaceRepair:
    type: ClassVar[str] = "modify-place"

    incoming: list[ArcDefinition]
    outgoing: list[ArcDefinition]
    new_marking: Optional[int] = None
    region_size: int = 0
    repair_type: Optional[SolutionType] = None


@dataclass(slots=True)
class ReplacePlaceRepair:
    type: ClassVar[str] = "replace-place"

    places: list[PlaceDefinition]
    region_size: int = 0
    repair_type: Optional[SolutionType] = None


@dataclass(slots=True)
class AddPlaceRepair:
    type: ClassVar[str] = "add-place"

    incoming: list[ArcDefinition]
    outgoing: list[ArcDefinition]
    new_marking: Optional[int] = None
    region_size: int = 0
    repair_type: Optional[SolutionType] = SolutionType.ADD_PLACE


@dataclass(slots=True)
class RemovePlaceRepair:
    type: ClassVar[str] = "remove-place"

    region_size: int = 0
    repair_type: Optional[SolutionType] = SolutionType.REMOVE_PLACE


@dataclass(slots=True)
class AddTraceRepair:
    """Accept an unobserved continuation by adding it to the log."""

    type: ClassVar[str] = "add-trace"

    continuation: tuple[str, ...]
    wrong_continuation_not_repairable: bool = False
    region_size: int = 0
    repair_type: Optional[SolutionType] = None


AutoRepair = Union[
    MarkingRepair,
    ModifyPlaceRepair,
    ReplacePlaceRepair,
    AddPlaceRepair,
    RemovePlaceRepair,
    AddTraceRepair,
]


# ---------------------------------------------------------------------------
# Solution records
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class ErrorSolution:
    """Fitness violation of a place."""

    type: ClassVar[str] = "error"

    place: str
    solutions: list[AutoRepair]
    invalid_trace_count: int
    missing_tokens: Optional[int] = None


@dataclass(slots=True)
class WarningSolution:
    """A place that holds more tokens than any trace needs."""

    type: ClassVar[str] = "warning"

    place: str
    reduce_tokens_to: int
    too_many_tokens: int
    region_size: int = 0


@dataclass(slots=True)
class NewTransitionSolution:
    type: ClassVar[str] = "newTransition"

    missing_transition: str
    solutions: list[AutoRepair]
    invalid_trace_count: int


@dataclass(slots=True)
class PossibilitySolution:
    """Wrong continuations that start diverging at one transition."""

    type: ClassVar[str] = "possibility"

    transition: str
    solutions: list[AutoRepair]
    invalid_trace_count: int
    wrong_continuations: list[WrongContinuation] = field(default_factory=list)


@dataclass(slots=True)
class ImplicitSolution:
    type: ClassVar[str] = "implicit"

    place: str
    solutions: list[AutoRepair]
    invalid_trace_count: int


PlaceSolution = Union[
    ErrorSolution,
    WarningSolution,
    NewTransitionSolution,
    PossibilitySolution,
    ImplicitSolution,
]


def _plain(items: list[tuple[str, Any]]) -> dict[str, Any]:
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in items
    }


def to_dict(record: AutoRepair | PlaceSolution) -> dict[str, Any]:
    """JSON-ready representation including the ``type`` tag."""
    data: dict[str, Any] = {"type": record.type}
    data.update(asdict(record, dict_factory=_plain))
    if isinstance(record, (ErrorSolution, NewTransitionSolution,
                           PossibilitySolution, ImplicitSolution)):
        data["solutions"] = [to_dict(repair) for repair in record.solutions]
    return data
