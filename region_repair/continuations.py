"""
Wrong-continuation analysis.

Compares the language the net structurally allows with the language
observed in the log:

  • Observed words are the label sequences of the linearisations of
    every partial order.  ``maxLoopNumber`` is the longest run of one
    repeated label in any observed word.
  • The net is contracted into a transition adjacency
    t → t'  iff  t• ∩ •t' ≠ ∅.  Start transitions are enabled by the
    initial marking, end transitions only feed sink places.
  • Every start → end walk over the adjacency that uses each
    transition at most ``maxLoopNumber + 1`` times is a generated
    word.  Generated words that were never observed are wrong
    continuations.

The first label at which a wrong continuation leaves the observed
prefixes names its first invalid transition.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from region_repair.models import PartialOrder, PetriNet, WrongContinuation

logger = logging.getLogger(__name__)

Word = tuple[str, ...]


@dataclass(slots=True)
class ContinuationAnalysis:
    """Everything the analyzer derives from one (net, log) pair."""

    observed_words: set[Word] = field(default_factory=set)
    symbols: list[str] = field(default_factory=list)
    prefixes: set[Word] = field(default_factory=set)
    max_loop_number: int = 0
    generated_words: list[Word] = field(default_factory=list)
    wrong_continuations: list[WrongContinuation] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Observed language
# ---------------------------------------------------------------------------

def linearizations(order: PartialOrder, limit: int) -> list[Word]:
    """Label sequences of up to *limit* linearisations of *order*."""
    predecessors = {e.id: set(e.previous_events) for e in order.events}
    labels = {e.id: e.label for e in order.events}
    ids = [e.id for e in order.events]

    words: dict[Word, None] = {}
    stack: list[tuple[tuple[str, ...], frozenset[str]]] = [((), frozenset())]
    while stack and len(words) < limit:
        sequence, placed = stack.pop()
        if len(sequence) == len(ids):
            words.setdefault(tuple(labels[i] for i in sequence), None)
            continue
        ready = [i for i in ids if i not in placed and predecessors[i] <= placed]
        for event_id in reversed(ready):
            stack.append((sequence + (event_id,), placed | {event_id}))
    return list(words)


def longest_run(word: Word) -> int:
    best = 0
    run = 0
    previous: str | None = None
    for symbol in word:
        run = run + 1 if symbol == previous else 1
        previous = symbol
        best = max(best, run)
    return best


# ---------------------------------------------------------------------------
# Net contraction
# ---------------------------------------------------------------------------

def transition_adjacency(net: PetriNet) -> dict[str, list[str]]:
    """Contract places away:  t → t'  iff some place lies between them."""
    adjacency: dict[str, list[str]] = {t.id: [] for t in net.transitions}
    places = {p.id: p for p in net.places}
    for transition in net.transitions:
        successors: dict[str, None] = {}
        for arc in transition.outgoing_arcs:
            for consumer in places[arc.target].outgoing_arcs:
                successors.setdefault(consumer.target, None)
        adjacency[transition.id] = [
            t.id for t in net.transitions if t.id in successors
        ]
    return adjacency


def start_transitions(net: PetriNet) -> list[str]:
    """Transitions enabled by the initial marking."""
    places = {p.id: p for p in net.places}
    return [
        t.id
        for t in net.transitions
        if all(places[arc.source].marking >= arc.weight for arc in t.incoming_arcs)
    ]


def end_transitions(net: PetriNet) -> list[str]:
    """Transitions whose outputs are all sink places."""
    places = {p.id: p for p in net.places}
    return [
        t.id
        for t in net.transitions
        if all(not places[arc.target].outgoing_arcs for arc in t.outgoing_arcs)
    ]


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

class ContinuationAnalyzer:
    """Derives wrong continuations for one (net, log) pair.

    Parameters
    ----------
    net : PetriNet
    partial_orders : list[PartialOrder]
    max_linearizations : int
        Linearisations enumerated per partial order.
    max_continuations : int
        Upper bound on generated words.
    max_repetitions : int | None
        Occurrences of one transition per generated word; defaults to
        ``maxLoopNumber + 1``.
    """

    def __init__(
        self,
        net: PetriNet,
        partial_orders: list[PartialOrder],
        *,
        max_linearizations: int = 500,
        max_continuations: int = 5_000,
        max_repetitions: int | None = None,
    ) -> None:
        self._net = net.deep_copy()
        self._orders = [order.deep_copy() for order in partial_orders]
        self._max_linearizations = max_linearizations
        self._max_continuations = max_continuations
        self._max_repetitions = max_repetitions

    def analyze(self) -> ContinuationAnalysis:
        analysis = ContinuationAnalysis()

        for order in self._orders:
            words = linearizations(order, self._max_linearizations)
            analysis.observed_words.update(words)

        analysis.max_loop_number = max(
            (longest_run(word) for word in analysis.observed_words), default=0
        )

        symbols: dict[str, None] = {}
        for word in sorted(analysis.observed_words):
            for k, symbol in enumerate(word):
                symbols.setdefault(symbol, None)
                analysis.prefixes.add(word[: k + 1])
        analysis.symbols = list(symbols)

        repetitions = analysis.max_loop_number + 1
        if self._max_repetitions is not None:
            repetitions = self._max_repetitions
        analysis.generated_words = self._generate(repetitions)

        label_to_id = {
            label: transition.id
            for label, transition in self._net.transitions_by_label().items()
        }

        for word in analysis.generated_words:
            if word in analysis.observed_words:
                continue
            index = self._divergence_index(word, analysis.prefixes)
            analysis.wrong_continuations.append(
                WrongContinuation(
                    id=f"wc{len(analysis.wrong_continuations) + 1}",
                    continuation=word,
                    first_invalid_transition=label_to_id[word[index]],
                    divergence_index=index,
                )
            )

        logger.debug(
            "Continuations: %d observed, %d generated, %d wrong (maxLoopNumber=%d)",
            len(analysis.observed_words),
            len(analysis.generated_words),
            len(analysis.wrong_continuations),
            analysis.max_loop_number,
        )
        return analysis

    def _generate(self, repetitions: int) -> list[Word]:
        adjacency = transition_adjacency(self._net)
        ends = set(end_transitions(self._net))
        labels = self._net.id_to_label()

        words: set[Word] = set()
        stack: list[tuple[str, ...]] = [
            (t,) for t in reversed(start_transitions(self._net))
        ]
        while stack:
            path = stack.pop()
            current = path[-1]
            if current in ends:
                words.add(tuple(labels[t] for t in path))
                if len(words) >= self._max_continuations:
                    logger.warning(
                        "Continuation generation stopped after %d words",
                        self._max_continuations,
                    )
                    break
            counts = Counter(path)
            for successor in reversed(adjacency[current]):
                if counts[successor] < repetitions:
                    stack.append(path + (successor,))

        return sorted(words)

    @staticmethod
    def _divergence_index(word: Word, prefixes: set[Word]) -> int:
        index = 0
        while index < len(word) and word[: index + 1] in prefixes:
            index += 1
        return min(index, len(word) - 1)


def wrong_continuations(
    net: PetriNet,
    partial_orders: list[PartialOrder],
    **options: int,
) -> list[WrongContinuation]:
    return ContinuationAnalyzer(net, partial_orders, **options).analyze().wrong_continuations


def invalid_transitions(continuations: list[WrongContinuation]) -> dict[str, int]:
    """Map each first invalid transition id to its number of wrong continuations."""
    counts: dict[str, int] = {}
    for continuation in continuations:
        key = continuation.first_invalid_transition
        counts[key] = counts.get(key, 0) + 1
    return counts
