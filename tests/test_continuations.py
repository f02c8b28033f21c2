"""Tests for the wrong-continuation analysis."""

from __future__ import annotations

from region_repair.continuations import (
    ContinuationAnalyzer,
    end_transitions,
    invalid_transitions,
    linearizations,
    longest_run,
    start_transitions,
    transition_adjacency,
    wrong_continuations,
)
from region_repair.models import ContinuationType, PartialOrder
from tests.helpers import build_net


class TestObservedLanguage:
    def test_concurrent_events_interleave(self, and_order) -> None:
        words = linearizations(and_order, limit=10)
        assert sorted(words) == [("a", "b", "c", "d"), ("a", "c", "b", "d")]

    def test_limit(self, and_order) -> None:
        assert len(linearizations(and_order, limit=1)) == 1

    def test_longest_run(self) -> None:
        assert longest_run(("a", "b", "b", "b", "c", "b")) == 3
        assert longest_run(()) == 0


class TestNetContraction:
    def test_adjacency(self, loop_net) -> None:
        assert transition_adjacency(loop_net) == {
            "ta": ["tb", "tc"],
            "tb": ["tb", "tc"],
            "tc": [],
        }

    def test_start_and_end(self, loop_net) -> None:
        assert start_transitions(loop_net) == ["ta"]
        assert end_transitions(loop_net) == ["tc"]

    def test_transition_without_outputs_ends(self, skip_net) -> None:
        assert end_transitions(skip_net) == ["tc"]


class TestContinuationAnalyzer:
    def test_loop_unrolled_once_more_than_observed(self, loop_net, loop_log) -> None:
        analysis = ContinuationAnalyzer(loop_net, loop_log).analyze()
        assert analysis.max_loop_number == 1
        assert analysis.generated_words == [
            ("a", "b", "b", "c"),
            ("a", "b", "c"),
            ("a", "c"),
        ]
        assert [wc.continuation for wc in analysis.wrong_continuations] == [("a", "b", "b", "c")]

    def test_divergence(self, loop_net, loop_log) -> None:
        (wc,) = wrong_continuations(loop_net, loop_log)
        assert wc.id == "wc1"
        assert wc.divergence_index == 2
        assert wc.first_invalid_transition == "tb"
        assert wc.type is ContinuationType.UNKNOWN
        assert wc.text == "a,b,b,c"

    def test_observed_repetitions_raise_bound(self, loop_net) -> None:
        log = [PartialOrder.sequence("abbc"), PartialOrder.sequence("ac")]
        analysis = ContinuationAnalyzer(loop_net, log).analyze()
        assert analysis.max_loop_number == 2
        assert [wc.continuation for wc in analysis.wrong_continuations] == [
            ("a", "b", "b", "b", "c"),
            ("a", "b", "c"),
        ]

    def test_explicit_repetition_bound(self, loop_net, loop_log) -> None:
        analysis = ContinuationAnalyzer(loop_net, loop_log, max_repetitions=1).analyze()
        assert analysis.wrong_continuations == []

    def test_zero_repetition_bound_is_respected(self, loop_net, loop_log) -> None:
        analysis = ContinuationAnalyzer(loop_net, loop_log, max_repetitions=0).analyze()
        assert analysis.generated_words == []
        assert analysis.wrong_continuations == []

    def test_generation_cap(self, loop_net, loop_log) -> None:
        analysis = ContinuationAnalyzer(
            loop_net, loop_log, max_repetitions=10, max_continuations=2
        ).analyze()
        assert len(analysis.generated_words) == 2

    def test_repeated_analysis_is_identical(self, loop_net) -> None:
        log = [PartialOrder.sequence("abbc"), PartialOrder.sequence("ac")]
        first = ContinuationAnalyzer(loop_net, log).analyze()
        second = ContinuationAnalyzer(loop_net, log).analyze()
        assert first.generated_words == second.generated_words
        assert first.wrong_continuations == second.wrong_continuations
        assert {wc.continuation for wc in first.wrong_continuations} == {
            wc.continuation for wc in second.wrong_continuations
        }

    def test_fitting_sequence_has_none(self, skip_net) -> None:
        assert wrong_continuations(skip_net, [PartialOrder.sequence("abc")]) == []

    def test_invalid_transition_counts(self) -> None:
        net = build_net(
            [("p0", 1), ("p1", 0), ("p2", 0)],
            [("ta", "a"), ("tb", "b"), ("tc", "c"), ("td", "d")],
            [("p0", "ta"), ("ta", "p1"), ("p1", "tb"), ("p1", "tc"), ("p1", "td"),
             ("tb", "p2"), ("tc", "p2"), ("td", "p2")],
        )
        continuations = wrong_continuations(net, [PartialOrder.sequence("ab")])
        assert [wc.continuation for wc in continuations] == [("a", "c"), ("a", "d")]
        assert invalid_transitions(continuations) == {"tc": 1, "td": 1}
