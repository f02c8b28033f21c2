"""Tests for loading nets and logs from standard formats."""

from __future__ import annotations

import xml.etree.ElementTree as ET

import pandas as pd
import pytest
from pm4py.objects.petri_net.obj import Marking
from pm4py.objects.petri_net.obj import PetriNet as Pm4pyNet
from pm4py.objects.petri_net.utils import petri_utils

from region_repair.examples import AND_LOG, AND_NET
from region_repair.preprocessing import (
    dataframe_to_partial_orders,
    from_pm4py,
    load_partial_orders,
    load_petri_net,
    petri_net_to_pnml,
)
from tests.helpers import build_net


class TestLogs:
    def test_dataframe_cases_sorted_by_timestamp(self) -> None:
        df = pd.DataFrame({
            "case:concept:name": ["1", "1", "2", "1"],
            "concept:name": ["b", "a", "a", "c"],
            "time:timestamp": pd.to_datetime(
                ["2024-01-01 10:00", "2024-01-01 09:00", "2024-01-02 09:00", "2024-01-01 11:00"]
            ),
        })
        orders = dataframe_to_partial_orders(df)
        assert [o.labels() for o in orders] == [["a", "b", "c"], ["a"]]
        assert orders[0].events[1].previous_events == ["a"]

    def test_missing_activity_column(self) -> None:
        with pytest.raises(KeyError):
            dataframe_to_partial_orders(pd.DataFrame({"case:concept:name": ["1"]}))

    def test_csv_in_xes_naming(self, tmp_path) -> None:
        path = tmp_path / "log.csv"
        path.write_text(
            "case:concept:name,concept:name,time:timestamp\n"
            "1,a,2024-01-01 09:00\n1,c,2024-01-01 10:00\n",
            encoding="utf-8",
        )
        (order,) = load_partial_orders(path)
        assert order.labels() == ["a", "c"]

    def test_text_log(self, tmp_path) -> None:
        path = tmp_path / "and.log"
        path.write_text(AND_LOG, encoding="utf-8")
        assert [o.labels() for o in load_partial_orders(path)] == [["a", "b", "c"], ["a", "c", "b"]]

    def test_unsupported_log(self, tmp_path) -> None:
        with pytest.raises(ValueError):
            load_partial_orders(tmp_path / "log.json")


class TestNets:
    def test_from_pm4py(self) -> None:
        net = Pm4pyNet("n")
        source = Pm4pyNet.Place("source")
        sink = Pm4pyNet.Place("sink")
        visible = Pm4pyNet.Transition("t1", "a")
        silent = Pm4pyNet.Transition("tau", None)
        net.places.update({source, sink})
        net.transitions.update({visible, silent})
        petri_utils.add_arc_from_to(source, visible, net)
        petri_utils.add_arc_from_to(visible, sink, net, weight=2)
        petri_utils.add_arc_from_to(sink, silent, net)
        marking = Marking()
        marking[source] = 1

        converted = from_pm4py(net, marking)
        assert [(p.id, p.marking) for p in converted.places] == [("sink", 0), ("source", 1)]
        assert [(t.id, t.label) for t in converted.transitions] == [("t1", "a"), ("tau", "tau")]
        assert ("t1", "sink", 2) in {(a.source, a.target, a.weight) for a in converted.arcs}

    def test_pnml_document(self) -> None:
        net = build_net([("p0", 2), ("p1", 0)], [("t1", "a")], [("p0", "t1"), ("t1", "p1", 3)])
        root = ET.fromstring(petri_net_to_pnml(net, net_id="demo"))
        page = root.find("net/page")
        assert root.find("net").get("id") == "demo"
        assert page.find("place[@id='p0']/initialMarking/text").text == "2"
        assert page.find("place[@id='p1']/initialMarking") is None
        assert page.find("transition[@id='t1']/name/text").text == "a"
        assert page.find("arc[@source='t1']/inscription/text").text == "3"

    def test_pnml_round_trip(self, tmp_path) -> None:
        net = build_net([("p0", 1), ("p1", 0)], [("t1", "a")], [("p0", "t1"), ("t1", "p1", 2)])
        path = tmp_path / "net.pnml"
        path.write_text(petri_net_to_pnml(net), encoding="utf-8")
        loaded = load_petri_net(path)
        assert [(p.id, p.marking) for p in loaded.places] == [("p0", 1), ("p1", 0)]
        assert {(a.source, a.target, a.weight) for a in loaded.arcs} == {
            ("p0", "t1", 1), ("t1", "p1", 2),
        }

    def test_text_net(self, tmp_path) -> None:
        path = tmp_path / "and.pn"
        path.write_text(AND_NET, encoding="utf-8")
        assert [t.id for t in load_petri_net(path).transitions] == ["a", "b", "c"]

    def test_unsupported_net(self, tmp_path) -> None:
        with pytest.raises(ValueError):
            load_petri_net(tmp_path / "net.bpmn")
