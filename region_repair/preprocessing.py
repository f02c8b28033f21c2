"""
Loading nets and logs from standard process-mining formats.

Supported formats:
  • **PNML** (.pnml)          — nets, loaded via pm4py
  • **XES** (.xes, .xes.gz)   — logs, loaded via pm4py
  • **CSV** (.csv)            — logs, loaded via pandas + pm4py
  • **Text** (.pn / .log / .txt) — see ``region_repair.text_format``

Every XES/CSV case becomes a totally ordered partial order, sorted by
``time:timestamp`` where present.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path

import pandas as pd
import pm4py
from pm4py.objects.petri_net.obj import Marking
from pm4py.objects.petri_net.obj import PetriNet as Pm4pyNet

from region_repair.models import Arc, PartialOrder, PetriNet, Place, Transition
from region_repair.text_format import parse_partial_orders, parse_petri_net

logger = logging.getLogger(__name__)

CASE_COLUMN = "case:concept:name"
ACTIVITY_COLUMN = "concept:name"
TIMESTAMP_COLUMN = "time:timestamp"


def _extension(path: Path) -> str:
    suffixes = path.suffixes  # e.g. ['.xes'] or ['.xes', '.gz']
    return suffixes[0].lower() if suffixes else ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def load_petri_net(path: str | Path) -> PetriNet:
    """Load a net from ``.pnml`` or the ``.type pn`` text format."""
    filepath = Path(path)
    ext = _extension(filepath)

    if ext == ".pnml":
        net, initial_marking, _final_marking = pm4py.read_pnml(str(filepath))
        return from_pm4py(net, initial_marking)
    elif ext in (".pn", ".txt"):
        return parse_petri_net(filepath.read_text(encoding="utf-8"))
    else:
        raise ValueError(
            f"Unsupported net format '{ext}'. Expected .pnml, .pn, or .txt."
        )


def load_partial_orders(path: str | Path) -> list[PartialOrder]:
    """Load a log as partial orders.

    Supported extensions:
      • ``.xes`` / ``.xes.gz``  — XES format (loaded via pm4py)
      • ``.csv``                — CSV format  (loaded via pm4py)
      • ``.log`` / ``.txt``     — ``.type log`` text format
    """
    filepath = Path(path)
    ext = _extension(filepath)

    if ext == ".xes":
        df: pd.DataFrame = pm4py.read_xes(str(filepath))
        return dataframe_to_partial_orders(df)
    elif ext == ".csv":
        df = pd.read_csv(str(filepath))
        xes_required = {CASE_COLUMN, ACTIVITY_COLUMN, TIMESTAMP_COLUMN}
        if not xes_required.issubset(set(df.columns)):
            df = pm4py.format_dataframe(df)
        return dataframe_to_partial_orders(df)
    elif ext in (".log", ".txt"):
        return parse_partial_orders(filepath.read_text(encoding="utf-8"))
    else:
        raise ValueError(
            f"Unsupported event log format '{ext}'. "
            "Expected .xes, .xes.gz, .csv, .log, or .txt."
        )


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------

def from_pm4py(net: Pm4pyNet, initial_marking: Marking) -> PetriNet:
    """Convert a pm4py net; silent transitions are labelled by their name."""
    places = [
        Place(id=place.name, marking=int(initial_marking.get(place, 0)))
        for place in sorted(net.places, key=lambda p: p.name)
    ]
    transitions = [
        Transition(id=transition.name, label=transition.label or transition.name)
        for transition in sorted(net.transitions, key=lambda t: t.name)
    ]
    arcs = [
        Arc(arc.source.name, arc.target.name, int(arc.weight))
        for arc in sorted(net.arcs, key=lambda a: (a.source.name, a.target.name))
    ]
    logger.debug(
        "Converted pm4py net: |P| = %d, |T| = %d, |F| = %d",
        len(places),
        len(transitions),
        len(arcs),
    )
    return PetriNet.build(places, transitions, arcs)


def dataframe_to_partial_orders(df: pd.DataFrame) -> list[PartialOrder]:
    """Turn every case of a pm4py-style ``DataFrame`` into a sequence."""
    for column in (CASE_COLUMN, ACTIVITY_COLUMN):
        if column not in df.columns:
            raise KeyError(
                f"Column '{column}' not found. "
                "Ensure the event log follows the XES naming convention."
            )

    orders: list[PartialOrder] = []
    for _case_id, case_df in df.groupby(CASE_COLUMN, sort=False):
        if TIMESTAMP_COLUMN in case_df.columns:
            case_df = case_df.sort_values(TIMESTAMP_COLUMN, kind="stable")
        orders.append(PartialOrder.sequence(str(a) for a in case_df[ACTIVITY_COLUMN]))

    logger.info("Loaded event log: %d traces", len(orders))
    return orders


def petri_net_to_pnml(net: PetriNet, net_id: str = "net") -> str:
    """Serialise *net* to PNML (Petri Net Markup Language) XML."""
    root = ET.Element("pnml")
    net_el = ET.SubElement(
        root, "net", id=net_id, type="http://www.pnml.org/version-2009/grammar/ptnet"
    )
    page = ET.SubElement(net_el, "page", id="page0")

    for place in net.places:
        p_el = ET.SubElement(page, "place", id=place.id)
        name_el = ET.SubElement(p_el, "name")
        ET.SubElement(name_el, "text").text = place.id
        if place.marking > 0:
            marking_el = ET.SubElement(p_el, "initialMarking")
            ET.SubElement(marking_el, "text").text = str(place.marking)

    for transition in net.transitions:
        t_el = ET.SubElement(page, "transition", id=transition.id)
        name_el = ET.SubElement(t_el, "name")
        ET.SubElement(name_el, "text").text = transition.label

    for arc in net.arcs:
        a_el = ET.SubElement(
            page, "arc", id=f"arc_{arc.source}_to_{arc.target}",
            source=arc.source, target=arc.target,
        )
        if arc.weight != 1:
            inscription = ET.SubElement(a_el, "inscription")
            ET.SubElement(inscription, "text").text = str(arc.weight)

    ET.indent(root, space="  ")
    return ET.tostring(root, encoding="unicode", xml_declaration=True)
