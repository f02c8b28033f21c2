"""
CLI entry point for region-based net repair.

Usage::

    python -m region_repair <net.pnml|net.pn> <log.xes|log.log> [--mode precision] [--output report.json]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from region_repair.pipeline import AnalysisMode, RepairSettings, run_repair
from region_repair.preprocessing import (
    load_partial_orders,
    load_petri_net,
    petri_net_to_pnml,
)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="region-repair",
        description="Diagnose a Petri net against an event log and propose region-based repairs.",
    )
    parser.add_argument(
        "net_file",
        type=Path,
        help="Path to the net (.pnml, .pn or .txt).",
    )
    parser.add_argument(
        "log_file",
        type=Path,
        help="Path to the event log (.xes, .xes.gz, .csv, .log or .txt).",
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in AnalysisMode],
        default=AnalysisMode.FITNESS.value,
        help="Repair unfitting places or restrict imprecise behaviour (default: fitness).",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Path for the JSON report (default: stdout).",
    )
    parser.add_argument(
        "--pnml",
        type=Path,
        default=None,
        help="Also write the analysed net as PNML to this path.",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=RepairSettings().solver_timeout_ms,
        help="Per-ILP solver timeout in milliseconds.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug-level logging.",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)-8s %(message)s",
    )

    for path in (args.net_file, args.log_file):
        if not path.exists():
            logging.error("File not found: %s", path)
            sys.exit(1)

    net = load_petri_net(args.net_file)
    partial_orders = load_partial_orders(args.log_file)
    report = run_repair(
        net,
        partial_orders,
        AnalysisMode(args.mode),
        RepairSettings(solver_timeout_ms=args.timeout),
    )
    text = json.dumps(report.to_dict(), indent=2, ensure_ascii=False)

    if args.pnml:
        args.pnml.write_text(petri_net_to_pnml(report.net), encoding="utf-8")
        logging.info("PNML written to %s", args.pnml)

    if args.output:
        args.output.write_text(text, encoding="utf-8")
        logging.info("Report written to %s", args.output)
    else:
        print(text)


if __name__ == "__main__":
    main()
