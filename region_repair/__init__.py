"""Region-based fitness and precision repair of Petri nets."""
from region_repair.models import PartialOrder, PetriNet
from region_repair.pipeline import AnalysisMode, RepairSettings, analyze, run_repair

__all__ = [
    "AnalysisMode",
    "PartialOrder",
    "PetriNet",
    "RepairSettings",
    "analyze",
    "run_repair",
]
