"""Build data model: beads, chains, the unit producer, and dependency tracking."""

from sfc_orchestrator.build.bead import Bead, BeadRole, canonical_path, classify_path
from sfc_orchestrator.build.chain import AppChain, BuildChain, ComponentChain, PageChain
from sfc_orchestrator.build.graph import DependencyGraph
from sfc_orchestrator.build.producer import Producer
from sfc_orchestrator.build.tracking import ModuleSet

__all__ = [
    "AppChain",
    "Bead",
    "BeadRole",
    "BuildChain",
    "ComponentChain",
    "DependencyGraph",
    "ModuleSet",
    "PageChain",
    "Producer",
    "canonical_path",
    "classify_path",
]
