"""
Adaptive sequencing and gating.

Components:
- ConceptGraph: Prerequisite-validated concept ordering and per-session status
- ValidationGate: Converts a verdict history into CONTINUE / REMEDIATE / ADVANCE
- transition: Status change for a concept given the gate's decision
"""
from teach.adaptive.concept_graph import ConceptGraph
from teach.adaptive.validation_gate import GatePolicy, ValidationGate, transition

__all__ = [
    "ConceptGraph",
    "GatePolicy",
    "ValidationGate",
    "transition",
]
