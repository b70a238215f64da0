"""
Test assembly: blueprint -> ordered question list, with progress tracking.

Usage:
    from assessment_engine.core.assembly import TestAssembler, AssemblyProgressTracker

    tracker = AssemblyProgressTracker(publisher=bus)
    assembler = TestAssembler(inventory, tracker=tracker)
    result = assembler.assemble(blueprint, session_id="s-1")
    tracker.get("s-1").phase  # AssemblyPhase.COMPLETE
"""

from .assembler import AssemblyResult, TestAssembler, competency_priority
from .progress import AssemblyPhase, AssemblyProgress, AssemblyProgressTracker

__all__ = [
    "AssemblyPhase",
    "AssemblyProgress",
    "AssemblyProgressTracker",
    "AssemblyResult",
    "TestAssembler",
    "competency_priority",
]
