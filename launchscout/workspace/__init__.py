"""
Candidate workspace: store, scoring and selection gate.

The discovery pipeline lives in launchscout.workspace.pipeline.
"""

from launchscout.workspace.scoring import CandidateScorer, ScoreResult, ScoringConfig
from launchscout.workspace.gate import (
    GateConfig,
    GateDecision,
    GateResult,
    RejectionReason,
    SelectionGate,
)
from launchscout.workspace.store import CandidateStore, ScoredCandidate

__all__ = [
    "CandidateScorer",
    "ScoreResult",
    "ScoringConfig",
    "GateConfig",
    "GateDecision",
    "GateResult",
    "RejectionReason",
    "SelectionGate",
    "CandidateStore",
    "ScoredCandidate",
]
