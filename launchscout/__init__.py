"""
LaunchScout - Multi-source discovery and paper trading of newly launched tokens.

Feeds -> CandidateStore -> CandidateScorer -> SelectionGate -> PositionManager
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
