"""
Selection Gate - Candidate acceptance/rejection logic.

Evaluates a (Candidate, ScoreResult) pair and decides whether the
candidate is accepted for storage and trading.

Accept iff overall_score > threshold AND risk_score < ceiling, where the
threshold depends on the candidate's source trust tier.

All gating is DETERMINISTIC: same input -> same decision.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from launchscout.feeds.base import Candidate
from launchscout.workspace.scoring import DEFAULT_TRUSTED_SOURCES, ScoreResult


class GateDecision(Enum):
    """Selection gate decision outcomes."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RejectionReason(Enum):
    """Standard rejection reason codes."""

    LOW_SCORE = "low_score"
    HIGH_RISK = "high_risk"
    LOW_LIQUIDITY = "low_liquidity"


@dataclass(frozen=True)
class GateConfig:
    """Thresholds for the selection gate."""

    trusted_sources: frozenset[str] = DEFAULT_TRUSTED_SOURCES

    # overall_score must be strictly greater than the tier threshold
    trusted_threshold: float = 20.0
    default_threshold: float = 30.0

    # risk_score must be strictly below the ceiling
    risk_ceiling: float = 85.0

    # 0 disables the liquidity floor
    min_liquidity: float = 0.0


@dataclass(frozen=True)
class GateResult:
    """
    Result of gate evaluation.

    Contains the decision, reason codes and the thresholds that were applied.
    """

    decision: GateDecision
    reasons: tuple[RejectionReason, ...] = field(default_factory=tuple)
    threshold: float = 0.0
    ceiling: float = 0.0
    overall_score: float = 0.0
    risk_score: float = 0.0

    @property
    def accepted(self) -> bool:
        return self.decision == GateDecision.ACCEPTED

    def to_event_payload(self) -> dict[str, Any]:
        """Convert to event payload dict."""
        return {
            "decision": self.decision.value,
            "reasons": [r.value for r in self.reasons],
            "threshold": self.threshold,
            "ceiling": self.ceiling,
            "overall_score": round(self.overall_score, 2),
            "risk_score": self.risk_score,
        }


class SelectionGate:
    """
    Tiered acceptance gate.

    Rules:
    1. overall_score > threshold (lower threshold for trusted sources)
    2. risk_score < ceiling
    3. liquidity >= min_liquidity (when configured)
    """

    def __init__(self, config: Optional[GateConfig] = None):
        self._config = config or GateConfig()

    @property
    def config(self) -> GateConfig:
        return self._config

    def threshold_for(self, source: str) -> float:
        """Score threshold for a source's trust tier."""
        if source in self._config.trusted_sources:
            return self._config.trusted_threshold
        return self._config.default_threshold

    def evaluate(self, candidate: Candidate, score: ScoreResult) -> GateResult:
        """Evaluate a scored candidate. Never raises."""
        cfg = self._config
        threshold = self.threshold_for(candidate.source)
        reasons: list[RejectionReason] = []

        if not score.overall_score > threshold:
            reasons.append(RejectionReason.LOW_SCORE)

        if not score.risk_score < cfg.risk_ceiling:
            reasons.append(RejectionReason.HIGH_RISK)

        if cfg.min_liquidity > 0 and candidate.liquidity < cfg.min_liquidity:
            reasons.append(RejectionReason.LOW_LIQUIDITY)

        return GateResult(
            decision=GateDecision.REJECTED if reasons else GateDecision.ACCEPTED,
            reasons=tuple(reasons),
            threshold=threshold,
            ceiling=cfg.risk_ceiling,
            overall_score=score.overall_score,
            risk_score=score.risk_score,
        )
