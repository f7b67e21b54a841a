"""
Candidate Scoring - Deterministic opportunity and risk scoring.

Each candidate gets five sub-scores, a weighted overall score and an
independent risk score. Scoring is a pure function of (candidate, now):
identical inputs always produce identical results.

NO ML - Simple, deterministic, auditable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from launchscout.feeds.base import Candidate

logger = logging.getLogger(__name__)


DEFAULT_SOURCE_BONUS: dict[str, float] = {
    "raydium": 25.0,
    "pumpfun": 20.0,
    "moonshot": 15.0,
    "jupiter": 10.0,
    "dexscreener": 5.0,
    "birdeye": 5.0,
}

DEFAULT_TRUSTED_SOURCES: frozenset[str] = frozenset({"raydium", "jupiter", "pumpfun", "moonshot"})


@dataclass(frozen=True)
class ScoringConfig:
    """
    Configuration for candidate scoring.

    Weights must sum to 1.0 for normalized output.
    """

    # Component weights (must sum to 1.0)
    weight_liquidity: float = 0.2
    weight_momentum: float = 0.2
    weight_age: float = 0.3
    weight_volume: float = 0.2
    weight_source: float = 0.1

    # Per-source trust bonus, added to age_score and used as source_score
    source_bonus: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_SOURCE_BONUS))
    trusted_sources: frozenset[str] = DEFAULT_TRUSTED_SOURCES

    # Risk model
    base_risk: float = 40.0
    trusted_risk_discount: float = 10.0
    weak_average_threshold: float = 40.0  # avg of core sub-scores below this adds risk
    weak_average_penalty: float = 15.0


@dataclass(frozen=True)
class ScoreResult:
    """Result of scoring one candidate at one instant. Never persisted as identity."""
    liquidity_score: float
    momentum_score: float
    age_score: float
    volume_score: float
    source_score: float
    overall_score: float
    risk_score: float

    @property
    def confidence(self) -> float:
        """overall_score mapped into [0, 1]."""
        return max(0.0, min(1.0, self.overall_score / 100.0))

    def to_dict(self) -> dict[str, float]:
        return {
            "liquidity_score": self.liquidity_score,
            "momentum_score": self.momentum_score,
            "age_score": self.age_score,
            "volume_score": self.volume_score,
            "source_score": self.source_score,
            "overall_score": round(self.overall_score, 2),
            "risk_score": self.risk_score,
        }


class CandidateScorer:
    """
    Scoring engine for discovered candidates.

    Sub-scores:
        - Liquidity depth
        - Momentum (price change + raw volume)
        - Age (newer is better) plus source trust bonus
        - Volume / liquidity turnover
        - Source trust
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self._config = config or ScoringConfig()

        total_weight = (
            self._config.weight_liquidity +
            self._config.weight_momentum +
            self._config.weight_age +
            self._config.weight_volume +
            self._config.weight_source
        )
        if not (0.99 <= total_weight <= 1.01):
            logger.warning(
                f"[SCORING] Weights sum to {total_weight:.2f}, expected 1.0"
            )

    @property
    def config(self) -> ScoringConfig:
        return self._config

    def source_bonus(self, source: str) -> float:
        return self._config.source_bonus.get(source, 0.0)

    def is_trusted(self, source: str) -> bool:
        return source in self._config.trusted_sources

    def score(self, candidate: Candidate, now: datetime) -> ScoreResult:
        """
        Score a candidate.

        Args:
            candidate: Candidate to score
            now: Evaluation instant (age is measured against it)

        Returns:
            ScoreResult with all sub-scores, overall and risk
        """
        cfg = self._config
        age_minutes = candidate.age_minutes(now)
        bonus = self.source_bonus(candidate.source)

        liquidity = self._liquidity_score(candidate.liquidity)
        momentum = self._momentum_score(candidate.price_change_24h, candidate.volume_24h)
        age = self._age_score(age_minutes) + bonus
        volume = self._volume_score(candidate.volume_24h, candidate.liquidity)

        overall = (
            cfg.weight_liquidity * liquidity +
            cfg.weight_momentum * momentum +
            cfg.weight_age * age +
            cfg.weight_volume * volume +
            cfg.weight_source * bonus
        )

        risk = self._risk_score(
            candidate,
            age_minutes,
            sub_average=(liquidity + momentum + age + volume) / 4,
        )

        logger.debug(
            f"[SCORING] {candidate.symbol} ({candidate.source}): "
            f"liq={liquidity:.0f}, mom={momentum:.0f}, age={age:.0f}, "
            f"vol={volume:.0f}, src={bonus:.0f} -> overall={overall:.1f}, risk={risk:.0f}"
        )

        return ScoreResult(
            liquidity_score=liquidity,
            momentum_score=momentum,
            age_score=age,
            volume_score=volume,
            source_score=bonus,
            overall_score=overall,
            risk_score=risk,
        )

    @staticmethod
    def _liquidity_score(liquidity: float) -> float:
        if liquidity >= 50_000:
            return 100.0
        if liquidity >= 25_000:
            return 80.0
        if liquidity >= 10_000:
            return 60.0
        if liquidity >= 5_000:
            return 40.0
        if liquidity >= 1_000:
            return 20.0
        return 10.0

    @staticmethod
    def _momentum_score(price_change: float, volume: float) -> float:
        score = 50.0

        if price_change > 100:
            score += 30
        elif price_change > 50:
            score += 25
        elif price_change > 20:
            score += 20
        elif price_change > 10:
            score += 15
        elif price_change > 5:
            score += 10

        if volume > 100_000:
            score += 20
        elif volume > 50_000:
            score += 15
        elif volume > 10_000:
            score += 10
        elif volume > 1_000:
            score += 5

        return min(100.0, score)

    @staticmethod
    def _age_score(age_minutes: float) -> float:
        if age_minutes < 5:
            return 100.0
        if age_minutes < 30:
            return 90.0
        if age_minutes < 60:
            return 80.0
        if age_minutes < 180:
            return 60.0
        if age_minutes < 360:
            return 40.0
        if age_minutes < 720:
            return 20.0
        return 10.0

    @staticmethod
    def _volume_score(volume: float, liquidity: float) -> float:
        if liquidity <= 0:
            return 0.0
        ratio = volume / liquidity
        if ratio > 5:
            return 100.0
        if ratio > 2:
            return 80.0
        if ratio > 1:
            return 60.0
        if ratio > 0.5:
            return 40.0
        if ratio > 0.1:
            return 20.0
        return 10.0

    def _risk_score(self, candidate: Candidate, age_minutes: float, sub_average: float) -> float:
        cfg = self._config
        risk = cfg.base_risk

        if candidate.liquidity < 5_000:
            risk += 20
        elif candidate.liquidity < 10_000:
            risk += 10

        change = abs(candidate.price_change_24h)
        if change > 200:
            risk += 20
        elif change > 100:
            risk += 10

        if age_minutes < 10:
            risk += 20
        elif age_minutes < 30:
            risk += 15
        elif age_minutes < 60:
            risk += 10

        if self.is_trusted(candidate.source):
            risk -= cfg.trusted_risk_discount

        if sub_average < cfg.weak_average_threshold:
            risk += cfg.weak_average_penalty

        return max(0.0, min(100.0, risk))
