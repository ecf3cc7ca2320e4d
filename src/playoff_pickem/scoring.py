from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, Mapping, Optional

from .config import ScoringWindow

TENTH = Decimal("0.1")


class ScoreStatus(str, Enum):
    SCORED = "scored"
    NO_DATA = "no_data"
    FETCH_FAILED = "fetch_failed"


def round_points(value: float) -> float:
    """Round to one decimal, halves toward positive infinity (6.05 -> 6.1, -0.05 -> 0.0)."""

    number = Decimal(repr(float(value)))
    rounding = ROUND_HALF_UP if number >= 0 else ROUND_HALF_DOWN
    return float(number.quantize(TENTH, rounding=rounding)) + 0.0


def score_player(weekly_stats: Mapping[int, float], window: ScoringWindow) -> float:
    """Sum the window's weeks (absent weeks count as zero) and round once."""

    return round_points(sum(weekly_stats.get(week, 0.0) or 0.0 for week in window.weeks))


def weekly_points(weekly_stats: Mapping[int, float], window: ScoringWindow) -> Dict[int, float]:
    return {week: round_points(weekly_stats.get(week, 0.0) or 0.0) for week in window.weeks}


@dataclass(frozen=True)
class PlayerOutcome:
    player_id: str
    status: ScoreStatus
    points: float = 0.0
    weekly: Dict[int, float] = field(default_factory=dict)

    @classmethod
    def from_stats(cls, player_id: str, weekly_stats: Mapping[int, float], window: ScoringWindow) -> "PlayerOutcome":
        has_data = any(week in weekly_stats for week in window.weeks)
        return cls(
            player_id=player_id,
            status=ScoreStatus.SCORED if has_data else ScoreStatus.NO_DATA,
            points=score_player(weekly_stats, window),
            weekly=weekly_points(weekly_stats, window),
        )

    @classmethod
    def failed(cls, player_id: str, window: ScoringWindow) -> "PlayerOutcome":
        return cls(
            player_id=player_id,
            status=ScoreStatus.FETCH_FAILED,
            points=0.0,
            weekly={week: 0.0 for week in window.weeks},
        )


@dataclass(frozen=True)
class TeamScore:
    total: float
    breakdown: Dict[str, float]
    statuses: Dict[str, ScoreStatus] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return any(status is ScoreStatus.FETCH_FAILED for status in self.statuses.values())


def score_team(
    player_scores: Mapping[str, float],
    statuses: Optional[Mapping[str, ScoreStatus]] = None,
) -> TeamScore:
    """Combine per-position scores into a team total.

    Each player score is rounded before summing; the total is the sum of the
    rounded values, normalised to one decimal.
    """

    breakdown = {position: round_points(score) for position, score in player_scores.items()}
    total = round_points(sum(breakdown.values()))
    return TeamScore(total=total, breakdown=breakdown, statuses=dict(statuses or {}))


def team_score_from_outcomes(
    picks: Mapping[str, str],
    outcomes: Mapping[str, PlayerOutcome],
) -> TeamScore:
    """Score a `{position: player_id}` lineup; unknown players count as failed fetches."""

    scores: Dict[str, float] = {}
    statuses: Dict[str, ScoreStatus] = {}
    for position, player_id in picks.items():
        outcome = outcomes.get(player_id)
        if outcome is None:
            scores[position] = 0.0
            statuses[position] = ScoreStatus.FETCH_FAILED
        else:
            scores[position] = outcome.points
            statuses[position] = outcome.status
    return score_team(scores, statuses)
