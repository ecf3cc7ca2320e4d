"""Leaderboard ranking, summary statistics and payouts."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Hashable, List, Optional, Sequence, Tuple, TypeVar

import pandas as pd

from .config import POSITIONS, PickemConfig, ScoringWindow
from .entries import TeamEntry, normalize_owner
from .scoring import TeamScore

K = TypeVar("K", bound=Hashable)


@dataclass(frozen=True)
class RankedEntry:
    entry: TeamEntry
    score: TeamScore
    rank: int

    @property
    def total(self) -> float:
        return self.score.total


@dataclass(frozen=True)
class SummaryStats:
    entry_count: int
    unique_participant_count: int
    total_pot: float
    top_score: float


@dataclass(frozen=True)
class Payout:
    place: str
    fraction: float
    amount: int


def rank(entries: Sequence[Tuple[K, float]]) -> Dict[K, int]:
    """Competition ranking: ties share a rank and the next score takes its position.

    Scores [20, 20, 15, 10] rank as [1, 1, 3, 4].
    """

    ordered = sorted(entries, key=lambda item: -item[1])
    ranks: Dict[K, int] = {}
    current_rank = 0
    previous: Optional[float] = None
    for position, (key, score) in enumerate(ordered, start=1):
        if previous is None or score < previous:
            current_rank = position
        ranks[key] = current_rank
        previous = score
    return ranks


def summarize(entries: Sequence[Tuple[str, float]], entry_fee: float) -> SummaryStats:
    """Summary of `(owner, total_score)` pairs; an empty pool summarises to zeros."""

    owners = {normalize_owner(owner) for owner, _ in entries}
    return SummaryStats(
        entry_count=len(entries),
        unique_participant_count=len(owners),
        total_pot=len(entries) * entry_fee,
        top_score=max((score for _, score in entries), default=0.0),
    )


def payouts(total_pot: float, structure: Sequence[Tuple[str, float]]) -> List[Payout]:
    return [
        Payout(
            place=place,
            fraction=fraction,
            amount=int(Decimal(repr(total_pot * fraction)).quantize(Decimal(1), rounding=ROUND_HALF_UP)),
        )
        for place, fraction in structure
    ]


def filter_entries(
    ranked: Sequence[RankedEntry],
    email: Optional[str] = None,
    qb: Optional[str] = None,
    wr: Optional[str] = None,
    rb: Optional[str] = None,
    te: Optional[str] = None,
) -> List[RankedEntry]:
    """Narrow a leaderboard by owner email or picked player names; ranks are kept as-is."""

    wanted_names = {position: name for position, name in zip(POSITIONS, (qb, wr, rb, te)) if name}
    owner = normalize_owner(email) if email else None

    def matches(item: RankedEntry) -> bool:
        if owner and item.entry.owner != owner:
            return False
        for position, name in wanted_names.items():
            pick = item.entry.picks.get(position)
            if pick is None or pick.name != name:
                return False
        return True

    return [item for item in ranked if matches(item)]


@dataclass
class Leaderboard:
    ranked_entries: List[RankedEntry]
    summary: SummaryStats
    payouts: List[Payout] = field(default_factory=list)
    window: Optional[ScoringWindow] = None

    @property
    def degraded(self) -> bool:
        return any(item.score.degraded for item in self.ranked_entries)

    def to_frame(self, entries: Optional[Sequence[RankedEntry]] = None) -> pd.DataFrame:
        rows = []
        for item in self.ranked_entries if entries is None else entries:
            row = {
                "rank": item.rank,
                "owner": item.entry.owner,
                "owner_name": item.entry.owner_name or "",
                "team_number": item.entry.team_number,
            }
            for position, pick in item.entry.picks.items():
                prefix = position.lower()
                row[f"{prefix}_name"] = pick.name
                row[f"{prefix}_team"] = pick.team
                row[f"{prefix}_points"] = item.score.breakdown.get(position, 0.0)
            row["total"] = item.total
            row["degraded"] = item.score.degraded
            rows.append(row)
        return pd.DataFrame(rows)


def build_leaderboard(scored: Sequence[Tuple[TeamEntry, TeamScore]], config: PickemConfig) -> Leaderboard:
    ranks = rank([(entry.entry_id, score.total) for entry, score in scored])
    ranked = [RankedEntry(entry=entry, score=score, rank=ranks[entry.entry_id]) for entry, score in scored]
    ranked.sort(key=lambda item: item.rank)

    summary = summarize([(entry.owner, score.total) for entry, score in scored], config.entry_fee)
    return Leaderboard(
        ranked_entries=ranked,
        summary=summary,
        payouts=payouts(summary.total_pot, config.payouts) if scored else [],
        window=config.scoring_window,
    )
