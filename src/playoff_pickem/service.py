"""Score aggregation pipeline: entries -> player stats -> team scores -> leaderboard."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol

from .config import POSITIONS, PickemConfig
from .entries import EntryStore, PlayerPick, TeamEntry
from .leaderboard import Leaderboard, build_leaderboard, rank
from .scoring import PlayerOutcome, ScoreStatus, TeamScore, team_score_from_outcomes
from .sleeper import Player, ProviderUnavailable

LOGGER = logging.getLogger(__name__)


class SubmissionClosed(RuntimeError):
    """Raised when entries are created or edited after the submission deadline."""


class StatsProvider(Protocol):
    async def get_weekly_stats(self, player_id: str) -> Dict[int, float]:
        ...

    async def list_playoff_players(self, position: str, search: str = "") -> List[Player]:
        ...


@dataclass(frozen=True)
class PlayerSearch:
    players: List[Player]
    unavailable: bool = False


@dataclass(frozen=True)
class ManagerTeam:
    entry: TeamEntry
    score: TeamScore
    rank: int
    total_entries: int
    players: Dict[str, PlayerOutcome] = field(default_factory=dict)


def _discard_result(task: "asyncio.Future[object]") -> None:
    if not task.cancelled() and task.exception() is not None:
        LOGGER.debug("Abandoned stats fetch failed: %s", task.exception())


class PickemService:
    """Computes team scores and leaderboards from the entry store and provider."""

    def __init__(
        self,
        config: PickemConfig,
        provider: StatsProvider,
        store: EntryStore,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.config = config
        self.provider = provider
        self.store = store
        self._clock = clock

    async def search_players(self, position: str, search: str = "") -> PlayerSearch:
        wanted = position.strip().upper()
        if wanted not in self.config.positions:
            raise ValueError(f"Invalid position {position!r}; expected one of {', '.join(self.config.positions)}")
        try:
            players = await self.provider.list_playoff_players(wanted, search)
        except ProviderUnavailable as exc:
            LOGGER.warning("Player search for %s unavailable: %s", wanted, exc)
            return PlayerSearch(players=[], unavailable=True)
        return PlayerSearch(players=players)

    async def _player_outcome(self, player_id: str, limiter: asyncio.Semaphore) -> PlayerOutcome:
        window = self.config.scoring_window
        # The slot is released when the upstream call settles, not when this
        # waiter gives up, so abandoned fetches still count against the limit.
        await limiter.acquire()
        fetch = asyncio.ensure_future(self.provider.get_weekly_stats(player_id))
        fetch.add_done_callback(lambda _: limiter.release())
        try:
            stats = await asyncio.wait_for(asyncio.shield(fetch), timeout=self.config.stat_fetch_timeout)
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Stats fetch for player %s timed out after %ss", player_id, self.config.stat_fetch_timeout
            )
            fetch.add_done_callback(_discard_result)
            return PlayerOutcome.failed(player_id, window)
        except ProviderUnavailable as exc:
            LOGGER.warning("Stats fetch for player %s failed: %s", player_id, exc)
            return PlayerOutcome.failed(player_id, window)
        return PlayerOutcome.from_stats(player_id, stats, window)

    async def player_outcomes(self, player_ids: Iterable[str]) -> Dict[str, PlayerOutcome]:
        """Fetch each distinct player once, concurrently, and score them."""

        unique_ids = sorted({player_id for player_id in player_ids if player_id})
        if not unique_ids:
            return {}
        limiter = asyncio.Semaphore(self.config.max_concurrent_fetches)
        outcomes = await asyncio.gather(*(self._player_outcome(player_id, limiter) for player_id in unique_ids))
        failed = sum(1 for outcome in outcomes if outcome.status is ScoreStatus.FETCH_FAILED)
        if failed:
            LOGGER.warning("%d of %d player stat fetches failed; scoring them as zero", failed, len(unique_ids))
        return {outcome.player_id: outcome for outcome in outcomes}

    async def compute_team_score(self, entry: TeamEntry) -> TeamScore:
        picks = entry.player_ids()
        outcomes = await self.player_outcomes(picks.values())
        return team_score_from_outcomes(picks, outcomes)

    async def _score_entries(self, entries: List[TeamEntry]) -> Dict[int, TeamScore]:
        outcomes = await self.player_outcomes(
            player_id for entry in entries for player_id in entry.player_ids().values()
        )
        return {entry.entry_id: team_score_from_outcomes(entry.player_ids(), outcomes) for entry in entries}

    async def compute_leaderboard(self) -> Leaderboard:
        entries = self.store.list_all_entries()
        scores = await self._score_entries(entries)
        leaderboard = build_leaderboard([(entry, scores[entry.entry_id]) for entry in entries], self.config)
        LOGGER.info(
            "Leaderboard computed for %d entries (%d participants)",
            leaderboard.summary.entry_count,
            leaderboard.summary.unique_participant_count,
        )
        return leaderboard

    async def manager_teams(self, owner: str) -> List[ManagerTeam]:
        """An owner's teams with weekly player points and rank among every entry."""

        own_entries = self.store.list_entries_for_owner(owner)
        if not own_entries:
            return []

        all_entries = self.store.list_all_entries()
        outcomes = await self.player_outcomes(
            player_id for entry in all_entries for player_id in entry.player_ids().values()
        )
        scores = {
            entry.entry_id: team_score_from_outcomes(entry.player_ids(), outcomes) for entry in all_entries
        }
        ranks = rank([(entry_id, score.total) for entry_id, score in scores.items()])

        teams: List[ManagerTeam] = []
        for entry in own_entries:
            teams.append(
                ManagerTeam(
                    entry=entry,
                    score=scores[entry.entry_id],
                    rank=ranks[entry.entry_id],
                    total_entries=len(all_entries),
                    players={
                        position: outcomes[player_id]
                        for position, player_id in entry.player_ids().items()
                        if player_id in outcomes
                    },
                )
            )
        return teams

    def _ensure_open(self) -> None:
        if not self.config.submissions_open(self._clock()):
            deadline = self.config.submission_deadline
            raise SubmissionClosed(f"Submissions closed at {deadline.isoformat() if deadline else 'the deadline'}")

    def submit_entry(
        self,
        owner: str,
        team_number: int,
        picks: Mapping[str, PlayerPick],
        owner_name: Optional[str] = None,
    ) -> TeamEntry:
        self._ensure_open()
        return self.store.create_entry(owner, team_number, picks, owner_name=owner_name)

    def edit_entry(self, owner: str, team_number: int, picks: Mapping[str, PlayerPick]) -> TeamEntry:
        self._ensure_open()
        return self.store.replace_picks(owner, team_number, picks)


def picks_from_players(players: Mapping[str, Player]) -> Dict[str, PlayerPick]:
    return {
        position: PlayerPick(player_id=player.player_id, name=player.name, team=player.team or "")
        for position, player in players.items()
        if position in POSITIONS
    }
