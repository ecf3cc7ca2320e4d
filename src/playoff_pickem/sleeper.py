"""Sleeper roster and weekly stats client."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import httpx

from .cache import Cache, SingleFlight, TTLCache
from .config import PickemConfig
from .settings import AppSettings

LOGGER = logging.getLogger(__name__)

ROSTER_CACHE_KEY = "sleeper:players:nfl"


class ProviderUnavailable(RuntimeError):
    """Raised when Sleeper cannot be reached or answers with an error status."""


class MalformedProviderResponse(ValueError):
    """Raised while parsing a Sleeper payload that has an unexpected shape."""


@dataclass(frozen=True)
class Player:
    player_id: str
    name: str
    team: Optional[str]
    position: Optional[str]
    active: bool = False
    status: str = ""

    @property
    def is_rostered_and_active(self) -> bool:
        return bool(self.team) and self.active and self.status == "Active"

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.player_id, "name": self.name, "team": self.team, "position": self.position}


def _coerce_int(value: Any) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _player_name(raw: Dict[str, Any]) -> str:
    full_name = raw.get("full_name")
    if isinstance(full_name, str) and full_name.strip():
        return full_name.strip()
    parts = [raw.get("first_name"), raw.get("last_name")]
    return " ".join(str(part).strip() for part in parts if isinstance(part, str) and part.strip())


def parse_players(payload: Any) -> Dict[str, Player]:
    """Convert the Sleeper `players/nfl` mapping into `Player` records.

    Entries that are not objects or have no usable name are skipped.
    """

    if not isinstance(payload, dict):
        raise MalformedProviderResponse("Expected an object keyed by player id")

    players: Dict[str, Player] = {}
    for key, raw in payload.items():
        if not isinstance(raw, dict):
            continue
        player_id = str(raw.get("player_id") or key).strip()
        name = _player_name(raw)
        if not player_id or not name:
            continue
        team = raw.get("team")
        position = raw.get("position")
        players[player_id] = Player(
            player_id=player_id,
            name=name,
            team=str(team).upper() if isinstance(team, str) and team else None,
            position=str(position).upper() if isinstance(position, str) and position else None,
            active=raw.get("active") is True,
            status=str(raw.get("status") or ""),
        )
    return players


def parse_weekly_stats(payload: Any, stat_field: str) -> Dict[int, float]:
    """Extract `{week: points}` from a Sleeper `grouping=week` stats payload.

    A null body means the player has no stats yet. Weeks without a numeric
    `stat_field` value are left out rather than zero-filled.
    """

    if payload is None:
        return {}

    rows: Iterable[Tuple[Any, Any]]
    if isinstance(payload, dict):
        rows = payload.items()
    elif isinstance(payload, list):
        rows = ((None, row) for row in payload)
    else:
        raise MalformedProviderResponse(f"Unexpected stats payload type {type(payload).__name__}")

    weekly: Dict[int, float] = {}
    for week_key, row in rows:
        if not isinstance(row, dict):
            continue
        week = _coerce_int(week_key)
        if week is None:
            week = _coerce_int(row.get("week"))
        stats = row.get("stats")
        if week is None or not isinstance(stats, dict):
            continue
        value = _coerce_float(stats.get(stat_field))
        if value is None:
            continue
        weekly[week] = value
    return weekly


class SleeperClient:
    """Async wrapper around the Sleeper roster and stats endpoints.

    The full roster is cached in the injected `Cache` for
    `config.roster_cache_ttl` seconds. Stats are never cached, but concurrent
    requests for the same key share one upstream call.
    """

    def __init__(
        self,
        settings: AppSettings,
        config: PickemConfig,
        cache: Optional[Cache] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings
        self.config = config
        self.cache: Cache = cache if cache is not None else TTLCache()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(20.0),
            headers={"Accept": "application/json"},
            follow_redirects=True,
        )
        self._roster_flight: SingleFlight[Dict[str, Player]] = SingleFlight()
        self._stats_flight: SingleFlight[Dict[int, float]] = SingleFlight()

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        LOGGER.debug("GET %s params=%s", url, params)
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(f"Sleeper request to {url} failed: {exc}") from exc
        if response.is_error:
            raise ProviderUnavailable(f"Sleeper request to {url} failed with status {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedProviderResponse(f"Sleeper response from {url} is not JSON") from exc

    async def fetch_all_players(self) -> Dict[str, Player]:
        cached = self.cache.get(ROSTER_CACHE_KEY)
        if cached is not None:
            LOGGER.debug("Using cached Sleeper roster (%d players)", len(cached))
            return cached
        return await self._roster_flight.run(ROSTER_CACHE_KEY, self._load_players)

    async def _load_players(self) -> Dict[str, Player]:
        try:
            players = parse_players(await self._get_json(self.settings.players_url))
        except MalformedProviderResponse as exc:
            raise ProviderUnavailable(f"Sleeper roster could not be parsed: {exc}") from exc
        self.cache.set(ROSTER_CACHE_KEY, players, self.config.roster_cache_ttl)
        LOGGER.info("Loaded %d players from Sleeper", len(players))
        return players

    async def list_playoff_players(self, position: str, search: str = "") -> List[Player]:
        """Active players on playoff teams at `position` whose name contains `search`."""

        wanted = position.strip().upper()
        needle = search.lower()
        players = await self.fetch_all_players()

        matches = [
            player
            for player in players.values()
            if player.is_rostered_and_active
            and player.team in self.config.playoff_teams
            and player.position == wanted
            and (not needle or needle in player.name.lower())
        ]
        matches.sort(key=lambda player: (player.name.lower(), player.name, player.player_id))
        return matches

    async def get_weekly_stats(self, player_id: str) -> Dict[int, float]:
        """Every known week's points for one player in the configured season."""

        window = self.config.scoring_window
        key = ("stats", window.season, window.season_type, player_id)
        return await self._stats_flight.run(key, lambda: self._load_weekly_stats(player_id))

    async def _load_weekly_stats(self, player_id: str) -> Dict[int, float]:
        window = self.config.scoring_window
        url = self.settings.stats_url.format(player_id=quote(str(player_id), safe=""))
        params = {"season_type": window.season_type, "season": window.season, "grouping": "week"}
        try:
            return parse_weekly_stats(await self._get_json(url, params), self.config.scoring_stat)
        except MalformedProviderResponse as exc:
            LOGGER.warning("Ignoring malformed stats for player %s: %s", player_id, exc)
            return {}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "SleeperClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
