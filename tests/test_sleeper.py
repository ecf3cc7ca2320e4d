import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List

import httpx
import pytest

from playoff_pickem.config import PickemConfig
from playoff_pickem.settings import AppSettings
from playoff_pickem.sleeper import (
    MalformedProviderResponse,
    ProviderUnavailable,
    SleeperClient,
    parse_players,
    parse_weekly_stats,
)

PLAYERS = {
    "4046": {
        "player_id": "4046",
        "full_name": "Patrick Mahomes",
        "team": "KC",
        "position": "QB",
        "active": True,
        "status": "Active",
    },
    "4984": {
        "player_id": "4984",
        "full_name": "Josh Allen",
        "team": "BUF",
        "position": "QB",
        "active": True,
        "status": "Active",
    },
    "96": {
        "player_id": "96",
        "full_name": "Aaron Rodgers",
        "team": "NYJ",
        "position": "QB",
        "active": True,
        "status": "Active",
    },
    "1234": {
        "player_id": "1234",
        "first_name": "Free",
        "last_name": "Agent",
        "team": None,
        "position": "QB",
        "active": True,
        "status": "Active",
    },
    "5555": {
        "player_id": "5555",
        "full_name": "Hurt Passer",
        "team": "KC",
        "position": "QB",
        "active": True,
        "status": "Injured Reserve",
    },
    "6794": {
        "player_id": "6794",
        "full_name": "Justin Jefferson",
        "team": "MIN",
        "position": "WR",
        "active": True,
        "status": "Active",
    },
    "broken": "not an object",
}


def _config() -> PickemConfig:
    return PickemConfig.from_dict(
        {
            "season": "2025",
            "season_type": "post",
            "scoring_weeks": [1, 2],
            "playoff_teams": ["KC", "BUF", "MIN"],
            "payouts": {"first": 1.0},
        }
    )


def _settings(tmp_path: Path) -> AppSettings:
    return AppSettings(
        data_root=tmp_path,
        log_level="INFO",
        config_path=tmp_path / "pickem.yaml",
        players_url="https://sleeper.test/v1/players/nfl",
        stats_url="https://sleeper.test/stats/nfl/player/{player_id}",
    )


def _client(tmp_path: Path, handler: Callable[[httpx.Request], httpx.Response]) -> SleeperClient:
    transport = httpx.MockTransport(handler)
    return SleeperClient(_settings(tmp_path), _config(), client=httpx.AsyncClient(transport=transport))


def test_parse_players_skips_unusable_rows() -> None:
    players = parse_players(PLAYERS)
    assert "broken" not in players
    assert players["1234"].name == "Free Agent"
    assert players["1234"].team is None
    with pytest.raises(MalformedProviderResponse):
        parse_players(["not", "a", "mapping"])


def test_parse_weekly_stats_tolerates_partial_data() -> None:
    payload: Dict[str, Any] = {
        "1": {"week": 1, "stats": {"pts_ppr": 21.3, "pts_std": 18.0}},
        "2": None,
        "3": {"week": 3, "stats": {"pts_std": 4.0}},
        "4": {"week": 4, "stats": {"pts_ppr": "n/a"}},
        "wk": {"week": 5, "stats": {"pts_ppr": 7}},
    }
    assert parse_weekly_stats(payload, "pts_ppr") == {1: 21.3, 5: 7.0}
    assert parse_weekly_stats(None, "pts_ppr") == {}
    assert parse_weekly_stats([{"week": 2, "stats": {"pts_ppr": 3.5}}], "pts_ppr") == {2: 3.5}
    with pytest.raises(MalformedProviderResponse):
        parse_weekly_stats("oops", "pts_ppr")


def test_list_playoff_players_filters_sorts_and_caches(tmp_path: Path) -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=PLAYERS)

    async def main() -> None:
        async with _client(tmp_path, handler) as client:
            qbs = await client.list_playoff_players("QB")
            assert [p.name for p in qbs] == ["Josh Allen", "Patrick Mahomes"]

            searched = await client.list_playoff_players("qb", "MAHO")
            assert [p.player_id for p in searched] == ["4046"]

            assert await client.list_playoff_players("TE") == []

    asyncio.run(main())
    assert len(requests) == 1


def test_concurrent_roster_requests_share_one_fetch(tmp_path: Path) -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=PLAYERS)

    async def main() -> None:
        async with _client(tmp_path, handler) as client:
            results = await asyncio.gather(
                client.list_playoff_players("QB"),
                client.list_playoff_players("WR"),
                client.list_playoff_players("QB", "josh"),
            )
            assert [len(result) for result in results] == [2, 1, 1]

    asyncio.run(main())
    assert len(requests) == 1


def test_roster_failure_raises_provider_unavailable(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="down")

    async def main() -> None:
        async with _client(tmp_path, handler) as client:
            with pytest.raises(ProviderUnavailable):
                await client.list_playoff_players("QB")

    asyncio.run(main())


def test_get_weekly_stats_requests_configured_season(tmp_path: Path) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"1": {"week": 1, "stats": {"pts_ppr": 12.5}}})

    async def main() -> Dict[int, float]:
        async with _client(tmp_path, handler) as client:
            return await client.get_weekly_stats("4046")

    assert asyncio.run(main()) == {1: 12.5}
    request = seen[0]
    assert request.url.path == "/stats/nfl/player/4046"
    assert request.url.params["season"] == "2025"
    assert request.url.params["season_type"] == "post"
    assert request.url.params["grouping"] == "week"


def test_get_weekly_stats_errors(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/bad"):
            return httpx.Response(200, content=b"<html>nope</html>")
        if request.url.path.endswith("/odd"):
            return httpx.Response(200, json="unexpected")
        return httpx.Response(500)

    async def main() -> None:
        async with _client(tmp_path, handler) as client:
            assert await client.get_weekly_stats("bad") == {}
            assert await client.get_weekly_stats("odd") == {}
            with pytest.raises(ProviderUnavailable):
                await client.get_weekly_stats("down")

    asyncio.run(main())


def test_network_error_is_provider_unavailable(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def main() -> None:
        async with _client(tmp_path, handler) as client:
            with pytest.raises(ProviderUnavailable):
                await client.get_weekly_stats("4046")

    asyncio.run(main())


def test_concurrent_stats_requests_share_one_fetch(tmp_path: Path) -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"1": {"week": 1, "stats": {"pts_ppr": 12.5}}})

    async def main() -> None:
        async with _client(tmp_path, handler) as client:
            first, second = await asyncio.gather(client.get_weekly_stats("4046"), client.get_weekly_stats("4046"))
            assert first == second == {1: 12.5}
            await client.get_weekly_stats("4046")

    asyncio.run(main())
    # Two shared the first request; the later call is not cached and fetches again.
    assert len(requests) == 2


def test_search_text_is_matched_as_given(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=PLAYERS)

    async def main() -> None:
        async with _client(tmp_path, handler) as client:
            assert [p.player_id for p in await client.list_playoff_players("QB", " maho")] == ["4046"]
            assert await client.list_playoff_players("QB", "maho ") == []

    asyncio.run(main())
