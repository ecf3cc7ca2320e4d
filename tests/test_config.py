from datetime import datetime, timezone
from pathlib import Path

import pytest

from playoff_pickem.config import ConfigError, PickemConfig, ScoringWindow


def _write_config(path: Path, extra: str = "") -> None:
    path.write_text(
        """
season: "2025"
season_type: post
scoring_weeks: [1, 2, 3, 4]
playoff_teams: [buf, KC, det]
max_teams_per_person: 5
entry_fee: 10
submission_deadline: "2026-01-10T07:59:00Z"
payouts:
  first: 0.9
  second: 0.1
"""
        + extra
    )


def _base() -> dict:
    return {
        "season": "2025",
        "season_type": "regular",
        "scoring_weeks": [15, 16, 17],
        "playoff_teams": ["BUF"],
        "payouts": {"first": 1.0},
    }


def test_load_config_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "pickem.yaml"
    _write_config(path)

    config = PickemConfig.load(path)

    assert config.season == "2025"
    assert config.scoring_window == ScoringWindow(season="2025", season_type="post", weeks=(1, 2, 3, 4))
    assert config.playoff_teams == frozenset({"BUF", "KC", "DET"})
    assert config.payouts == (("first", 0.9), ("second", 0.1))
    assert config.scoring_stat == "pts_ppr"
    assert config.submission_deadline == datetime(2026, 1, 10, 7, 59, tzinfo=timezone.utc)


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        PickemConfig.load(tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    "override, message",
    [
        ({"scoring_weeks": []}, "scoring_weeks"),
        ({"scoring_weeks": [1, 1]}, "more than once"),
        ({"season_type": "preseason"}, "season_type"),
        ({"payouts": {"first": 0.8, "second": 0.1}}, "sum to 1.0"),
        ({"playoff_teams": []}, "playoff_teams"),
        ({"max_teams_per_person": 0}, "max_teams_per_person"),
        ({"season": ""}, "season"),
        ({"entry_fee": None}, "entry_fee"),
        ({"entry_fee": "ten"}, "entry_fee"),
        ({"max_teams_per_person": "five"}, "max_teams_per_person"),
        ({"max_teams_per_person": 2.5}, "max_teams_per_person"),
        ({"max_concurrent_fetches": True}, "max_concurrent_fetches"),
        ({"stat_fetch_timeout": [1]}, "stat_fetch_timeout"),
        ({"roster_cache_ttl": float("inf")}, "roster_cache_ttl"),
        ({"playoff_teams": "KC"}, "playoff_teams"),
        ({"display": "x"}, "display"),
    ],
)
def test_invalid_config_rejected(override: dict, message: str) -> None:
    raw = _base()
    raw.update(override)
    with pytest.raises(ConfigError, match=message):
        PickemConfig.from_dict(raw)


def test_yaml_syntax_error_is_config_error(tmp_path: Path) -> None:
    path = tmp_path / "pickem.yaml"
    path.write_text("season: [2025, 2026\n")

    with pytest.raises(ConfigError, match="not valid YAML"):
        PickemConfig.load(path)


def test_numeric_strings_are_accepted() -> None:
    raw = _base()
    raw.update({"entry_fee": "12.5", "max_teams_per_person": "3", "display": {"title": "Pool"}})

    config = PickemConfig.from_dict(raw)

    assert config.entry_fee == 12.5
    assert config.max_teams_per_person == 3
    assert config.title == "Pool"


def test_submissions_open_respects_deadline() -> None:
    raw = _base()
    raw["submission_deadline"] = "2026-01-10T07:59:00+00:00"
    config = PickemConfig.from_dict(raw)

    assert config.submissions_open(datetime(2026, 1, 9, tzinfo=timezone.utc))
    assert not config.submissions_open(datetime(2026, 1, 10, 8, 0, tzinfo=timezone.utc))
    assert PickemConfig.from_dict(_base()).submissions_open()
