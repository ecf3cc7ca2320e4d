"""Pool configuration: season, scoring weeks, entry rules and payouts."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

POSITIONS: Tuple[str, ...] = ("QB", "WR", "RB", "TE")
SEASON_TYPES = ("regular", "post")


class ConfigError(ValueError):
    """Raised when the pool configuration is missing or inconsistent."""


@dataclass(frozen=True)
class ScoringWindow:
    season: str
    season_type: str
    weeks: Tuple[int, ...]


def _parse_deadline(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise ConfigError(f"submission_deadline is not an ISO-8601 timestamp: {value!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coerce_int(raw: Dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a whole number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a whole number, got {value!r}") from None
    if not math.isfinite(number) or number != int(number):
        raise ConfigError(f"{key} must be a whole number, got {value!r}")
    return int(number)


def _coerce_float(raw: Dict[str, Any], key: str, default: float) -> float:
    value = raw.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ConfigError(f"{key} must be a finite number, got {value!r}")
    return number


def _parse_weeks(raw: Any) -> Tuple[int, ...]:
    if not isinstance(raw, list) or not raw:
        raise ConfigError("scoring_weeks must be a non-empty list of week numbers")
    weeks: list[int] = []
    for item in raw:
        try:
            week = int(item)
        except (TypeError, ValueError):
            raise ConfigError(f"scoring_weeks contains a non-integer value: {item!r}") from None
        if week <= 0:
            raise ConfigError(f"scoring_weeks must be positive, got {week}")
        if week in weeks:
            raise ConfigError(f"scoring_weeks lists week {week} more than once")
        weeks.append(week)
    return tuple(weeks)


def _parse_payouts(raw: Any) -> Tuple[Tuple[str, float], ...]:
    if not isinstance(raw, dict) or not raw:
        raise ConfigError("payouts must map each paid place to a fraction of the pot")
    payouts: list[Tuple[str, float]] = []
    for place, fraction in raw.items():
        try:
            value = float(fraction)
        except (TypeError, ValueError):
            raise ConfigError(f"payout for {place!r} is not a number: {fraction!r}") from None
        if value < 0:
            raise ConfigError(f"payout for {place!r} must not be negative")
        payouts.append((str(place), value))
    total = sum(value for _, value in payouts)
    if not math.isclose(total, 1.0, abs_tol=1e-6):
        raise ConfigError(f"payout fractions must sum to 1.0, got {total:g}")
    return tuple(payouts)


@dataclass(frozen=True)
class PickemConfig:
    season: str
    season_type: str
    scoring_weeks: Tuple[int, ...]
    playoff_teams: frozenset[str]
    payouts: Tuple[Tuple[str, float], ...]
    max_teams_per_person: int = 5
    entry_fee: float = 10.0
    scoring_stat: str = "pts_ppr"
    roster_cache_ttl: float = 24 * 60 * 60
    stat_fetch_timeout: float = 10.0
    max_concurrent_fetches: int = 16
    submission_deadline: Optional[datetime] = None
    title: str = "Fantasy Playoffs"
    season_label: str = ""
    positions: Tuple[str, ...] = field(default=POSITIONS)

    @property
    def scoring_window(self) -> ScoringWindow:
        return ScoringWindow(season=self.season, season_type=self.season_type, weeks=self.scoring_weeks)

    def submissions_open(self, now: Optional[datetime] = None) -> bool:
        if self.submission_deadline is None:
            return True
        current = now or datetime.now(timezone.utc)
        return current < self.submission_deadline

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PickemConfig":
        season = raw.get("season")
        if season is None or str(season).strip() == "":
            raise ConfigError("season is required")

        season_type = str(raw.get("season_type", "regular")).lower()
        if season_type not in SEASON_TYPES:
            raise ConfigError(f"season_type must be one of {', '.join(SEASON_TYPES)}, got {season_type!r}")

        raw_teams = raw.get("playoff_teams") or []
        if not isinstance(raw_teams, list):
            raise ConfigError("playoff_teams must be a list of team abbreviations")
        teams = {str(team).strip().upper() for team in raw_teams if str(team).strip()}
        if not teams:
            raise ConfigError("playoff_teams must list at least one team abbreviation")

        max_teams = _coerce_int(raw, "max_teams_per_person", 5)
        if max_teams < 1:
            raise ConfigError("max_teams_per_person must be at least 1")

        entry_fee = _coerce_float(raw, "entry_fee", 10.0)
        if entry_fee < 0:
            raise ConfigError("entry_fee must not be negative")

        cache_ttl = _coerce_float(raw, "roster_cache_ttl", 24 * 60 * 60)
        fetch_timeout = _coerce_float(raw, "stat_fetch_timeout", 10.0)
        concurrency = _coerce_int(raw, "max_concurrent_fetches", 16)
        if cache_ttl <= 0 or fetch_timeout <= 0 or concurrency < 1:
            raise ConfigError("roster_cache_ttl, stat_fetch_timeout and max_concurrent_fetches must be positive")

        display = raw.get("display") or {}
        if not isinstance(display, dict):
            raise ConfigError("display must be a mapping with title and season_label")
        return cls(
            season=str(season),
            season_type=season_type,
            scoring_weeks=_parse_weeks(raw.get("scoring_weeks")),
            playoff_teams=frozenset(teams),
            payouts=_parse_payouts(raw.get("payouts")),
            max_teams_per_person=max_teams,
            entry_fee=entry_fee,
            scoring_stat=str(raw.get("scoring_stat", "pts_ppr")),
            roster_cache_ttl=cache_ttl,
            stat_fetch_timeout=fetch_timeout,
            max_concurrent_fetches=concurrency,
            submission_deadline=_parse_deadline(raw.get("submission_deadline")),
            title=str(display.get("title", "Fantasy Playoffs")),
            season_label=str(display.get("season_label", "")),
        )

    @classmethod
    def load(cls, path: Path) -> "PickemConfig":
        if not path.exists():
            raise FileNotFoundError(f"Pool config not found at {path}")

        try:
            raw = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Pool config at {path} is not valid YAML: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"Pool config at {path} must be a mapping")
        return cls.from_dict(raw)
