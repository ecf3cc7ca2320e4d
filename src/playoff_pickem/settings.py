from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_PLAYERS_URL = "https://api.sleeper.app/v1/players/nfl"
DEFAULT_STATS_URL = "https://api.sleeper.com/stats/nfl/player/{player_id}"


@dataclass
class AppSettings:
    """Application configuration sourced from environment variables."""

    data_root: Path
    log_level: str
    config_path: Path
    players_url: str = DEFAULT_PLAYERS_URL
    stats_url: str = DEFAULT_STATS_URL

    @property
    def entries_dir(self) -> Path:
        return self.data_root / "entries"

    @property
    def payments_dir(self) -> Path:
        return self.data_root / "payments"


@lru_cache(maxsize=1)
def get_settings(env_path: Optional[Path | str] = None) -> AppSettings:
    """Load settings from `.env` (if present) and environment variables."""

    env_file = Path(env_path) if env_path else Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    data_root = Path(os.getenv("DATA_ROOT", "./data")).resolve()

    return AppSettings(
        data_root=data_root,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        config_path=Path(os.getenv("PICKEM_CONFIG", "config/pickem.yaml")),
        players_url=os.getenv("SLEEPER_API_URL", DEFAULT_PLAYERS_URL),
        stats_url=os.getenv("SLEEPER_STATS_URL", DEFAULT_STATS_URL),
    )


def reset_settings_cache() -> None:
    """Clear cached settings, useful for tests."""

    get_settings.cache_clear()  # type: ignore[attr-defined]
