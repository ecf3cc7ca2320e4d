"""Core package for the NFL playoff pick'em pool."""

from .config import PickemConfig, ScoringWindow
from .settings import AppSettings, get_settings, reset_settings_cache

__all__ = [
    "AppSettings",
    "PickemConfig",
    "ScoringWindow",
    "get_settings",
    "reset_settings_cache",
]
