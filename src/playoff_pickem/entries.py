"""File-backed storage for submitted pick'em entries."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .config import POSITIONS

LOGGER = logging.getLogger(__name__)


class EntryError(Exception):
    """Base class for entry store business-rule failures."""


class DuplicateTeamNumber(EntryError):
    def __init__(self, owner: str, team_number: int) -> None:
        super().__init__(
            f"{owner} has already submitted Team {team_number}. Please choose a different team number."
        )
        self.owner = owner
        self.team_number = team_number


class EntryLimitExceeded(EntryError):
    def __init__(self, owner: str, limit: int) -> None:
        super().__init__(f"{owner} has already submitted {limit} teams (the maximum allowed)")
        self.owner = owner
        self.limit = limit


class EntryNotFound(EntryError):
    pass


class InvalidEntry(EntryError):
    pass


def normalize_owner(owner: str) -> str:
    return owner.strip().lower()


def _coerce_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def read_json_object(path: Path, empty: Dict[str, Any]) -> Dict[str, Any]:
    if not path.exists():
        return empty
    raw = json.loads(path.read_text())
    if not isinstance(raw, dict):
        raise ValueError(f"{path} is not a JSON object")
    return raw


def write_json_atomic(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2))
    os.replace(tmp_path, path)


@dataclass(frozen=True)
class PlayerPick:
    player_id: str
    name: str = ""
    team: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.player_id, "name": self.name, "team": self.team}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "PlayerPick":
        return cls(
            player_id=str(raw.get("id") or raw.get("player_id") or ""),
            name=str(raw.get("name") or ""),
            team=str(raw.get("team") or ""),
        )


@dataclass(frozen=True)
class TeamEntry:
    entry_id: int
    owner: str
    team_number: int
    picks: Dict[str, PlayerPick] = field(default_factory=dict)
    owner_name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def player_ids(self) -> Dict[str, str]:
        return {position: pick.player_id for position, pick in self.picks.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.entry_id,
            "owner": self.owner,
            "owner_name": self.owner_name,
            "team_number": self.team_number,
            "picks": {position: pick.to_dict() for position, pick in self.picks.items()},
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Optional["TeamEntry"]:
        entry_id = _coerce_int(raw.get("id"))
        team_number = _coerce_int(raw.get("team_number"))
        owner = raw.get("owner")
        picks_raw = raw.get("picks")
        if entry_id is None or team_number is None or not isinstance(owner, str) or not isinstance(picks_raw, dict):
            return None
        picks = {
            str(position).upper(): PlayerPick.from_dict(pick)
            for position, pick in picks_raw.items()
            if isinstance(pick, dict)
        }
        owner_name = raw.get("owner_name")
        return cls(
            entry_id=entry_id,
            owner=normalize_owner(owner),
            team_number=team_number,
            picks=picks,
            owner_name=owner_name if isinstance(owner_name, str) and owner_name else None,
            created_at=raw.get("created_at") if isinstance(raw.get("created_at"), str) else None,
            updated_at=raw.get("updated_at") if isinstance(raw.get("updated_at"), str) else None,
        )


class EntryStore:
    """JSON-file entry storage enforcing one entry per (owner, team number)."""

    def __init__(
        self,
        path: Path,
        max_teams_per_person: int = 5,
        positions: Sequence[str] = POSITIONS,
    ) -> None:
        self.path = path
        self.max_teams_per_person = max_teams_per_person
        self.positions = tuple(positions)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        return read_json_object(self.path, {"next_id": 1, "entries": []})

    def _write(self, payload: Dict[str, Any]) -> None:
        write_json_atomic(self.path, payload)

    def _entries(self, payload: Mapping[str, Any]) -> List[TeamEntry]:
        entries: List[TeamEntry] = []
        for raw in payload.get("entries") or []:
            if not isinstance(raw, dict):
                continue
            entry = TeamEntry.from_dict(raw)
            if entry is None:
                LOGGER.warning("Skipping unreadable entry in %s: %s", self.path, raw)
                continue
            entries.append(entry)
        entries.sort(key=lambda entry: entry.entry_id)
        return entries

    def _validate(self, owner: str, team_number: int, picks: Mapping[str, PlayerPick]) -> Dict[str, PlayerPick]:
        if "@" not in owner:
            raise InvalidEntry("Please enter a valid email address")
        if not 1 <= team_number <= self.max_teams_per_person:
            raise InvalidEntry(f"Team number must be between 1 and {self.max_teams_per_person}")
        normalized = {str(position).upper(): pick for position, pick in picks.items()}
        missing = [position for position in self.positions if not normalized.get(position)]
        if missing or any(not normalized[position].player_id for position in self.positions):
            raise InvalidEntry(f"A player is required for every position ({', '.join(self.positions)})")
        return {position: normalized[position] for position in self.positions}

    def list_all_entries(self) -> List[TeamEntry]:
        with self._lock:
            return self._entries(self._read())

    def list_entries_for_owner(self, owner: str) -> List[TeamEntry]:
        key = normalize_owner(owner)
        entries = [entry for entry in self.list_all_entries() if entry.owner == key]
        entries.sort(key=lambda entry: entry.team_number)
        return entries

    def create_entry(
        self,
        owner: str,
        team_number: int,
        picks: Mapping[str, PlayerPick],
        owner_name: Optional[str] = None,
    ) -> TeamEntry:
        key = normalize_owner(owner)
        lineup = self._validate(key, team_number, picks)

        with self._lock:
            payload = self._read()
            existing = [entry for entry in self._entries(payload) if entry.owner == key]
            if len(existing) >= self.max_teams_per_person:
                raise EntryLimitExceeded(key, self.max_teams_per_person)
            if any(entry.team_number == team_number for entry in existing):
                raise DuplicateTeamNumber(key, team_number)

            entry_id = _coerce_int(payload.get("next_id")) or 1
            timestamp = utc_timestamp()
            entry = TeamEntry(
                entry_id=entry_id,
                owner=key,
                team_number=team_number,
                picks=lineup,
                owner_name=owner_name,
                created_at=timestamp,
                updated_at=timestamp,
            )
            payload.setdefault("entries", []).append(entry.to_dict())
            payload["next_id"] = entry_id + 1
            self._write(payload)

        LOGGER.info("Stored team %d for %s (entry %d)", team_number, key, entry_id)
        return entry

    def replace_picks(self, owner: str, team_number: int, picks: Mapping[str, PlayerPick]) -> TeamEntry:
        key = normalize_owner(owner)
        lineup = self._validate(key, team_number, picks)

        with self._lock:
            payload = self._read()
            rows = payload.get("entries") or []
            for index, raw in enumerate(rows):
                if not isinstance(raw, dict):
                    continue
                current = TeamEntry.from_dict(raw)
                if current is None or current.owner != key or current.team_number != team_number:
                    continue
                updated = TeamEntry(
                    entry_id=current.entry_id,
                    owner=current.owner,
                    team_number=current.team_number,
                    picks=lineup,
                    owner_name=current.owner_name,
                    created_at=current.created_at,
                    updated_at=utc_timestamp(),
                )
                rows[index] = updated.to_dict()
                payload["entries"] = rows
                self._write(payload)
                LOGGER.info("Replaced picks for team %d of %s", team_number, key)
                return updated

        raise EntryNotFound(f"{key} has no Team {team_number}")
