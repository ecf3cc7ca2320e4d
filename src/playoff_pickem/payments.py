"""Entry fee tracking: how many teams each participant has paid for."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .entries import TeamEntry, normalize_owner, read_json_object, utc_timestamp, write_json_atomic

LOGGER = logging.getLogger(__name__)


class InvalidPayment(ValueError):
    """Raised when a payment record has a bad owner or team count."""


@dataclass(frozen=True)
class PaymentRecord:
    owner: str
    teams_paid: int = 0
    notes: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"teams_paid": self.teams_paid, "notes": self.notes, "updated_at": self.updated_at}

    @classmethod
    def from_dict(cls, owner: str, raw: Mapping[str, Any]) -> Optional["PaymentRecord"]:
        teams_paid = raw.get("teams_paid")
        if isinstance(teams_paid, bool) or not isinstance(teams_paid, int) or teams_paid < 0:
            return None
        notes = raw.get("notes")
        updated_at = raw.get("updated_at")
        return cls(
            owner=normalize_owner(owner),
            teams_paid=teams_paid,
            notes=notes if isinstance(notes, str) and notes else None,
            updated_at=updated_at if isinstance(updated_at, str) else None,
        )


@dataclass(frozen=True)
class Participant:
    email: str
    name: Optional[str]
    teams_created: int
    teams_paid: int
    notes: Optional[str] = None
    payment_updated_at: Optional[str] = None

    @property
    def outstanding(self) -> int:
        """Teams entered but not yet paid for."""

        return max(self.teams_created - self.teams_paid, 0)


class PaymentLedger:
    """JSON-file record of paid teams per participant, keyed by email."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _records(self, payload: Mapping[str, Any]) -> Dict[str, PaymentRecord]:
        records: Dict[str, PaymentRecord] = {}
        rows = payload.get("payments") or {}
        if not isinstance(rows, dict):
            return records
        for owner, raw in rows.items():
            record = PaymentRecord.from_dict(owner, raw) if isinstance(raw, dict) else None
            if record is None:
                LOGGER.warning("Skipping unreadable payment for %s in %s", owner, self.path)
                continue
            records[record.owner] = record
        return records

    def get(self, owner: str) -> Optional[PaymentRecord]:
        with self._lock:
            return self._records(read_json_object(self.path, {})).get(normalize_owner(owner))

    def record_payment(self, owner: str, teams_paid: int, notes: Optional[str] = None) -> PaymentRecord:
        """Set (not add to) the number of teams `owner` has paid for."""

        key = normalize_owner(owner)
        if "@" not in key:
            raise InvalidPayment("Please enter a valid email address")
        if isinstance(teams_paid, bool) or not isinstance(teams_paid, int) or teams_paid < 0:
            raise InvalidPayment("Teams paid must be a non-negative whole number")

        record = PaymentRecord(owner=key, teams_paid=teams_paid, notes=notes or None, updated_at=utc_timestamp())
        with self._lock:
            payload = read_json_object(self.path, {"payments": {}})
            rows = payload.get("payments")
            if not isinstance(rows, dict):
                rows = {}
            rows[key] = record.to_dict()
            payload["payments"] = rows
            write_json_atomic(self.path, payload)

        LOGGER.info("Recorded %d paid teams for %s", teams_paid, key)
        return record

    def participants(self, entries: Iterable[TeamEntry]) -> List[Participant]:
        """Everyone with an entry or a payment record, sorted by name then email."""

        with self._lock:
            records = self._records(read_json_object(self.path, {}))

        created: Dict[str, int] = {}
        names: Dict[str, str] = {}
        for entry in entries:
            created[entry.owner] = created.get(entry.owner, 0) + 1
            if entry.owner_name and entry.owner not in names:
                names[entry.owner] = entry.owner_name

        participants = []
        for owner in set(created) | set(records):
            record = records.get(owner)
            participants.append(
                Participant(
                    email=owner,
                    name=names.get(owner),
                    teams_created=created.get(owner, 0),
                    teams_paid=record.teams_paid if record else 0,
                    notes=record.notes if record else None,
                    payment_updated_at=record.updated_at if record else None,
                )
            )
        participants.sort(key=lambda item: ((item.name or item.email).lower(), item.email))
        return participants
