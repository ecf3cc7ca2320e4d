import json
from pathlib import Path

import pytest

from playoff_pickem.entries import EntryStore, PlayerPick
from playoff_pickem.payments import InvalidPayment, PaymentLedger


def _picks(suffix: str = "") -> dict:
    return {position: PlayerPick(f"{position.lower()}{suffix}") for position in ("QB", "WR", "RB", "TE")}


def _entries(tmp_path: Path):
    store = EntryStore(tmp_path / "entries.json")
    store.create_entry("zoe@x.com", 1, _picks(), owner_name="Zoe")
    store.create_entry("zoe@x.com", 2, _picks("2"))
    store.create_entry("amy@x.com", 1, _picks(), owner_name="Amy")
    store.create_entry("Bob@x.com", 1, _picks())
    return store.list_all_entries()


def test_participants_compare_created_and_paid(tmp_path: Path) -> None:
    ledger = PaymentLedger(tmp_path / "payments.json")
    ledger.record_payment("ZOE@x.com", 1, "venmo")
    ledger.record_payment("amy@x.com", 3)
    ledger.record_payment("late@x.com", 0, "promised")

    participants = ledger.participants(_entries(tmp_path))

    assert [p.email for p in participants] == ["amy@x.com", "bob@x.com", "late@x.com", "zoe@x.com"]
    by_email = {p.email: p for p in participants}
    assert (by_email["zoe@x.com"].teams_created, by_email["zoe@x.com"].teams_paid) == (2, 1)
    assert by_email["zoe@x.com"].outstanding == 1
    assert by_email["zoe@x.com"].name == "Zoe"
    assert by_email["zoe@x.com"].notes == "venmo"
    assert by_email["amy@x.com"].outstanding == 0
    assert by_email["bob@x.com"].teams_paid == 0
    assert by_email["bob@x.com"].outstanding == 1
    assert by_email["late@x.com"].teams_created == 0


def test_record_payment_replaces_previous_record(tmp_path: Path) -> None:
    ledger = PaymentLedger(tmp_path / "payments.json")
    ledger.record_payment("fan@x.com", 1, "cash")
    ledger.record_payment("fan@x.com", 2)

    record = ledger.get("FAN@x.com")
    assert record is not None
    assert record.teams_paid == 2
    assert record.notes is None
    assert record.updated_at


@pytest.mark.parametrize(
    "owner, teams_paid",
    [("fan@x.com", -1), ("fan@x.com", 1.5), ("fan@x.com", True), ("not-an-email", 1)],
)
def test_record_payment_rejects_invalid_values(tmp_path: Path, owner: str, teams_paid) -> None:
    path = tmp_path / "payments.json"
    ledger = PaymentLedger(path)

    with pytest.raises(InvalidPayment):
        ledger.record_payment(owner, teams_paid)
    assert not path.exists()


def test_unreadable_payment_rows_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "payments.json"
    path.write_text(json.dumps({"payments": {"ok@x.com": {"teams_paid": 2}, "bad@x.com": {"teams_paid": -3}}}))

    participants = PaymentLedger(path).participants([])

    assert [(p.email, p.teams_paid) for p in participants] == [("ok@x.com", 2)]
