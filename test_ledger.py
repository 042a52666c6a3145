"""
SQLite release ledger over a temp-file database.

Tests verify:
1. Roster = endorsed assignments only, ordered by last/first name, id as code fallback
2. mark_released flips once and journals once; repeats write nothing
3. Unassigned pairs and unknown allotments raise
4. Share/budget-kind mismatches surface as RosterIntegrityError
5. Schema is idempotent and codes are unique case-insensitively
"""

import sqlite3
import sys
from contextlib import closing
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from release_desk.db_schema import LOCKED_USER_VERSION, connect, ensure_schema
from release_desk.errors import AllotmentNotFound, LedgerWriteError, RosterIntegrityError
from release_desk.ledger import SqliteReleaseLedger, load_roster
from release_desk.models import BudgetKind


def test_allotments(seeded_db):
    ledger = SqliteReleaseLedger(seeded_db)
    rows = ledger.list_allotments()
    assert [a.allotment_id for a in rows] == [2, 1], "newest allotment first"

    cash = ledger.get_allotment(1)
    assert cash.budget_kind is BudgetKind.MONEY
    assert cash.budget_amount == Decimal("12000")
    assert cash.total_budget_text == "₱ 12,000.00"
    assert ledger.get_allotment(2).total_budget_text == "20 sacks"

    with pytest.raises(AllotmentNotFound) as ei:
        ledger.get_allotment(404)
    assert ei.value.allotment_id == 404


def test_roster_endorsed_ordered_with_id_fallback(seeded_db):
    roster = load_roster(SqliteReleaseLedger(seeded_db), 1)

    assert [e.last_name for e in roster] == ["Bautista", "Cruz", "Reyes", "Santos"], \
        "pending beneficiary excluded, ordered by last name"
    bautista = roster[0]
    assert bautista.code == "14", "row without a code is matched by its id"
    assert roster[1].classification == "None"
    assert roster[3].share.text == "₱ 3,000.00"
    assert all(not e.released for e in roster)

    rice = load_roster(SqliteReleaseLedger(seeded_db), 2)
    assert [e.share.text for e in rice] == ["10 sacks", "10 sacks"]


def test_mark_released_once_and_journaled(seeded_db):
    ledger = SqliteReleaseLedger(seeded_db)
    assert ledger.is_released(1, 11) is False

    assert ledger.mark_released(1, 11, station_id="desk-2") is True
    assert ledger.is_released(1, 11) is True
    assert ledger.mark_released(1, 11, station_id="desk-3") is False, "second release is a no-op"
    assert ledger.is_released(2, 11) is False, "release is per allotment"

    with closing(connect(seeded_db)) as conn:
        events = conn.execute("SELECT * FROM release_events").fetchall()
        row = conn.execute(
            "SELECT released_by, released_at FROM allotment_beneficiaries WHERE allotment_id=1 AND beneficiary_id=11"
        ).fetchone()
        progress = conn.execute("SELECT * FROM v_release_progress WHERE allotment_id=1").fetchone()

    assert len(events) == 1, "exactly one journal row per flip"
    assert events[0]["beneficiary_code"] == "BEN-011"
    assert events[0]["station_id"] == "desk-2"
    assert row["released_by"] == "desk-2", "first desk keeps the record"
    assert row["released_at"] is not None
    assert (progress["released_count"], progress["total_count"]) == (1, 4)


def test_mark_released_unassigned_raises(seeded_db):
    ledger = SqliteReleaseLedger(seeded_db)
    with pytest.raises(LedgerWriteError):
        ledger.mark_released(2, 13)


def test_share_kind_mismatch_raises(seeded_db):
    with closing(connect(seeded_db)) as conn:
        with conn:
            conn.execute(
                "UPDATE allotment_beneficiaries SET share_amount=NULL, share_qty=5, share_unit='sacks' "
                "WHERE allotment_id=1 AND beneficiary_id=12"
            )
    with pytest.raises(RosterIntegrityError):
        SqliteReleaseLedger(seeded_db).list_assigned(1)


def test_schema_idempotent_and_codes_unique(tmp_path):
    db = tmp_path / "nested" / "r.sqlite"
    ensure_schema(db)
    ensure_schema(db)
    with closing(connect(db)) as conn:
        assert conn.execute("PRAGMA user_version").fetchone()[0] == LOCKED_USER_VERSION
        conn.execute("INSERT INTO beneficiaries(id, beneficiary_code, first_name, last_name) VALUES (1, 'BEN-1', 'a', 'b')")
        conn.execute("INSERT INTO beneficiaries(id, beneficiary_code, first_name, last_name) VALUES (2, NULL, 'c', 'd')")
        conn.execute("INSERT INTO beneficiaries(id, beneficiary_code, first_name, last_name) VALUES (3, NULL, 'e', 'f')")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO beneficiaries(id, beneficiary_code, first_name, last_name) VALUES (4, 'ben-1', 'g', 'h')")


def test_recreate_drops_data(seeded_db):
    ensure_schema(seeded_db, recreate=True)
    assert SqliteReleaseLedger(seeded_db).list_allotments() == []
