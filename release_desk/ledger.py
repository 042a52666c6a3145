from __future__ import annotations
"""
release_desk/ledger.py
----------------------
ReleaseLedger: (allotment_id, beneficiary_id) -> released flag, plus the
roster query the release session loads from.

- ReleaseLedger        : interface the session depends on.
- SqliteReleaseLedger  : parameterized SQL over the schema in db_schema.py.
- load_roster()        : full reload, ordered by last name then first name.

Every call opens and closes its own connection; nothing is cached here.
Concurrency with other terminals is resolved by the database: the release
UPDATE only flips rows that are still unreleased, so two desks confirming
the same beneficiary produce exactly one flip and one journal row.
"""

import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from contextlib import closing
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from .db_schema import connect, ensure_schema
from .errors import AllotmentNotFound, LedgerError, LedgerWriteError, RosterIntegrityError
from .models import AllotmentRef, BudgetKind, RosterEntry, Share

log = logging.getLogger("release.ledger")

UTC_MS = lambda: int(time.time() * 1000)


class ReleaseLedger(ABC):
    @abstractmethod
    def list_allotments(self) -> List[AllotmentRef]:
        raise NotImplementedError

    @abstractmethod
    def get_allotment(self, allotment_id: int) -> AllotmentRef:
        """Raise AllotmentNotFound when the id is unknown."""
        raise NotImplementedError

    @abstractmethod
    def list_assigned(self, allotment_id: int) -> List[RosterEntry]:
        """Endorsed beneficiaries assigned to the allotment."""
        raise NotImplementedError

    @abstractmethod
    def is_released(self, allotment_id: int, beneficiary_id: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    def mark_released(self, allotment_id: int, beneficiary_id: int,
                      station_id: Optional[str] = None) -> bool:
        """
        Flip the released flag. Returns True when this call flipped it and
        False when it was already released. Raises LedgerWriteError otherwise.
        """
        raise NotImplementedError


def load_roster(ledger: ReleaseLedger, allotment_id: int) -> List[RosterEntry]:
    entries = list(ledger.list_assigned(allotment_id))
    entries.sort(key=lambda e: (e.last_name.casefold(), e.first_name.casefold(), e.beneficiary_id))
    return entries


# ----------------------------- row mapping -----------------------------
def _decimal(v) -> Optional[Decimal]:
    if v is None:
        return None
    return Decimal(str(v))


def _allotment_from_row(r: sqlite3.Row) -> AllotmentRef:
    return AllotmentRef(
        allotment_id=int(r["id"]),
        project_name=r["project_name"] or "",
        budget_kind=BudgetKind.parse(r["budget_type"]),
        budget_amount=_decimal(r["budget_amount"]),
        budget_qty=(int(r["budget_qty"]) if r["budget_qty"] is not None else None),
        budget_unit=r["budget_unit"],
    )


def _share_for(kind: BudgetKind, r: sqlite3.Row) -> Share:
    amount = _decimal(r["share_amount"])
    qty = int(r["share_qty"]) if r["share_qty"] is not None else None
    unit = r["share_unit"]
    try:
        share = Share(amount=amount, qty=qty, unit=unit)
    except ValueError as ex:
        raise RosterIntegrityError(
            f"beneficiary {r['id']}: {ex} (amount={amount!r}, qty={qty!r}, unit={unit!r})"
        ) from ex
    if share.kind is not kind:
        raise RosterIntegrityError(
            f"beneficiary {r['id']}: {share.kind.value} share on a {kind.value} allotment"
        )
    return share


def _entry_from_row(kind: BudgetKind, r: sqlite3.Row) -> RosterEntry:
    code = (r["beneficiary_code"] or "").strip() or str(r["id"])
    return RosterEntry(
        beneficiary_id=int(r["id"]),
        code=code,
        first_name=r["first_name"] or "",
        last_name=r["last_name"] or "",
        barangay=r["barangay"] or "",
        classification=r["classification"] or "None",
        share=_share_for(kind, r),
        released=bool(r["is_released"]),
    )


# ----------------------------- sqlite -----------------------------
class SqliteReleaseLedger(ReleaseLedger):
    def __init__(self, db_path: str | Path, *, ensure: bool = True, recreate: bool = False):
        self.db_path = Path(db_path)
        if ensure:
            ensure_schema(self.db_path, recreate=recreate)

    def _conn(self) -> sqlite3.Connection:
        return connect(self.db_path)

    def list_allotments(self) -> List[AllotmentRef]:
        try:
            with closing(self._conn()) as conn:
                rows = conn.execute(
                    """SELECT id, project_name, budget_type, budget_amount, budget_qty, budget_unit
                       FROM allotments ORDER BY id DESC"""
                ).fetchall()
        except sqlite3.Error as ex:
            raise LedgerError(f"list_allotments failed: {type(ex).__name__}: {ex}") from ex
        return [_allotment_from_row(r) for r in rows]

    def get_allotment(self, allotment_id: int) -> AllotmentRef:
        try:
            with closing(self._conn()) as conn:
                row = conn.execute(
                    """SELECT id, project_name, budget_type, budget_amount, budget_qty, budget_unit
                       FROM allotments WHERE id = ?""",
                    (int(allotment_id),),
                ).fetchone()
        except sqlite3.Error as ex:
            raise LedgerError(f"get_allotment failed: {type(ex).__name__}: {ex}") from ex
        if row is None:
            raise AllotmentNotFound(int(allotment_id))
        return _allotment_from_row(row)

    def list_assigned(self, allotment_id: int) -> List[RosterEntry]:
        kind = self.get_allotment(allotment_id).budget_kind
        try:
            with closing(self._conn()) as conn:
                rows = conn.execute(
                    """
                    SELECT
                        b.id,
                        b.beneficiary_code,
                        b.first_name,
                        b.last_name,
                        b.barangay,
                        b.classification,
                        ab.share_amount,
                        ab.share_qty,
                        ab.share_unit,
                        ab.is_released
                    FROM allotment_beneficiaries ab
                    JOIN beneficiaries b ON b.id = ab.beneficiary_id
                    WHERE ab.allotment_id = ?
                      AND b.status = 'Endorsed'
                    ORDER BY b.last_name, b.first_name
                    """,
                    (int(allotment_id),),
                ).fetchall()
        except sqlite3.Error as ex:
            raise LedgerError(f"list_assigned failed: {type(ex).__name__}: {ex}") from ex
        return [_entry_from_row(kind, r) for r in rows]

    def is_released(self, allotment_id: int, beneficiary_id: int) -> bool:
        try:
            with closing(self._conn()) as conn:
                row = conn.execute(
                    "SELECT is_released FROM allotment_beneficiaries WHERE allotment_id=? AND beneficiary_id=?",
                    (int(allotment_id), int(beneficiary_id)),
                ).fetchone()
        except sqlite3.Error as ex:
            raise LedgerError(f"is_released failed: {type(ex).__name__}: {ex}") from ex
        return bool(row and row["is_released"])

    def mark_released(self, allotment_id: int, beneficiary_id: int,
                      station_id: Optional[str] = None) -> bool:
        aid, bid = int(allotment_id), int(beneficiary_id)
        now = UTC_MS()
        try:
            with closing(self._conn()) as conn:
                with conn:  # one transaction: flag flip + journal row
                    cur = conn.execute(
                        """UPDATE allotment_beneficiaries
                           SET is_released = 1, released_at = ?, released_by = ?, updated_at = ?
                           WHERE allotment_id = ? AND beneficiary_id = ? AND is_released = 0""",
                        (now, station_id, now // 1000, aid, bid),
                    )
                    if cur.rowcount == 1:
                        conn.execute(
                            """INSERT INTO release_events(allotment_id, beneficiary_id, beneficiary_code, station_id, ts_ms)
                               SELECT ?, id, beneficiary_code, ?, ? FROM beneficiaries WHERE id = ?""",
                            (aid, station_id, now, bid),
                        )
                        flipped = True
                    else:
                        row = conn.execute(
                            "SELECT is_released FROM allotment_beneficiaries WHERE allotment_id=? AND beneficiary_id=?",
                            (aid, bid),
                        ).fetchone()
                        if row is None:
                            raise LedgerWriteError(
                                f"beneficiary {bid} is not assigned to allotment {aid}"
                            )
                        flipped = False
        except sqlite3.Error as ex:
            raise LedgerWriteError(f"mark_released failed: {type(ex).__name__}: {ex}") from ex

        log.info("mark_released", extra={"allotment_id": aid, "beneficiary_id": bid,
                                          "station_id": station_id, "flipped": flipped})
        return flipped
