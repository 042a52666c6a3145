"""
Seed a demo allotment with endorsed beneficiaries into the release desk DB.

Why this exists:
- The release session only opens against an existing allotment with an
  assigned, endorsed roster.
- Fresh installs have an empty DB, so we seed known IDs and codes for testing.
- Safe to re-run: INSERT OR REPLACE keeps IDs stable. Use --reset-releases to
  flip every seeded assignment back to unreleased.

Usage:
  (.venv) python tools/seed_roster.py
  (.venv) python tools/seed_roster.py --db /tmp/release.sqlite --reset-releases
"""
from __future__ import annotations
import argparse, time
from contextlib import closing
from pathlib import Path

from release_desk.config_loader import get_db_path
from release_desk.db_schema import connect, ensure_schema

now = int(time.time())

allotments = [
    # id, project_name, budget_type, budget_amount, budget_qty, budget_unit
    (1, "Cash Assistance - Senior Citizens", "Money", 15000, None, None),
    (2, "Rice Distribution - Typhoon Relief", "InKind", None, 40, "sacks"),
]

beneficiaries = [
    # id, code, first, last, barangay, classification, status
    (101, "BEN-0001", "Maria",   "Santos",    "Poblacion",  "Senior",  "Endorsed"),
    (102, "BEN-0002", "Jose",    "Reyes",     "San Isidro", "PWD",     "Endorsed"),
    (103, "BEN-0003", "Ana",     "Cruz",      "Poblacion",  "Senior",  "Endorsed"),
    (104, "BEN-0004", "Pedro",   "Bautista",  "Mabini",     "None",    "Endorsed"),
    (105, "BEN-0005", "Luz",     "Garcia",    "San Isidro", "Solo Parent", "Pending"),
    (106, None,       "Ramon",   "Dela Cruz", "Mabini",     "Senior",  "Endorsed"),   # no code: id is the code
]

assignments = [
    # allotment_id, beneficiary_id, share_amount, share_qty, share_unit
    (1, 101, 3000, None, None),
    (1, 102, 3000, None, None),
    (1, 103, 3000, None, None),
    (1, 104, 3000, None, None),
    (1, 106, 3000, None, None),
    (2, 101, None, 10, "sacks"),
    (2, 102, None, 10, "sacks"),
    (2, 104, None, 10, "sacks"),
    (2, 105, None, 10, "sacks"),
]


def main() -> None:
    ap = argparse.ArgumentParser(description="Seed demo allotments + roster")
    ap.add_argument("--db", type=Path, default=None, help="SQLite path (default: from config.yaml)")
    ap.add_argument("--reset-releases", action="store_true", help="Mark every seeded assignment unreleased")
    args = ap.parse_args()

    db = args.db or get_db_path()
    ensure_schema(db)

    with closing(connect(db)) as conn:
        with conn:
            conn.executemany(
                """INSERT OR REPLACE INTO allotments
                   (id, project_name, budget_type, budget_amount, budget_qty, budget_unit, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                [(*a, now) for a in allotments],
            )
            conn.executemany(
                """INSERT OR REPLACE INTO beneficiaries
                   (id, beneficiary_code, first_name, last_name, barangay, classification, status)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                beneficiaries,
            )
            conn.executemany(
                """INSERT INTO allotment_beneficiaries
                   (allotment_id, beneficiary_id, share_amount, share_qty, share_unit, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(allotment_id, beneficiary_id) DO UPDATE SET
                       share_amount = excluded.share_amount,
                       share_qty    = excluded.share_qty,
                       share_unit   = excluded.share_unit,
                       updated_at   = excluded.updated_at""",
                [(*s, now) for s in assignments],
            )
            if args.reset_releases:
                conn.execute(
                    "UPDATE allotment_beneficiaries SET is_released = 0, released_at = NULL, released_by = NULL"
                )
    print(f"Seeded {len(allotments)} allotments / {len(beneficiaries)} beneficiaries into {db}")


if __name__ == "__main__":
    main()
