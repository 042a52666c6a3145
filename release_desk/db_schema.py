from __future__ import annotations

"""
release_desk/db_schema.py
-------------------------
Centralized, idempotent SQLite schema management for the release desk.

Design goals
- Allotments, beneficiaries and assignments are owned by the admin CRUD
  screens; we only define the columns the release flow reads or writes.
- "Released" is one-way. The release UPDATE only matches rows still at 0,
  and every committed release is journaled in release_events.
- Beneficiary codes (what the barcode encodes) are unique, case-insensitively.
- Keep schema creation safe to call at every boot (idempotent).
- Allow destructive rebuilds (recreate=True) when starting fresh.

IMPORTANT:
SQLite only enforces FOREIGN KEY constraints when 'PRAGMA foreign_keys=ON' is set
on the connection performing writes. connect() below does that.
"""

import sqlite3
from pathlib import Path

# Bump when DDL changes in a way worth tracking (for future migrations).
LOCKED_USER_VERSION = 3

# ------------------------
# DDL: Allotments (funded projects)
# ------------------------
ALLOTMENTS_DDL = """
CREATE TABLE IF NOT EXISTS allotments (
    id                  INTEGER PRIMARY KEY,
    project_name        TEXT NOT NULL,
    company             TEXT NOT NULL DEFAULT '',
    department          TEXT NOT NULL DEFAULT '',
    source_of_fund      TEXT NOT NULL DEFAULT '',
    budget_type         TEXT NOT NULL DEFAULT 'Money' CHECK (budget_type IN ('Money','InKind')),
    budget_amount       NUMERIC,            -- Money budgets
    budget_qty          INTEGER,            -- InKind budgets
    budget_unit         TEXT,
    created_at          INTEGER             -- epoch seconds
);
"""

# ------------------------
# DDL: Beneficiaries
# ------------------------
BENEFICIARIES_DDL = """
CREATE TABLE IF NOT EXISTS beneficiaries (
    id                  INTEGER PRIMARY KEY,
    beneficiary_code    TEXT,               -- printed/encoded on the physical barcode
    first_name          TEXT NOT NULL,
    last_name           TEXT NOT NULL,
    gender              TEXT NOT NULL DEFAULT '',
    barangay            TEXT NOT NULL DEFAULT '',
    classification      TEXT,
    status              TEXT NOT NULL DEFAULT 'Pending'   -- 'Pending' | 'Endorsed' | ...
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_beneficiaries_code_unique
ON beneficiaries(beneficiary_code COLLATE NOCASE)
WHERE beneficiary_code IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_beneficiaries_name ON beneficiaries(last_name, first_name);
"""

# ------------------------
# DDL: Assignments (shares + release flag)
# ------------------------
ASSIGNMENTS_DDL = """
CREATE TABLE IF NOT EXISTS allotment_beneficiaries (
    id                  INTEGER PRIMARY KEY,
    allotment_id        INTEGER NOT NULL,
    beneficiary_id      INTEGER NOT NULL,
    share_amount        NUMERIC,            -- Money allotments
    share_qty           INTEGER,            -- InKind allotments
    share_unit          TEXT,
    is_released         INTEGER NOT NULL DEFAULT 0,  -- 0 -> 1 only
    released_at         INTEGER,            -- epoch ms
    released_by         TEXT,               -- station id
    updated_at          INTEGER,
    FOREIGN KEY (allotment_id)   REFERENCES allotments(id)    ON DELETE CASCADE,
    FOREIGN KEY (beneficiary_id) REFERENCES beneficiaries(id) ON DELETE CASCADE,
    UNIQUE (allotment_id, beneficiary_id)
);
CREATE INDEX IF NOT EXISTS idx_assign_allotment ON allotment_beneficiaries(allotment_id);
"""

# ------------------------
# DDL: Release journal
# ------------------------
RELEASE_EVENTS_DDL = """
-- Append-only audit of committed releases (one row per flag flip).
CREATE TABLE IF NOT EXISTS release_events (
    event_id            INTEGER PRIMARY KEY,
    allotment_id        INTEGER NOT NULL,
    beneficiary_id      INTEGER NOT NULL,
    beneficiary_code    TEXT,
    station_id          TEXT,
    ts_ms               INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_release_events_allotment ON release_events(allotment_id, ts_ms);
"""

# ------------------------
# DDL: Convenience views
# ------------------------
VIEWS_DDL = """
-- Released/total per allotment, endorsed beneficiaries only.
CREATE VIEW IF NOT EXISTS v_release_progress AS
SELECT
    a.id            AS allotment_id,
    a.project_name  AS project_name,
    (SELECT COUNT(*)
       FROM allotment_beneficiaries ab
       JOIN beneficiaries b ON b.id = ab.beneficiary_id
      WHERE ab.allotment_id = a.id AND b.status = 'Endorsed') AS total_count,
    (SELECT COUNT(*)
       FROM allotment_beneficiaries ab
       JOIN beneficiaries b ON b.id = ab.beneficiary_id
      WHERE ab.allotment_id = a.id AND b.status = 'Endorsed' AND ab.is_released = 1) AS released_count
FROM allotments a;
"""


# ------------------------
# Helpers
# ------------------------
def _exec_script(conn: sqlite3.Connection, script: str) -> None:
    cur = conn.cursor()
    cur.executescript(script)
    conn.commit()


def _drop_everything(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    # Views first (they depend on tables), then children before parents
    cur.execute("DROP VIEW IF EXISTS v_release_progress")
    cur.execute("DROP TABLE IF EXISTS release_events")
    cur.execute("DROP TABLE IF EXISTS allotment_beneficiaries")
    cur.execute("DROP TABLE IF EXISTS beneficiaries")
    cur.execute("DROP TABLE IF EXISTS allotments")
    conn.commit()


def connect(db_path: str | Path) -> sqlite3.Connection:
    """Open a connection with Row access and FK enforcement."""
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def ensure_schema(db_path: str | Path, recreate: bool = False) -> None:
    """
    Create the database (and parent folder) if needed, and enforce our schema.
    Safe to call at every boot.
      - recreate=True : destructive drop & rebuild (fresh start).
    """
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(p)
    try:
        if recreate:
            _drop_everything(conn)

        _exec_script(conn, ALLOTMENTS_DDL)
        _exec_script(conn, BENEFICIARIES_DDL)
        _exec_script(conn, ASSIGNMENTS_DDL)
        _exec_script(conn, RELEASE_EVENTS_DDL)
        _exec_script(conn, VIEWS_DDL)

        # Record user_version for lightweight migrations.
        cur = conn.cursor()
        cur.execute(f"PRAGMA user_version = {LOCKED_USER_VERSION}")
        conn.commit()
    finally:
        conn.close()
