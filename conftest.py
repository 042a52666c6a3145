import sys
from contextlib import closing
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from release_desk.db_schema import connect, ensure_schema


def seed_db(db_path: Path) -> Path:
    """Two allotments: #1 money (4 endorsed + 1 pending), #2 in-kind (2 endorsed)."""
    ensure_schema(db_path)
    with closing(connect(db_path)) as conn:
        with conn:
            conn.executemany(
                """INSERT INTO allotments(id, project_name, budget_type, budget_amount, budget_qty, budget_unit)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (1, "Cash Assistance", "Money", 12000, None, None),
                    (2, "Rice Relief", "InKind", None, 20, "sacks"),
                ],
            )
            conn.executemany(
                """INSERT INTO beneficiaries(id, beneficiary_code, first_name, last_name, barangay, classification, status)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                [
                    (11, "BEN-011", "Maria", "Santos", "Poblacion", "Senior", "Endorsed"),
                    (12, "BEN-012", "Jose", "Reyes", "Mabini", "PWD", "Endorsed"),
                    (13, "BEN-013", "Ana", "Cruz", "Poblacion", None, "Endorsed"),
                    (14, None, "Pedro", "Bautista", "Mabini", "Senior", "Endorsed"),
                    (15, "BEN-015", "Luz", "Garcia", "San Isidro", "Senior", "Pending"),
                ],
            )
            conn.executemany(
                """INSERT INTO allotment_beneficiaries(allotment_id, beneficiary_id, share_amount, share_qty, share_unit)
                   VALUES (?, ?, ?, ?, ?)""",
                [
                    (1, 11, 3000, None, None),
                    (1, 12, 3000, None, None),
                    (1, 13, 3000, None, None),
                    (1, 14, 3000, None, None),
                    (1, 15, 3000, None, None),
                    (2, 11, None, 10, "sacks"),
                    (2, 12, None, 10, "sacks"),
                ],
            )
    return db_path


@pytest.fixture
def seeded_db(tmp_path) -> Path:
    return seed_db(tmp_path / "release.sqlite")
