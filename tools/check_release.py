"""Print release progress per allotment, plus the latest release journal rows."""
import argparse
from contextlib import closing
from pathlib import Path

from release_desk.config_loader import get_db_path
from release_desk.db_schema import connect

ap = argparse.ArgumentParser()
ap.add_argument("--db", type=Path, default=None)
ap.add_argument("--last", type=int, default=10, help="journal rows to show")
args = ap.parse_args()

with closing(connect(args.db or get_db_path())) as con:
    print("Release progress:")
    for r in con.execute("SELECT * FROM v_release_progress ORDER BY allotment_id"):
        print(f"  #{r['allotment_id']} {r['project_name']}: Released: {r['released_count']}/{r['total_count']}")

    print(f"\nLast {args.last} releases:")
    rows = con.execute(
        "SELECT * FROM release_events ORDER BY ts_ms DESC, event_id DESC LIMIT ?", (args.last,)
    ).fetchall()
    for r in rows:
        print(f"  allotment {r['allotment_id']} <- {r['beneficiary_code'] or r['beneficiary_id']}"
              f"  station={r['station_id']}  ts_ms={r['ts_ms']}")
