"""
Terminal release desk.

A USB barcode scanner in keyboard-wedge mode types the code and presses Enter,
so every stdin line is one text-input burst followed by an Enter key-down.
While a confirmation is pending:
    <Enter> or "y"      confirm the release
    "esc" or "n"        cancel
anything else is swallowed, exactly like the scanner characters.

Commands (any time): ":q" quit, ":r" reload roster, ":p" print roster.

Usage:
  (.venv) python -m release_desk.release_console 3
  (.venv) python -m release_desk.release_console --list
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config_loader import get_db_path, get_log_level, get_notification_cfg, get_scanner_cfg, get_station_id
from .errors import ReleaseDeskError
from .ledger import SqliteReleaseLedger
from .release_session import ReleaseSessionController, SessionState
from .scan_input import DEFAULT_TERMINATORS, ENTER, ESCAPE, KeyEventHub, ScanAccumulator


CONFIRM_WORDS = {"", "y", "yes"}
CANCEL_WORDS = {"esc", "n", "no"}


def print_roster(desk: ReleaseSessionController) -> None:
    for e in desk.roster:
        mark = "x" if e.released else " "
        print(f"  [{mark}] {e.code:<12} {e.last_name}, {e.first_name:<20} {e.barangay:<16} {e.share.text}")
    print(f"  {desk.progress_text}")


def reload_roster(desk: ReleaseSessionController) -> bool:
    """Operator-requested reload. A failure is reported and the session stays up."""
    try:
        desk.refresh_roster()
    except ReleaseDeskError as ex:
        print(f"[ERROR] Roster reload failed: {ex}")
        return False
    print(f"  {desk.progress_text}")
    return True


def render(desk: ReleaseSessionController) -> None:
    n = desk.notifications.current
    if n is not None:
        print(f"[{n.severity.value.upper()}] {n.message}")
    if desk.state is SessionState.AWAITING_CONFIRMATION and desk.pending is not None:
        p = desk.pending
        print("  Confirm release")
        print(f"    ID:             {p.code}")
        print(f"    Name:           {p.name}")
        print(f"    Barangay:       {p.barangay}")
        print(f"    Classification: {p.classification}")
        print(f"    Share:          {p.share_text}")
        print("  <Enter> release / esc cancel")
    else:
        print(f"  {desk.progress_text}   scan next…")


def feed_line(hub: KeyEventHub, desk: ReleaseSessionController, line: str) -> None:
    """Translate one stdin line into the raw events a keyboard wedge produces."""
    word = line.strip().lower()
    if desk.state is SessionState.AWAITING_CONFIRMATION:
        if word in CONFIRM_WORDS:
            hub.dispatch_key(ENTER)
        elif word in CANCEL_WORDS:
            hub.dispatch_key(ESCAPE)
        else:
            hub.dispatch_text(line)
        return
    hub.dispatch_text(line)
    hub.dispatch_key(ENTER)


async def run_desk(allotment_id: int, db_path: Path) -> None:
    scan_cfg = get_scanner_cfg()
    duration_ms = get_notification_cfg().get("duration_ms", 2200)
    hub = KeyEventHub()
    desk = ReleaseSessionController(
        SqliteReleaseLedger(db_path),
        hub=hub,
        accumulator=ScanAccumulator(
            terminators=scan_cfg.get("terminators") or DEFAULT_TERMINATORS,
            accept_tab=bool(scan_cfg.get("accept_tab", True)),
        ),
        notify_duration_s=float(duration_ms) / 1000.0,
        cancel_keys=scan_cfg.get("cancel_keys") or (ESCAPE,),
        station_id=get_station_id(),
    )

    desk.open_session(allotment_id)
    a = desk.allotment
    print(f"Release session: {a.project_name}  (budget {a.total_budget_text})")
    print(f"Found {desk.total_count} records")
    render(desk)

    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            cmd = line.strip()
            if cmd == ":q":
                break
            if cmd == ":r":
                reload_roster(desk)
                continue
            if cmd == ":p":
                print_roster(desk)
                continue
            feed_line(hub, desk, line)
            render(desk)
    finally:
        desk.dispose()
        await desk.notifications.aclose()
        print("Release session closed.")


def list_allotments(db_path: Path) -> None:
    for a in SqliteReleaseLedger(db_path).list_allotments():
        print(f"  {a.allotment_id:>4}  {a.project_name:<40} {a.total_budget_text}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="ARD – terminal release desk (keyboard-wedge scanner on stdin)")
    parser.add_argument("allotment_id", nargs="?", type=int, help="Allotment to release")
    parser.add_argument("--db", type=Path, default=None, help="SQLite path (default: from config.yaml)")
    parser.add_argument("--list", action="store_true", help="List allotments and exit")
    args = parser.parse_args(argv)

    logging.basicConfig(level=get_log_level(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    db_path = args.db or get_db_path()

    if args.list or args.allotment_id is None:
        list_allotments(db_path)
        return 0

    try:
        asyncio.run(run_desk(args.allotment_id, db_path))
    except KeyboardInterrupt:
        print("\nStopping session…")
    except ReleaseDeskError as ex:
        print(f"error: {ex}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
