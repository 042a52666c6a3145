"""
Terminal desk helpers.

Tests verify:
1. A failed ":r" roster reload is reported and the session stays open
2. stdin lines become text + Enter, and confirm/cancel words while confirming
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from release_desk.errors import LedgerError, RosterIntegrityError
from release_desk.release_console import feed_line, reload_roster
from release_desk.release_session import SessionState
from test_release_session import PROJECT, entry, make_desk


def test_reload_failure_keeps_session(capsys):
    desk, ledger, hub = make_desk(entry(1, "A1"))
    desk.open_session(PROJECT)

    for error in (LedgerError("database is locked"), RosterIntegrityError("beneficiary 1: bad share")):
        ledger.load_error = error
        assert reload_roster(desk) is False
        assert desk.state is SessionState.OPEN, "a failed reload never ends the session"
        assert desk.capture_installed
        assert "Roster reload failed" in capsys.readouterr().out

    ledger.load_error = None
    assert reload_roster(desk) is True
    assert "Released: 0/1" in capsys.readouterr().out


def test_feed_line_scan_confirm_cancel():
    desk, ledger, hub = make_desk(entry(1, "A1"), entry(2, "B2", last="Reyes"))
    desk.open_session(PROJECT)

    feed_line(hub, desk, "a1")
    assert desk.state is SessionState.AWAITING_CONFIRMATION
    feed_line(hub, desk, "B2")
    assert desk.pending.code == "A1", "scanner text is swallowed while confirming"
    feed_line(hub, desk, "esc")
    assert desk.state is SessionState.OPEN and ledger.mark_calls == []

    feed_line(hub, desk, "B2")
    feed_line(hub, desk, "")
    assert desk.state is SessionState.OPEN
    assert ledger.mark_calls == [(7, 2, "desk-test")]
