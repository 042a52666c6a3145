from __future__ import annotations
import logging
import time
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from .errors import LedgerError, ReleaseDeskError, SessionStateError
from .ledger import ReleaseLedger, load_roster
from .models import AllotmentRef, PendingRelease, RosterEntry, Severity
from .notifications import DEFAULT_DURATION_S, NotificationChannel
from .scan_input import ENTER, ESCAPE, RETURN, InputCapture, KeyEventHub, ScanAccumulator, normalize_key

log = logging.getLogger("release.session")

UTC_MS = lambda: int(time.time() * 1000)


class SessionState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"                                   # scanning accepted
    AWAITING_CONFIRMATION = "awaiting_confirmation" # scanning suspended


CONFIRM_KEYS = frozenset({ENTER, RETURN})


# ----------------------------- Release session -----------------------------
class ReleaseSessionController:
    """
    Release-session scan/confirm state machine.

    Closed --open_session--> Open --scan hit--> AwaitingConfirmation
    AwaitingConfirmation --confirm (ledger ok)--> Open
    AwaitingConfirmation --cancel / Escape-----> Open
    any --close_session--> Closed

    All events (text/key input, confirm/cancel, roster reloads) come through
    this object on one thread of control. The roster is always a full reload
    from the ledger, at open and after every committed release.
    """

    def __init__(self, ledger: ReleaseLedger, *,
                 hub: Optional[KeyEventHub] = None,
                 accumulator: Optional[ScanAccumulator] = None,
                 notifications: Optional[NotificationChannel] = None,
                 notify_duration_s: float = DEFAULT_DURATION_S,
                 cancel_keys: Iterable[str] = (ESCAPE,),
                 station_id: Optional[str] = None,
                 on_change: Optional[Callable[[Dict], None]] = None):
        self.ledger = ledger
        self.hub = hub or KeyEventHub()
        self.accumulator = accumulator or ScanAccumulator()
        self.notifications = notifications or NotificationChannel(duration_s=notify_duration_s)
        self.notifications.add_listener(self._on_toast)
        self.cancel_keys = frozenset(normalize_key(k) for k in cancel_keys)
        self.station_id = station_id
        self._on_change = on_change
        self._capture = InputCapture(self.hub, self.on_text, self.on_key)
        self._reset()

    # ---------- lifecycle ----------
    def _reset(self):
        self.state: SessionState = SessionState.CLOSED
        self.allotment: Optional[AllotmentRef] = None
        self.roster: List[RosterEntry] = []
        self._by_code: Dict[str, RosterEntry] = {}
        self.pending: Optional[PendingRelease] = None
        self.scan_input: str = ""
        self.opened_at_ms: Optional[int] = None
        self.accumulator.reset()

    @property
    def capture_installed(self) -> bool:
        return self._capture.installed

    def open_session(self, allotment: AllotmentRef | int | None) -> Dict:
        if allotment is None:
            raise SessionStateError("select an allotment before opening a release session")
        if not isinstance(allotment, AllotmentRef):
            allotment = self.ledger.get_allotment(int(allotment))

        if self.state is not SessionState.CLOSED:
            # switching projects: drop the current session, commit nothing
            self.close_session()

        roster = load_roster(self.ledger, allotment.allotment_id)  # LedgerError -> stays Closed

        self.allotment = allotment
        self._install_roster(roster)
        self.pending = None
        self.scan_input = ""
        self.accumulator.reset()
        self.notifications.clear()
        self.opened_at_ms = UTC_MS()
        self.state = SessionState.OPEN
        self._capture.install()

        log.info("session_open", extra={"allotment_id": allotment.allotment_id,
                                         "roster": len(self.roster),
                                         "released": self.released_count})
        self._changed()
        return self.snapshot()

    def close_session(self) -> Dict:
        if self.state is SessionState.CLOSED:
            self._capture.remove()
            return self.snapshot()
        aid = self.allotment.allotment_id if self.allotment else None
        had_pending = self.pending is not None
        self._capture.remove()
        self._reset()
        self.notifications.clear()
        log.info("session_close", extra={"allotment_id": aid, "discarded_pending": had_pending})
        self._changed()
        return self.snapshot()

    dispose = close_session

    # ---------- roster ----------
    def _install_roster(self, roster: List[RosterEntry]):
        self.roster = list(roster)
        index: Dict[str, RosterEntry] = {}
        for e in self.roster:
            index.setdefault(e.match_key, e)
        self._by_code = index

    def refresh_roster(self) -> Dict:
        if self.state is SessionState.CLOSED or self.allotment is None:
            raise SessionStateError("no release session is open")
        self._install_roster(load_roster(self.ledger, self.allotment.allotment_id))
        self._changed()
        return self.snapshot()

    def find(self, code: str) -> Optional[RosterEntry]:
        return self._by_code.get(str(code).strip().casefold())

    @property
    def released_count(self) -> int:
        return sum(1 for e in self.roster if e.released)

    @property
    def total_count(self) -> int:
        return len(self.roster)

    @property
    def progress_text(self) -> str:
        return f"Released: {self.released_count}/{self.total_count}"

    # ---------- raw input (installed on the hub while a session is open) ----------
    def on_text(self, text: str) -> bool:
        if self.state is SessionState.CLOSED:
            return False
        if self.state is SessionState.AWAITING_CONFIRMATION:
            # swallow scanner characters while the confirmation gate is up
            return True
        self.accumulator.on_char(text)
        self.scan_input = self.accumulator.text
        self._changed()
        return True

    def on_key(self, key: str) -> bool:
        k = normalize_key(key)
        if self.state is SessionState.CLOSED:
            return False

        if self.state is SessionState.AWAITING_CONFIRMATION:
            if k in CONFIRM_KEYS:
                self.confirm()
            elif k in self.cancel_keys:
                self.cancel()
            return True

        if not self.accumulator.is_terminator(k):
            return False
        code = self.accumulator.on_terminator_key(k)
        if code is None:
            # stray terminator: noise, not an error
            self.scan_input = ""
            self._changed()
            return True
        self.handle_scan(code)
        return True

    # ---------- scan / confirm / cancel ----------
    def handle_scan(self, code: str) -> Dict:
        if self.state is SessionState.CLOSED:
            return {"ok": False, "reason": "closed", "code": code}
        if self.state is SessionState.AWAITING_CONFIRMATION:
            return {"ok": False, "reason": "suspended", "code": code}

        raw = str(code or "").strip()
        if not raw:
            return {"ok": True, "reason": "empty", "code": ""}

        self.scan_input = raw
        hit = self.find(raw)

        if hit is None:
            log.info("scan_not_found", extra={"code": raw})
            self.notifications.show(f"Scan not found: {raw}", Severity.ERROR)
            self._changed()
            return {"ok": False, "reason": "not_found", "code": raw}

        if hit.released:
            log.info("scan_already_released", extra={"code": raw, "beneficiary_id": hit.beneficiary_id})
            self.notifications.show(f"Already released: {raw}", Severity.WARNING)
            self._changed()
            return {"ok": False, "reason": "already_released", "code": raw,
                    "beneficiary_id": hit.beneficiary_id}

        self.pending = PendingRelease.capture(hit)
        self.state = SessionState.AWAITING_CONFIRMATION
        self.accumulator.reset()
        log.info("scan_accepted", extra={"code": raw, "beneficiary_id": hit.beneficiary_id})
        self.notifications.show(f"Scan accepted: {raw}", Severity.SUCCESS)
        self._changed()
        return {"ok": True, "reason": "accepted", "code": raw, "beneficiary_id": hit.beneficiary_id}

    def confirm(self) -> Dict:
        if self.state is not SessionState.AWAITING_CONFIRMATION or self.pending is None:
            raise SessionStateError("nothing is awaiting confirmation")
        if self.allotment is None:
            raise SessionStateError("no release session is open")
        aid = self.allotment.allotment_id
        p = self.pending
        bid = p.entry.beneficiary_id

        try:
            if self.ledger.is_released(aid, bid):
                flipped = False
            else:
                flipped = self.ledger.mark_released(aid, bid, station_id=self.station_id)
        except LedgerError as ex:
            # stay AwaitingConfirmation so the operator can retry without re-scanning
            log.warning("release_write_failed", extra={"allotment_id": aid, "beneficiary_id": bid, "err": str(ex)})
            self.notifications.show(f"Release failed for {p.code}: {ex}", Severity.ERROR)
            self._changed()
            return {"ok": False, "reason": "ledger_error", "code": p.code, "error": str(ex)}

        reason = "released" if flipped else "already_released_elsewhere"
        self.pending = None
        self.scan_input = ""
        self.accumulator.reset()
        self.state = SessionState.OPEN

        refreshed = True
        try:
            self._install_roster(load_roster(self.ledger, aid))
        except ReleaseDeskError as ex:
            # release is committed; keep the previous roster
            refreshed = False
            log.warning("roster_reload_failed", extra={"allotment_id": aid, "err": str(ex)})

        log.info("release_committed", extra={"allotment_id": aid, "beneficiary_id": bid,
                                              "code": p.code, "reason": reason})
        if not refreshed:
            self.notifications.show(f"Released to {p.code}; roster refresh failed", Severity.WARNING)
        elif flipped:
            self.notifications.show(f"Released to {p.code}", Severity.SUCCESS)
        else:
            self.notifications.show(f"Released to {p.code} (already recorded)", Severity.SUCCESS)
        self._changed()
        return {"ok": True, "reason": reason, "code": p.code, "beneficiary_id": bid,
                "roster_refreshed": refreshed}

    def cancel(self) -> Dict:
        if self.state is not SessionState.AWAITING_CONFIRMATION:
            raise SessionStateError("nothing is awaiting confirmation")
        p = self.pending
        self.pending = None
        self.scan_input = ""
        self.accumulator.reset()
        self.state = SessionState.OPEN
        log.info("release_cancelled", extra={"code": p.code if p else None})
        self._changed()
        return {"ok": True, "reason": "cancelled", "code": p.code if p else None}

    # ---------- snapshot ----------
    def snapshot(self, include_roster: bool = True) -> Dict:
        snap = {
            "state": self.state.value,
            "allotment": self.allotment.as_dict() if self.allotment else None,
            "opened_at_ms": self.opened_at_ms,
            "scan_input": self.scan_input,
            "notification": self.notifications.snapshot(),
            "pending": self.pending.as_dict() if self.pending else None,
            "progress": {
                "released": self.released_count,
                "total": self.total_count,
                "text": self.progress_text,
            },
            "capture_installed": self._capture.installed,
        }
        if include_roster:
            snap["roster"] = [e.as_dict() for e in self.roster]
        return snap

    def _on_toast(self, _n) -> None:
        self._changed()

    def _changed(self):
        if self._on_change is None:
            return
        try:
            self._on_change(self.snapshot(include_roster=False))
        except Exception:
            log.exception("session_listener_failed")
