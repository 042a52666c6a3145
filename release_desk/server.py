from __future__ import annotations

"""
Allotment Release Desk - release_desk/server.py
-----------------------------------------------
HTTP surface for a browser release screen.

The browser forwards raw keystrokes (text-input and key-down events) while its
release page is up; they land on the server-side KeyEventHub, where the open
session's InputCapture routes them into the ReleaseSessionController. With no
open session nothing is installed on the hub and input is ignored, the same
as the desktop window hook being detached.

Endpoints
  GET  /allotments                       project picker rows
  GET  /allotments/{id}/roster           paged roster (page_size default 8)
  POST /release/session/open             {allotment_id}
  POST /release/session/close
  POST /release/input/text               {text}
  POST /release/input/key                {key}
  POST /release/confirm
  POST /release/cancel
  GET  /release/state                    controller snapshot
  GET  /release/stream                   SSE: one "state" event per change
  GET  /healthz                          liveness (no DB access)
  GET  /readyz                           readiness (touches SQLite)

Wrong-state calls (confirm with nothing pending, etc.) answer 409.
"""

import asyncio
import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite
from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from .config_loader import (
    get_db_path,
    get_log_level,
    get_notification_cfg,
    get_persistence_cfg,
    get_scanner_cfg,
    get_server_bind,
    get_station_id,
)
from .errors import AllotmentNotFound, LedgerError, RosterIntegrityError, SessionStateError
from .ledger import ReleaseLedger, SqliteReleaseLedger, load_roster
from .notifications import DEFAULT_DURATION_S
from .release_session import ReleaseSessionController
from .scan_input import DEFAULT_TERMINATORS, ESCAPE, KeyEventHub, ScanAccumulator

log = logging.getLogger("release.server")

DEFAULT_PAGE_SIZE = 8
_SHUTDOWN = "__shutdown__"

# ------------------------------------------------------------
# FastAPI app bootstrap
# ------------------------------------------------------------
app = FastAPI(title="Allotment Release Desk", version="0.1.0")

# Runtime wiring, filled by configure() (tests) or by the startup hook.
DB_PATH: Optional[Path] = None
LEDGER: Optional[ReleaseLedger] = None
HUB = KeyEventHub()
DESK: Optional[ReleaseSessionController] = None

_listeners: List[asyncio.Queue] = []   # SSE subscribers


# ------------------------------------------------------------
# Request models
# ------------------------------------------------------------
class OpenReq(BaseModel):
    allotment_id: int


class TextReq(BaseModel):
    text: str = Field(..., description="raw text-input event, one or more characters")


class KeyReq(BaseModel):
    key: str = Field(..., description="key name: Enter, Return, Tab, Escape, ...")


# ------------------------------------------------------------
# Wiring
# ------------------------------------------------------------
def _publish(snap: Dict[str, Any]) -> None:
    """Fan a state snapshot out to every SSE subscriber (drop oldest if slow)."""
    payload = json.dumps(snap, separators=(",", ":"), default=str)
    for q in list(_listeners):
        try:
            q.put_nowait(payload)
        except asyncio.QueueFull:
            try:
                q.get_nowait()
                q.put_nowait(payload)
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                log.warning("sse_listener_stalled")


def build_controller(ledger: ReleaseLedger, hub: KeyEventHub) -> ReleaseSessionController:
    """Controller wired from config.yaml (scanner keys, toast duration, station id)."""
    scan_cfg = get_scanner_cfg()
    note_cfg = get_notification_cfg()
    duration_ms = note_cfg.get("duration_ms")
    return ReleaseSessionController(
        ledger,
        hub=hub,
        accumulator=ScanAccumulator(
            terminators=scan_cfg.get("terminators") or DEFAULT_TERMINATORS,
            accept_tab=bool(scan_cfg.get("accept_tab", True)),
        ),
        notify_duration_s=(float(duration_ms) / 1000.0) if duration_ms is not None else DEFAULT_DURATION_S,
        cancel_keys=scan_cfg.get("cancel_keys") or (ESCAPE,),
        station_id=get_station_id(),
        on_change=_publish,
    )


def configure(ledger: ReleaseLedger, db_path: Optional[Path] = None) -> ReleaseSessionController:
    """Install a ledger + fresh controller. Called by the startup hook or directly by tests."""
    global LEDGER, DESK, DB_PATH
    if DESK is not None:
        DESK.dispose()
    LEDGER = ledger
    DB_PATH = Path(db_path) if db_path is not None else getattr(ledger, "db_path", None)
    DESK = build_controller(ledger, HUB)
    return DESK


def _desk() -> ReleaseSessionController:
    if DESK is None:
        raise HTTPException(status_code=503, detail="release desk not initialized")
    return DESK


def _ledger() -> ReleaseLedger:
    if LEDGER is None:
        raise HTTPException(status_code=503, detail="release desk not initialized")
    return LEDGER


# ------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------
@app.on_event("startup")
async def init_desk() -> None:
    if DESK is not None:
        log.info("release desk already configured db_path=%s", DB_PATH)
        return
    db_path = get_db_path()
    recreate = bool(get_persistence_cfg().get("recreate_on_boot", False))
    if recreate:
        log.warning("recreate_on_boot=true: dropping and rebuilding %s", db_path)
    configure(SqliteReleaseLedger(db_path, recreate=recreate), db_path)
    log.info("db_path=%s", Path(db_path).resolve())


@app.on_event("shutdown")
async def stop_desk() -> None:
    """Detach the session, cancel the toast timer and release SSE clients."""
    if DESK is not None:
        DESK.dispose()
        await DESK.notifications.aclose()
    for q in list(_listeners):
        try:
            q.put_nowait(_SHUTDOWN)
        except asyncio.QueueFull:
            log.warning("sse_listener_stalled")
    log.info("release desk stopped")


# ------------------------------------------------------------
# Project picker / roster
# ------------------------------------------------------------
@app.get("/allotments")
async def list_allotments():
    try:
        rows = _ledger().list_allotments()
    except LedgerError as ex:
        raise HTTPException(status_code=500, detail=str(ex))
    return {"allotments": [a.as_dict() for a in rows]}


@app.get("/allotments/{allotment_id}/roster")
async def allotment_roster(allotment_id: int, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE):
    if page < 1 or page_size < 1:
        raise HTTPException(status_code=400, detail="page and page_size must be >= 1")
    ledger = _ledger()
    try:
        allotment = ledger.get_allotment(allotment_id)
        roster = load_roster(ledger, allotment_id)
    except AllotmentNotFound as ex:
        raise HTTPException(status_code=404, detail=str(ex))
    except RosterIntegrityError as ex:
        raise HTTPException(status_code=422, detail=str(ex))
    except LedgerError as ex:
        raise HTTPException(status_code=500, detail=str(ex))

    total = len(roster)
    pages = max(1, math.ceil(total / page_size))
    page = min(page, pages)
    start = (page - 1) * page_size
    released = sum(1 for e in roster if e.released)
    return {
        "allotment": allotment.as_dict(),
        "page": page,
        "page_size": page_size,
        "pages": pages,
        "total": total,
        "found_text": f"Found {total} records",
        "progress_text": f"Released: {released}/{total}",
        "rows": [e.as_dict() for e in roster[start:start + page_size]],
    }


# ------------------------------------------------------------
# Release session
# ------------------------------------------------------------
@app.post("/release/session/open")
async def release_open(req: OpenReq):
    desk = _desk()
    try:
        return desk.open_session(req.allotment_id)
    except AllotmentNotFound as ex:
        raise HTTPException(status_code=404, detail=str(ex))
    except RosterIntegrityError as ex:
        raise HTTPException(status_code=422, detail=str(ex))
    except LedgerError as ex:
        raise HTTPException(status_code=500, detail=str(ex))


@app.post("/release/session/close")
async def release_close():
    return _desk().close_session()


@app.post("/release/input/text")
async def release_input_text(req: TextReq):
    desk = _desk()
    handled = HUB.dispatch_text(req.text)
    return {"handled": handled, "state": desk.state.value, "scan_input": desk.scan_input}


@app.post("/release/input/key")
async def release_input_key(req: KeyReq):
    desk = _desk()
    handled = HUB.dispatch_key(req.key)
    return {"handled": handled, **desk.snapshot(include_roster=False)}


@app.post("/release/confirm")
async def release_confirm():
    desk = _desk()
    try:
        result = desk.confirm()
    except SessionStateError as ex:
        raise HTTPException(status_code=409, detail=str(ex))
    return {"result": result, **desk.snapshot(include_roster=False)}


@app.post("/release/cancel")
async def release_cancel():
    desk = _desk()
    try:
        result = desk.cancel()
    except SessionStateError as ex:
        raise HTTPException(status_code=409, detail=str(ex))
    return {"result": result, **desk.snapshot(include_roster=False)}


@app.get("/release/state")
async def release_state(roster: bool = True):
    return _desk().snapshot(include_roster=roster)


@app.get("/release/stream")
async def release_stream(request: Request):
    """EventSource stream: current state first, then one event per change."""
    desk = _desk()
    q: asyncio.Queue = asyncio.Queue(maxsize=256)
    _listeners.append(q)
    first = json.dumps(desk.snapshot(include_roster=False), separators=(",", ":"), default=str)

    async def gen():
        try:
            yield f"event: state\ndata: {first}\n\n"
            while not await request.is_disconnected():
                try:
                    payload = await asyncio.wait_for(q.get(), timeout=15.0)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if payload == _SHUTDOWN:
                    break
                yield f"event: state\ndata: {payload}\n\n"
        finally:
            if q in _listeners:
                _listeners.remove(q)

    return StreamingResponse(gen(), media_type="text/event-stream", headers={"Cache-Control": "no-store"})


# ------------------------------------------------------------
# Probes
# ------------------------------------------------------------
@app.get("/healthz")
async def healthz():
    """Liveness probe. Does not touch the database."""
    return {"status": "ok", "service": "release-desk"}


@app.get("/readyz")
async def readyz():
    """
    Readiness probe. Verifies DB is reachable and schema is present.
    Returns 200 with basic info if good; 503 if DB check fails.
    """
    try:
        if DB_PATH is None:
            raise RuntimeError("db path not configured")
        async with aiosqlite.connect(DB_PATH) as db:
            # succeeds only if the assignment table exists
            await db.execute("SELECT 1 FROM allotment_beneficiaries LIMIT 1")
        return {"status": "ok", "db_path": str(DB_PATH)}
    except Exception as e:
        return Response(
            content='{"status":"degraded","error":"%s"}' % type(e).__name__,
            media_type="application/json",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


def main() -> None:
    import uvicorn

    logging.basicConfig(level=get_log_level(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    host, port = get_server_bind()
    uvicorn.run("release_desk.server:app", host=host, port=port, log_level=get_log_level().lower())


if __name__ == "__main__":
    main()
