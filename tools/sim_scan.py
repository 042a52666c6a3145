#!/usr/bin/env python3
"""
Keyboard-wedge simulator for the release desk HTTP surface.

Types each code one character at a time into /release/input/text and then
presses the terminator key, like a USB scanner does. With --confirm it also
presses Enter on the confirmation gate.

Usage:
  (.venv) python tools/sim_scan.py BEN-0001 ben-0003 --open 1 --confirm
  (.venv) python tools/sim_scan.py 106 --terminator Tab --char-delay 0.005
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

import httpx

log = logging.getLogger("release.scan")


async def type_code(client: httpx.AsyncClient, code: str, terminator: str, char_delay: float) -> dict:
    for ch in code:
        r = await client.post("/release/input/text", json={"text": ch})
        r.raise_for_status()
        if char_delay:
            await asyncio.sleep(char_delay)
    r = await client.post("/release/input/key", json={"key": terminator})
    r.raise_for_status()
    return r.json()


async def run(args) -> int:
    async with httpx.AsyncClient(base_url=args.url, timeout=args.timeout) as client:
        if args.open is not None:
            r = await client.post("/release/session/open", json={"allotment_id": args.open})
            r.raise_for_status()
            log.info("session_open allotment_id=%s progress=%s", args.open, r.json()["progress"]["text"])

        for code in args.codes:
            snap = await type_code(client, code, args.terminator, args.char_delay)
            note = snap.get("notification") or {}
            print(f"{code:<16} state={snap['state']:<22} {note.get('severity', '-'):<8} {note.get('message', '')}")
            if args.confirm and snap["state"] == "awaiting_confirmation":
                r = await client.post("/release/input/key", json={"key": "Enter"})
                r.raise_for_status()
                snap = r.json()
                note = snap.get("notification") or {}
                print(f"{'':<16} state={snap['state']:<22} {note.get('severity', '-'):<8} {note.get('message', '')}")

        if args.dump:
            r = await client.get("/release/state", params={"roster": "false"})
            print(json.dumps(r.json(), indent=2))
    return 0


def main() -> int:
    ap = argparse.ArgumentParser(description="Keyboard-wedge scan simulator")
    ap.add_argument("codes", nargs="+", help="codes to 'scan'")
    ap.add_argument("--url", default="http://127.0.0.1:8000")
    ap.add_argument("--open", type=int, default=None, help="open this allotment first")
    ap.add_argument("--terminator", default="Enter", help="Enter | Return | Tab")
    ap.add_argument("--char-delay", type=float, default=0.0, help="seconds between characters")
    ap.add_argument("--confirm", action="store_true", help="press Enter on the confirmation gate")
    ap.add_argument("--dump", action="store_true", help="print final state")
    ap.add_argument("--timeout", type=float, default=5.0)
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        return asyncio.run(run(args))
    except httpx.HTTPError as ex:
        print(f"request failed: {type(ex).__name__}: {ex}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
