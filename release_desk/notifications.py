from __future__ import annotations
"""
release_desk/notifications.py
-----------------------------
Toast channel for the release screen: one notification at a time, cleared
automatically after a fixed duration unless something clears or replaces it
first.

Every show() stamps a new expiry token and replaces the auto-clear task. The
task only clears the notification that carries its own token, so a timer
started for an older toast can never hide a newer one, even if its
cancellation races with its wake-up.

The auto-clear runs as an asyncio task on the running loop. Without a
running loop (plain sync callers, scripts) the toast simply stays until the
next show()/clear().
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from .models import Notification, Severity

log = logging.getLogger("release.notify")

DEFAULT_DURATION_S = 2.2


class NotificationChannel:
    def __init__(self, duration_s: float = DEFAULT_DURATION_S,
                 on_change: Optional[Callable[[Optional[Notification]], None]] = None):
        self.duration_s = max(0.0, float(duration_s))
        self._listeners: List[Callable[[Optional[Notification]], None]] = []
        if on_change is not None:
            self._listeners.append(on_change)
        self._current: Optional[Notification] = None
        self._token = 0
        self._task: Optional[asyncio.Task] = None

    # ---------- observable state ----------
    @property
    def current(self) -> Optional[Notification]:
        return self._current

    @property
    def visible(self) -> bool:
        return self._current is not None

    def snapshot(self) -> Optional[Dict]:
        n = self._current
        return None if n is None else {**n.as_dict(), "visible": True}

    # ---------- public API ----------
    def add_listener(self, fn: Callable[[Optional[Notification]], None]) -> None:
        if fn not in self._listeners:
            self._listeners.append(fn)

    def remove_listener(self, fn: Callable[[Optional[Notification]], None]) -> None:
        if fn in self._listeners:
            self._listeners.remove(fn)

    def show(self, message: str, severity: Severity | str = Severity.INFO) -> Notification:
        self._cancel_timer()
        self._token += 1
        n = Notification(message=str(message), severity=Severity(severity), token=self._token)
        self._current = n
        log.info("toast", extra={"severity": n.severity.value, "toast": n.message, "token": n.token})
        self._changed()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._task = loop.create_task(self._expire_after(n.token), name=f"toast_expiry_{n.token}")
        return n

    def clear(self) -> None:
        self._cancel_timer()
        if self._current is not None:
            self._current = None
            self._changed()

    async def aclose(self) -> None:
        """Cancel and await the pending auto-clear (shutdown path)."""
        t, self._task = self._task, None
        if t and not t.done():
            t.cancel()
            try:
                await t
            except asyncio.CancelledError:
                pass

    # ---------- internals ----------
    async def _expire_after(self, token: int) -> None:
        try:
            await asyncio.sleep(self.duration_s)
        except asyncio.CancelledError:
            return
        self._expire(token)

    def _expire(self, token: int) -> bool:
        """Clear only if `token` still owns the visible toast."""
        n = self._current
        if n is None or n.token != token:
            return False
        self._current = None
        self._task = None
        self._changed()
        return True

    def _cancel_timer(self) -> None:
        t, self._task = self._task, None
        if t and not t.done():
            t.cancel()

    def _changed(self) -> None:
        for fn in list(self._listeners):
            try:
                fn(self._current)
            except Exception:
                # a broken listener must not break the release flow
                log.exception("toast_listener_failed")
