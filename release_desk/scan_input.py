"""
Allotment Release Desk - Keyboard-wedge scan input
==================================================

Purpose
-------
A barcode scanner in keyboard-wedge mode "types" the code it read and then
presses a terminator key (Enter, sometimes Tab). The host UI sees nothing but
a fast burst of text-input events followed by a key-down. This module turns
that burst back into one scanned code.

Pieces
------
- ScanAccumulator : pure buffer. Characters in, trimmed code out on terminator.
                    Knows nothing about sessions; gating is the caller's job.
- KeyEventHub     : stand-in for the host window's input routing. UIs push raw
                    text/key events in; installed handlers see them first.
- InputCapture    : the window-level hook a release session holds while open.
                    install()/remove() are idempotent, so a session can never
                    leave two hooks behind or leak one after close.

Key names
---------
Keys are plain strings compared case-insensitively ("Enter", "Return", "Tab",
"Escape"). A few aliases ("Esc", "\\r", "\\n", "\\t", "\\x1b") are folded to the
canonical names by normalize_key().
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Tuple

log = logging.getLogger("release.scan")

ENTER = "enter"
RETURN = "return"
TAB = "tab"
ESCAPE = "escape"

_KEY_ALIASES = {
    "\r": ENTER,
    "\n": ENTER,
    "\r\n": ENTER,
    "\t": TAB,
    "\x1b": ESCAPE,
    "esc": ESCAPE,
    "cr": ENTER,
    "lf": ENTER,
}

DEFAULT_TERMINATORS = (ENTER, RETURN)


def normalize_key(key: object) -> str:
    raw = str(key or "")
    if raw in _KEY_ALIASES:
        return _KEY_ALIASES[raw]
    k = raw.strip().lower()
    return _KEY_ALIASES.get(k, k)


def is_printable(ch: str) -> bool:
    return bool(ch) and ch.isprintable()


# ------------------------------------------------------------
# Accumulator
# ------------------------------------------------------------
class ScanAccumulator:
    """
    Assemble text-input characters into a scanned code.

    on_char() appends every printable character verbatim (letters, digits,
    punctuation, whatever the scanner encodes). on_terminator_key() flushes:
    it returns the trimmed code and clears, or returns None for an empty or
    whitespace-only buffer so a stray Enter never submits anything.
    """

    def __init__(self, terminators: Iterable[str] = DEFAULT_TERMINATORS, accept_tab: bool = True):
        keys = {normalize_key(k) for k in terminators}
        if accept_tab:
            keys.add(TAB)
        self.terminators = frozenset(keys)
        self._buf: List[str] = []

    @property
    def text(self) -> str:
        """What has been typed since the last flush (live operator feedback)."""
        return "".join(self._buf)

    def __len__(self) -> int:
        return len(self._buf)

    def is_terminator(self, key: object) -> bool:
        return normalize_key(key) in self.terminators

    def on_char(self, ch: str) -> None:
        # A single text-input event may carry more than one character.
        for c in str(ch or ""):
            if is_printable(c):
                self._buf.append(c)

    def on_terminator_key(self, key: object) -> Optional[str]:
        if not self.is_terminator(key):
            return None
        code = self.text.strip()
        self._buf.clear()
        if not code:
            return None
        return code

    def reset(self) -> None:
        self._buf.clear()


# ------------------------------------------------------------
# Host input routing + capture hook
# ------------------------------------------------------------
TextHandler = Callable[[str], bool]
KeyHandler = Callable[[str], bool]


class KeyEventHub:
    """
    Window-level input routing. UIs call dispatch_text()/dispatch_key() for
    every raw event; each installed handler pair sees the event and may mark
    it handled (return True) so it does not reach focused controls.
    """

    def __init__(self):
        self._handlers: List[Tuple[TextHandler, KeyHandler]] = []

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def add_handler(self, on_text: TextHandler, on_key: KeyHandler) -> Tuple[TextHandler, KeyHandler]:
        pair = (on_text, on_key)
        self._handlers.append(pair)
        return pair

    def remove_handler(self, pair: Tuple[TextHandler, KeyHandler]) -> None:
        try:
            self._handlers.remove(pair)
        except ValueError:
            pass

    def dispatch_text(self, text: str) -> bool:
        handled = False
        for on_text, _ in list(self._handlers):
            handled = bool(on_text(text)) or handled
        return handled

    def dispatch_key(self, key: str) -> bool:
        handled = False
        for _, on_key in list(self._handlers):
            handled = bool(on_key(key)) or handled
        return handled


class InputCapture:
    """
    One session's hook into a KeyEventHub. Acquired on session open, released
    on close/dispose. Double install and double remove are no-ops.
    """

    def __init__(self, hub: KeyEventHub, on_text: TextHandler, on_key: KeyHandler):
        self._hub = hub
        self._on_text = on_text
        self._on_key = on_key
        self._pair: Optional[Tuple[TextHandler, KeyHandler]] = None

    @property
    def installed(self) -> bool:
        return self._pair is not None

    def install(self) -> None:
        if self._pair is not None:
            return
        self._pair = self._hub.add_handler(self._on_text, self._on_key)
        log.debug("capture_installed", extra={"handlers": self._hub.handler_count})

    def remove(self) -> None:
        if self._pair is None:
            return
        self._hub.remove_handler(self._pair)
        self._pair = None
        log.debug("capture_removed", extra={"handlers": self._hub.handler_count})
