"""
Keyboard-wedge input: accumulator + capture hook.

Tests verify:
1. Characters accumulate verbatim and only a terminator completes a code
2. Empty / whitespace-only buffers never yield a code
3. Tab terminates only when enabled; aliases fold to canonical key names
4. Control characters are dropped, multi-char text events are split
5. InputCapture install/remove are idempotent (one handler on the hub at most)
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from release_desk.scan_input import (
    ENTER,
    ESCAPE,
    RETURN,
    TAB,
    InputCapture,
    KeyEventHub,
    ScanAccumulator,
    normalize_key,
)


def test_terminator_only_completion():
    acc = ScanAccumulator()
    for ch in "BEN-0001":
        acc.on_char(ch)
    assert acc.text == "BEN-0001", "buffer should show what was typed so far"
    assert acc.on_terminator_key("Shift") is None, "non-terminator must not flush"
    assert acc.text == "BEN-0001", "non-terminator must not clear the buffer"
    assert acc.on_terminator_key("Enter") == "BEN-0001"
    assert acc.text == "", "flush clears the buffer"


def test_code_is_trimmed_and_interior_kept():
    acc = ScanAccumulator()
    acc.on_char("  AB 12  ")
    assert acc.on_terminator_key(RETURN) == "AB 12"


def test_empty_and_whitespace_yield_none():
    acc = ScanAccumulator()
    assert acc.on_terminator_key(ENTER) is None, "stray Enter is not a scan"
    acc.on_char("   ")
    assert acc.on_terminator_key(ENTER) is None
    assert len(acc) == 0, "whitespace-only flush still clears"


def test_tab_is_configurable():
    with_tab = ScanAccumulator(accept_tab=True)
    with_tab.on_char("X1")
    assert with_tab.on_terminator_key("Tab") == "X1"

    no_tab = ScanAccumulator(accept_tab=False)
    no_tab.on_char("X1")
    assert no_tab.on_terminator_key("Tab") is None
    assert no_tab.text == "X1", "Tab is an ordinary key when disabled"
    assert no_tab.on_terminator_key("\r") == "X1", "carriage return folds to Enter"


def test_control_characters_dropped():
    acc = ScanAccumulator()
    acc.on_char("A\x00B\x07C")
    acc.on_char("\n")
    assert acc.text == "ABC"
    acc.on_char("é-ñ/#")
    assert acc.text == "ABCé-ñ/#", "punctuation and non-ASCII printable chars are kept verbatim"


def test_normalize_key_aliases():
    assert normalize_key("Enter") == ENTER
    assert normalize_key("\n") == ENTER
    assert normalize_key("Esc") == ESCAPE
    assert normalize_key("\x1b") == ESCAPE
    assert normalize_key("\t") == TAB
    assert normalize_key(None) == ""


def test_capture_single_install():
    hub = KeyEventHub()
    seen = []
    cap = InputCapture(hub, lambda t: seen.append(("t", t)) or True, lambda k: seen.append(("k", k)) or True)

    cap.install()
    cap.install()
    assert hub.handler_count == 1, "double install must not hook twice"
    assert cap.installed

    assert hub.dispatch_text("A") is True
    assert seen == [("t", "A")], "each event reaches the handler exactly once"

    cap.remove()
    cap.remove()
    assert hub.handler_count == 0
    assert hub.dispatch_key("Enter") is False, "nothing handles input once removed"
    assert seen == [("t", "A")]
