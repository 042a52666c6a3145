"""
Toast channel.

Tests verify:
1. show() without a running loop: shown, never auto-cleared
2. A stale expiry token can never clear a newer toast
3. Supersession under a real loop: the second toast lives its full duration
4. clear() cancels the pending timer; aclose() leaves no task behind
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from release_desk.models import Severity
from release_desk.notifications import NotificationChannel


def test_show_without_loop_stays():
    ch = NotificationChannel(duration_s=0.01)
    n = ch.show("Scan not found: X", Severity.ERROR)
    assert ch.visible and ch.current is n
    assert ch._task is None, "no running loop: no auto-clear task"
    snap = ch.snapshot()
    assert snap == {"message": "Scan not found: X", "severity": "error", "token": n.token, "visible": True}


def test_tokens_increase_and_stale_token_ignored():
    ch = NotificationChannel()
    a = ch.show("A", "warning")
    b = ch.show("B", Severity.SUCCESS)
    assert b.token > a.token
    assert ch._expire(a.token) is False, "old timer must not clear the newer toast"
    assert ch.current is b
    assert ch._expire(b.token) is True
    assert ch.current is None


def test_listener_sees_changes():
    seen = []
    ch = NotificationChannel(on_change=seen.append)
    n = ch.show("hi")
    ch.clear()
    ch.clear()
    assert seen == [n, None], "second clear() on an empty channel is silent"


def test_supersession_with_running_loop():
    async def scenario():
        ch = NotificationChannel(duration_s=0.2)
        ch.show("first", Severity.ERROR)
        await asyncio.sleep(0.1)
        second = ch.show("second", Severity.SUCCESS)
        await asyncio.sleep(0.15)   # past first's deadline, before second's
        still = ch.current
        await asyncio.sleep(0.2)    # past second's deadline
        after = ch.current
        await ch.aclose()
        return second, still, after

    second, still, after = asyncio.run(scenario())
    assert still is second, "first toast's timer must not clear the second"
    assert after is None, "second toast clears after its own full duration"


def test_clear_cancels_timer():
    async def scenario():
        ch = NotificationChannel(duration_s=0.05)
        ch.show("x")
        task = ch._task
        ch.clear()
        await asyncio.sleep(0.01)
        return ch, task

    ch, task = asyncio.run(scenario())
    assert ch.current is None
    assert task is not None and task.done()
    assert ch._task is None


def test_aclose_awaits_pending_timer():
    async def scenario():
        ch = NotificationChannel(duration_s=10)
        ch.show("long")
        task = ch._task
        await ch.aclose()
        return ch, task

    ch, task = asyncio.run(scenario())
    assert task.done()
    assert ch._task is None
    assert ch.current is not None, "aclose stops the timer, it does not clear the toast"
