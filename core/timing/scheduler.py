# core/timing/scheduler.py
from __future__ import annotations
import itertools
import threading
from queue import Queue
from typing import Callable, List, Optional

from core.hooks.events import TimerEvent, mono_ts, mono_ms
from core.utils.queueing import safe_put


class TimerHandle:
    """
    One deferred callback. Fires at most once; cancel() after fire or a second
    cancel() is a no-op.
    """
    def __init__(self, due: float, callback: Callable[[], None], on_cancel: Optional[Callable[[TimerHandle], None]] = None):
        self.due = due
        self._callback = callback
        self._on_cancel = on_cancel
        self.cancelled = False
        self.fired = False

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        if not self.active:
            return
        self.cancelled = True
        if self._on_cancel:
            self._on_cancel(self)

    def fire(self) -> bool:
        """Run the callback unless cancelled or already fired. Returns whether it ran."""
        if not self.active:
            return False
        self.fired = True
        self._callback()
        return True

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "fired" if self.fired else "pending"
        return f"TimerHandle(due={self.due:.1f}, {state})"


class QueueTimerScheduler:
    """
    Arms a threading.Timer per call; on expiry the handle is posted to out_q as a
    TimerEvent so the queue consumer fires it on its own thread.
    """
    def __init__(self, out_q: Queue, clock: Callable[[], float] = mono_ts):
        self.out_q = out_q
        self.clock = clock

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay_ms / 1000.0, lambda: safe_put(self.out_q, TimerEvent(handle=handle)))
        timer.daemon = True
        handle = TimerHandle(
            due=mono_ms(self.clock()) + delay_ms,
            callback=callback,
            on_cancel=lambda _h: timer.cancel(),
        )
        timer.start()
        return handle


class ManualScheduler:
    """
    Virtual-clock scheduler (milliseconds). Nothing fires until the clock is
    advanced; due timers fire in due order, ties in arming order.
    """
    def __init__(self, start: float = 0.0):
        self.now = start
        self._seq = itertools.count()
        self._pending: List[tuple] = []   # (due, seq, handle)

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(due=self.now + delay_ms, callback=callback, on_cancel=self._forget)
        self._pending.append((handle.due, next(self._seq), handle))
        return handle

    def pending(self) -> List[TimerHandle]:
        return [h for (_d, _s, h) in sorted(self._pending, key=lambda x: (x[0], x[1]))]

    def advance_to(self, t: float) -> int:
        """Move the clock forward to t, firing every timer due on the way. Never moves backward."""
        fired = 0
        while True:
            due = [p for p in self._pending if p[0] <= t]
            if not due:
                break
            entry = min(due, key=lambda x: (x[0], x[1]))
            self._pending.remove(entry)
            self.now = max(self.now, entry[0])
            if entry[2].fire():
                fired += 1
        self.now = max(self.now, t)
        return fired

    def advance(self, dt: float) -> int:
        return self.advance_to(self.now + dt)

    def jump_to(self, t: float) -> None:
        """Set the clock to t, backwards included. Only valid with nothing pending."""
        if self._pending:
            raise RuntimeError(f"cannot move the clock with {len(self._pending)} timer(s) pending")
        self.now = t

    def _forget(self, handle: TimerHandle) -> None:
        self._pending = [p for p in self._pending if p[2] is not handle]
