# tests/test_runner.py
# How to run:
#   From repo root: pytest -q
#
# What this covers:
#   - The consumer thread drives the session from queued KeyEvents
#   - Timer expiry travels through the queue and produces a ScanEvent
#   - Focus change abandons a pending burst
#   - A raising on_scan callback is logged, not fatal
#   - A burst still resolves when its timer expiry was dropped from a full queue

import threading
import time

from app.controller.runner import ScanRuntime
from app.scanner.settings import ScannerSettings
from core.hooks.events import KeyEvent, FocusEvent, ScanEvent
from core.utils.queueing import drain


class FakeHook:
    def __init__(self):
        self.started = False

    def start(self):
        self.started = True

    def stop(self):
        self.started = False


def _wait_for(pred, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(0.01)
    return pred()


def _burst(rt, code, start=10.0, step=0.005):
    for i, c in enumerate(code):
        rt.submit(KeyEvent(char=c, t_mono=start + i * step))


def test_runtime_reports_scan():
    scans, events = [], []
    done = threading.Event()

    def on_scan(code):
        scans.append(code)
        done.set()

    rt = ScanRuntime(
        settings=ScannerSettings(on_scan=on_scan, idle_window=50),
        on_event=events.append,
        track_focus=False,
        kbd=FakeHook(),
    )
    rt.start()
    try:
        assert rt.kbd.started
        _burst(rt, "ABC123")
        assert done.wait(2.0)
        assert _wait_for(lambda: events)
    finally:
        rt.stop()
    assert scans == ["ABC123"]
    assert isinstance(events[0], ScanEvent)
    assert rt.scans == 1
    assert not rt.kbd.started


def test_focus_change_abandons_burst():
    scans = []
    rt = ScanRuntime(settings=ScannerSettings(on_scan=scans.append, idle_window=10_000),
                     track_focus=False, kbd=FakeHook())
    for i, c in enumerate("ABCD"):
        rt.dispatch(KeyEvent(char=c, t_mono=1.0 + i * 0.005))
    assert rt.session.buffered == 4
    rt.dispatch(FocusEvent(app_name="notes"))
    assert rt.session.buffered == 0
    assert rt.session.pending_timer is None
    assert scans == []


def test_raising_callback_does_not_kill_dispatch():
    def boom(code):
        raise RuntimeError("downstream unavailable")

    rt = ScanRuntime(settings=ScannerSettings(on_scan=boom, idle_window=10_000),
                     track_focus=False, kbd=FakeHook())
    for i, c in enumerate("ABCD"):
        rt.dispatch(KeyEvent(char=c, t_mono=5.0 + i * 0.005))
    # clock going back 1s resolves the burst early, on_scan raises inside dispatch
    rt.dispatch(KeyEvent(char="Z", t_mono=4.0))
    assert rt.session.buffered == 0
    # session keeps working afterwards
    rt.dispatch(KeyEvent(char="Q", t_mono=6.0))
    assert rt.session.buffered == 1
    rt.stop()


def test_dropped_timer_event_still_resolves_burst():
    scans = []
    rt = ScanRuntime(settings=ScannerSettings(on_scan=scans.append, idle_window=20),
                     queue_size=1, track_focus=False, kbd=FakeHook())
    base = time.perf_counter()
    for i, c in enumerate("ABCD"):
        rt.dispatch(KeyEvent(char=c, t_mono=base + i * 0.005))
    # wait for the expiry to be queued, then push it out of the one-slot queue
    assert _wait_for(lambda: not rt.queue.empty())
    rt.submit(KeyEvent(char="Z"))
    queued = drain(rt.queue)
    assert [type(e).__name__ for e in queued] == ["KeyEvent"]
    for ev in queued:
        rt.dispatch(ev)
    assert scans == ["ABCD"]
    assert rt.session.buffered == 1
    rt.stop()


def test_overdue_timer_fires_without_new_keys():
    scans = []
    rt = ScanRuntime(settings=ScannerSettings(on_scan=scans.append, idle_window=20),
                     queue_size=1, track_focus=False, kbd=FakeHook())
    base = time.perf_counter()
    for i, c in enumerate("ABCD"):
        rt.dispatch(KeyEvent(char=c, t_mono=base + i * 0.005))
    time.sleep(0.05)
    drain(rt.queue)    # expiry lost
    assert rt.expire_overdue() is True
    assert scans == ["ABCD"]
    assert rt.expire_overdue() is False
    rt.stop()
