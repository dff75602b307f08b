# tests/test_session.py
# How to run:
#   From repo root: pytest -q
#
# What this covers:
#   - Idle -> Accumulating on first press, timer armed once per burst
#   - Timer resolution dispatches accepted scans and resets
#   - Pre-emptive invalidation: discard (<= 1 key) and early resolution (> 1 key)
#   - Reset idempotence and the stale-timer invariant
#   - Diagnostics go to on_debug only when it is set
#   - Independent sessions share nothing
#   - scan.accept log fields (timing features, never the code)

from app.controller.session import ScanSession, SessionState
from app.scanner.settings import ScannerSettings
from core.hooks.events import KeyEvent, ScanPath
from core.timing.scheduler import ManualScheduler


def _session(**kw):
    scans, diags, events = [], [], []
    cfg = ScannerSettings(on_scan=scans.append, on_debug=diags.append, **kw)
    sched = ManualScheduler()
    s = ScanSession(sched, settings=cfg, on_event=events.append)
    return s, sched, scans, diags, events


def _type(s, sched, chars, times):
    for c, t in zip(chars, times):
        sched.advance_to(t)
        s.on_keystroke(c, t)


def test_first_press_arms_timer():
    s, sched, *_ = _session()
    assert s.state == SessionState.IDLE
    s.on_keystroke("1", 0)
    assert s.state == SessionState.ACCUMULATING
    assert len(sched.pending()) == 1
    assert sched.pending()[0].due == 250


def test_timer_is_armed_once_per_burst():
    s, sched, *_ = _session()
    _type(s, sched, "1234", [0, 5, 10, 15])
    assert len(sched.pending()) == 1
    assert s.buffered == 4


def test_scan_dispatched_when_timer_fires():
    s, sched, scans, diags, events = _session()
    _type(s, sched, "1234", [0, 5, 10, 15])
    assert scans == []
    sched.advance_to(250)
    assert scans == ["1234"]
    assert s.state == SessionState.IDLE
    assert s.buffered == 0
    assert events[-1].code == "1234"
    assert events[-1].path == ScanPath.TIMER
    assert events[-1].features["kept"] == 4
    assert any("accepted" in d for d in diags)


def test_human_typing_not_dispatched():
    s, sched, scans, diags, _ = _session()
    _type(s, sched, "ab", [0, 5])
    sched.advance_to(250)
    assert scans == []
    assert any("too_short" in d for d in diags)
    assert s.state == SessionState.IDLE


def test_uneven_burst_rejected_by_variation():
    s, sched, scans, diags, _ = _session()
    _type(s, sched, "123456", [0, 5, 10, 15, 20, 35])
    sched.advance_to(250)
    assert scans == []
    assert any("variation" in d for d in diags)


def test_keys_after_idle_window_start_new_burst():
    s, sched, scans, *_ = _session()
    _type(s, sched, "1234", [0, 5, 10, 15])
    _type(s, sched, "5678", [300, 305, 310, 315])
    sched.advance_to(600)
    assert scans == ["1234", "5678"]


def test_long_burst_cut_at_idle_window():
    # 100 keys at 5ms: the timer fires at 250 before the key stamped 250 arrives
    s, sched, scans, *_ = _session()
    chars = [str(i % 10) for i in range(100)]
    times = [i * 5 for i in range(100)]
    _type(s, sched, chars, times)
    sched.advance(1000)
    assert len(scans) == 2
    assert scans[0] == "".join(chars[:50])
    assert scans[1] == "".join(chars[50:])


def test_backwards_clock_on_second_key_discards_burst():
    s, sched, scans, diags, _ = _session()
    s.on_keystroke("1", 100)
    s.on_keystroke("2", 50)     # previous - current = 50 > 20
    assert s.state == SessionState.IDLE
    assert s.buffered == 0
    assert sched.pending() == []
    assert any("discarded" in d for d in diags)
    sched.advance(1000)
    assert scans == []


def test_backwards_clock_mid_burst_resolves_early():
    s, sched, scans, _, events = _session()
    _type(s, sched, "1234", [100, 105, 110, 115])
    s.on_keystroke("X", 10)
    assert scans == ["1234"]
    assert events[-1].path == ScanPath.EARLY
    assert s.state == SessionState.IDLE
    assert sched.pending() == []


def test_early_resolution_can_reject():
    s, sched, scans, diags, _ = _session()
    _type(s, sched, "12", [100, 105])
    s.on_keystroke("X", 10)
    assert scans == []
    assert s.state == SessionState.IDLE
    assert any("early" in d for d in diags)


def test_small_backwards_step_is_appended():
    s, sched, *_ = _session()
    s.on_keystroke("1", 100)
    s.on_keystroke("2", 90)     # 10 <= 20: not pre-empted
    assert s.buffered == 2


def test_reset_is_idempotent_and_safe_when_idle():
    s, sched, scans, *_ = _session()
    s.reset()
    s.reset()
    assert s.state == SessionState.IDLE
    _type(s, sched, "1234", [0, 5, 10, 15])
    s.reset()
    s.reset()
    sched.advance(1000)
    assert scans == []
    assert s.state == SessionState.IDLE


def test_stale_timer_never_dispatches():
    s, sched, scans, *_ = _session()
    _type(s, sched, "1234", [0, 5, 10, 15])
    stale = s.pending_timer
    s.reset()
    assert stale.cancelled
    # fire the old handle directly, and hand it to the session as if it had expired
    assert stale.fire() is False
    s.on_timer(stale)
    assert scans == []


def test_stale_timer_ignored_while_next_burst_pending():
    s, sched, scans, *_ = _session()
    _type(s, sched, "12", [0, 5])
    stale = s.pending_timer
    s.reset()
    _type(s, sched, "5678", [20, 25, 30, 35])
    s.on_timer(stale)
    assert scans == []
    assert s.buffered == 4
    sched.advance_to(270)
    assert scans == ["5678"]


def test_no_diagnostics_without_sink():
    sched = ManualScheduler()
    scans = []
    s = ScanSession(sched, settings=ScannerSettings(on_scan=scans.append))
    _type(s, sched, "ab", [0, 5])
    sched.advance(1000)
    assert scans == []


def test_no_callbacks_configured_is_fine():
    sched = ManualScheduler()
    s = ScanSession(sched)
    _type(s, sched, "1234", [0, 5, 10, 15])
    sched.advance(1000)
    assert s.state == SessionState.IDLE


def test_key_event_adapter_uses_milliseconds():
    s, sched, scans, *_ = _session()
    for i, c in enumerate("9876"):
        t = 1.0 + i * 0.005
        sched.advance_to(t * 1000)
        s.on_key_event(KeyEvent(char=c, t_mono=t))
    sched.advance(1000)
    assert scans == ["9876"]


def test_sessions_are_isolated():
    a, sched_a, scans_a, *_ = _session()
    b, sched_b, scans_b, *_ = _session()
    _type(a, sched_a, "1234", [0, 5, 10, 15])
    _type(b, sched_b, "ab", [0, 5])
    b.reset()
    sched_a.advance(1000)
    sched_b.advance(1000)
    assert scans_a == ["1234"]
    assert scans_b == []


class RecordingLog:
    def __init__(self):
        self.lines = []

    def info(self, event, **kw):
        self.lines.append((event, kw))

    debug = info


def test_accept_log_carries_features_but_not_code(monkeypatch):
    import app.controller.session as session_mod

    rec = RecordingLog()
    monkeypatch.setattr(session_mod, "log", rec)
    s, sched, *_ = _session()
    _type(s, sched, "1234", [0, 5, 10, 15])
    sched.advance_to(250)
    accept = [kw for ev, kw in rec.lines if ev == "scan.accept"]
    assert accept[0]["kept"] == 4
    assert accept[0]["length"] == 4
    assert accept[0]["mean_delay_ms"] == 5.0
    assert "1234" not in accept[0].values()
