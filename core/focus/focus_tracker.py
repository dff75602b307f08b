from __future__ import annotations
import random
import sys
import threading
import time
from typing import Optional, Tuple, Callable
import structlog

from queue import Queue

from core.hooks.events import FocusEvent
from core.utils.queueing import safe_put

log = structlog.get_logger()

# Provider signature: returns (app_name, pid, title)
FocusProvider = Callable[[], Tuple[str, Optional[int], Optional[str]]]

UNKNOWN: Tuple[str, Optional[int], Optional[str]] = ("unknown", None, None)

# --- platform-specific providers ---

def _provider_windows() -> Tuple[str, Optional[int], Optional[str]]:
    try:
        import win32gui, win32process
        import psutil
        hwnd = win32gui.GetForegroundWindow()
        title = win32gui.GetWindowText(hwnd) if hwnd else ""
        _tid, pid = win32process.GetWindowThreadProcessId(hwnd) if hwnd else (None, None)
        name = psutil.Process(pid).name() if pid else "unknown"
        return (name or "unknown", pid, title or None)
    except Exception as e:
        log.debug("focus.provider.error", platform="windows", err=str(e))
        return UNKNOWN

def _provider_macos() -> Tuple[str, Optional[int], Optional[str]]:
    try:
        from AppKit import NSWorkspace
        app = NSWorkspace.sharedWorkspace().frontmostApplication()
        if not app:
            return UNKNOWN
        return (str(app.localizedName()).lower(), int(app.processIdentifier()), None)
    except Exception as e:
        log.debug("focus.provider.error", platform="darwin", err=str(e))
        return UNKNOWN

def _provider_static() -> Tuple[str, Optional[int], Optional[str]]:
    # Active window lookup on Linux depends on the WM/compositor; focus never changes here.
    return UNKNOWN

def default_provider() -> FocusProvider:
    if sys.platform.startswith("win"):
        return _provider_windows
    if sys.platform == "darwin":
        return _provider_macos
    return _provider_static

class FocusTracker:
    """
    Polls the active app; emits FocusEvent on change so a pending burst can be
    abandoned. Backs off while focus is unchanged.
    """
    def __init__(self, out_q: Queue, provider: Optional[FocusProvider] = None, poll_sec: float = 0.25):
        self.out_q = out_q
        self.provider = provider or default_provider()
        self._thr: Optional[threading.Thread] = None
        self._stop = threading.Event()

        self._interval = poll_sec
        self._min_interval = poll_sec
        self._max_interval = 1.0
        self._unchanged_ticks = 0

        self._last: Tuple[str, Optional[int], Optional[str]] = ("", None, None)
        self._last_switch_mono = time.perf_counter()

    def start(self) -> None:
        if self._thr and self._thr.is_alive(): return
        self._stop.clear()
        self._thr = threading.Thread(target=self._loop, daemon=True)
        self._thr.start()
        log.info("focus.start")

    def stop(self) -> None:
        self._stop.set()
        if self._thr:
            self._thr.join(timeout=1.0)
            self._thr = None
        log.info("focus.stop")

    def poll_once(self) -> Optional[FocusEvent]:
        """One provider read; returns (and enqueues) a FocusEvent if focus moved."""
        name, pid, title = self.provider()
        now = time.perf_counter()
        if (name, pid, title) == self._last:
            self._unchanged_ticks += 1
            if self._interval < self._max_interval and self._unchanged_ticks % 5 == 0:
                self._interval = min(self._interval * 1.5, self._max_interval)
            return None

        dwell_prev = now - self._last_switch_mono if self._last[0] else None
        self._last = (name, pid, title)
        self._last_switch_mono = now
        self._interval = self._min_interval
        self._unchanged_ticks = 0
        ev = FocusEvent(app_name=(name or "unknown").lower(), pid=pid, title=title, dwell_prev_s=dwell_prev)
        safe_put(self.out_q, ev)
        return ev

    def _loop(self):
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self._interval * (0.9 + random.random() * 0.2))
