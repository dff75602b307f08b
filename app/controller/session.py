# app/controller/session.py
from __future__ import annotations
from enum import Enum
from typing import Callable, Optional
import structlog

from app.scanner.buffer import Keystroke, KeystrokeBuffer
from app.scanner.settings import ScannerSettings
from app.scanner.stats import burst_stats
from app.scanner.validator import validate
from core.hooks.events import KeyEvent, ScanEvent, ScanPath
from core.timing.scheduler import TimerHandle

log = structlog.get_logger()

class SessionState(Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"

class ScanSession:
    """
    Buffers keystrokes of one input surface and decides, per burst, whether it
    came from a keyboard-wedge scanner.

    - First press arms the burst timer (idle_window); its expiry validates the buffer.
    - Pre-emptive invalidation resolves the burst early when the previous
      timestamp is ahead of the current one by more than wait_tolerance.
    - Every resolution resets the session; reset always cancels the timer.
    """
    def __init__(
        self,
        scheduler,
        settings: Optional[ScannerSettings] = None,
        on_event: Optional[Callable[[ScanEvent], None]] = None,
    ):
        self.scheduler = scheduler
        self.cfg = settings or ScannerSettings()
        self.on_event = on_event

        self._buffer = KeystrokeBuffer()
        self._timer: Optional[TimerHandle] = None
        self._last_ts: Optional[float] = None

    @property
    def state(self) -> SessionState:
        return SessionState.ACCUMULATING if self._timer is not None else SessionState.IDLE

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    @property
    def pending_timer(self) -> Optional[TimerHandle]:
        return self._timer

    # --- inputs ---

    def on_keystroke(self, character: str, timestamp: float) -> None:
        if self._timer is None:
            self._arm()

        last = self._last_ts
        if last is not None and last - timestamp > self.cfg.wait_tolerance:
            if len(self._buffer) <= 1:
                self._diag(f"[preempt] clock went back {last - timestamp:g}ms before second key, burst discarded")
                self.reset()
            else:
                self._resolve(ScanPath.EARLY)
            return

        self._buffer.append(Keystroke(character, timestamp))
        self._last_ts = timestamp

    def on_key_event(self, ev: KeyEvent) -> None:
        self.on_keystroke(ev.char, ev.t_ms)

    def on_timer(self, handle: TimerHandle) -> None:
        if handle is not self._timer:
            log.debug("session.timer.stale", due=handle.due)
            return
        self._resolve(ScanPath.TIMER)

    def reset(self) -> None:
        """Abandon the current burst. Safe to call at any time."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._buffer = KeystrokeBuffer()
        self._last_ts = None

    # --- internals ---

    def _arm(self) -> None:
        handle: Optional[TimerHandle] = None

        def expire() -> None:
            self.on_timer(handle)

        handle = self.scheduler.call_later(self.cfg.idle_window, expire)
        self._timer = handle

    def _resolve(self, path: ScanPath) -> None:
        buffer = self._buffer
        verdict = validate(buffer, self.cfg)
        stats = burst_stats(buffer.timestamps())
        self.reset()

        if not verdict.accepted:
            log.debug("scan.reject", path=path.value, reason=verdict.reason, **stats.as_features())
            self._diag(f"[{path.value}] rejected ({verdict.reason}): {verdict.detail}")
            return

        features = stats.as_features()
        features["kept"] = verdict.kept
        log.info("scan.accept", path=path.value, length=len(verdict.code), **features)
        self._diag(f"[{path.value}] accepted code: {verdict.code}")

        if self.cfg.on_scan:
            self.cfg.on_scan(verdict.code)
        if self.on_event:
            self.on_event(ScanEvent(code=verdict.code, path=path, features=features))

    def _diag(self, message: str) -> None:
        if self.cfg.on_debug:
            self.cfg.on_debug(message)
        elif self.cfg.debug:
            log.debug("scanner.debug", msg=message)
