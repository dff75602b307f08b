from __future__ import annotations
import threading
from queue import Queue, Empty
from typing import Callable, Optional
import structlog

from core.focus.focus_tracker import FocusTracker
from core.hooks.events import BaseEvent, KeyEvent, TimerEvent, FocusEvent, ScanEvent, mono_ms
from core.timing.scheduler import QueueTimerScheduler
from core.utils.queueing import safe_put
from app.controller.session import ScanSession
from app.scanner.settings import ScannerSettings


log = structlog.get_logger()

class ScanRuntime:
    """
    Starts/stops the keyboard and focus hooks and drives one ScanSession from a
    single consumer thread. Keystrokes, timer expiries and focus changes all
    arrive through the same queue, so session transitions never overlap.
    """
    def __init__(
        self,
        settings: Optional[ScannerSettings] = None,
        on_event: Optional[Callable[[BaseEvent], None]] = None,
        queue_size: int = 5000,
        track_focus: bool = True,
        kbd=None,
        focus: Optional[FocusTracker] = None,
    ):
        self.queue: Queue = Queue(maxsize=queue_size)
        if kbd is None:
            # pynput needs a display server; only load it for a live hook
            from core.hooks.keyboard_listener import KeyboardHook
            kbd = KeyboardHook(self.queue)
        self.kbd = kbd
        self.focus = focus or (FocusTracker(self.queue, poll_sec=0.25) if track_focus else None)
        self.scheduler = QueueTimerScheduler(self.queue)
        self.session = ScanSession(self.scheduler, settings=settings, on_event=self._publish)

        self._consumer_thr: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()
        self._on_event = on_event
        self.scans = 0

    def start(self) -> None:
        self._stop_evt.clear()
        self.kbd.start()
        if self.focus:
            self.focus.start()
        self._consumer_thr = threading.Thread(target=self._consume_loop, daemon=True)
        self._consumer_thr.start()
        log.info("runtime.start")

    def stop(self) -> None:
        self.kbd.stop()
        if self.focus:
            self.focus.stop()
        self._stop_evt.set()
        if self._consumer_thr:
            self._consumer_thr.join(timeout=1.0)
            self._consumer_thr = None
        self.session.reset()
        log.info("runtime.stop", scans=self.scans)

    def submit(self, ev: BaseEvent) -> None:
        """Feed an event as if a hook had produced it."""
        safe_put(self.queue, ev)

    def dispatch(self, ev: BaseEvent) -> None:
        """Apply one queued event to the session. Collaborator errors are logged, not raised."""
        try:
            if isinstance(ev, KeyEvent):
                self.expire_overdue()
                self.session.on_key_event(ev)
            elif isinstance(ev, TimerEvent):
                ev.handle.fire()
            elif isinstance(ev, FocusEvent):
                if self.session.buffered:
                    log.info("session.reset", why="focus", app=ev.app_name)
                self.session.reset()
        except Exception as e:
            log.warning("session.error", etype=ev.etype.name, err=str(e))

    def expire_overdue(self) -> bool:
        """
        Fire the burst timer if its idle window has passed but its TimerEvent
        never arrived (safe_put may drop it from a full queue).
        """
        handle = self.session.pending_timer
        if handle is None or handle.due > mono_ms(self.scheduler.clock()):
            return False
        log.debug("session.timer.overdue", due=handle.due)
        return handle.fire()

    def _consume_loop(self):
        while not self._stop_evt.is_set():
            try:
                ev: BaseEvent = self.queue.get(timeout=0.5)
            except Empty:
                try:
                    self.expire_overdue()
                except Exception as e:
                    log.warning("session.error", etype="TIMER", err=str(e))
                continue
            self.dispatch(ev)

    def _publish(self, ev: ScanEvent) -> None:
        self.scans += 1
        if self._on_event:
            try:
                self._on_event(ev)
            except Exception as e:
                log.warning("runtime.on_event.error", err=str(e))
