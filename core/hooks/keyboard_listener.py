# core/hooks/keyboard_listener.py
from __future__ import annotations
from typing import Optional
import threading
from queue import Queue
from pynput import keyboard
import structlog

from .events import KeyEvent
from core.utils.queueing import safe_put

log = structlog.get_logger()

# Special keys a wedge scanner commonly sends as prefix/suffix.
CHAR_KEYS = {
    keyboard.Key.enter: "\r",
    keyboard.Key.tab: "\t",
    keyboard.Key.space: " ",
}

def key_to_char(k: keyboard.Key | keyboard.KeyCode) -> Optional[str]:
    """Single character for the key, or None for keys that type nothing (shift, arrows...)."""
    if isinstance(k, keyboard.KeyCode):
        return k.char if k.char else None
    return CHAR_KEYS.get(k)

class KeyboardHook:
    """Background pynput keyboard listener emitting one KeyEvent per typed character."""
    def __init__(self, out_q: Queue):
        self.out_q = out_q
        self._listener: Optional[keyboard.Listener] = None
        self._stop_evt = threading.Event()

    def start(self) -> None:
        if self._listener and self._listener.running:
            return
        self._stop_evt.clear()
        self._listener = keyboard.Listener(
            on_press=self._on_press,
            suppress=False
        )
        self._listener.daemon = True
        self._listener.start()
        log.info("kbd.start")

    def stop(self) -> None:
        self._stop_evt.set()
        if self._listener:
            self._listener.stop()
            self._listener = None
        log.info("kbd.stop")

    def _on_press(self, key):
        char = key_to_char(key)
        if char is None:
            return
        safe_put(self.out_q, KeyEvent(char=char))
