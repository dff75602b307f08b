# app/controller/replay.py
from __future__ import annotations
import json
from dataclasses import dataclass
from typing import Iterable, List, Optional, TextIO

import structlog

from app.controller.session import ScanSession, SessionState
from app.scanner.settings import ScannerSettings
from core.hooks.events import ScanEvent
from core.timing.scheduler import ManualScheduler

log = structlog.get_logger()

class ReplayFormatError(ValueError):
    def __init__(self, line_no: int, msg: str):
        super().__init__(f"line {line_no}: {msg}")
        self.line_no = line_no

@dataclass(frozen=True)
class KeyRecord:
    char: str
    t_ms: float

def read_jsonl(fp: TextIO) -> List[KeyRecord]:
    """Parse a capture: one {"char": ..., "t_ms": ...} object per line; blank lines skipped."""
    out: List[KeyRecord] = []
    for n, line in enumerate(fp, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as e:
            raise ReplayFormatError(n, f"invalid JSON ({e.msg})") from e
        if not isinstance(obj, dict) or "char" not in obj or "t_ms" not in obj:
            raise ReplayFormatError(n, "expected an object with 'char' and 't_ms'")
        char, t = obj["char"], obj["t_ms"]
        if not isinstance(char, str) or len(char) != 1:
            raise ReplayFormatError(n, f"'char' must be a single character, got {char!r}")
        if isinstance(t, bool) or not isinstance(t, (int, float)):
            raise ReplayFormatError(n, f"'t_ms' must be a number, got {t!r}")
        out.append(KeyRecord(char, float(t)))
    return out

def replay_keystrokes(records: Iterable[KeyRecord], settings: Optional[ScannerSettings] = None) -> List[ScanEvent]:
    """
    Run a recorded keystroke stream through a ScanSession on a virtual clock.
    Timers due before a keystroke fire before it is delivered; the clock is
    run past the last pending timer at the end.
    """
    scans: List[ScanEvent] = []
    sched: Optional[ManualScheduler] = None
    session: Optional[ScanSession] = None
    count = 0

    for rec in records:
        if sched is None:
            sched = ManualScheduler(start=rec.t_ms)
            session = ScanSession(sched, settings=settings, on_event=scans.append)
        sched.advance_to(rec.t_ms)
        if session.state == SessionState.IDLE:
            # a new burst times its idle window from its own first key, even after the clock stepped back
            sched.jump_to(rec.t_ms)
        session.on_keystroke(rec.char, rec.t_ms)
        count += 1

    if sched is not None:
        for h in sched.pending():
            sched.advance_to(h.due)

    log.info("replay.done", keys=count, scans=len(scans))
    return scans
