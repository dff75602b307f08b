from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Dict, Any
import time
from datetime import datetime, timezone

# --- timing helpers ---
def utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")

def mono_ts() -> float:
    # Monotonic high-res timestamp (immune to system clock changes)
    return time.perf_counter()

def mono_ms(t_mono: float) -> float:
    return t_mono * 1000.0

# --- core enums ---
class EventType(Enum):
    """Top-level classifier for routing inside the runtime queue."""
    KEY = auto()
    TIMER = auto()
    FOCUS = auto()
    SCAN = auto()

class ScanPath(Enum):
    TIMER = "timer"    # idle window elapsed
    EARLY = "early"    # pre-emptive invalidation resolved the burst

# --- base event ---
@dataclass(frozen=True)
class BaseEvent:
    """Common shape for all events."""
    etype: EventType = field(init=False)         # auto-set by subclasses
    t_utc: Optional[str] = None                  # lazy; materialized on serialize
    t_mono: float = field(default_factory=mono_ts)

    def to_record(self) -> Dict[str, Any]:
        t_utc_val = self.t_utc or utc_iso()
        return {
            "etype": self.etype.name,
            "t_utc": t_utc_val,
            "t_mono": self.t_mono,
        }

# --- key event ---
@dataclass(frozen=True)
class KeyEvent(BaseEvent):
    """One key press, already decoded to a single character."""
    char: str = ""

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.KEY)

    @property
    def t_ms(self) -> float:
        return mono_ms(self.t_mono)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({"char": self.char})
        return base

# --- timer expiry, delivered through the queue so the consumer runs it ---
@dataclass(frozen=True)
class TimerEvent(BaseEvent):
    handle: Any = None   # core.timing.scheduler.TimerHandle

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.TIMER)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({"due": getattr(self.handle, "due", None)})
        return base

@dataclass(frozen=True)
class FocusEvent(BaseEvent):
    """Window/app focus transition. Emitted only when focus changes."""
    app_name: str = "unknown"       # normalized process/app label
    pid: Optional[int] = None
    title: Optional[str] = None     # active window title if available
    dwell_prev_s: Optional[float] = None  # how long previous app had focus

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.FOCUS)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({
            "app_name": self.app_name,
            "pid": self.pid,
            "title": self.title,
            "dwell_prev_s": self.dwell_prev_s,
        })
        return base

# --- accepted scan ---
@dataclass(frozen=True)
class ScanEvent(BaseEvent):
    """A burst the validator accepted as scanner input."""
    code: str = ""
    path: ScanPath = ScanPath.TIMER
    features: Dict[str, Any] = field(default_factory=dict)  # small timing snapshot

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.SCAN)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({
            "code": self.code,
            "length": len(self.code),
            "path": self.path.value,
            "features": self.features,
        })
        return base
