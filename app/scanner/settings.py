from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Optional

ScanSink = Callable[[str], Any]
DiagnosticSink = Callable[[str], Any]

@dataclass(frozen=True)
class ScannerSettings:
    # timings (milliseconds)
    wait_tolerance: float = 20       # max delay between two presses of one scan
    variation_tolerance: float = 3   # max drift of one delay from the running average
    idle_window: float = 250         # burst is flushed this long after its first press

    # collaborators
    on_scan: Optional[ScanSink] = None
    on_debug: Optional[DiagnosticSink] = None
    debug: bool = False              # without on_debug, route diagnostics to structlog

DEFAULT_SETTINGS = ScannerSettings()

def resolve_settings(options: Optional[Mapping[str, Any]] = None, **overrides: Any) -> ScannerSettings:
    """
    Merge caller options over the defaults. Values are taken as given:
    negative tolerances are not corrected. Unknown names raise TypeError.
    """
    merged = dict(options or {})
    merged.update(overrides)
    return replace(DEFAULT_SETTINGS, **merged)
