# app/scanner/validator.py
from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Optional

from app.scanner.buffer import KeystrokeBuffer
from app.scanner.settings import ScannerSettings

# No human sustains more than this many evenly spaced presses inside the
# tolerances; barcodes are always longer.
MIN_SCAN_KEYS = 3

@dataclass(frozen=True)
class ScanVerdict:
    accepted: bool
    code: Optional[str]
    reason: str          # "ok" | "empty" | "too_short" | "variation"
    kept: int = 0        # keys that passed the timing checks
    stopped_at: Optional[int] = None   # index where the walk stopped early
    detail: str = ""

def _round_half_up(x: float) -> int:
    return math.floor(x + 0.5)

def validate(buffer: KeystrokeBuffer, settings: ScannerSettings) -> ScanVerdict:
    """
    Decide whether the buffered timings look like a keyboard-wedge scanner.

    Keys are walked in arrival order. A delay above wait_tolerance ends the
    walk and the prefix collected so far is judged on length alone. A delay
    that drifts more than variation_tolerance from the running average rejects
    the whole buffer, whatever the prefix length.
    """
    if len(buffer) == 0:
        return ScanVerdict(False, None, "empty", detail="no keystrokes buffered")

    kept = [buffer[0].character]
    sum_delays = 0.0
    stopped_at: Optional[int] = None
    note = ""

    for i in range(1, len(buffer)):
        delay = buffer[i].timestamp - buffer[i - 1].timestamp

        if delay > settings.wait_tolerance:
            stopped_at = i
            note = f"delay {delay:g}ms before key {i} is outside wait tolerance {settings.wait_tolerance:g}ms"
            break

        sum_delays += delay
        kept.append(buffer[i].character)
        average = _round_half_up(sum_delays / (len(kept) - 1))

        if abs(average - delay) > settings.variation_tolerance:
            return ScanVerdict(
                False, None, "variation",
                kept=0, stopped_at=i,
                detail=(f"delay {delay:g}ms before key {i} is outside variation tolerance "
                        f"{settings.variation_tolerance:g}ms of average {average}ms"),
            )

    if len(kept) > MIN_SCAN_KEYS:
        return ScanVerdict(True, "".join(kept), "ok", kept=len(kept), stopped_at=stopped_at, detail=note)

    detail = f"{len(kept)} key(s) within tolerance, need more than {MIN_SCAN_KEYS}"
    if note:
        detail = f"{note}; {detail}"
    return ScanVerdict(False, None, "too_short", kept=len(kept), stopped_at=stopped_at, detail=detail)
