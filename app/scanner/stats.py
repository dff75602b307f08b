# app/scanner/stats.py
from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional, Sequence
import numpy as np

@dataclass
class BurstStats:
    keys: int
    delays: int
    mean_delay_ms: float
    std_delay_ms: float
    max_delay_ms: float
    cv: Optional[float]   # std/mean; small = very even spacing

    def as_features(self) -> Dict[str, Any]:
        out = asdict(self)
        for k in ("mean_delay_ms", "std_delay_ms", "max_delay_ms"):
            out[k] = round(out[k], 3)
        if out["cv"] is not None:
            out["cv"] = round(out["cv"], 4)
        return out

def burst_stats(timestamps: Sequence[float]) -> BurstStats:
    """
    Inter-key delay summary for one burst, in arrival order.
    Delays may be negative if the clock went backwards; they are kept as-is.
    """
    ts = np.asarray(timestamps, dtype=float)
    if ts.size < 2:
        return BurstStats(keys=int(ts.size), delays=0, mean_delay_ms=0.0, std_delay_ms=0.0, max_delay_ms=0.0, cv=None)

    dts = np.diff(ts)
    mean = float(dts.mean())
    std = float(dts.std(ddof=1)) if dts.size > 1 else 0.0
    cv = std / mean if mean > 0 else None
    return BurstStats(
        keys=int(ts.size),
        delays=int(dts.size),
        mean_delay_ms=mean,
        std_delay_ms=std,
        max_delay_ms=float(dts.max()),
        cv=cv,
    )
