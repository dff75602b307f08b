from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, List

@dataclass(frozen=True)
class Keystroke:
    character: str
    timestamp: float   # ms, monotonic

class KeystrokeBuffer:
    """Arrival-ordered keystrokes of one candidate burst. Append-only until cleared."""
    def __init__(self):
        self._items: List[Keystroke] = []

    def append(self, ks: Keystroke) -> None:
        self._items.append(ks)

    def clear(self) -> None:
        self._items = []

    def timestamps(self) -> List[float]:
        return [k.timestamp for k in self._items]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Keystroke]:
        return iter(self._items)

    def __getitem__(self, i: int) -> Keystroke:
        return self._items[i]

    def __repr__(self) -> str:
        return f"KeystrokeBuffer({len(self._items)} keys)"

    @classmethod
    def of(cls, chars, timestamps) -> KeystrokeBuffer:
        if len(chars) != len(timestamps):
            raise ValueError(f"{len(chars)} characters but {len(timestamps)} timestamps")
        buf = cls()
        for c, t in zip(chars, timestamps):
            buf.append(Keystroke(c, t))
        return buf
