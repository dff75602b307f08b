# core/utils/queueing.py
from __future__ import annotations
from queue import Queue, Full, Empty
from typing import List

def safe_put(q: Queue, item) -> None:
    """
    Put without blocking; if the queue is full, drop the oldest item and retry.
    Keeps the keyboard hook and timer threads from stalling.
    """
    try:
        q.put_nowait(item)
    except Full:
        try:
            q.get_nowait()  # drop oldest
        except Empty:
            pass
        q.put_nowait(item)

def drain(q: Queue) -> List:
    """Pop everything currently queued, without waiting."""
    out = []
    while True:
        try:
            out.append(q.get_nowait())
        except Empty:
            return out
