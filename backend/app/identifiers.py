from __future__ import annotations

import threading
import time
from datetime import date
from typing import Callable, Optional


class OrderNumberGenerator:
    """
    Human-readable, time-ordered order numbers: ORD-<unixMillis>-<4-digit sequence>.
    The sequence continues from the number of orders already stored and wraps at 10000.
    """

    def __init__(self, start: int = 0, clock: Optional[Callable[[], float]] = None):
        self._seq = start
        self._clock = clock or time.time
        self._lock = threading.Lock()

    def reseed(self, start: int) -> None:
        with self._lock:
            self._seq = max(self._seq, start)

    def next(self) -> str:
        with self._lock:
            self._seq += 1
            seq = self._seq % 10000
            millis = int(self._clock() * 1000)
        return f"ORD-{millis}-{seq:04d}"


def batch_number(product_code: str, on: Optional[date] = None) -> str:
    on = on or date.today()
    return f"BATCH_{product_code}_{on.strftime('%d%m%y')}"
