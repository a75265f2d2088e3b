from __future__ import annotations

import time
from typing import Protocol


class ClockPort(Protocol):
    def now_unix(self) -> int:
        ...


class SystemClock:
    def now_unix(self) -> int:
        return int(time.time())
