# wd/discovery/cancel.py

from __future__ import annotations

import threading
import time
from typing import Optional

from wd.errors import SearchCancelled


class CancelToken:
    """
    Cancellation signal shared between a caller and one running search.

    The search calls `check` before every network round-trip and narrows each
    HTTP timeout to `remaining`, so neither a new nor an in-flight request
    outlives the deadline.
    """

    def __init__(self, deadline: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = deadline

    @classmethod
    def after(cls, seconds: float) -> "CancelToken":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self) -> None:
        if self.cancelled:
            raise SearchCancelled("search cancelled")

    def remaining(self, default: Optional[float] = None) -> Optional[float]:
        """
        Seconds left before the deadline, capped by `default`.
        """
        if self._deadline is None:
            return default
        left = max(0.0, self._deadline - time.monotonic())
        return left if default is None else min(left, default)
