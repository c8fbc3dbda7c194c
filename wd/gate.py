# wd/gate.py

"""
Abuse gate for the HTTP service.

Counts "not found" answers per client IP and blocks addresses that keep
probing for unknown identifiers. The gate is created once per app and handed
to `create_app`; the discovery engine never touches it.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from wd.utils.log import get_logger

logger = get_logger(__name__)


@dataclass
class GateConfig:
    """
    Attributes
    ----------
    window_s
        Lifetime of an idle failure counter (s).
    max_failures
        Failures before a normal block.
    block_s
        Length of a normal block (s).
    aggressive_failures
        Failures before a long block.
    aggressive_block_s
        Length of a long block (s).
    """
    window_s:            float = 60.0
    max_failures:        int   = 200
    block_s:             float = 60 * 60.0
    aggressive_failures: int   = 1000
    aggressive_block_s:  float = 24 * 60 * 60.0


@dataclass
class _Counter:
    failures: int
    last_seen: float


class AbuseGate:
    def __init__(
        self,
        cfg: GateConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cfg = cfg or GateConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._counters: Dict[str, _Counter] = {}
        self._blocked: Dict[str, float] = {}

    def is_blocked(self, ip: str) -> bool:
        now = self._clock()
        with self._lock:
            expiry = self._blocked.get(ip)
            if expiry is None:
                return False
            if expiry > now:
                return True
            del self._blocked[ip]
            return False

    def record_failure(self, ip: str) -> bool:
        """
        Count one "not found" for `ip`; True if this blocked the address.
        """
        now = self._clock()
        with self._lock:
            counter = self._counters.setdefault(ip, _Counter(failures=0, last_seen=now))
            counter.failures += 1
            counter.last_seen = now
            if counter.failures >= self.cfg.aggressive_failures:
                self._blocked[ip] = now + self.cfg.aggressive_block_s
                logger.warning(
                    "IP %s blocked for %.0fs after %d not-found answers",
                    ip, self.cfg.aggressive_block_s, counter.failures,
                )
                return True
            if counter.failures >= self.cfg.max_failures:
                self._blocked[ip] = now + self.cfg.block_s
                logger.warning(
                    "IP %s blocked for %.0fs after %d not-found answers",
                    ip, self.cfg.block_s, counter.failures,
                )
                return True
        return False

    def sweep(self) -> None:
        """
        Drop expired blocks and idle counters.
        """
        now = self._clock()
        with self._lock:
            for ip in [ip for ip, expiry in self._blocked.items() if expiry <= now]:
                del self._blocked[ip]
            stale = now - 2 * self.cfg.window_s
            for ip in [ip for ip, c in self._counters.items() if c.last_seen < stale]:
                if ip not in self._blocked:
                    del self._counters[ip]
