from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Hashable

logger = logging.getLogger(__name__)


@dataclass
class AttemptWindow:
    count: int
    window_start: float


class LoginAttemptLedger:
    """
    Fixed-window attempt counter per client identity (usually the client IP).

    An identity is ``clear`` when it has no entry or its window elapsed,
    ``counting`` while it has fewer than ``max_attempts`` attempts in the
    window, and ``locked`` once it reaches ``max_attempts``. Expiry is checked
    lazily on the next ``check``/``record``; there is no background timer.

    Every attempt counts, successful or not. The state is process-local.
    """

    def __init__(
        self,
        max_attempts: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._entries: dict[Hashable, AttemptWindow] = {}
        self._lock = Lock()

    def _live_entry(self, identity: Hashable, now: float) -> AttemptWindow | None:
        entry = self._entries.get(identity)
        if entry is not None and now - entry.window_start >= self.window_seconds:
            del self._entries[identity]
            return None
        return entry

    def check(self, identity: Hashable) -> bool:
        """Return True when another attempt from ``identity`` may proceed."""
        with self._lock:
            entry = self._live_entry(identity, self._clock())
            return entry is None or entry.count < self.max_attempts

    def record(self, identity: Hashable, success: bool) -> None:
        with self._lock:
            now = self._clock()
            entry = self._live_entry(identity, now)
            if entry is None:
                self._entries[identity] = AttemptWindow(count=1, window_start=now)
            else:
                entry.count += 1
        if not success:
            logger.info("login_attempt_failed", extra={"client": str(identity)})

    def retry_after(self, identity: Hashable) -> int:
        """Seconds until the identity's window elapses (at least 1)."""
        with self._lock:
            now = self._clock()
            entry = self._live_entry(identity, now)
            if entry is None:
                return 1
            return max(1, int(math.ceil(entry.window_start + self.window_seconds - now)))

    def attempts(self, identity: Hashable) -> int:
        with self._lock:
            entry = self._live_entry(identity, self._clock())
            return entry.count if entry else 0

    def reset(self) -> None:
        """Helper for tests to clear ledger state."""
        with self._lock:
            self._entries.clear()
