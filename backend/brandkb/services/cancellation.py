"""Cooperative cancellation shared by the crawler, storage and job runner."""
from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from brandkb.errors import JobCancelled


class CancellationToken:
    """
    Checked at every suspension point of a job.

    A token is cancelled either locally via ``cancel()`` or when the optional
    ``probe`` (e.g. a read of the job row's cancel flag) returns True. The
    probe runs at most once per ``probe_interval`` seconds; checks in between
    reuse the last answer.
    """

    def __init__(
        self,
        probe: Optional[Callable[[], bool]] = None,
        probe_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._event = threading.Event()
        self._probe = probe
        self._probe_interval = max(0.0, probe_interval)
        self._clock = clock
        self._last_probe: Optional[float] = None

    def cancel(self) -> None:
        self._event.set()

    def _probe_due(self) -> bool:
        if self._probe is None:
            return False
        now = self._clock()
        if self._last_probe is not None and now - self._last_probe < self._probe_interval:
            return False
        self._last_probe = now
        return True

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._probe_due() and self._probe():
            self._event.set()
            return True
        return False

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise JobCancelled()
