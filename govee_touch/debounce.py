"""
Debounce gate with immediate-then-suppress semantics.

The first trigger for a key fires immediately. Triggers that follow within
the window are coalesced into a single deferred fire at
``last_fire + window``; the payload of the most recent trigger wins.

The gate only keeps the bookkeeping. Whoever owns the event loop schedules
the deferred fire at ``due`` and calls ``release`` when it comes up.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Hashable, Optional

logger = logging.getLogger("govee_touch.debounce")


class GateDecision(str, Enum):
    FIRE = "fire"  # run now
    DEFERRED = "deferred"  # first suppressed call, a deferred fire was scheduled
    COALESCED = "coalesced"  # merged into the already scheduled deferred fire


@dataclass
class PendingFire:
    key: Hashable
    due: float
    payload: Any = None


@dataclass
class DebounceRecord:
    last_fire: Optional[float] = None
    pending: Optional[PendingFire] = None


class DebounceGate:
    """Per-key rate limiter. Timestamps are seconds on a monotonic clock."""

    def __init__(self, window: float = 1.0):
        if window < 0:
            raise ValueError(f"window must not be negative, got {window}")
        self.window = window
        self._records: Dict[Hashable, DebounceRecord] = {}

    def submit(self, key: Hashable, now: float, payload: Any = None) -> GateDecision:
        """Register a trigger for ``key`` at time ``now``.

        Returns FIRE when the caller should act immediately. DEFERRED means a
        deferred fire is now pending at ``due(key)`` and the caller must
        schedule it. COALESCED means one was already pending; its payload has
        been replaced.
        """
        record = self._records.setdefault(key, DebounceRecord())

        if record.last_fire is None or now - record.last_fire >= self.window:
            record.last_fire = now
            if record.pending is not None:
                logger.debug(f"Dropping deferred fire for {key!r}, firing now instead")
            record.pending = None
            return GateDecision.FIRE

        if record.pending is not None:
            record.pending.payload = payload
            return GateDecision.COALESCED

        record.pending = PendingFire(
            key=key, due=record.last_fire + self.window, payload=payload
        )
        return GateDecision.DEFERRED

    def allow(self, key: Hashable, now: float) -> bool:
        """True when a trigger at ``now`` fires immediately."""
        return self.submit(key, now) is GateDecision.FIRE

    def due(self, key: Hashable) -> Optional[float]:
        """Time of the pending deferred fire for ``key``, if any."""
        record = self._records.get(key)
        if record is None or record.pending is None:
            return None
        return record.pending.due

    def release(self, key: Hashable, now: float) -> Optional[PendingFire]:
        """Perform the deferred fire for ``key``.

        Returns the pending fire (with the last coalesced payload) and records
        ``now`` as the last fire time, or None when nothing is pending.
        """
        record = self._records.get(key)
        if record is None or record.pending is None:
            return None

        pending, record.pending = record.pending, None
        record.last_fire = now
        return pending

    def cancel(self, key: Hashable) -> bool:
        """Drop the pending deferred fire for ``key`` without firing it."""
        record = self._records.get(key)
        if record is None or record.pending is None:
            return False
        record.pending = None
        return True

    def cancel_all(self) -> int:
        return sum(1 for key in list(self._records) if self.cancel(key))

    def last_fire(self, key: Hashable) -> Optional[float]:
        record = self._records.get(key)
        return record.last_fire if record else None

    def pending_keys(self):
        return [key for key, record in self._records.items() if record.pending is not None]
