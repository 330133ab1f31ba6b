#!/usr/bin/env python3
"""
Touch Tracker Module.

Turns raw MPR121 bitmask samples into touch and release edge events.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

# Configure logger
logger = logging.getLogger("govee_touch.touch_tracker")


class EdgeKind(str, Enum):
    """Direction of a touch transition."""

    TOUCHED = "touched"
    RELEASED = "released"


@dataclass(frozen=True)
class EdgeEvent:
    """A single touch or release observed between two samples."""

    channel: int
    kind: EdgeKind


class TouchTracker:
    """Keeps the per-channel touch state and reports what changed each sample."""

    def __init__(self, channels: int = 12):
        """Initialize the TouchTracker.

        Args:
            channels: Number of electrodes tracked (bits 0..channels-1)
        """
        if not 1 <= channels <= 16:
            raise ValueError(f"channels must be within 1-16, got {channels}")

        self.channels = channels
        self._mask = (1 << channels) - 1
        self._touch_status: List[bool] = [False] * channels
        self.samples = 0

    def process_sample(self, bitmask: int) -> List[EdgeEvent]:
        """Compare a new sample with the stored state and return the edges.

        Events are ordered by ascending channel. The stored state is replaced
        by the sample afterwards.

        Args:
            bitmask: Touch status, bit i set when electrode i is touched

        Returns:
            One EdgeEvent per channel whose bit changed
        """
        bitmask &= self._mask
        events: List[EdgeEvent] = []

        for i in range(self.channels):
            is_touched = bool((bitmask >> i) & 1)
            if is_touched == self._touch_status[i]:
                continue

            self._touch_status[i] = is_touched
            kind = EdgeKind.TOUCHED if is_touched else EdgeKind.RELEASED
            events.append(EdgeEvent(channel=i, kind=kind))
            logger.debug(f"Electrode {i} {kind.value}")

        self.samples += 1
        return events

    def is_touched(self, channel: int) -> bool:
        if not 0 <= channel < self.channels:
            return False
        return self._touch_status[channel]

    def touched_channels(self) -> List[int]:
        """Return the channels currently being touched."""
        return [i for i, touched in enumerate(self._touch_status) if touched]

    def get_state(self) -> Dict:
        """Return the current tracker state."""
        return {
            "channels": self.channels,
            "touched": self.touched_channels(),
            "samples": self.samples,
        }
