import asyncio
import time
from datetime import datetime

import pytest

from govee_touch.commands import CommandMapper
from govee_touch.config import ActionType, build_config
from govee_touch.debounce import DebounceGate
from govee_touch.govee_api import DispatchResult
from govee_touch.pipeline import TouchPipeline
from govee_touch.scene_rotation import SceneRotation
from govee_touch.time_guard import TimeWindowGuard


class RecordingSink:
    """Command sink that records intents and can be told to fail or stall."""

    def __init__(self, results=None, delay=0.0):
        self.sent = []
        self.results = list(results or [])
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def send(self, intent):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.sent.append(intent)
            if self.results:
                return self.results.pop(0)
            return DispatchResult(success=True)
        finally:
            self.active -= 1


class WallClock:
    """Settable local time for the time guard."""

    def __init__(self, hour=12):
        self.hour = hour

    def __call__(self):
        return datetime(2024, 6, 1, self.hour, 30)


class FakeSensor:
    """Sensor returning queued samples; exceptions in the queue are raised."""

    def __init__(self, samples=None, initialize_ok=True, default=0, read_delay=0.0):
        self.samples = list(samples or [])
        self.initialize_ok = initialize_ok
        self.default = default
        self.read_delay = read_delay
        self.reads = 0
        self.closed = False

    def initialize(self):
        return self.initialize_ok

    def read_touch_state(self):
        self.reads += 1
        if self.read_delay:
            time.sleep(self.read_delay)
        if not self.samples:
            return self.default
        sample = self.samples.pop(0)
        if isinstance(sample, Exception):
            raise sample
        return sample

    def close(self):
        self.closed = True


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def wall_clock():
    return WallClock(hour=12)


@pytest.fixture
def make_pipeline(wall_clock):
    """Build a pipeline from raw config values, wired like the app does."""

    def _make(
        channels=None,
        collections=None,
        scenes=None,
        sink=None,
        window_ms=1000,
        per_channel=True,
        timeout=5.0,
    ):
        config = build_config(
            {
                "channels": channels if channels is not None else {4: {"collection": "NIGHT"}},
                "collections": collections if collections is not None else {"NIGHT": ["A", "B", "C"]},
                "scenes": scenes if scenes is not None else {"A": 1, "B": 2, "C": 3},
                "debounce_window_ms": window_ms,
                "debounce_per_channel": per_channel,
                "dry_run": True,
            }
        )
        assignments = {
            channel: action.collection
            for channel, action in config.channels.items()
            if action.action is ActionType.COLLECTION
        }
        rotation = SceneRotation(config.collections, assignments)
        mapper = CommandMapper(config.channels, rotation, config.scenes)
        return TouchPipeline(
            mapper=mapper,
            gate=DebounceGate(window=config.debounce_window_sec),
            guard=TimeWindowGuard(8, 20),
            sink=sink if sink is not None else RecordingSink(),
            rotation=rotation,
            debounce_per_channel=per_channel,
            dispatch_timeout=timeout,
            wall_clock=wall_clock,
        )

    return _make
