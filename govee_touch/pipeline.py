#!/usr/bin/env python3
"""
Touch Pipeline Module.

Takes edge events from the tracker and runs them through the debounce gate,
the time-window guard and the command mapper before handing the resulting
command to the Govee API. Scene cursors only advance after a confirmed
dispatch.
"""

import asyncio
import logging
import time
from collections import Counter
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Set

from govee_touch.commands import CommandMapper
from govee_touch.debounce import DebounceGate, GateDecision
from govee_touch.errors import DispatchError
from govee_touch.govee_api import CommandSink, DispatchResult
from govee_touch.scene_rotation import SceneRotation
from govee_touch.time_guard import TimeWindowGuard
from govee_touch.touch_tracker import EdgeEvent, EdgeKind

# Configure logger
logger = logging.getLogger("govee_touch.pipeline")

PANEL_KEY = "panel"


class TriggerOutcome(str, Enum):
    """How a trigger ended."""

    DISPATCHED = "dispatched"
    DEBOUNCED = "debounced"
    BLOCKED = "blocked"
    FAILED = "failed"
    IGNORED = "ignored"


class TouchPipeline:
    """Owns the trigger path from edge event to dispatched command."""

    def __init__(
        self,
        mapper: CommandMapper,
        gate: DebounceGate,
        guard: TimeWindowGuard,
        sink: CommandSink,
        rotation: SceneRotation,
        debounce_per_channel: bool = True,
        dispatch_timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the pipeline.

        Args:
            mapper: Channel to command lookup
            gate: Debounce gate shared by all channels
            guard: Time-of-day guard
            sink: Where commands are sent (Govee client or dry-run sink)
            rotation: Scene cursors, committed after successful dispatch
            debounce_per_channel: Debounce channels separately, or the panel as a whole
            dispatch_timeout: Seconds before an in-flight dispatch is abandoned
            clock: Monotonic clock used for debouncing
            wall_clock: Local time used by the time guard
        """
        self.mapper = mapper
        self.gate = gate
        self.guard = guard
        self.sink = sink
        self.rotation = rotation
        self.debounce_per_channel = debounce_per_channel
        self.dispatch_timeout = dispatch_timeout
        self._clock = clock
        self._wall_clock = wall_clock

        self._locks: Dict[int, asyncio.Lock] = {}
        self._timers: Dict[Hashable, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False
        self.outcomes: Counter = Counter()

    def debounce_key(self, channel: int) -> Hashable:
        return channel if self.debounce_per_channel else PANEL_KEY

    async def handle_edge(self, event: EdgeEvent, now: Optional[float] = None) -> TriggerOutcome:
        """Run one edge event through the pipeline and wait for the result."""
        outcome = self._admit(event, now)
        if outcome is not None:
            return outcome
        return await self._dispatch(event.channel)

    def process_edges(self, events: Iterable[EdgeEvent], now: Optional[float] = None) -> List[asyncio.Task]:
        """Debounce a tick's events in channel order and start their dispatches.

        Dispatches run as tasks so a slow API call does not hold up sampling.

        Returns:
            The dispatch tasks started for this tick
        """
        now = self._clock() if now is None else now
        tasks = []
        for event in sorted(events, key=lambda e: e.channel):
            if self._admit(event, now) is None:
                tasks.append(self._spawn(self._dispatch(event.channel)))
        return tasks

    async def fire_deferred(self, key: Hashable, now: Optional[float] = None) -> Optional[TriggerOutcome]:
        """Perform the pending deferred fire for ``key``, if there still is one."""
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

        now = self._clock() if now is None else now
        pending = self.gate.release(key, now)
        if pending is None:
            return None

        event: EdgeEvent = pending.payload
        logger.debug(f"Deferred fire for channel {event.channel}")
        return await self._dispatch(event.channel)

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Cancel deferred fires and let in-flight dispatches finish or time out."""
        self._closed = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        dropped = self.gate.cancel_all()
        if dropped:
            logger.info(f"Dropped {dropped} deferred trigger(s) on shutdown")

        if not self._tasks:
            return

        timeout = self.dispatch_timeout if timeout is None else timeout
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Abandoned {len(pending)} in-flight dispatch(es) on shutdown")
            await asyncio.gather(*pending, return_exceptions=True)

    def get_status(self) -> Dict:
        return {
            "outcomes": {outcome.value: self.outcomes[outcome] for outcome in TriggerOutcome},
            "pending_deferred": [str(key) for key in self.gate.pending_keys()],
            "in_flight": len(self._tasks),
            "cursors": self.rotation.get_state(),
        }

    def _admit(self, event: EdgeEvent, now: Optional[float]) -> Optional[TriggerOutcome]:
        """Debounce an edge. Returns None when the trigger should dispatch now."""
        if event.kind is not EdgeKind.TOUCHED or event.channel not in self.mapper.channel_actions:
            logger.debug(f"Channel {event.channel} {event.kind.value}: ignored")
            return self._record(TriggerOutcome.IGNORED)

        now = self._clock() if now is None else now
        key = self.debounce_key(event.channel)
        decision = self.gate.submit(key, now, payload=event)

        if decision is GateDecision.FIRE:
            return None

        if decision is GateDecision.DEFERRED:
            due = self.gate.due(key)
            self._schedule(key, max(0.0, due - now))
            logger.info(
                f"Channel {event.channel}: suppressed by debounce, deferred by {due - now:.3f}s"
            )
        else:
            logger.info(f"Channel {event.channel}: suppressed by debounce, coalesced")
        return self._record(TriggerOutcome.DEBOUNCED)

    async def _dispatch(self, channel: int) -> TriggerOutcome:
        lock = self._locks.setdefault(channel, asyncio.Lock())
        async with lock:
            command = self.mapper.map(channel, EdgeKind.TOUCHED)
            if command is None:
                return self._record(TriggerOutcome.IGNORED)

            now = self._wall_clock()
            if not self.guard.permits(command.intent, now):
                logger.info(
                    f"Channel {channel}: {command.describe()} blocked by time guard "
                    f"(allowed {self.guard.describe()}, now {now:%H:%M})"
                )
                return self._record(TriggerOutcome.BLOCKED)

            try:
                result = await asyncio.wait_for(
                    self.sink.send(command.intent), timeout=self.dispatch_timeout
                )
            except asyncio.TimeoutError:
                result = DispatchResult(
                    success=False, error=f"timed out after {self.dispatch_timeout}s"
                )
            except DispatchError as e:
                result = DispatchResult(success=False, error=str(e))
            except Exception as e:
                result = DispatchResult(success=False, error=f"{type(e).__name__}: {e}")

            if not result.success:
                logger.error(f"Channel {channel}: {command.describe()} dispatch failed: {result.error}")
                return self._record(TriggerOutcome.FAILED)

            if command.selection is not None:
                self.rotation.commit(command.selection)

            logger.info(f"Channel {channel}: {command.describe()} executed")
            return self._record(TriggerOutcome.DISPATCHED)

    def _schedule(self, key: Hashable, delay: float) -> None:
        if self._closed:
            self.gate.cancel(key)
            return
        loop = asyncio.get_running_loop()
        previous = self._timers.pop(key, None)
        if previous is not None:
            previous.cancel()
        self._timers[key] = loop.call_later(delay, self._on_timer, key)

    def _on_timer(self, key: Hashable) -> None:
        self._timers.pop(key, None)
        if not self._closed:
            self._spawn(self.fire_deferred(key))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Error in dispatch task: {task.exception()}", exc_info=task.exception())

    def _record(self, outcome: TriggerOutcome) -> TriggerOutcome:
        self.outcomes[outcome] += 1
        return outcome
