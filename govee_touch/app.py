#!/usr/bin/env python3
"""
Govee Touch Application Module.

Contains the main application class: it wires the sensor, the touch tracker
and the trigger pipeline together, runs the sampling loop and serves the
status API.
"""

import asyncio
import logging
import signal
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI

from govee_touch.commands import CommandMapper
from govee_touch.config import ActionType, AppConfig
from govee_touch.debounce import DebounceGate
from govee_touch.errors import SensorReadError
from govee_touch.govee_api import CommandSink, DryRunSink, GoveeClient
from govee_touch.hardware.mpr121_interface import MPR121Sensor
from govee_touch.pipeline import TouchPipeline
from govee_touch.scene_rotation import SceneRotation
from govee_touch.time_guard import TimeWindowGuard
from govee_touch.touch_tracker import EdgeEvent, TouchTracker
from govee_touch.web import router as status_router

# Configure logger
logger = logging.getLogger("govee_touch")

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def setup_logging(log_level: str = "info", log_file: Optional[str] = None) -> None:
    """Configure application logging."""
    # Reset existing handlers to avoid duplicate logs
    logger.handlers = []

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.WARNING)

    logger.setLevel(getattr(logging, log_level.upper()))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)


class GoveeTouchApp:
    """Main application class for the Govee touch panel."""

    def __init__(
        self,
        config: AppConfig,
        sensor=None,
        sink: Optional[CommandSink] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = datetime.now,
    ):
        """Build every component from the configuration.

        Args:
            config: Validated application configuration
            sensor: Object with ``initialize()`` and ``read_touch_state()``;
                an MPR121Sensor is created when omitted
            sink: Command sink; defaults to the Govee client, or the dry-run
                sink when ``config.dry_run`` is set
            clock: Monotonic clock for debouncing
            wall_clock: Local time for the time guard

        Raises:
            ConfigError: If the configuration cannot be turned into a running panel
        """
        self.config = config
        self._clock = clock
        self._wall_clock = wall_clock

        self.sensor = sensor or MPR121Sensor(
            i2c_address=config.sensor.i2c_address,
            i2c_bus=config.sensor.i2c_bus,
            touch_threshold=config.sensor.touch_threshold,
            release_threshold=config.sensor.release_threshold,
        )
        self.tracker = TouchTracker(channels=config.sensor.channels)

        assignments = {
            channel: action.collection
            for channel, action in config.channels.items()
            if action.action is ActionType.COLLECTION
        }
        self.rotation = SceneRotation(config.collections, assignments)
        self.mapper = CommandMapper(config.channels, self.rotation, config.scenes)
        self.guard = TimeWindowGuard(
            config.allowed_hours.start_hour, config.allowed_hours.end_hour
        )
        self.gate = DebounceGate(window=config.debounce_window_sec)

        self.client: Optional[GoveeClient] = None
        if sink is None:
            if config.dry_run:
                sink = DryRunSink()
            else:
                config.govee.check_complete()
                self.client = GoveeClient(
                    api_key=config.govee.api_key,
                    device_sku=config.govee.device_sku,
                    device_id=config.govee.device_id,
                    api_url=config.govee.api_url,
                    timeout_sec=config.io_timeout_sec,
                )
                sink = self.client
        self.sink = sink

        self.pipeline = TouchPipeline(
            mapper=self.mapper,
            gate=self.gate,
            guard=self.guard,
            sink=self.sink,
            rotation=self.rotation,
            debounce_per_channel=config.debounce_per_channel,
            dispatch_timeout=config.io_timeout_sec,
            clock=clock,
            wall_clock=wall_clock,
        )

        self.running = False
        self.sensor_errors = 0
        self.skipped_ticks = 0
        self._consecutive_errors = 0
        self._sampling_task: Optional[asyncio.Task] = None
        self._read_task: Optional[asyncio.Future] = None

        # Create FastAPI app
        self.app = FastAPI(title="Govee Touch", lifespan=self._lifespan)
        self.app.include_router(status_router)
        self.app.state.panel = self

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        """Handle application startup and shutdown.

        Args:
            app: The FastAPI application instance
        """
        await self.start()
        try:
            yield  # Application runs here
        finally:
            await self.stop()

    async def start(self) -> None:
        """Initialize the sensor and start the sampling loop.

        Raises:
            SensorReadError: If the sensor does not initialize
        """
        if self.running:
            logger.warning("Touch panel is already running")
            return

        initialized = await asyncio.to_thread(self.sensor.initialize)
        if not initialized:
            raise SensorReadError("Touch sensor failed to initialize, not polling")

        if self.client is not None:
            await self.client.start()

        self._log_mapping()
        self.running = True
        self._sampling_task = asyncio.create_task(self._sampling_loop())
        logger.info(
            f"Touch panel started (sampling every {self.config.sample_interval_ms} ms, "
            f"debounce {self.config.debounce_window_ms} ms, allowed {self.guard.describe()})"
        )

    async def stop(self) -> None:
        """Stop sampling, drain in-flight dispatches and release resources."""
        if not self.running:
            return

        logger.info("Stopping touch panel")
        self.running = False
        if self._sampling_task is not None:
            self._sampling_task.cancel()
            try:
                await self._sampling_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Sampling loop ended with an error: {e}", exc_info=True)
            self._sampling_task = None

        await self.pipeline.shutdown(timeout=self.config.io_timeout_sec)

        if self.client is not None:
            await self.client.close()

        close = getattr(self.sensor, "close", None)
        if close is not None:
            await asyncio.to_thread(close)
        logger.info("Touch panel stopped")

    async def tick(self) -> List[EdgeEvent]:
        """Sample the sensor once and hand the resulting edges to the pipeline.

        A failed or timed out read skips the tick without touching any state.

        Returns:
            The edge events detected in this tick
        """
        if self._read_task is not None and not self._read_task.done():
            self.skipped_ticks += 1
            logger.debug("Previous sensor read still in progress, skipping tick")
            return []

        self._read_task = asyncio.ensure_future(
            asyncio.to_thread(self.sensor.read_touch_state)
        )
        self._read_task.add_done_callback(_consume_exception)
        try:
            bitmask = await asyncio.wait_for(
                asyncio.shield(self._read_task), timeout=self.config.io_timeout_sec
            )
        except asyncio.TimeoutError:
            self._report_sensor_error(
                SensorReadError(f"Sensor read timed out after {self.config.io_timeout_sec}s")
            )
            return []
        except Exception as e:
            # Any driver failure skips this tick only
            self._report_sensor_error(e)
            return []

        if self._consecutive_errors:
            logger.info(f"Sensor recovered after {self._consecutive_errors} failed read(s)")
            self._consecutive_errors = 0

        events = self.tracker.process_sample(bitmask)
        if events:
            self.pipeline.process_edges(events, now=self._clock())
        return events

    async def _sampling_loop(self) -> None:
        """Sample the sensor on a fixed schedule until stopped."""
        loop = asyncio.get_running_loop()
        interval = self.config.sample_interval_sec
        next_tick = loop.time()

        while self.running:
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Error in sampling loop: {e}", exc_info=True)

            next_tick += interval
            delay = next_tick - loop.time()
            if delay < 0:
                # Overran the interval, resynchronize instead of bursting
                next_tick = loop.time()
                delay = 0
            await asyncio.sleep(delay)

        logger.info("Sampling loop stopped")

    def _report_sensor_error(self, error: Exception) -> None:
        self.sensor_errors += 1
        self._consecutive_errors += 1
        if self._consecutive_errors == 1:
            logger.error(f"Touch sensor read failed, skipping tick: {error}")
        else:
            logger.debug(f"Touch sensor read failed ({self._consecutive_errors} in a row): {error}")

    def _log_mapping(self) -> None:
        logger.info("Channel mappings:")
        for channel, description in self.mapper.describe().items():
            logger.info(f"  Channel {channel}: {description}")

    def get_status(self) -> Dict:
        """Return the current state of the panel."""
        now = self._wall_clock()
        return {
            "running": self.running,
            "dry_run": self.config.dry_run,
            "sensor": self.tracker.get_state(),
            "sensor_errors": self.sensor_errors,
            "skipped_ticks": self.skipped_ticks,
            "time_guard": {
                "window": self.guard.describe(),
                "allowed_now": self.guard.is_allowed(now),
            },
            "pipeline": self.pipeline.get_status(),
        }

    async def run_headless(self) -> None:
        """Run without the status API until SIGINT or SIGTERM."""
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        await self.start()
        try:
            stopper = asyncio.create_task(stop_event.wait())
            await asyncio.wait(
                {stopper, self._sampling_task}, return_when=asyncio.FIRST_COMPLETED
            )
            stopper.cancel()
        finally:
            await self.stop()

    def run(self) -> None:
        """Run the panel, with the status API when it is enabled."""
        if not self.config.web_enabled:
            asyncio.run(self.run_headless())
            return

        logger.info(f"Status API on {self.config.host}:{self.config.port}")
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level,
        )


def _consume_exception(future: asyncio.Future) -> None:
    # Reads abandoned after a timeout may still fail later
    if not future.cancelled():
        future.exception()
