# core/session.py
"""
Acquisition session: the state machine deciding when samples are accepted,
which source feeds the window, and who owns the sensor link.

    IDLE --start()--> COUNTING_DOWN --(countdown)--> ACQUIRING --stop()--> STOPPED
    STOPPED --start()--> COUNTING_DOWN
    any --hard_reset()--> IDLE

Everything runs on one asyncio loop: a countdown task, one fixed-cadence
tick task and the link's notification handler. stop()/hard_reset() cancel
the tasks and detach the handler before their first await; callbacks carry
the run generation they were created for and ignore themselves once it has
moved on.
"""

import asyncio
import math
import time
import logging
from typing import Any, Callable, Dict, Optional

import numpy as np

from config.settings import AcquisitionConfig, SimulatorConfig
from core.decoder import Framing, FrameReassembler, RawChunk
from core.errors import AlreadyRunning, LinkError, NotReady, NotSupported, StreamFailure
from core.events import COUNTDOWN, SAMPLES_FLUSHED, STATE_CHANGED, STREAM_FAILURE, EventBus
from core.models import ExternalSource, SessionState, SourceConfig, SourceKind, SyntheticSource
from core.processing import estimate_heart_rate, jittered_rate
from core.simulator import WaveformSynthesizer
from core.window import OrderingPolicy, PendingQueue, SampleWindow
from sensors.link import SensorLink

logger = logging.getLogger(__name__)

DEFAULT_EXTERNAL_BPM = 70
RUNNING_STATES = (SessionState.COUNTING_DOWN, SessionState.ACQUIRING)


class AcquisitionSession:
    """Single-writer owner of the sample window and the active source."""

    def __init__(self, config: Optional[AcquisitionConfig] = None,
                 link: Optional[SensorLink] = None,
                 framing: Framing = Framing.TEXT,
                 simulator: Optional[SimulatorConfig] = None,
                 event_bus: Optional[EventBus] = None,
                 rng: Optional[np.random.Generator] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or AcquisitionConfig()
        self.simulator_config = simulator or SimulatorConfig()
        self.link = link
        self.framing = Framing(framing)
        self.events = event_bus or EventBus()
        self.rng = rng if rng is not None else np.random.default_rng(self.simulator_config.seed)
        self._clock = clock

        self.window = SampleWindow(self.config.window_capacity, OrderingPolicy(self.config.ordering),
                                   self.config.render_window)
        self.pending = PendingQueue(self.config.pending_limit)

        self.state = SessionState.IDLE
        self.source: Optional[SourceConfig] = None
        self.failure: Optional[StreamFailure] = None

        self._requested: Optional[SourceConfig] = None
        self._generation = 0
        self._t0 = 0.0
        self._synth: Optional[WaveformSynthesizer] = None
        self._reassembler: Optional[FrameReassembler] = None
        self._subscribed = False
        self._subscribing: Optional[asyncio.Task] = None   # task awaiting link.subscribe()
        self._countdown_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._cleanup_task: Optional[asyncio.Task] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        try:
            await self.hard_reset()
        finally:
            await self.disconnect_link()

    # -- link ownership ---------------------------------------------------

    @property
    def link_connected(self) -> bool:
        return bool(self.link and self.link.is_connected)

    async def connect_link(self) -> str:
        """Connect the owned link. Errors propagate; state is unchanged."""
        if self.link is None:
            raise NotSupported("No sensor link configured")
        if self.state in RUNNING_STATES:
            raise AlreadyRunning(self.state)
        name = await self.link.connect()
        logger.info(f"Sensor link connected: {name}")
        return name

    async def disconnect_link(self):
        if self.link is None:
            return
        if self.state in RUNNING_STATES and self.source is not None and self.source.kind is SourceKind.EXTERNAL:
            await self.stop()
        if self.link.is_connected:
            await self.link.disconnect()

    # -- state machine ----------------------------------------------------

    def _set_state(self, state: SessionState):
        old = self.state
        if old is state:
            return
        self.state = state
        logger.info(f"Session {old.value} -> {state.value}")
        self.events.publish(STATE_CHANGED, {'old': old, 'new': state})

    def elapsed_ms(self) -> int:
        """Milliseconds since the Acquiring transition"""
        return int((self._clock() - self._t0) * 1000)

    async def start(self, source: Optional[SourceConfig] = None):
        """
        Arm a new run. Without an explicit source the connected link is
        used, otherwise the synthesizer with the configured defaults.
        """
        if self.state not in (SessionState.IDLE, SessionState.STOPPED):
            logger.warning(f"start() ignored, session is {self.state.value}")
            raise AlreadyRunning(self.state)

        if source is None:
            if self.link_connected:
                source = ExternalSource()
            else:
                source = SyntheticSource(self.simulator_config.target_bpm,
                                         self.simulator_config.noise_level)
        if source.kind is SourceKind.EXTERNAL and not self.link_connected:
            raise NotReady("External source selected but the sensor link is not connected")

        await self._await_cleanup()
        self._generation += 1
        self.window.reset()
        self.pending.clear()
        self.failure = None
        self.source = None
        self._requested = source

        self._set_state(SessionState.COUNTING_DOWN)
        self._countdown_task = asyncio.create_task(self._countdown(self._generation))

    async def _countdown(self, generation: int):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.countdown_ms / 1000.0

        while True:
            remaining = deadline - loop.time()
            if remaining <= 1e-3:
                break
            # the loop may wake up to one clock resolution early
            seconds = math.ceil(remaining - 1e-3)
            self.events.publish(COUNTDOWN, {'remaining': seconds})
            await asyncio.sleep(remaining - (seconds - 1))

        if generation == self._generation:
            await self._begin_acquiring(generation)

    async def _begin_acquiring(self, generation: int):
        source = self._requested
        self.source = source
        self._t0 = self._clock()
        self._set_state(SessionState.ACQUIRING)

        if source.kind is SourceKind.SYNTHETIC:
            self._synth = WaveformSynthesizer(source.target_rate, source.noise_level,
                                              rng=self.rng, clock=self._clock)
            self._synth.start()
        else:
            self._reassembler = FrameReassembler(self.framing, clock=self.elapsed_ms)

            def on_chunk(chunk: RawChunk):
                if generation != self._generation or self._reassembler is None:
                    return
                self.pending.push_many(self._reassembler.ingest(chunk))

            def on_failure(error: Exception):
                if generation != self._generation:
                    return
                self._fail(StreamFailure("Stream failed", error))

            task = asyncio.current_task()
            self._subscribing = task
            try:
                await self.link.subscribe(on_chunk, on_failure)
            except Exception as e:
                if generation == self._generation:
                    self._fail(StreamFailure(f"Stream failed: {e}", e))
                return
            finally:
                if self._subscribing is task:
                    self._subscribing = None
            if generation != self._generation:
                # stopped while subscribing
                await self.link.unsubscribe()
                return
            self._subscribed = True

        self._tick_task = asyncio.create_task(self._tick_loop(generation))

    async def _tick_loop(self, generation: int):
        interval = self.config.tick_ms / 1000.0
        while generation == self._generation:
            self._tick()
            await asyncio.sleep(interval)

    def _tick(self):
        """One acquisition tick: poll the synthesizer or flush the pending queue."""
        if self._synth is not None:
            point = self._synth.get_data_point()
            if point is None:
                return
            self.window.append(point)
            count = 1
        else:
            drained = self.pending.drain()
            if not drained:
                return
            count = self.window.extend(drained)
        self.events.publish(SAMPLES_FLUSHED, {'count': count, 'total': len(self.window)})

    def _flush_pending(self):
        """Samples received before the stop still belong to the run."""
        if len(self.pending):
            self.window.extend(self.pending.drain())

    def _halt(self):
        """Synchronous part of stop: nothing may touch the window after this."""
        self._generation += 1
        current = asyncio.current_task()
        for task in (self._countdown_task, self._tick_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._countdown_task = None
        self._tick_task = None
        if self._synth is not None:
            self._synth.stop()

    async def _release_source(self):
        interrupted, self._subscribing = self._subscribing, None
        if interrupted is not None and interrupted is not asyncio.current_task():
            # let the cancelled subscribe() unwind before undoing it
            await asyncio.gather(interrupted, return_exceptions=True)
            self._subscribed = True
        if self._subscribed and self.link is not None:
            self._subscribed = False
            try:
                await self.link.unsubscribe()
            except LinkError as e:
                logger.warning(f"Error stopping notifications: {e}")
        self._synth = None
        self._reassembler = None

    async def _await_cleanup(self):
        task, self._cleanup_task = self._cleanup_task, None
        if task is not None:
            await task

    def _fail(self, failure: StreamFailure):
        logger.error(f"{failure} ({failure.cause})")
        self._flush_pending()
        self._halt()
        self.failure = failure
        self._set_state(SessionState.STOPPED)
        self._cleanup_task = asyncio.get_running_loop().create_task(self._release_source())
        self.events.publish(STREAM_FAILURE, {'error': failure})

    async def stop(self):
        """Stop the run; the window keeps the run's samples."""
        if self.state not in RUNNING_STATES:
            await self._await_cleanup()
            return
        self._flush_pending()
        self._halt()
        self._set_state(SessionState.STOPPED)
        await self._release_source()

    async def hard_reset(self):
        """Back to IDLE: cancel everything, clear samples, release the source."""
        self._halt()
        await self._release_source()
        await self._await_cleanup()
        self.window.reset()
        self.pending.clear()
        self.source = None
        self._requested = None
        self.failure = None
        self._set_state(SessionState.IDLE)

    async def wait_for(self, state: SessionState, timeout: Optional[float] = None):
        """Wait until the session reaches `state`."""
        async def _poll():
            while self.state is not state:
                await asyncio.sleep(0.005)
        await asyncio.wait_for(_poll(), timeout)

    # -- consumers --------------------------------------------------------

    def estimate_rate(self) -> int:
        """Displayed heart rate for the current (or last) run."""
        if self.source is None:
            return 0
        if self.source.kind is SourceKind.SYNTHETIC:
            return jittered_rate(self.source.target_rate, self.rng)
        estimate = estimate_heart_rate(self.window.snapshot())
        if estimate.beats < 2:
            return DEFAULT_EXTERNAL_BPM
        return int(round(estimate.bpm))

    def get_status(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'source': self.source.kind.value if self.source else None,
            'samples': len(self.window),
            'pending': len(self.pending),
            'pending_dropped': self.pending.dropped,
            'records_dropped': self._reassembler.records_dropped if self._reassembler else 0,
            'link_connected': self.link_connected,
            'failure': str(self.failure) if self.failure else None
        }
