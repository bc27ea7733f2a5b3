# tests/conftest.py
"""
Pytest configuration and fixtures for CardioSense testing
"""

import asyncio

import pytest
import numpy as np
from pathlib import Path
from typing import List, Optional

from config.settings import AcquisitionConfig, CardioSenseConfig, SimulatorConfig
from core.errors import NotReady
from core.events import EventBus
from core.session import AcquisitionSession


class FakeSensorLink:
    """In-memory SensorLink: tests push chunks and drop the transport by hand"""

    def __init__(self, connect_error: Optional[Exception] = None,
                 subscribe_error: Optional[Exception] = None,
                 subscribe_delay: float = 0.0):
        self.connect_error = connect_error
        self.subscribe_error = subscribe_error
        self.subscribe_delay = subscribe_delay
        self.connected = False
        self.on_chunk = None
        self.on_failure = None
        self.subscribe_calls = 0
        self.unsubscribe_calls = 0
        self.disconnect_calls = 0

    @property
    def is_connected(self) -> bool:
        return self.connected

    @property
    def device_name(self):
        return "FAKE-ECG" if self.connected else None

    async def connect(self) -> str:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True
        return "FAKE-ECG"

    async def subscribe(self, on_chunk, on_failure):
        if not self.connected:
            raise NotReady("fake link not connected")
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.subscribe_calls += 1
        self.on_chunk = on_chunk
        self.on_failure = on_failure
        if self.subscribe_delay:
            # handler is live before the notify request completes, as with bleak
            await asyncio.sleep(self.subscribe_delay)

    async def unsubscribe(self):
        self.unsubscribe_calls += 1
        self.on_chunk = None
        self.on_failure = None

    async def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False

    def push(self, chunk):
        if self.on_chunk is not None:
            self.on_chunk(chunk)

    def drop(self, error: Exception = None):
        if self.on_failure is not None:
            self.on_failure(error or ConnectionError("link lost"))


@pytest.fixture
def temp_directory(tmp_path) -> Path:
    """Temporary directory for file output"""
    return tmp_path


@pytest.fixture
def fast_config():
    """Acquisition config with a short countdown for quick async tests"""
    return AcquisitionConfig(countdown_ms=50, tick_ms=10, window_capacity=5000, pending_limit=1000)


@pytest.fixture
def simulator_config():
    return SimulatorConfig(target_bpm=72.0, noise_level=0.0, seed=1234)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def fake_link():
    return FakeSensorLink()


@pytest.fixture
def link_factory():
    """FakeSensorLink constructor, for links that fail on connect or subscribe"""
    return FakeSensorLink


@pytest.fixture
def session(fast_config, simulator_config, event_bus):
    """Session without a sensor link"""
    return AcquisitionSession(fast_config, simulator=simulator_config, event_bus=event_bus,
                              rng=np.random.default_rng(1234))


@pytest.fixture
def linked_session(fast_config, simulator_config, event_bus, fake_link):
    """Session owning a FakeSensorLink (not yet connected)"""
    return AcquisitionSession(fast_config, link=fake_link, simulator=simulator_config,
                              event_bus=event_bus, rng=np.random.default_rng(1234))


@pytest.fixture
def recorded_events(event_bus):
    """Every event published on the bus, as (type, data) pairs"""
    from core.events import COUNTDOWN, SAMPLES_FLUSHED, STATE_CHANGED, STREAM_FAILURE

    events: List = []
    for event_type in (STATE_CHANGED, COUNTDOWN, STREAM_FAILURE, SAMPLES_FLUSHED):
        event_bus.subscribe(event_type, lambda data, t=event_type: events.append((t, data)))
    return events


@pytest.fixture
def app_config(temp_directory):
    """Configuration rooted in a temporary directory"""
    return CardioSenseConfig(str(temp_directory / "config"))


@pytest.fixture
def ecg_samples():
    """Ten seconds of noiseless synthetic ECG at 72 bpm, 20 ms apart"""
    from core.models import Sample
    from core.simulator import render

    times, voltages = render(10000, 20, 72, 0)
    return tuple(Sample(time=int(t), voltage=float(v)) for t, v in zip(times, voltages))
