# core/simulator.py
"""
Synthetic Lead I ECG source: a PQRST complex built from five Gaussian
bumps placed at fixed beat-phase offsets, plus baseline drift and noise.
"""

import time
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from core.errors import InvalidParameter
from core.models import Sample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Wave:
    amplitude: float
    center: float   # beat phase, 0-1
    width: float


PQRST: Dict[str, Wave] = {
    "P": Wave(0.15, 0.20, 0.03),
    "Q": Wave(-0.15, 0.38, 0.02),
    "R": Wave(1.00, 0.40, 0.02),
    "S": Wave(-0.25, 0.42, 0.02),
    "T": Wave(0.30, 0.70, 0.08),
}

DRIFT_AMPLITUDE = 0.05
DRIFT_PERIOD_MS = 2000.0


def _gauss(t, wave: Wave):
    return wave.amplitude * np.exp(-(((t - wave.center) / wave.width) ** 2))


def _check(bpm: float, noise_level: float):
    if bpm <= 0:
        raise InvalidParameter(f"bpm must be > 0, got {bpm}")
    if not (0.0 <= noise_level <= 1.0):
        raise InvalidParameter(f"noise_level must be in [0, 1], got {noise_level}")


def beat_phase(elapsed_ms, bpm: float):
    """Fractional position (0-1) of elapsed time within one cardiac cycle."""
    beat_ms = 60000.0 / bpm
    return np.mod(elapsed_ms, beat_ms) / beat_ms


def wave_components(elapsed_ms, bpm: float) -> Dict[str, float]:
    """Value of each of the P, Q, R, S, T terms at elapsed_ms"""
    _check(bpm, 0.0)
    t = beat_phase(elapsed_ms, bpm)
    return {name: _gauss(t, wave) for name, wave in PQRST.items()}


def baseline_drift(elapsed_ms):
    return DRIFT_AMPLITUDE * np.sin(np.asarray(elapsed_ms) / DRIFT_PERIOD_MS)


def generate_ecg_voltage(elapsed_ms: float, bpm: float = 60.0, noise_level: float = 0.05,
                         rng: Optional[np.random.Generator] = None) -> float:
    """
    Instantaneous voltage (mV) at elapsed_ms for the given rate.

    Noise is uniform on [-noise_level/2, noise_level/2); pass an explicit
    numpy Generator for reproducible output.
    """
    _check(bpm, noise_level)
    t = beat_phase(elapsed_ms, bpm)
    v = sum(_gauss(t, wave) for wave in PQRST.values())
    if noise_level > 0:
        u = rng.random() if rng is not None else np.random.random()
        v += (u - 0.5) * noise_level
    v += DRIFT_AMPLITUDE * np.sin(elapsed_ms / DRIFT_PERIOD_MS)
    return float(v)


def render(duration_ms: float, step_ms: float = 20.0, bpm: float = 72.0, noise_level: float = 0.0,
           rng: Optional[np.random.Generator] = None) -> Tuple[np.ndarray, np.ndarray]:
    """Vectorised waveform over [0, duration_ms) sampled every step_ms."""
    _check(bpm, noise_level)
    if step_ms <= 0:
        raise InvalidParameter(f"step_ms must be > 0, got {step_ms}")
    times = np.arange(0.0, duration_ms, step_ms)
    t = beat_phase(times, bpm)
    v = np.zeros_like(times)
    for wave in PQRST.values():
        v += _gauss(t, wave)
    if noise_level > 0:
        rng = rng if rng is not None else np.random.default_rng()
        v += (rng.random(times.shape) - 0.5) * noise_level
    v += baseline_drift(times)
    return times, v


class WaveformSynthesizer:
    """
    Stateful wrapper around generate_ecg_voltage: an activity flag and a
    clock origin. stop() then start() resets the phase origin to now.
    """

    def __init__(self, bpm: float = 72.0, noise_level: float = 0.05,
                 rng: Optional[np.random.Generator] = None, clock=time.monotonic):
        _check(bpm, noise_level)
        self.bpm = float(bpm)
        self.noise_level = float(noise_level)
        self.rng = rng
        self._clock = clock
        self._t0 = clock()
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self):
        self._active = True
        self._t0 = self._clock()
        logger.debug(f"Synthesizer started at {self.bpm:.0f} bpm")

    def stop(self):
        self._active = False

    def set_bpm(self, bpm: float):
        _check(bpm, self.noise_level)
        self.bpm = float(bpm)

    def elapsed_ms(self) -> int:
        return int((self._clock() - self._t0) * 1000)

    def value(self, elapsed_ms: float) -> float:
        return generate_ecg_voltage(elapsed_ms, self.bpm, self.noise_level, self.rng)

    def get_data_point(self) -> Optional[Sample]:
        if not self._active:
            return None
        elapsed = self.elapsed_ms()
        return Sample(time=elapsed, voltage=self.value(elapsed))
