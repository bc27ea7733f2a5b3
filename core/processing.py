# core/processing.py
import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence

from scipy.signal import find_peaks

from core.models import Sample

MIN_RR_MS = 300.0       # 200 bpm ceiling for peak spacing
PEAK_FRACTION = 0.6     # R peaks must reach this share of the segment's range


@dataclass
class RateEstimate:
    bpm: float = 0.0
    hrv_ms: float = 0.0   # RMSSD of the RR intervals
    beats: int = 0


def estimate_heart_rate(samples: Sequence[Sample]) -> RateEstimate:
    """
    Rate estimate from the tallest deflections of a segment. Not a QRS
    detector: it assumes R dominates the trace, which holds for Lead I.
    """
    if len(samples) < 3:
        return RateEstimate()

    t = np.fromiter((s.time for s in samples), dtype=float, count=len(samples))
    v = np.fromiter((s.voltage for s in samples), dtype=float, count=len(samples))
    v = v - np.median(v)

    span = float(v.max() - v.min())
    if span <= 1e-9:
        return RateEstimate()

    dt = float(np.median(np.diff(t))) if len(t) > 1 else 0.0
    distance = max(1, int(MIN_RR_MS / dt)) if dt > 0 else 1
    height = v.min() + PEAK_FRACTION * span

    peaks, _ = find_peaks(v, height=height, distance=distance)
    if len(peaks) < 2:
        return RateEstimate(beats=int(len(peaks)))

    rr = np.diff(t[peaks])
    rr = rr[rr > 0]
    if len(rr) == 0:
        return RateEstimate(beats=int(len(peaks)))

    bpm = 60000.0 / float(np.mean(rr))
    hrv = float(np.sqrt(np.mean(np.diff(rr) ** 2))) if len(rr) > 1 else 0.0
    return RateEstimate(bpm=bpm, hrv_ms=hrv, beats=int(len(peaks)))


def jittered_rate(target_bpm: float, rng: Optional[np.random.Generator] = None) -> int:
    """Displayed rate for synthetic runs: target with -2..+1 bpm jitter."""
    rng = rng if rng is not None else np.random.default_rng()
    return int(target_bpm + np.floor(rng.random() * 4 - 2))
