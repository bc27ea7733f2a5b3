# core/models.py
"""
Data model shared by the acquisition pipeline.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

from core.errors import InvalidParameter


@dataclass(frozen=True)
class Sample:
    """One voltage reading. time is ms since the Acquiring transition."""
    time: int
    voltage: float


class SessionState(Enum):
    IDLE = "idle"
    COUNTING_DOWN = "counting_down"
    ACQUIRING = "acquiring"
    STOPPED = "stopped"


class SourceKind(Enum):
    SYNTHETIC = "synthetic"
    EXTERNAL = "external"


@dataclass(frozen=True)
class SyntheticSource:
    """Locally synthesized waveform"""
    target_rate: float = 72.0
    noise_level: float = 0.05
    kind: SourceKind = SourceKind.SYNTHETIC

    def __post_init__(self):
        if self.target_rate <= 0:
            raise InvalidParameter(f"target_rate must be > 0, got {self.target_rate}")
        if not (0.0 <= self.noise_level <= 1.0):
            raise InvalidParameter(f"noise_level must be in [0, 1], got {self.noise_level}")


@dataclass(frozen=True)
class ExternalSource:
    """Samples delivered by the sensor link; rate and noise are physical"""
    kind: SourceKind = SourceKind.EXTERNAL


SourceConfig = Union[SyntheticSource, ExternalSource]
