# core/decoder.py
"""
Reassembly of the sensor byte stream into voltage samples.

The link delivers chunks with arbitrary split points. Two mutually
exclusive framings are supported:

  TEXT    newline-terminated ASCII floats ("1.23\\n2.45\\n")
  BINARY  consecutive little-endian int16 words scaled to 0-3.3 V
"""

import codecs
import math
import struct
import logging
from enum import Enum
from typing import Callable, List, Optional, Union

from core.models import Sample

logger = logging.getLogger(__name__)

RawChunk = Union[str, bytes, bytearray, memoryview]

RECORD_DELIMITER = "\n"
INT16 = struct.Struct("<h")
ADC_FULL_SCALE = 4095
ADC_VREF = 3.3


class Framing(Enum):
    TEXT = "text"
    BINARY = "binary"


def parse_voltage(record: str) -> Optional[float]:
    """Parse one record; None if empty, malformed or non-finite."""
    token = record.strip()
    if not token:
        return None
    try:
        value = float(token)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def scale_adc(raw: int) -> float:
    return (raw / ADC_FULL_SCALE) * ADC_VREF


class FrameReassembler:
    """
    Turns chunks into samples. Complete records are emitted, the trailing
    fragment is carried over to the next ingest() and never emitted on its
    own. A bad record is dropped without touching the carry-over.
    """

    def __init__(self, framing: Framing = Framing.TEXT,
                 clock: Optional[Callable[[], int]] = None):
        self.framing = framing
        self._clock = clock or (lambda: 0)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._text = ""
        self._bytes = b""
        self.records_emitted = 0
        self.records_dropped = 0

    @property
    def pending(self) -> Union[str, bytes]:
        """Carry-over buffer"""
        return self._text if self.framing is Framing.TEXT else self._bytes

    def reset(self):
        self._decoder.reset()
        self._text = ""
        self._bytes = b""

    def ingest(self, chunk: RawChunk) -> List[Sample]:
        if self.framing is Framing.TEXT:
            voltages = self._ingest_text(chunk)
        else:
            voltages = self._ingest_binary(chunk)
        if not voltages:
            return []
        # stamped at emission; the device carries no absolute time
        now = int(self._clock())
        self.records_emitted += len(voltages)
        return [Sample(time=now, voltage=v) for v in voltages]

    def _ingest_text(self, chunk: RawChunk) -> List[float]:
        if isinstance(chunk, str):
            self._text += chunk
        else:
            self._text += self._decoder.decode(bytes(chunk))

        records = self._text.split(RECORD_DELIMITER)
        self._text = records.pop()

        voltages = []
        for record in records:
            value = parse_voltage(record)
            if value is None:
                if record.strip():
                    self.records_dropped += 1
                    logger.debug(f"Dropped malformed record: {record!r}")
                continue
            voltages.append(value)
        return voltages

    def _ingest_binary(self, chunk: RawChunk) -> List[float]:
        if isinstance(chunk, str):
            raise TypeError("binary framing expects bytes chunks")
        data = self._bytes + bytes(chunk)
        usable = len(data) - (len(data) % INT16.size)
        self._bytes = data[usable:]
        return [scale_adc(raw) for (raw,) in INT16.iter_unpack(data[:usable])]
