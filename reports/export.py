# reports/export.py
import os
import time
import logging
from typing import Optional, Sequence

import pandas as pd

from core.models import Sample

logger = logging.getLogger(__name__)

TIME_COLUMN = "Time(ms)"
VOLTAGE_COLUMN = "Voltage(mV)"


def snapshot_frame(samples: Sequence[Sample]) -> pd.DataFrame:
    """(time, voltage) pairs in arrival order"""
    return pd.DataFrame({
        TIME_COLUMN: [s.time for s in samples],
        VOLTAGE_COLUMN: [s.voltage for s in samples],
    })


def session_filename(now: Optional[time.struct_time] = None) -> str:
    ts = time.strftime("%Y-%m-%dT%H-%M-%S", now or time.localtime())
    return f"ecg_session_{ts}.csv"


def export_csv(samples: Sequence[Sample], out_dir: str = "sessions", delimiter: str = ",",
               precision: int = 4, filename: Optional[str] = None) -> Optional[str]:
    """Write the window snapshot to CSV; nothing is written for an empty snapshot."""
    if len(samples) == 0:
        logger.info("Nothing to export")
        return None

    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, filename or session_filename())

    snapshot_frame(samples).to_csv(
        path, sep=delimiter, index=False, float_format=f"%.{precision}f", lineterminator="\n"
    )
    logger.info(f"Exported {len(samples)} samples to {path}")
    return path


def load_csv(path: str, delimiter: str = ",") -> Sequence[Sample]:
    df = pd.read_csv(path, sep=delimiter)
    return tuple(Sample(time=int(t), voltage=float(v))
                 for t, v in zip(df[TIME_COLUMN], df[VOLTAGE_COLUMN]))
