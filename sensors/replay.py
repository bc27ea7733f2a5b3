# sensors/replay.py
"""File replay link: streams a recorded text capture as if it came over BLE."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from core.errors import LinkConnectionError, NotFound, NotReady
from sensors.link import ChunkCallback, FailureCallback

logger = logging.getLogger(__name__)


class ReplaySensorLink:
    """
    Replays `path` in fixed-size chunks every `interval` seconds. Chunk
    boundaries deliberately ignore record boundaries, like a real MTU.
    With loop=False the end of file is reported as a transport failure.
    """

    def __init__(self, path: str, chunk_size: int = 20, interval: float = 0.02,
                 loop: bool = True):
        self.path = Path(path)
        self.chunk_size = int(chunk_size)
        self.interval = float(interval)
        self.loop = loop
        self._data: Optional[bytes] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self._data is not None

    @property
    def device_name(self) -> Optional[str]:
        return self.path.name if self._data is not None else None

    async def connect(self) -> str:
        if not self.path.exists():
            raise NotFound(f"Replay file not found: {self.path}")
        try:
            self._data = self.path.read_bytes()
        except OSError as e:
            raise LinkConnectionError(f"Cannot open replay file {self.path}: {e}") from e
        logger.info(f"Replay link ready: {self.path} ({len(self._data)} bytes)")
        return self.path.name

    async def subscribe(self, on_chunk: ChunkCallback, on_failure: FailureCallback) -> None:
        if self._data is None:
            raise NotReady("Replay link not connected")
        await self.unsubscribe()
        self._task = asyncio.create_task(self._run(on_chunk, on_failure))

    async def _run(self, on_chunk: ChunkCallback, on_failure: FailureCallback):
        data = self._data
        if not data:
            on_failure(EOFError(f"Replay file is empty: {self.path}"))
            return
        while True:
            for i in range(0, len(data), self.chunk_size):
                on_chunk(data[i:i + self.chunk_size])
                await asyncio.sleep(self.interval)
            if not self.loop:
                on_failure(EOFError(f"End of replay file {self.path}"))
                return

    async def unsubscribe(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def disconnect(self) -> None:
        await self.unsubscribe()
        self._data = None
