# sensors/link.py
from typing import Callable, Optional, Protocol

from core.decoder import RawChunk

ChunkCallback = Callable[[RawChunk], None]
FailureCallback = Callable[[Exception], None]


class SensorLink(Protocol):
    """
    Capability contract for anything that delivers raw sensor chunks:
    BLE hardware, file replay, test doubles.

    connect() raises NotSupported / NotFound / LinkConnectionError,
    subscribe() raises NotReady when not connected. on_failure is invoked
    when the transport drops while subscribed.
    """

    @property
    def is_connected(self) -> bool: ...

    @property
    def device_name(self) -> Optional[str]: ...

    async def connect(self) -> str: ...

    async def subscribe(self, on_chunk: ChunkCallback, on_failure: FailureCallback) -> None: ...

    async def unsubscribe(self) -> None: ...

    async def disconnect(self) -> None: ...
