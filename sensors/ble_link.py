# sensors/ble_link.py
"""
BLE link for single-lead ECG sensors built on serial-over-BLE modules
(HM-10, CC2541, ESP32) exposing one notify characteristic.
"""

import asyncio
import logging
from typing import Optional

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakDeviceNotFoundError, BleakError

from config.settings import SensorConfig
from core.errors import LinkConnectionError, NotFound, NotReady, NotSupported
from sensors.link import ChunkCallback, FailureCallback

logger = logging.getLogger(__name__)


class SerialServiceUUIDs:
    # Standard UUIDs of HM-10/CC2541/ESP32 serial modules (lowercase)
    SERVICE = "0000ffe0-0000-1000-8000-00805f9b34fb"
    CHARACTERISTIC = "0000ffe1-0000-1000-8000-00805f9b34fb"


def _adapter_missing(error: Exception) -> bool:
    if isinstance(error, (FileNotFoundError, NotImplementedError)):
        return True
    text = str(error).lower()
    return "adapter" in text or "not supported" in text or "bluetooth is off" in text


class BleSensorLink:
    """
    Owns exactly one BleakClient. connect() scans for the sensor, subscribe()
    enables notifications on the serial characteristic and forwards every
    notification payload unchanged; reassembly happens downstream.
    """

    def __init__(self, config: Optional[SensorConfig] = None):
        self.config = config or SensorConfig()
        self.service_uuid = (self.config.service_uuid or SerialServiceUUIDs.SERVICE).lower()
        self.characteristic_uuid = (self.config.characteristic_uuid or SerialServiceUUIDs.CHARACTERISTIC).lower()
        self.client: Optional[BleakClient] = None
        self._device: Optional[BLEDevice] = None
        self._on_chunk: Optional[ChunkCallback] = None
        self._on_failure: Optional[FailureCallback] = None
        self._closing = False

        self.stats = {
            'notifications': 0,
            'bytes_received': 0,
            'connection_attempts': 0
        }

    @property
    def is_connected(self) -> bool:
        return bool(self.client and self.client.is_connected)

    @property
    def device_name(self) -> Optional[str]:
        if self._device is None:
            return None
        return self._device.name or self._device.address

    def _matches(self, device: BLEDevice, adv: AdvertisementData) -> bool:
        hint = self.config.name_hint.lower()
        if hint:
            return hint in (device.name or adv.local_name or "").lower()
        return self.service_uuid in [u.lower() for u in adv.service_uuids]

    async def connect(self) -> str:
        """Find and connect to the sensor; returns its name."""
        if self.is_connected:
            logger.warning(f"Already connected to {self.device_name}")
            return self.device_name

        self.stats['connection_attempts'] += 1
        logger.info("Requesting Bluetooth device...")

        try:
            device = await BleakScanner.find_device_by_filter(
                self._matches, timeout=self.config.scan_timeout
            )
        except (BleakError, OSError, NotImplementedError) as e:
            if _adapter_missing(e):
                raise NotSupported(f"Bluetooth is not available on this host: {e}") from e
            raise LinkConnectionError(f"Bluetooth scan failed: {e}") from e

        if device is None:
            raise NotFound("No ECG sensor found")

        logger.info(f"Connecting to GATT server of {device.name or device.address}...")
        self._closing = False
        client = BleakClient(
            device,
            disconnected_callback=self._handle_disconnect,
            timeout=self.config.connection_timeout
        )

        try:
            await client.connect()
        except BleakDeviceNotFoundError as e:
            raise NotFound(f"Sensor {device.address} disappeared: {e}") from e
        except (BleakError, OSError, TimeoutError) as e:
            raise LinkConnectionError(f"Could not connect to {device.address}: {e}") from e

        self.client = client
        self._device = device
        logger.info(f"Bluetooth connected: {self.device_name}")
        return self.device_name

    async def subscribe(self, on_chunk: ChunkCallback, on_failure: FailureCallback) -> None:
        if not self.is_connected:
            raise NotReady("No characteristic connected")

        self._on_chunk = on_chunk
        self._on_failure = on_failure
        try:
            await self.client.start_notify(self.characteristic_uuid, self._handle_notification)
        except (BleakError, OSError, asyncio.TimeoutError) as e:
            self._on_chunk = None
            self._on_failure = None
            raise NotReady(f"Cannot enable notifications: {e}") from e

        logger.info(f"Notifications enabled on {self.characteristic_uuid}")

    async def unsubscribe(self) -> None:
        subscribed = self._on_chunk is not None
        self._on_chunk = None
        self._on_failure = None
        if subscribed and self.is_connected:
            try:
                await self.client.stop_notify(self.characteristic_uuid)
            except BleakError as e:
                logger.warning(f"Error stopping notifications: {e}")

    async def disconnect(self) -> None:
        await self.unsubscribe()
        self._closing = True
        if self.client is not None:
            try:
                await self.client.disconnect()
            except BleakError as e:
                logger.error(f"Error during disconnect: {e}")
        self.client = None
        self._device = None
        logger.info("Bluetooth disconnected")

    def _handle_notification(self, characteristic: BleakGATTCharacteristic, data: bytearray):
        self.stats['notifications'] += 1
        self.stats['bytes_received'] += len(data)
        if self._on_chunk is not None:
            self._on_chunk(bytes(data))

    def _handle_disconnect(self, client: BleakClient):
        logger.info(f"Device {self.device_name} is disconnected.")
        on_failure = self._on_failure
        self._on_chunk = None
        self._on_failure = None
        if not self._closing and on_failure is not None:
            on_failure(LinkConnectionError(f"Sensor {self.device_name} disconnected"))

    def get_statistics(self):
        stats = self.stats.copy()
        stats.update({
            'device_name': self.device_name,
            'connected': self.is_connected,
            'streaming': self._on_chunk is not None
        })
        return stats
