"""Device platform (ThingsBoard) integration."""

from accesshub.integration.device_sync import DeviceSync, SyncResult
from accesshub.integration.thingsboard_client import ThingsBoardClient

__all__ = ["DeviceSync", "SyncResult", "ThingsBoardClient"]
