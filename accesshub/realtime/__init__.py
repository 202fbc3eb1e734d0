"""Real-time event fan-out to WebSocket clients."""

from accesshub.realtime.hub import NotificationHub

__all__ = ["NotificationHub"]
