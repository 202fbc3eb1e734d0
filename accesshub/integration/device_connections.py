"""Supervised telemetry subscriptions for doors bound to platform devices.

Each bound door gets one asyncio task that holds a WebSocket subscription
to the device platform and re-broadcasts telemetry to the door's room.
Dropped connections are retried with exponential backoff (tenacity); after
`max_retries` consecutive failures the task gives up.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable

import aiohttp
import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from accesshub.config import ThingsBoardConfig
from accesshub.integration.thingsboard_client import ThingsBoardClient
from accesshub.realtime.hub import NotificationHub, door_room

logger = structlog.get_logger()

Connector = Callable[[int, str], Awaitable[None]]


def _log_reconnect(door_id: int):
    def before_sleep(retry_state: RetryCallState) -> None:
        logger.warning(
            "device_connection_failed",
            door_id=door_id,
            failures=retry_state.attempt_number,
            retry_in=retry_state.next_action.sleep,
            error=str(retry_state.outcome.exception()),
        )

    return before_sleep


class DeviceConnectionManager:
    """One reconnecting telemetry subscription per bound door."""

    def __init__(
        self,
        client: ThingsBoardClient | None,
        hub: NotificationHub,
        *,
        backoff_base: float = 5.0,
        backoff_max: float = 300.0,
        max_retries: int = 10,
        connector: Connector | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.hub = hub
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.max_retries = max_retries
        self._connector = connector or self._subscribe
        self._sleep = sleep
        self._tasks: dict[int, asyncio.Task] = {}

    @classmethod
    def from_config(
        cls, config: ThingsBoardConfig, client: ThingsBoardClient | None, hub: NotificationHub
    ) -> DeviceConnectionManager:
        return cls(
            client,
            hub,
            backoff_base=config.ws_backoff_base,
            backoff_max=config.ws_backoff_max,
            max_retries=config.ws_max_retries,
        )

    @property
    def watched_doors(self) -> list[int]:
        return sorted(door_id for door_id, task in self._tasks.items() if not task.done())

    def start(self, bindings: Iterable[tuple[int, str]]) -> None:
        """Start watching every (door_id, device_id) pair."""
        for door_id, device_id in bindings:
            self.watch(door_id, device_id)

    def watch(self, door_id: int, device_id: str) -> None:
        existing = self._tasks.get(door_id)
        if existing is not None and not existing.done():
            return
        self._tasks[door_id] = asyncio.create_task(
            self._supervise(door_id, device_id), name=f"device-ws-{door_id}"
        )

    async def unwatch(self, door_id: int) -> None:
        task = self._tasks.pop(door_id, None)
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def stop(self) -> None:
        """Cancel every subscription task and wait for them to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("device_connections_stopped", count=len(tasks))

    async def _supervise(self, door_id: int, device_id: str) -> None:
        while True:
            try:
                async for attempt in AsyncRetrying(
                    wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
                    stop=stop_after_attempt(self.max_retries),
                    before_sleep=_log_reconnect(door_id),
                    sleep=self._sleep,
                    reraise=True,
                ):
                    with attempt:
                        await self._connector(door_id, device_id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(
                    "device_connection_abandoned",
                    door_id=door_id,
                    device_id=device_id,
                    failures=self.max_retries,
                    error=str(exc),
                )
                return

            # Clean close after a live session: the next retry run starts over
            logger.info("device_connection_closed", door_id=door_id, retry_in=self.backoff_base)
            await self._sleep(self.backoff_base)

    async def _subscribe(self, door_id: int, device_id: str) -> None:
        """Hold one telemetry subscription until the platform closes it."""
        if self.client is None:
            raise RuntimeError("device platform not configured")
        if self.client.token is None:
            await self.client.login()

        async with aiohttp.ClientSession() as session:
            try:
                ws = await session.ws_connect(self.client.websocket_url(), heartbeat=30)
            except aiohttp.WSServerHandshakeError as exc:
                if exc.status == 401:
                    self.client.invalidate()
                raise

            async with ws:
                await ws.send_json(
                    {
                        "tsSubCmds": [
                            {
                                "entityType": "DEVICE",
                                "entityId": device_id,
                                "scope": "LATEST_TELEMETRY",
                                "cmdId": door_id,
                            }
                        ],
                        "historyCmds": [],
                        "attrSubCmds": [],
                    }
                )
                logger.info("device_connection_opened", door_id=door_id, device_id=device_id)

                async for message in ws:
                    if message.type == aiohttp.WSMsgType.TEXT:
                        payload = message.json()
                        await self.hub.emit_to_room(
                            door_room(door_id),
                            "device-telemetry",
                            {"door_id": door_id, "device_id": device_id, "data": payload.get("data")},
                        )
                    elif message.type == aiohttp.WSMsgType.ERROR:
                        raise ConnectionError(f"device websocket error: {ws.exception()}")
