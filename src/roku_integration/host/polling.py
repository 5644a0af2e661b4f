"""Per-device polling driven by registered poll adapters.

One asyncio task per registry device whose type has an adapter. Each task
calls ``poll_once`` and then waits for the adapter's interval or for the
shutdown event, whichever comes first. ``polling:poll-now`` events run an
immediate tick outside the schedule.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from roku_integration.host.events import EventType, Subscription
from roku_integration.host.sqlite_host import Host

logger = logging.getLogger(__name__)

DEFAULT_OFFLINE_AFTER = 3


class PollingManager:
    """Keeps one polling task per pollable registry device.

    Parameters
    ----------
    host:
        The host whose registry and adapters are polled.
    offline_after_failures:
        Consecutive failed ticks before a device is marked offline.
    """

    def __init__(self, host: Host, offline_after_failures: int = DEFAULT_OFFLINE_AFTER) -> None:
        self._host = host
        self._offline_after = offline_after_failures
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._shutdown = asyncio.Event()
        self._subscriptions: list[Subscription] = []
        self.running = False
        host.polling = self

    @property
    def polled_devices(self) -> list[str]:
        return sorted(self._tasks)

    async def start(self) -> None:
        self._shutdown.clear()
        self.running = True
        bus = self._host.event_bus
        self._subscriptions = [
            bus.subscribe([EventType.POLLING_POLL_NOW], self._on_poll_now),
            bus.subscribe(
                [EventType.DEVICE_REGISTERED, EventType.DEVICE_UPDATED, EventType.DEVICE_UNREGISTERED],
                self._on_registry_change,
            ),
        ]
        await self.refresh()
        logger.info("Polling manager started: %d devices", len(self._tasks))

    async def stop(self) -> None:
        self.running = False
        self._shutdown.set()
        for sub in self._subscriptions:
            self._host.event_bus.unsubscribe(sub)
        self._subscriptions = []
        tasks = list(self._tasks.values())
        self._tasks.clear()
        if tasks:
            try:
                await asyncio.wait_for(asyncio.gather(*tasks, return_exceptions=True), timeout=10)
            except asyncio.TimeoutError:
                for task in tasks:
                    task.cancel()
        logger.info("Polling manager stopped")

    async def refresh(self) -> None:
        """Start loops for new pollable devices and stop loops for gone ones."""
        wanted: set[str] = set()
        for device_type in list(self._host.poll_adapters):
            for device in await self._host.list_registry_devices(device_type):
                wanted.add(device["id"])

        for device_id in list(self._tasks):
            if self._tasks[device_id].done():
                del self._tasks[device_id]
            elif device_id not in wanted:
                self._tasks.pop(device_id).cancel()
                logger.debug("Stopped polling %s", device_id)

        if not self.running:
            return
        for device_id in wanted - set(self._tasks):
            self._tasks[device_id] = asyncio.create_task(self._run(device_id))
            logger.debug("Started polling %s", device_id)

    async def poll_once(self, device_id: str) -> bool:
        """Run one tick for *device_id*. Returns ``True`` on success."""
        device = await self._host.get_registry_device(device_id)
        if device is None:
            return False
        adapter = self._host.poll_adapters.get(device["device_type"])
        if adapter is None:
            return False
        client = adapter.create_client(device)
        if client is None:
            logger.debug("No client for %s, skipping tick", device_id)
            return False

        try:
            updates = await adapter.poll_device(device, client)
        except Exception as exc:
            logger.debug("Poll of %s failed: %s", device_id, exc)
            await self._host.record_poll_failure(device_id, self._offline_after)
            return False

        for update in updates:
            await self._host.upsert_entity_state(device_id, update)
        await self._host.record_poll_success(device_id)
        return True

    async def _run(self, device_id: str) -> None:
        while not self._shutdown.is_set():
            interval = 1.0
            try:
                await self.poll_once(device_id)
                device = await self._host.get_registry_device(device_id)
                adapter = self._host.poll_adapters.get(device["device_type"]) if device else None
                if adapter is None:
                    return
                interval = max(adapter.get_poll_interval(device), 100) / 1000.0
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Polling loop error for %s", device_id)

            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def _on_poll_now(self, event: dict[str, Any]) -> None:
        device_id = event["payload"].get("deviceId")
        if device_id:
            await self.poll_once(device_id)

    async def _on_registry_change(self, event: dict[str, Any]) -> None:
        if self.running:
            await self.refresh()
