"""Host event bus.

Each event is written to the ``events`` table before any subscriber runs,
so a replay always covers what was delivered. Subscribers run as tasks
the bus keeps hold of until they finish; a failing subscriber is logged
and never reaches the publisher. Extensions use the ``emit``/``on``
pair; host components use ``publish``/``subscribe``.
"""

from __future__ import annotations

import asyncio
import functools
import itertools
import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Sequence

import aiosqlite

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], Awaitable[None]]

# Subscribing to this receives every event type
WILDCARD = "*"


class EventType:
    """Namespace for event type string constants."""

    # Discovery handshake
    DISCOVERY_REGISTER_INTEREST = "discovery:register-interest"
    DISCOVERY_CANDIDATE_MATCHED = "discovery:candidate-matched"
    DISCOVERY_CLAIM_DEVICE = "discovery:claim-device"
    DISCOVERY_UNREGISTER_HANDLER = "discovery:unregister-handler"

    # Polling manager
    POLLING_POLL_NOW = "polling:poll-now"

    # Device registry
    DEVICE_REGISTERED = "device:registered"
    DEVICE_UPDATED = "device:updated"
    DEVICE_UNREGISTERED = "device:unregistered"
    DEVICE_ONLINE = "device:online"
    DEVICE_OFFLINE = "device:offline"
    ENTITY_STATE_CHANGED = "entity:state-changed"

    # Roku integration broadcasts
    ROKU_DEVICE_ADDED = "roku:device-added"
    ROKU_DEVICE_REMOVED = "roku:device-removed"
    ROKU_IP_CHANGED = "roku:ip-changed"


_COLUMNS = ("seq", "event_type", "payload", "source_id", "created_at")


def _decode(row: Sequence[Any]) -> dict[str, Any]:
    event = dict(zip(_COLUMNS, tuple(row)))
    event["payload"] = json.loads(event["payload"])
    return event


class EventLog:
    """Append-only history of host events in the ``events`` table."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def append(
        self,
        event_type: str,
        payload: dict[str, Any],
        source_id: str | None = None,
    ) -> int:
        cursor = await self._db.execute(
            "INSERT INTO events (event_type, payload, source_id) VALUES (?, ?, ?)",
            (event_type, json.dumps(payload, default=str), source_id),
        )
        await self._db.commit()
        return int(cursor.lastrowid)

    async def replay(
        self,
        since_seq: int = 0,
        event_types: Iterable[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Events after *since_seq* in publish order, optionally of some types only."""
        sql = f"SELECT {', '.join(_COLUMNS)} FROM events WHERE seq > ?"
        args: list[Any] = [since_seq]
        wanted = list(event_types or ())
        if wanted:
            sql += f" AND event_type IN ({', '.join('?' * len(wanted))})"
            args.extend(wanted)
        cursor = await self._db.execute(sql + " ORDER BY seq", args)
        return [_decode(row) for row in await cursor.fetchall()]

    async def count(self, event_type: str) -> int:
        cursor = await self._db.execute(
            "SELECT COUNT(*) FROM events WHERE event_type = ?", (event_type,)
        )
        row = await cursor.fetchone()
        return row[0] if row else 0


@dataclass(frozen=True)
class Subscription:
    id: int
    event_types: frozenset[str]
    callback: EventCallback


class EventBus:
    """Persist-then-deliver pub/sub over an :class:`EventLog`."""

    def __init__(self, event_log: EventLog) -> None:
        self._log = event_log
        self._by_type: dict[str, dict[int, Subscription]] = defaultdict(dict)
        self._ids = itertools.count(1)
        self._write_lock = asyncio.Lock()
        self._inflight: set[asyncio.Task] = set()

    @property
    def log(self) -> EventLog:
        return self._log

    def subscribe(self, event_types: Iterable[str], callback: EventCallback) -> Subscription:
        """Call *callback* with each event of *event_types* (``"*"`` for all)."""
        sub = Subscription(next(self._ids), frozenset(event_types), callback)
        for event_type in sub.event_types:
            self._by_type[event_type][sub.id] = sub
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        for event_type in subscription.event_types:
            subs = self._by_type.get(event_type)
            if subs is not None:
                subs.pop(subscription.id, None)

    def _subscribers(self, event_type: str) -> list[Subscription]:
        matched = {**self._by_type.get(WILDCARD, {}), **self._by_type.get(event_type, {})}
        # Ids grow with each subscribe call, so this is subscription order
        return [matched[sub_id] for sub_id in sorted(matched)]

    async def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        source_id: str | None = None,
    ) -> int:
        """Log the event, start its subscribers and return its sequence number."""
        async with self._write_lock:
            seq = await self._log.append(event_type, payload, source_id)

        event = {"seq": seq, "event_type": event_type, "payload": payload, "source_id": source_id}
        loop = asyncio.get_running_loop()
        for sub in self._subscribers(event_type):
            task = loop.create_task(sub.callback(event))
            self._inflight.add(task)
            task.add_done_callback(functools.partial(self._finished, event_type))
        return seq

    def _finished(self, event_type: str, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Handler for %s failed", event_type, exc_info=exc)

    async def replay(self, since_seq: int = 0) -> list[dict[str, Any]]:
        return await self._log.replay(since_seq)

    # -- extension-facing aliases ----------------------------------------

    async def emit(self, event_type: str, payload: dict[str, Any]) -> int:
        return await self.publish(event_type, payload)

    def on(
        self,
        event_type: str,
        handler: Callable[[dict[str, Any]], Awaitable[None]],
    ) -> Subscription:
        """Subscribe *handler* to the payloads of one event type."""

        async def deliver(event: dict[str, Any]) -> None:
            await handler(event["payload"])

        return self.subscribe([event_type], deliver)
