"""SQLite-backed host runtime and the per-extension API it hands out.

``Host`` owns the shared stores (device registry, entity states,
extension config, event log) and the registries of routes, actions,
poll adapters and inspector panels. ``SQLiteExtensionAPI`` is the narrow
view one extension gets of it.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import aiosqlite

from roku_integration.host.base import (
    ActionHandler,
    ActionSpec,
    DeviceDescriptor,
    EntityUpdate,
    ExtensionAPI,
    InspectorPanel,
    PollAdapter,
    RouteHandler,
)
from roku_integration.host.events import EventBus, EventType
from roku_integration.host.models import (
    SQLiteModel,
    SQLiteQueryBuilder,
    decode_row,
    fetchall,
    fetchone,
)
from roku_integration.models import utcnow_iso

if TYPE_CHECKING:
    from roku_integration.host.polling import PollingManager

logger = logging.getLogger(__name__)

_REGISTRY_JSON = ("capabilities", "metadata")
_REGISTRY_BOOL = ("online",)
_ROUTE_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})


@dataclass
class RouteSpec:
    extension: str
    method: str
    path: str
    handler: RouteHandler


class Host:
    """Shared host state over one aiosqlite connection.

    Parameters
    ----------
    db:
        Open connection with the host schema applied.
    event_bus:
        Bus used for every broadcast and registry event.
    """

    def __init__(self, db: aiosqlite.Connection, event_bus: EventBus) -> None:
        self.db = db
        self.event_bus = event_bus
        self.models: dict[str, SQLiteModel] = {}
        self.routes: list[RouteSpec] = []
        self.actions: dict[str, ActionSpec] = {}
        self.poll_adapters: dict[str, PollAdapter] = {}
        self.inspector_panels: dict[str, InspectorPanel] = {}
        self.polling: PollingManager | None = None

    def api_for(self, extension_name: str) -> SQLiteExtensionAPI:
        return SQLiteExtensionAPI(self, extension_name)

    # ------------------------------------------------------------------
    # Device registry
    # ------------------------------------------------------------------

    async def get_registry_device(self, device_id: str) -> dict[str, Any] | None:
        row = await fetchone(self.db, "SELECT * FROM device_registry WHERE id = ?", (device_id,))
        return decode_row(row, _REGISTRY_JSON, _REGISTRY_BOOL) if row else None

    async def list_registry_devices(self, device_type: str | None = None) -> list[dict[str, Any]]:
        if device_type is None:
            rows = await fetchall(self.db, "SELECT * FROM device_registry ORDER BY id")
        else:
            rows = await fetchall(
                self.db,
                "SELECT * FROM device_registry WHERE device_type = ? ORDER BY id",
                (device_type,),
            )
        return [decode_row(row, _REGISTRY_JSON, _REGISTRY_BOOL) for row in rows]

    async def register_device(self, desc: DeviceDescriptor) -> bool:
        """Insert or update a registry row. Returns ``False`` if nothing changed.

        When ``desc.previous_id`` names an existing row, that row is renamed
        in place; if both ids already exist the stale one is dropped.
        """
        existing = await self.get_registry_device(desc.device_id)
        renamed = False

        if desc.previous_id and desc.previous_id != desc.device_id:
            legacy = await self.get_registry_device(desc.previous_id)
            if legacy is not None and existing is None:
                await self.db.execute(
                    "UPDATE device_registry SET id = ? WHERE id = ?",
                    (desc.device_id, desc.previous_id),
                )
                await self.db.execute(
                    "UPDATE entity_states SET device_id = ? WHERE device_id = ?",
                    (desc.device_id, desc.previous_id),
                )
                existing = {**legacy, "id": desc.device_id}
                renamed = True
                logger.info("Renamed registry row %s -> %s", desc.previous_id, desc.device_id)
            elif legacy is not None:
                await self.db.execute(
                    "DELETE FROM device_registry WHERE id = ?", (desc.previous_id,)
                )
                renamed = True
                logger.info("Dropped duplicate registry row %s", desc.previous_id)

        desired = {
            "name": desc.name,
            "device_type": desc.type,
            "extension_source": desc.extension_source,
            "ip_address": desc.ip_address,
            "mac_address": desc.mac_address or (existing or {}).get("mac_address"),
            "model": desc.model,
            "manufacturer": desc.manufacturer,
            "serial_number": desc.serial_number,
            "firmware_version": desc.firmware_version,
            "capabilities": list(desc.capabilities),
            "metadata": dict(desc.metadata),
        }

        if existing is not None:
            changed = {k: v for k, v in desired.items() if existing.get(k) != v}
            if not changed and not renamed:
                return False
            if changed:
                assignments = ", ".join(f"{col} = ?" for col in changed)
                await self.db.execute(
                    f"UPDATE device_registry SET {assignments} WHERE id = ?",
                    (*(_encode_registry(k, v) for k, v in changed.items()), desc.device_id),
                )
            await self.db.commit()
            await self.event_bus.publish(
                EventType.DEVICE_UPDATED,
                {"deviceId": desc.device_id, "name": desc.name, "changed": sorted(changed)},
                source_id=desc.extension_source,
            )
            return True

        now = utcnow_iso()
        row = {**desired, "id": desc.device_id, "discovered_at": now, "last_seen_at": now}
        cols = ", ".join(row)
        await self.db.execute(
            f"INSERT INTO device_registry ({cols}) VALUES ({', '.join('?' for _ in row)})",
            tuple(_encode_registry(k, v) for k, v in row.items()),
        )
        await self.db.commit()
        await self.event_bus.publish(
            EventType.DEVICE_REGISTERED,
            {"deviceId": desc.device_id, "name": desc.name, "type": desc.type},
            source_id=desc.extension_source,
        )
        return True

    async def unregister_device(self, device_id: str, source: str | None = None) -> None:
        cursor = await self.db.execute("DELETE FROM device_registry WHERE id = ?", (device_id,))
        await self.db.execute("DELETE FROM entity_states WHERE device_id = ?", (device_id,))
        await self.db.commit()
        if cursor.rowcount:
            await self.event_bus.publish(
                EventType.DEVICE_UNREGISTERED, {"deviceId": device_id}, source_id=source
            )

    async def record_poll_success(self, device_id: str) -> None:
        row = await self.get_registry_device(device_id)
        if row is None:
            return
        await self.db.execute(
            "UPDATE device_registry SET online = 1, consecutive_failures = 0, last_seen_at = ? "
            "WHERE id = ?",
            (utcnow_iso(), device_id),
        )
        await self.db.commit()
        if not row["online"]:
            await self.event_bus.publish(EventType.DEVICE_ONLINE, {"deviceId": device_id})

    async def record_poll_failure(self, device_id: str, offline_after: int) -> None:
        row = await self.get_registry_device(device_id)
        if row is None:
            return
        failures = (row["consecutive_failures"] or 0) + 1
        go_offline = bool(row["online"]) and failures >= offline_after
        await self.db.execute(
            "UPDATE device_registry SET consecutive_failures = ?, online = ? WHERE id = ?",
            (failures, 0 if go_offline or not row["online"] else 1, device_id),
        )
        await self.db.commit()
        if go_offline:
            logger.info("Device %s offline after %d failed polls", device_id, failures)
            await self.event_bus.publish(
                EventType.DEVICE_OFFLINE,
                {"deviceId": device_id, "consecutiveFailures": failures},
            )

    # ------------------------------------------------------------------
    # Entity states
    # ------------------------------------------------------------------

    async def upsert_entity_state(self, device_id: str, update: EntityUpdate) -> None:
        previous = await fetchone(
            self.db, "SELECT state FROM entity_states WHERE entity_id = ?", (update.entity_id,)
        )
        await self.db.execute(
            """INSERT INTO entity_states
               (entity_id, device_id, state, attributes, friendly_name, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(entity_id) DO UPDATE SET
                   device_id = excluded.device_id,
                   state = excluded.state,
                   attributes = excluded.attributes,
                   friendly_name = excluded.friendly_name,
                   updated_at = excluded.updated_at""",
            (
                update.entity_id,
                device_id,
                update.state,
                json.dumps(update.attributes, default=str),
                update.friendly_name,
                utcnow_iso(),
            ),
        )
        await self.db.commit()
        old_state = previous["state"] if previous else None
        if old_state != update.state:
            await self.event_bus.publish(
                EventType.ENTITY_STATE_CHANGED,
                {
                    "entity_id": update.entity_id,
                    "device_id": device_id,
                    "old_state": old_state,
                    "new_state": update.state,
                },
            )

    # ------------------------------------------------------------------
    # Extension config
    # ------------------------------------------------------------------

    async def get_extension_config(self, extension: str) -> dict[str, Any]:
        rows = await fetchall(
            self.db,
            "SELECT key, value FROM extension_config WHERE extension_name = ? ORDER BY key",
            (extension,),
        )
        return {row["key"]: json.loads(row["value"]) for row in rows}

    async def set_extension_config(self, extension: str, values: dict[str, Any]) -> None:
        now = utcnow_iso()
        for key, value in values.items():
            await self.db.execute(
                """INSERT INTO extension_config (extension_name, key, value, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(extension_name, key) DO UPDATE SET
                       value = excluded.value, updated_at = excluded.updated_at""",
                (extension, key, json.dumps(value), now),
            )
        await self.db.commit()

    # ------------------------------------------------------------------
    # Registries
    # ------------------------------------------------------------------

    def adapters_changed(self) -> None:
        if self.polling is not None and self.polling.running:
            asyncio.get_running_loop().create_task(self.polling.refresh())


def _encode_registry(column: str, value: Any) -> Any:
    if column in _REGISTRY_JSON:
        return json.dumps(value, default=str)
    if column in _REGISTRY_BOOL:
        return 1 if value else 0
    return value


class SQLiteExtensionAPI(ExtensionAPI):
    """``ExtensionAPI`` bound to one extension name on a ``Host``."""

    def __init__(self, host: Host, name: str) -> None:
        self._host = host
        self.name = name

    @property
    def event_bus(self) -> EventBus:
        return self._host.event_bus

    # -- models ----------------------------------------------------------

    async def register_model(self, name: str, schema: dict[str, Any]) -> None:
        self._host.models[name] = SQLiteModel(self._host.db, schema)

    def model(self, name: str) -> SQLiteModel:
        try:
            return self._host.models[name]
        except KeyError:
            raise KeyError(f"Model {name!r} is not registered") from None

    def query(self, table: str) -> SQLiteQueryBuilder:
        for model in self._host.models.values():
            if model.table == table:
                return SQLiteQueryBuilder(
                    self._host.db, table, model.json_fields, model.bool_fields
                )
        return SQLiteQueryBuilder(self._host.db, table)

    # -- device registry -------------------------------------------------

    async def register_device(self, descriptor: DeviceDescriptor) -> bool:
        return await self._host.register_device(descriptor)

    async def unregister_device(self, device_id: str) -> None:
        await self._host.unregister_device(device_id, source=self.name)

    # -- polling ---------------------------------------------------------

    def register_poll_adapter(self, adapter: PollAdapter) -> None:
        self._host.poll_adapters[adapter.device_type] = adapter
        self._host.adapters_changed()

    def unregister_poll_adapter(self, device_type: str) -> None:
        self._host.poll_adapters.pop(device_type, None)
        self._host.adapters_changed()

    # -- surfaces --------------------------------------------------------

    def register_route(self, method: str, path: str, handler: RouteHandler) -> None:
        method = method.upper()
        if method not in _ROUTE_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")
        self._host.routes = [
            r for r in self._host.routes
            if not (r.extension == self.name and r.method == method and r.path == path)
        ]
        self._host.routes.append(RouteSpec(self.name, method, path, handler))

    def register_action(
        self,
        key: str,
        handler: ActionHandler,
        label: str,
        meta: dict[str, Any] | None = None,
    ) -> None:
        self._host.actions[key] = ActionSpec(key=key, handler=handler, label=label, meta=dict(meta or {}))

    def register_inspector_panel(self, panel: InspectorPanel) -> None:
        self._host.inspector_panels[panel.device_type] = panel

    # -- events & config -------------------------------------------------

    async def broadcast(self, event: str, payload: dict[str, Any]) -> None:
        await self._host.event_bus.publish(event, payload, source_id=self.name)

    async def get_config(self) -> dict[str, Any]:
        return await self._host.get_extension_config(self.name)

    async def set_config(self, values: dict[str, Any]) -> None:
        await self._host.set_extension_config(self.name, values)
