"""Push local Roku records into the host device registry.

Runs once at init. Each local record is registered under its canonical
``roku:<serial>`` id; a registry row or local row still stored under the
legacy ``roku-<serial>`` spelling is renamed in place. Running it again
without intervening changes writes nothing.
"""

from __future__ import annotations

import logging
from typing import Any

from roku_integration.context import PluginContext
from roku_integration.identity import DeviceId, lookup_ids
from roku_integration.models import DeviceRecord

logger = logging.getLogger(__name__)


class RegistrySynchronizer:
    def __init__(self, ctx: PluginContext) -> None:
        self._ctx = ctx

    async def sync(self) -> int:
        """Sync every local record. Returns how many devices needed writes."""
        records = await self._ctx.store.get_all_devices()
        if not records:
            logger.debug("No Roku devices to sync")
            return 0

        changed = 0
        for record in records:
            try:
                if await self._sync_one(record):
                    changed += 1
            except Exception:
                logger.warning("Registry sync failed for %s", record.name, exc_info=True)
        logger.debug("Registry sync: %d of %d devices updated", changed, len(records))
        return changed

    async def _registry_row(self, device_id: str) -> dict[str, Any] | None:
        rows = await self._ctx.api.query("device_registry").where("id", "=", device_id).get()
        return rows[0] if rows else None

    async def _sync_one(self, record: DeviceRecord) -> bool:
        parsed = DeviceId.parse(record.device_id)
        serial = parsed.key if parsed else record.serial_number
        canonical = DeviceId.from_serial(serial).canonical if serial else record.device_id

        current = await self._registry_row(canonical)
        previous_id = None
        stale_row = None
        stale_ids = [i for i in lookup_ids(record.device_id) if i != canonical]
        if serial:
            legacy = DeviceId.from_serial(serial).legacy
            if legacy not in stale_ids:
                stale_ids.append(legacy)
        for stale_id in stale_ids:
            stale_row = await self._registry_row(stale_id)
            if stale_row is not None:
                previous_id = stale_id
                logger.info("Registry row %s will be renamed to %s", stale_id, canonical)
                break

        base = current or stale_row
        if base is not None and base.get("ip_address") != record.ip_address:
            logger.debug(
                "Roku %s address differs in registry: %s -> %s",
                record.name, base.get("ip_address"), record.ip_address,
            )

        descriptor = self._ctx.descriptor_for(
            record,
            device_id=canonical,
            serial_number=serial,
            base_metadata=(base or {}).get("metadata") or {},
            previous_id=previous_id,
        )
        changed = await self._ctx.api.register_device(descriptor)

        if record.device_id != canonical:
            changed = True
            if await self._ctx.store.get_device(canonical) is not None:
                logger.info("Dropping duplicate local row %s", record.device_id)
                await self._ctx.store.delete_device(record.device_id)
            else:
                logger.info("Rewriting local id %s -> %s", record.device_id, canonical)
                await self._ctx.store.update_device(record.device_id, {"device_id": canonical})
        return changed
