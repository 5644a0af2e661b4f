"""Find the device a route or action refers to."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from roku_integration.context import PluginContext
from roku_integration.identity import DeviceId, lookup_ids
from roku_integration.models import DeviceRecord, RegistryRecord

logger = logging.getLogger(__name__)


class DeviceNotFoundError(LookupError):
    """No local or registry device matches the requested id."""


@dataclass(frozen=True)
class DeviceTarget:
    device_id: str
    ip_address: str | None
    name: str
    record: DeviceRecord | None = None

    def as_dict(self) -> dict[str, Any]:
        if self.record is not None:
            return self.record.model_dump(mode="json")
        return {"device_id": self.device_id, "ip_address": self.ip_address, "name": self.name}


async def find_device(ctx: PluginContext, device_id: str) -> DeviceTarget | None:
    """Local table first, then the registry by id and by serial."""
    for candidate_id in lookup_ids(device_id):
        record = await ctx.store.get_device(candidate_id)
        if record is not None:
            return DeviceTarget(record.device_id, record.ip_address, record.name, record)

    rows: list[dict[str, Any]] = []
    for candidate_id in lookup_ids(device_id):
        rows = await ctx.api.query("device_registry").where("id", "=", candidate_id).get()
        if rows:
            break
    if not rows:
        parsed = DeviceId.parse(device_id)
        if parsed is not None:
            rows = await ctx.api.query("device_registry").where("serial_number", "=", parsed.key).get()
    if not rows:
        return None

    reg = RegistryRecord.model_validate(rows[0])
    return DeviceTarget(reg.id, reg.ip_address, reg.display_name)


async def require_device(ctx: PluginContext, device_id: str) -> DeviceTarget:
    target = await find_device(ctx, device_id)
    if target is None:
        raise DeviceNotFoundError(f"Device {device_id} not found")
    return target
