"""Plugin-owned ``roku_devices`` table, reached through the host model API."""

from __future__ import annotations

import logging
from typing import Any

from roku_integration.host.base import ExtensionAPI, Model
from roku_integration.models import DeviceRecord

logger = logging.getLogger(__name__)

MODEL_NAME = "roku_devices"

MODEL_SCHEMA: dict[str, Any] = {
    "table_name": MODEL_NAME,
    "fields": {
        "id": {"type": "integer", "primary_key": True, "auto_increment": True},
        "device_id": {"type": "string", "required": True},
        "ip_address": {"type": "string", "required": True},
        "name": {"type": "string", "required": True},
        "model": {"type": "string"},
        "serial_number": {"type": "string"},
        "software_version": {"type": "string"},
        "power_mode": {"type": "string"},
        "status": {"type": "string", "default": "unknown"},
        "metadata": {"type": "json"},
        "last_seen_at": {"type": "datetime"},
        "created_at": {"type": "datetime", "default": "CURRENT_TIMESTAMP"},
    },
}


class DeviceStore:
    """Typed CRUD over ``roku_devices``.

    Lookups by ``device_id`` and ``ip_address`` return the first row by
    primary key; updates and deletes of unknown devices are no-ops.
    """

    def __init__(self, api: ExtensionAPI) -> None:
        self._model: Model = api.model(MODEL_NAME)

    async def get_all_devices(self) -> list[DeviceRecord]:
        return [DeviceRecord.model_validate(row) for row in await self._model.find_all()]

    async def get_device(self, device_id: str) -> DeviceRecord | None:
        row = await self._model.find_one({"device_id": device_id})
        return DeviceRecord.model_validate(row) if row else None

    async def get_device_by_ip(self, ip_address: str) -> DeviceRecord | None:
        row = await self._model.find_one({"ip_address": ip_address})
        return DeviceRecord.model_validate(row) if row else None

    async def create_device(self, record: DeviceRecord) -> DeviceRecord:
        pk = await self._model.create(record.to_row())
        return record.model_copy(update={"id": pk})

    async def update_device(self, device_id: str, data: dict[str, Any]) -> bool:
        existing = await self.get_device(device_id)
        if existing is None:
            return False
        await self._model.update(existing.id, _encode(data))
        return True

    async def update_device_status(self, device_id: str, data: dict[str, Any]) -> bool:
        """Like ``update_device`` but merges ``metadata`` into the stored value."""
        existing = await self.get_device(device_id)
        if existing is None:
            return False
        data = dict(data)
        if "metadata" in data and data["metadata"] is not None:
            data["metadata"] = {**existing.metadata, **data["metadata"]}
        await self._model.update(existing.id, _encode(data))
        return True

    async def delete_device(self, device_id: str) -> bool:
        existing = await self.get_device(device_id)
        if existing is None:
            return False
        await self._model.delete(existing.id)
        return True


def _encode(data: dict[str, Any]) -> dict[str, Any]:
    # Enum members go to the table as their plain values
    return {k: getattr(v, "value", v) for k, v in data.items()}
