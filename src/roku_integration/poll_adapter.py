"""Poll adapter turning one Roku into one ``media_player`` entity."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from roku_integration import DEVICE_TYPE, EXTENSION_NAME
from roku_integration.context import PluginContext
from roku_integration.ecp.client import RokuClient
from roku_integration.host.base import EntityUpdate, PollAdapter
from roku_integration.identity import slugify
from roku_integration.power import HOME_APP_NAME, interpret_power_state, is_screensaver, media_state
from roku_integration.reconcile.recovery import ENTITY_DOMAIN

logger = logging.getLogger(__name__)


def entity_id_for(device: dict[str, Any]) -> str:
    name = device.get("friendly_name") or device.get("name") or device.get("id") or ""
    return f"{ENTITY_DOMAIN}.{slugify(str(name))}"


class RokuPollAdapter(PollAdapter):
    device_type = DEVICE_TYPE
    extension_name = EXTENSION_NAME

    def __init__(self, ctx: PluginContext) -> None:
        self._ctx = ctx

    def create_client(self, device: dict[str, Any]) -> RokuClient | None:
        ip = device.get("ip_address")
        if not ip:
            return None
        return self._ctx.client(ip)

    def get_poll_interval(self, device: dict[str, Any]) -> float:
        return float(self._ctx.settings.polling.interval_ms)

    async def poll_device(self, device: dict[str, Any], client: RokuClient | None) -> list[EntityUpdate]:
        if not device or not device.get("id"):
            raise ValueError("Invalid device: missing id")
        if not device.get("ip_address"):
            raise ValueError(f"Device {device['id']} missing ip_address")
        if client is None:
            client = self._ctx.client(device["ip_address"])

        info, active_app = await asyncio.gather(
            client.get_device_info(),
            client.get_active_app(),
        )
        power_state = interpret_power_state(info.power_mode, active_app)
        screensaver = is_screensaver(active_app)

        attributes = {
            "power_mode": info.power_mode,
            "power_state": power_state.value,
            "active_app": active_app.name if active_app and active_app.name else HOME_APP_NAME,
            "active_app_id": active_app.id if active_app else None,
            "app_type": active_app.type if active_app else None,
            "app_version": active_app.version if active_app else None,
            "is_screensaver": screensaver,
            "screensaver_name": active_app.name if screensaver else None,
            "device_type": DEVICE_TYPE,
            "friendly_name": device.get("friendly_name"),
        }
        return [
            EntityUpdate(
                entity_id=entity_id_for(device),
                state=media_state(power_state, active_app).value,
                attributes=attributes,
                friendly_name=device.get("friendly_name") or device.get("name"),
            )
        ]
