"""Automation actions: power, app launch and remote keys."""

from __future__ import annotations

import logging
from typing import Any

from roku_integration.context import PluginContext
from roku_integration.host.base import ExtensionAPI
from roku_integration.lookup import DeviceTarget, require_device

logger = logging.getLogger(__name__)

CATEGORY = "media"


def action_device_id(params: dict[str, Any], trigger_context: dict[str, Any] | None) -> str:
    """Device id from the action params, else from the triggering event."""
    trigger_context = trigger_context or {}
    device_id = (
        params.get("device_id")
        or params.get("deviceId")
        or trigger_context.get("device_id")
        or trigger_context.get("deviceId")
    )
    if not device_id:
        raise ValueError("device_id is required - provide it in action params or use a device trigger")
    return str(device_id)


class RokuActions:
    def __init__(self, ctx: PluginContext) -> None:
        self._ctx = ctx

    def register(self, api: ExtensionAPI) -> None:
        api.register_action(
            "power_on", self.power_on, "Power On Roku",
            {"category": CATEGORY, "description": "Wake up a Roku device from standby"},
        )
        api.register_action(
            "power_off", self.power_off, "Power Off Roku",
            {"category": CATEGORY, "description": "Put a Roku device into standby"},
        )
        api.register_action(
            "launch_app", self.launch_app, "Launch Roku App",
            {"category": CATEGORY, "description": "Launch an app on a Roku device"},
        )
        api.register_action(
            "send_keypress", self.send_keypress, "Send Roku Remote Key",
            {"category": CATEGORY, "description": "Send a remote control key press to a Roku device"},
        )

    async def _target(self, params: dict[str, Any], trigger_context: dict[str, Any] | None) -> DeviceTarget:
        target = await require_device(self._ctx, action_device_id(params, trigger_context))
        if not target.ip_address:
            raise ValueError(f"Device {target.device_id} has no known address")
        return target

    async def power_on(self, params: dict[str, Any], trigger_context: dict[str, Any] | None = None) -> dict[str, Any]:
        target = await self._target(params, trigger_context)
        await self._ctx.client(target.ip_address).power_on()
        logger.debug("Automation: powered on %s", target.name)
        return {"success": True, "device_name": target.name}

    async def power_off(self, params: dict[str, Any], trigger_context: dict[str, Any] | None = None) -> dict[str, Any]:
        target = await self._target(params, trigger_context)
        await self._ctx.client(target.ip_address).power_off()
        logger.debug("Automation: powered off %s", target.name)
        return {"success": True, "device_name": target.name}

    async def launch_app(self, params: dict[str, Any], trigger_context: dict[str, Any] | None = None) -> dict[str, Any]:
        app_id = params.get("app_id") or params.get("appId")
        if not app_id:
            raise ValueError("app_id is required")
        target = await self._target(params, trigger_context)
        await self._ctx.client(target.ip_address).launch_app(str(app_id))
        logger.debug("Automation: launched %s on %s", app_id, target.name)
        return {"success": True, "device_name": target.name, "app_id": app_id}

    async def send_keypress(self, params: dict[str, Any], trigger_context: dict[str, Any] | None = None) -> dict[str, Any]:
        key = params.get("key")
        if not key:
            raise ValueError("key is required")
        target = await self._target(params, trigger_context)
        await self._ctx.client(target.ip_address).keypress(str(key))
        logger.debug("Automation: sent %s to %s", key, target.name)
        return {"success": True, "device_name": target.name, "key": key}
