"""Device inspector panel: apps, device info and the remote widget."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from roku_integration import DEVICE_TYPE
from roku_integration.context import PluginContext
from roku_integration.ecp.errors import EcpError
from roku_integration.host.base import InspectorPanel, InspectorTab
from roku_integration.lookup import find_device

logger = logging.getLogger(__name__)


class RokuInspector:
    """Each tab fetches on its own; a failing fetch yields empty data."""

    def __init__(self, ctx: PluginContext) -> None:
        self._ctx = ctx

    def panel(self) -> InspectorPanel:
        return InspectorPanel(
            device_type=DEVICE_TYPE,
            title="Roku",
            tabs=[
                InspectorTab(id="apps", label="Apps", fetch=self.apps_tab),
                InspectorTab(id="info", label="Device Info", fetch=self.info_tab),
                InspectorTab(id="remote", label="Remote", component="roku-remote"),
            ],
        )

    async def _ip(self, device_id: str) -> str | None:
        target = await find_device(self._ctx, device_id)
        return target.ip_address if target else None

    async def apps_tab(self, device_id: str) -> dict[str, Any]:
        ip = await self._ip(device_id)
        if not ip:
            return {"installed": [], "active": None}
        client = self._ctx.client(ip)
        apps, active = await asyncio.gather(
            client.get_apps(), client.get_active_app(), return_exceptions=True
        )
        if isinstance(apps, EcpError):
            logger.debug("Inspector apps fetch failed for %s: %s", device_id, apps)
            apps = []
        elif isinstance(apps, BaseException):
            raise apps
        if isinstance(active, EcpError):
            logger.debug("Inspector active-app fetch failed for %s: %s", device_id, active)
            active = None
        elif isinstance(active, BaseException):
            raise active
        return {
            "installed": [app.as_dict() for app in apps],
            "active": active.as_dict() if active else None,
        }

    async def info_tab(self, device_id: str) -> dict[str, Any]:
        ip = await self._ip(device_id)
        if not ip:
            return {}
        try:
            info = await self._ctx.client(ip).get_device_info()
        except EcpError as exc:
            logger.debug("Inspector device-info fetch failed for %s: %s", device_id, exc)
            return {}
        return info.as_dict()
