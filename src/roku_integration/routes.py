"""HTTP route handlers registered with the host.

Handlers answer ``{"success": True, ...}`` or
``{"success": False, "error": ..., "status": ...}``; the host turns
``status`` into the HTTP status code.
"""

from __future__ import annotations

import asyncio
import functools
import ipaddress
import logging
from typing import Any, Awaitable, Callable

from roku_integration import DEVICE_TYPE
from roku_integration.config import DEFAULT_EXTENSION_SETTINGS, apply_log_level
from roku_integration.context import PluginContext
from roku_integration.ecp.client import MobileAccess
from roku_integration.ecp.errors import (
    EcpError,
    EcpForbiddenError,
    EcpTimeoutError,
    EcpUnreachableError,
)
from roku_integration.host.base import ExtensionAPI, RouteRequest
from roku_integration.host.events import EventType
from roku_integration.identity import lookup_ids
from roku_integration.lookup import DeviceTarget, find_device
from roku_integration.models import Candidate, DeviceRecord, RegistryRecord
from roku_integration.reconcile.recovery import load_entity_rows
from roku_integration.reconcile.resolver import IdentityResolver
from roku_integration.reconcile.views import merge_device_views

logger = logging.getLogger(__name__)

Result = dict[str, Any]


def fail(error: str, status: int) -> Result:
    return {"success": False, "error": error, "status": status}


def ecp_failure(exc: EcpError) -> Result:
    """Map an ECP failure onto a route result."""
    if isinstance(exc, EcpTimeoutError):
        return fail(str(exc), 504)
    if isinstance(exc, EcpUnreachableError):
        return fail(str(exc), 502)
    if isinstance(exc, EcpForbiddenError):
        return fail(
            'Mobile control restricted - enable "Permissive" mode in Roku settings', 403
        )
    return fail(str(exc), 502)


def device_route(
    fn: Callable[[RokuRoutes, RouteRequest, DeviceTarget], Awaitable[Result]],
) -> Callable[[RokuRoutes, RouteRequest], Awaitable[Result]]:
    """Resolve ``:id`` to a reachable device and map ECP failures."""

    @functools.wraps(fn)
    async def wrapper(self: RokuRoutes, request: RouteRequest) -> Result:
        target = await find_device(self._ctx, request.params.get("id", ""))
        if target is None:
            return fail("Device not found", 404)
        if not target.ip_address:
            return fail(f"Device {target.device_id} has no known address", 409)
        try:
            return await fn(self, request, target)
        except EcpError as exc:
            logger.warning("ECP request to %s failed: %s", target.ip_address, exc)
            return ecp_failure(exc)

    return wrapper


class RokuRoutes:
    def __init__(self, ctx: PluginContext) -> None:
        self._ctx = ctx

    def register(self, api: ExtensionAPI) -> None:
        api.register_route("GET", "/devices", self.list_devices)
        api.register_route("GET", "/devices/mobile-access/all", self.mobile_access_all)
        api.register_route("POST", "/devices/add", self.add_device)
        api.register_route("GET", "/devices/:id", self.get_device)
        api.register_route("DELETE", "/devices/:id", self.remove_device)
        api.register_route("GET", "/devices/:id/apps", self.get_apps)
        api.register_route("GET", "/devices/:id/active-app", self.get_active_app)
        api.register_route("PUT", "/devices/:id/active-app", self.set_active_app)
        api.register_route("GET", "/devices/:id/info", self.get_info)
        api.register_route("GET", "/devices/:id/access", self.get_access)
        api.register_route("POST", "/devices/:id/keypress/:key", self.keypress)
        api.register_route("POST", "/devices/:id/launch/:appId", self.launch)
        api.register_route("POST", "/devices/:id/power/on", self.power_on)
        api.register_route("POST", "/devices/:id/power/off", self.power_off)
        api.register_route("POST", "/devices/:id/poll", self.poll)
        api.register_route("GET", "/settings", self.get_settings)
        api.register_route("PUT", "/settings", self.put_settings)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def _registry_rokus(self) -> list[RegistryRecord]:
        rows = await self._ctx.api.query("device_registry").where("device_type", "=", DEVICE_TYPE).get()
        return [RegistryRecord.model_validate(row) for row in rows]

    async def list_devices(self, request: RouteRequest) -> Result:
        local = await self._ctx.store.get_all_devices()
        registry = await self._registry_rokus()
        entities = await load_entity_rows(self._ctx.api)
        return {"success": True, "devices": merge_device_views(local, registry, entities)}

    async def mobile_access_all(self, request: RouteRequest) -> Result:
        devices = [d for d in await self._registry_rokus() if d.ip_address]

        async def probe(device: RegistryRecord) -> MobileAccess:
            return await self._ctx.client(device.ip_address).check_mobile_control_access()

        results = await asyncio.gather(*(probe(d) for d in devices), return_exceptions=True)
        access_map: dict[str, Any] = {}
        for device, result in zip(devices, results):
            if isinstance(result, BaseException):
                logger.warning("Access probe of %s failed: %s", device.id, result)
                result = MobileAccess.disabled(reason=None)
            access_map[device.id] = result.as_dict()
        return {"success": True, "accessMap": access_map}

    # ------------------------------------------------------------------
    # Single device
    # ------------------------------------------------------------------

    async def get_device(self, request: RouteRequest) -> Result:
        target = await find_device(self._ctx, request.params["id"])
        if target is None:
            return fail("Device not found", 404)
        return {"success": True, "device": target.as_dict()}

    @device_route
    async def get_apps(self, request: RouteRequest, target: DeviceTarget) -> Result:
        apps = await self._ctx.client(target.ip_address).get_apps()
        return {"success": True, "apps": [app.as_dict() for app in apps]}

    @device_route
    async def get_active_app(self, request: RouteRequest, target: DeviceTarget) -> Result:
        app = await self._ctx.client(target.ip_address).get_active_app()
        return {"success": True, "activeApp": app.as_dict() if app else None}

    @device_route
    async def set_active_app(self, request: RouteRequest, target: DeviceTarget) -> Result:
        app_id = request.body.get("app_id") or request.body.get("appId")
        if not app_id:
            return fail("app_id is required", 400)
        params = request.body.get("params")
        if params is not None and not isinstance(params, dict):
            return fail("params must be an object", 400)
        await self._ctx.client(target.ip_address).launch_app(
            str(app_id), {k: str(v) for k, v in (params or {}).items()}
        )
        return {"success": True, "message": f"Launched app {app_id} on {target.name}"}

    @device_route
    async def get_info(self, request: RouteRequest, target: DeviceTarget) -> Result:
        info = await self._ctx.client(target.ip_address).get_device_info()
        return {"success": True, "info": info.as_dict()}

    @device_route
    async def get_access(self, request: RouteRequest, target: DeviceTarget) -> Result:
        access = await self._ctx.client(target.ip_address).check_mobile_control_access()
        return {"success": True, "access": access.as_dict()}

    @device_route
    async def keypress(self, request: RouteRequest, target: DeviceTarget) -> Result:
        key = request.params["key"]
        await self._ctx.client(target.ip_address).keypress(key)
        return {"success": True, "message": f"Sent {key} to {target.name}"}

    @device_route
    async def launch(self, request: RouteRequest, target: DeviceTarget) -> Result:
        app_id = request.params["appId"]
        await self._ctx.client(target.ip_address).launch_app(app_id, dict(request.query))
        return {"success": True, "message": f"Launched app {app_id} on {target.name}"}

    @device_route
    async def power_on(self, request: RouteRequest, target: DeviceTarget) -> Result:
        await self._ctx.client(target.ip_address).power_on()
        return {"success": True, "message": f"Powered on {target.name}"}

    @device_route
    async def power_off(self, request: RouteRequest, target: DeviceTarget) -> Result:
        await self._ctx.client(target.ip_address).power_off()
        return {"success": True, "message": f"Powered off {target.name}"}

    # ------------------------------------------------------------------
    # Local table management
    # ------------------------------------------------------------------

    async def _local_device(self, device_id: str) -> DeviceRecord | None:
        for candidate_id in lookup_ids(device_id):
            record = await self._ctx.store.get_device(candidate_id)
            if record is not None:
                return record
        return None

    async def add_device(self, request: RouteRequest) -> Result:
        ip = request.body.get("ip_address")
        if not ip:
            return fail("IP address required", 400)
        try:
            ip = str(ipaddress.ip_address(str(ip).strip()))
        except ValueError:
            return fail(f"Invalid IP address: {ip}", 400)

        if await self._ctx.store.get_device_by_ip(ip) is not None:
            return fail("Device already registered", 409)

        try:
            info = await self._ctx.client(ip).get_device_info()
        except EcpError as exc:
            return fail(f"Cannot reach device: {exc}", 400)

        if "roku" not in (info.vendor_name or "").lower():
            return fail("Device is not a Roku", 400)

        resolution = await IdentityResolver(self._ctx).apply(Candidate(ip=ip), info)
        return {"success": True, "device": resolution.record.model_dump(mode="json")}

    async def remove_device(self, request: RouteRequest) -> Result:
        record = await self._local_device(request.params["id"])
        if record is None:
            return fail("Device not found", 404)

        await self._ctx.store.delete_device(record.device_id)
        await self._ctx.api.unregister_device(record.device_id)
        await self._ctx.api.broadcast(EventType.ROKU_DEVICE_REMOVED, {"deviceId": record.device_id})
        logger.info("Removed Roku %s", record.name)
        return {"success": True, "message": f"Removed {record.name}"}

    async def poll(self, request: RouteRequest) -> Result:
        record = await self._local_device(request.params["id"])
        if record is None:
            return fail("Device not found", 404)

        await self._ctx.api.event_bus.emit(EventType.POLLING_POLL_NOW, {"deviceId": record.device_id})
        refreshed = await self._ctx.store.get_device(record.device_id)
        return {"success": True, "device": (refreshed or record).model_dump(mode="json")}

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_settings(self, request: RouteRequest) -> Result:
        config = await self._ctx.api.get_config()
        return {"success": True, "settings": {**DEFAULT_EXTENSION_SETTINGS, **config}}

    async def put_settings(self, request: RouteRequest) -> Result:
        existing = await self._ctx.api.get_config()
        merged = {**existing, **request.body}
        await self._ctx.api.set_config(merged)
        apply_log_level(merged.get("log_level"))
        return {"success": True, "settings": {**DEFAULT_EXTENSION_SETTINGS, **merged}}
