"""Integration tests for the extension route handlers."""

import logging

import pytest

from roku_integration.ecp.errors import EcpForbiddenError, EcpTimeoutError
from roku_integration.host.base import DeviceDescriptor, EntityUpdate, RouteRequest
from roku_integration.host.events import EventType
from roku_integration.routes import RokuRoutes


@pytest.fixture
def routes(ctx):
    return RokuRoutes(ctx)


def _req(params=None, query=None, body=None):
    return RouteRequest(params=params or {}, query=query or {}, body=body or {})


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegister:
    def test_all_routes_registered(self, routes, api, host):
        routes.register(api)
        registered = {(r.method, r.path) for r in host.routes}
        assert ("GET", "/devices") in registered
        assert ("POST", "/devices/add") in registered
        assert ("POST", "/devices/:id/keypress/:key") in registered
        assert ("PUT", "/settings") in registered
        assert len(registered) == 17


# ---------------------------------------------------------------------------
# Manual add / remove
# ---------------------------------------------------------------------------


class TestAddDevice:
    @pytest.mark.asyncio
    async def test_requires_ip(self, routes):
        result = await routes.add_device(_req())
        assert result == {"success": False, "error": "IP address required", "status": 400}

    @pytest.mark.asyncio
    async def test_rejects_invalid_ip(self, routes):
        result = await routes.add_device(_req(body={"ip_address": "not-an-ip"}))
        assert result["status"] == 400

    @pytest.mark.asyncio
    async def test_unreachable(self, routes):
        result = await routes.add_device(_req(body={"ip_address": "192.168.1.99"}))
        assert result["status"] == 400
        assert result["error"].startswith("Cannot reach device")

    @pytest.mark.asyncio
    async def test_rejects_non_roku(self, routes, network, info_factory):
        network.add("192.168.1.50", info_factory(vendor="Acme"))
        result = await routes.add_device(_req(body={"ip_address": "192.168.1.50"}))
        assert result == {"success": False, "error": "Device is not a Roku", "status": 400}

    @pytest.mark.asyncio
    async def test_adds_and_registers(self, routes, ctx, host, event_bus, network, info_factory):
        network.add("192.168.1.50", info_factory(vendor="Roku Inc."))

        result = await routes.add_device(_req(body={"ip_address": " 192.168.1.50 "}))

        assert result["success"] is True
        assert result["device"]["device_id"] == "roku:X1"
        assert await host.get_registry_device("roku:X1") is not None
        assert await event_bus.log.count(EventType.ROKU_DEVICE_ADDED) == 1

    @pytest.mark.asyncio
    async def test_duplicate_ip(self, routes, seed_device):
        await seed_device()
        result = await routes.add_device(_req(body={"ip_address": "192.168.1.50"}))
        assert result["status"] == 409


class TestRemoveDevice:
    @pytest.mark.asyncio
    async def test_removes_everywhere(self, routes, ctx, host, event_bus, seed_device):
        await seed_device()
        await host.register_device(ctx.descriptor_for(await ctx.store.get_device("roku:X1")))

        result = await routes.remove_device(_req(params={"id": "roku-X1"}))

        assert result["success"] is True
        assert await ctx.store.get_all_devices() == []
        assert await host.get_registry_device("roku:X1") is None
        events = [e for e in await event_bus.replay(0) if e["event_type"] == EventType.ROKU_DEVICE_REMOVED]
        assert [e["payload"] for e in events] == [{"deviceId": "roku:X1"}]

    @pytest.mark.asyncio
    async def test_unknown(self, routes):
        result = await routes.remove_device(_req(params={"id": "roku:nope"}))
        assert result["status"] == 404


# ---------------------------------------------------------------------------
# Listing and lookup
# ---------------------------------------------------------------------------


class TestListing:
    @pytest.mark.asyncio
    async def test_merged_list(self, routes, ctx, host, seed_device):
        await seed_device()
        await host.register_device(ctx.descriptor_for(await ctx.store.get_device("roku:X1")))
        await host.upsert_entity_state(
            "roku:X1",
            EntityUpdate("media_player.living_room", "playing",
                         {"device_type": "roku", "power_state": "on", "active_app": "Netflix"}),
        )
        await host.upsert_entity_state(
            "roku-X7", EntityUpdate("roku.attic.power", "Ready", {"raw_power_mode": "Ready"})
        )

        result = await routes.list_devices(_req())

        assert result["success"] is True
        by_id = {d["id"]: d for d in result["devices"]}
        assert by_id["roku:X1"]["active_app"] == "Netflix"
        assert by_id["attic"]["source"] == "entity"

    @pytest.mark.asyncio
    async def test_get_device_by_legacy_id(self, routes, seed_device):
        await seed_device()
        result = await routes.get_device(_req(params={"id": "roku-X1"}))
        assert result["device"]["device_id"] == "roku:X1"

    @pytest.mark.asyncio
    async def test_get_device_from_registry_only(self, routes, host):
        await host.register_device(DeviceDescriptor(
            device_id="roku:X3", name="Bedroom", type="roku",
            extension_source="roku-integration", ip_address="192.168.1.70",
        ))
        result = await routes.get_device(_req(params={"id": "roku:X3"}))
        assert result["device"] == {"device_id": "roku:X3", "ip_address": "192.168.1.70", "name": "Bedroom"}

    @pytest.mark.asyncio
    async def test_get_device_unknown(self, routes):
        assert (await routes.get_device(_req(params={"id": "roku:nope"})))["status"] == 404

    @pytest.mark.asyncio
    async def test_mobile_access_all(self, routes, host, network, info_factory):
        for serial, ip in (("X1", "192.168.1.50"), ("X2", "192.168.1.51")):
            await host.register_device(DeviceDescriptor(
                device_id=f"roku:{serial}", name=serial, type="roku",
                extension_source="roku-integration", ip_address=ip,
            ))
        network.add("192.168.1.50", info_factory())

        result = await routes.mobile_access_all(_req())

        assert result["accessMap"]["roku:X1"]["level"] == "full"
        assert result["accessMap"]["roku:X2"]["level"] == "disabled"


# ---------------------------------------------------------------------------
# Device commands
# ---------------------------------------------------------------------------


class TestDeviceCommands:
    @pytest.mark.asyncio
    async def test_apps(self, routes, network, seed_device, info_factory):
        await seed_device()
        network.add("192.168.1.50", info_factory())
        result = await routes.get_apps(_req(params={"id": "roku:X1"}))
        assert [a["name"] for a in result["apps"]] == ["Netflix", "YouTube"]

    @pytest.mark.asyncio
    async def test_active_app_home(self, routes, network, seed_device, info_factory):
        await seed_device()
        network.add("192.168.1.50", info_factory())
        result = await routes.get_active_app(_req(params={"id": "roku:X1"}))
        assert result == {"success": True, "activeApp": None}

    @pytest.mark.asyncio
    async def test_info(self, routes, network, seed_device, info_factory):
        await seed_device()
        network.add("192.168.1.50", info_factory())
        result = await routes.get_info(_req(params={"id": "roku:X1"}))
        assert result["info"]["serialNumber"] == "X1"

    @pytest.mark.asyncio
    async def test_keypress(self, routes, network, seed_device, info_factory):
        await seed_device()
        network.add("192.168.1.50", info_factory())
        result = await routes.keypress(_req(params={"id": "roku:X1", "key": "Home"}))
        assert result["success"] is True
        assert ("192.168.1.50", "keypress", "Home") in network.calls

    @pytest.mark.asyncio
    async def test_launch_passes_query_params(self, routes, network, seed_device, info_factory):
        await seed_device()
        network.add("192.168.1.50", info_factory())
        await routes.launch(_req(params={"id": "roku:X1", "appId": "12"}, query={"contentId": "abc"}))
        assert ("192.168.1.50", "launch", "12", {"contentId": "abc"}) in network.calls

    @pytest.mark.asyncio
    async def test_set_active_app(self, routes, network, seed_device, info_factory):
        await seed_device()
        network.add("192.168.1.50", info_factory())

        missing = await routes.set_active_app(_req(params={"id": "roku:X1"}))
        assert missing["status"] == 400

        result = await routes.set_active_app(_req(params={"id": "roku:X1"}, body={"app_id": "837"}))
        assert result["success"] is True
        assert ("192.168.1.50", "launch", "837", {}) in network.calls

    @pytest.mark.asyncio
    async def test_power(self, routes, network, seed_device, info_factory):
        await seed_device()
        network.add("192.168.1.50", info_factory())
        await routes.power_on(_req(params={"id": "roku:X1"}))
        await routes.power_off(_req(params={"id": "roku:X1"}))
        keys = [c[2] for c in network.calls if c[1] == "keypress"]
        assert keys == ["PowerOn", "PowerOff"]

    @pytest.mark.asyncio
    async def test_access(self, routes, network, seed_device, info_factory):
        await seed_device()
        network.add("192.168.1.50", info_factory())
        result = await routes.get_access(_req(params={"id": "roku:X1"}))
        assert result["access"]["level"] == "full"

    @pytest.mark.asyncio
    async def test_unknown_device(self, routes):
        result = await routes.keypress(_req(params={"id": "roku:nope", "key": "Home"}))
        assert result["status"] == 404

    @pytest.mark.asyncio
    async def test_device_without_address(self, routes, host):
        await host.register_device(DeviceDescriptor(
            device_id="roku:X4", name="Garage", type="roku", extension_source="roku-integration",
        ))
        result = await routes.keypress(_req(params={"id": "roku:X4", "key": "Home"}))
        assert result["status"] == 409

    @pytest.mark.asyncio
    async def test_timeout_maps_to_504(self, routes, network, seed_device, info_factory):
        await seed_device()
        network.add("192.168.1.50", info_factory())
        network.errors["192.168.1.50"] = EcpTimeoutError("Request timeout")
        result = await routes.keypress(_req(params={"id": "roku:X1", "key": "Home"}))
        assert result["status"] == 504

    @pytest.mark.asyncio
    async def test_unreachable_maps_to_502(self, routes, seed_device):
        await seed_device()
        result = await routes.get_apps(_req(params={"id": "roku:X1"}))
        assert result["status"] == 502

    @pytest.mark.asyncio
    async def test_forbidden_maps_to_403(self, routes, network, seed_device, info_factory):
        await seed_device()
        network.add("192.168.1.50", info_factory())
        network.errors["192.168.1.50"] = EcpForbiddenError(403, "HTTP 403")
        result = await routes.get_apps(_req(params={"id": "roku:X1"}))
        assert result["status"] == 403
        assert "Permissive" in result["error"]


# ---------------------------------------------------------------------------
# Poll and settings
# ---------------------------------------------------------------------------


class TestPollRoute:
    @pytest.mark.asyncio
    async def test_emits_poll_now(self, routes, event_bus, seed_device):
        await seed_device()
        result = await routes.poll(_req(params={"id": "roku:X1"}))
        assert result["device"]["device_id"] == "roku:X1"
        events = [e for e in await event_bus.replay(0) if e["event_type"] == EventType.POLLING_POLL_NOW]
        assert [e["payload"] for e in events] == [{"deviceId": "roku:X1"}]

    @pytest.mark.asyncio
    async def test_unknown(self, routes):
        assert (await routes.poll(_req(params={"id": "roku:nope"})))["status"] == 404


class TestSettings:
    @pytest.mark.asyncio
    async def test_defaults(self, routes):
        assert await routes.get_settings(_req()) == {"success": True, "settings": {"log_level": "warn"}}

    @pytest.mark.asyncio
    async def test_put_merges_and_applies(self, routes, api):
        logger = logging.getLogger("roku_integration")
        original = logger.level
        try:
            await api.set_config({"favorites": ["12"]})
            result = await routes.put_settings(_req(body={"log_level": "debug"}))

            assert result["settings"] == {"log_level": "debug", "favorites": ["12"]}
            assert await api.get_config() == {"log_level": "debug", "favorites": ["12"]}
            assert logger.level == logging.DEBUG
        finally:
            logger.setLevel(original)
