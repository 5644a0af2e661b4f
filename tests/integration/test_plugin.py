"""Integration tests for the extension lifecycle and the HTTP surface."""

import logging
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import pytest_asyncio

from roku_integration.host.events import EventType
from roku_integration.host.http import create_app
from roku_integration.models import DeviceRecord
from roku_integration.plugin import RokuIntegration
from roku_integration.store import DeviceStore

BASE = "/api/extensions/roku-integration"


@pytest.fixture
def restore_log_level():
    logger = logging.getLogger("roku_integration")
    original = logger.level
    yield
    logger.setLevel(original)


@pytest_asyncio.fixture
async def plugin(api, network, restore_log_level):
    extension = RokuIntegration(client_factory=network.client)
    await extension.on_install(api)
    await extension.init(api)
    return extension


@pytest_asyncio.fixture
async def http(host, plugin):
    app = create_app(host, version="1.0.0")
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_init_registers_surfaces(self, plugin, host, event_bus):
        assert "roku" in host.poll_adapters
        assert "roku" in host.inspector_panels
        assert len(host.routes) == 17
        assert set(host.actions) == {"power_on", "power_off", "launch_app", "send_keypress"}
        assert await event_bus.log.count(EventType.DISCOVERY_REGISTER_INTEREST) == 1
        assert plugin.ctx is not None

    @pytest.mark.asyncio
    async def test_init_syncs_existing_devices(self, api, host, network, restore_log_level):
        extension = RokuIntegration(client_factory=network.client)
        await extension.on_install(api)
        await DeviceStore(api).create_device(
            DeviceRecord(device_id="roku-X1", ip_address="192.168.1.50", name="Den", serial_number="X1")
        )

        await extension.init(api)

        assert await host.get_registry_device("roku:X1") is not None
        assert (await DeviceStore(api).get_device("roku:X1")) is not None

    @pytest.mark.asyncio
    async def test_init_applies_stored_log_level(self, api, network, restore_log_level):
        await api.set_config({"log_level": "error"})
        extension = RokuIntegration(client_factory=network.client)
        await extension.on_install(api)
        await extension.init(api)
        assert logging.getLogger("roku_integration").level == logging.ERROR

    @pytest.mark.asyncio
    async def test_reconciliation_failure_does_not_abort_init(self, api, host, network, restore_log_level):
        extension = RokuIntegration(client_factory=network.client)
        await extension.on_install(api)
        with patch(
            "roku_integration.plugin.RegistrySynchronizer.sync",
            AsyncMock(side_effect=RuntimeError("db locked")),
        ):
            await extension.init(api)
        assert len(host.routes) == 17

    @pytest.mark.asyncio
    async def test_disable_and_enable(self, plugin, host):
        await plugin.on_disable()
        assert "roku" not in host.poll_adapters

        await plugin.on_enable()
        assert "roku" in host.poll_adapters

    @pytest.mark.asyncio
    async def test_uninstall(self, plugin, host, event_bus):
        await plugin.on_uninstall()

        assert "roku" not in host.poll_adapters
        assert plugin.ctx is None
        assert await event_bus.log.count(EventType.DISCOVERY_UNREGISTER_HANDLER) == 1

    @pytest.mark.asyncio
    async def test_hooks_before_init_are_noops(self):
        extension = RokuIntegration()
        await extension.on_disable()
        await extension.on_enable()
        await extension.on_uninstall()
        assert extension.ctx is None


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


class TestHttp:
    @pytest.mark.asyncio
    async def test_health(self, http):
        resp = await http.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["extensions"] == ["roku-integration"]

    @pytest.mark.asyncio
    async def test_add_then_list(self, http, network, info_factory):
        network.add("192.168.1.50", info_factory())

        resp = await http.post(f"{BASE}/devices/add", json={"ip_address": "192.168.1.50"})
        assert resp.status_code == 200
        assert resp.json()["device"]["device_id"] == "roku:X1"

        resp = await http.get(f"{BASE}/devices")
        assert [d["id"] for d in resp.json()["devices"]] == ["roku:X1"]

        resp = await http.get("/api/devices")
        assert resp.json()[0]["device_type"] == "roku"

    @pytest.mark.asyncio
    async def test_failure_status_propagates(self, http):
        resp = await http.get(f"{BASE}/devices/roku:nope")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Device not found", "status": 404}

    @pytest.mark.asyncio
    async def test_invalid_json_body(self, http):
        resp = await http.post(
            f"{BASE}/devices/add",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_keypress(self, http, network, info_factory):
        network.add("192.168.1.50", info_factory())
        await http.post(f"{BASE}/devices/add", json={"ip_address": "192.168.1.50"})

        resp = await http.post(f"{BASE}/devices/roku:X1/keypress/Select")

        assert resp.status_code == 200
        assert ("192.168.1.50", "keypress", "Select") in network.calls

    @pytest.mark.asyncio
    async def test_actions(self, http, network, info_factory):
        resp = await http.get("/api/actions")
        assert {a["key"] for a in resp.json()} == {"power_on", "power_off", "launch_app", "send_keypress"}

        resp = await http.post("/api/actions/power_on", json={"params": {}})
        assert resp.status_code == 400

        resp = await http.post("/api/actions/power_on", json={"params": {"device_id": "roku:nope"}})
        assert resp.status_code == 404

        resp = await http.post("/api/actions/dance", json={})
        assert resp.status_code == 404

        network.add("192.168.1.50", info_factory())
        await http.post(f"{BASE}/devices/add", json={"ip_address": "192.168.1.50"})
        resp = await http.post("/api/actions/power_on", json={"params": {"device_id": "roku:X1"}})
        assert resp.json() == {"success": True, "device_name": "Living Room"}

    @pytest.mark.asyncio
    async def test_inspector(self, http, network, info_factory):
        network.add("192.168.1.50", info_factory())
        await http.post(f"{BASE}/devices/add", json={"ip_address": "192.168.1.50"})

        resp = await http.get("/api/inspector/roku/roku:X1")

        assert resp.status_code == 200
        tabs = {tab["id"]: tab for tab in resp.json()["tabs"]}
        assert tabs["info"]["data"]["serialNumber"] == "X1"
        assert tabs["remote"]["component"] == "roku-remote"

    @pytest.mark.asyncio
    async def test_settings_round_trip(self, http):
        resp = await http.put(f"{BASE}/settings", json={"log_level": "info"})
        assert resp.json()["settings"]["log_level"] == "info"

        resp = await http.get(f"{BASE}/settings")
        assert resp.json()["settings"] == {"log_level": "info"}
