"""Integration tests for the SQLite host: registry, entity states, config."""

import json

import pytest

from roku_integration.host.base import DeviceDescriptor, EntityUpdate
from roku_integration.host.events import EventType


def _descriptor(**overrides):
    data = {
        "device_id": "roku:X1",
        "name": "Living Room",
        "type": "roku",
        "extension_source": "roku-integration",
        "ip_address": "192.168.1.50",
        "model": "Roku Ultra",
        "manufacturer": "Roku",
        "serial_number": "X1",
        "capabilities": ["power", "apps"],
        "metadata": {"serial_number": "X1"},
    }
    data.update(overrides)
    return DeviceDescriptor(**data)


async def _registry_ids(db):
    cursor = await db.execute("SELECT id FROM device_registry ORDER BY id")
    return [row[0] for row in await cursor.fetchall()]


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegisterDevice:
    @pytest.mark.asyncio
    async def test_insert_publishes_registered(self, host, event_bus):
        assert await host.register_device(_descriptor()) is True

        row = await host.get_registry_device("roku:X1")
        assert row["name"] == "Living Room"
        assert row["capabilities"] == ["power", "apps"]
        assert row["metadata"] == {"serial_number": "X1"}
        assert row["online"] is False
        assert row["discovered_at"]
        assert await event_bus.log.count(EventType.DEVICE_REGISTERED) == 1

    @pytest.mark.asyncio
    async def test_identical_register_writes_nothing(self, host, event_bus):
        await host.register_device(_descriptor())
        before = len(await event_bus.replay(0))

        assert await host.register_device(_descriptor()) is False
        assert len(await event_bus.replay(0)) == before

    @pytest.mark.asyncio
    async def test_change_publishes_updated(self, host, event_bus):
        await host.register_device(_descriptor())

        assert await host.register_device(_descriptor(ip_address="192.168.1.77")) is True

        row = await host.get_registry_device("roku:X1")
        assert row["ip_address"] == "192.168.1.77"
        events = [e for e in await event_bus.replay(0) if e["event_type"] == EventType.DEVICE_UPDATED]
        assert len(events) == 1
        assert events[0]["payload"]["changed"] == ["ip_address"]

    @pytest.mark.asyncio
    async def test_mac_kept_when_descriptor_has_none(self, host):
        await host.register_device(_descriptor(mac_address="AA:BB:CC:DD:EE:FF"))
        assert await host.register_device(_descriptor(mac_address=None)) is False
        assert (await host.get_registry_device("roku:X1"))["mac_address"] == "AA:BB:CC:DD:EE:FF"

    @pytest.mark.asyncio
    async def test_previous_id_renames_in_place(self, host, db):
        await host.register_device(_descriptor(device_id="roku-X1"))
        await host.upsert_entity_state("roku-X1", EntityUpdate("media_player.living_room", "on"))

        assert await host.register_device(_descriptor(previous_id="roku-X1")) is True

        assert await _registry_ids(db) == ["roku:X1"]
        cursor = await db.execute("SELECT device_id FROM entity_states")
        assert [row[0] for row in await cursor.fetchall()] == ["roku:X1"]

    @pytest.mark.asyncio
    async def test_previous_id_dropped_when_both_exist(self, host, db):
        await host.register_device(_descriptor(device_id="roku-X1"))
        await host.register_device(_descriptor())

        await host.register_device(_descriptor(previous_id="roku-X1"))

        assert await _registry_ids(db) == ["roku:X1"]

    @pytest.mark.asyncio
    async def test_list_by_type(self, host):
        await host.register_device(_descriptor())
        await host.register_device(_descriptor(device_id="hue:1", type="light"))
        assert [d["id"] for d in await host.list_registry_devices("roku")] == ["roku:X1"]
        assert len(await host.list_registry_devices()) == 2


class TestUnregisterDevice:
    @pytest.mark.asyncio
    async def test_removes_registry_and_entity_rows(self, host, db, event_bus):
        await host.register_device(_descriptor())
        await host.upsert_entity_state("roku:X1", EntityUpdate("media_player.living_room", "on"))

        await host.unregister_device("roku:X1")

        assert await host.get_registry_device("roku:X1") is None
        cursor = await db.execute("SELECT COUNT(*) FROM entity_states")
        assert (await cursor.fetchone())[0] == 0
        assert await event_bus.log.count(EventType.DEVICE_UNREGISTERED) == 1

    @pytest.mark.asyncio
    async def test_unknown_device_publishes_nothing(self, host, event_bus):
        await host.unregister_device("roku:nope")
        assert await event_bus.log.count(EventType.DEVICE_UNREGISTERED) == 0


# ---------------------------------------------------------------------------
# Poll bookkeeping
# ---------------------------------------------------------------------------


class TestPollBookkeeping:
    @pytest.mark.asyncio
    async def test_success_brings_device_online(self, host, event_bus):
        await host.register_device(_descriptor())
        await host.record_poll_success("roku:X1")

        row = await host.get_registry_device("roku:X1")
        assert row["online"] is True
        assert await event_bus.log.count(EventType.DEVICE_ONLINE) == 1

        await host.record_poll_success("roku:X1")
        assert await event_bus.log.count(EventType.DEVICE_ONLINE) == 1

    @pytest.mark.asyncio
    async def test_offline_after_consecutive_failures(self, host, event_bus):
        await host.register_device(_descriptor())
        await host.record_poll_success("roku:X1")

        await host.record_poll_failure("roku:X1", offline_after=3)
        await host.record_poll_failure("roku:X1", offline_after=3)
        assert (await host.get_registry_device("roku:X1"))["online"] is True

        await host.record_poll_failure("roku:X1", offline_after=3)
        row = await host.get_registry_device("roku:X1")
        assert row["online"] is False
        assert row["consecutive_failures"] == 3
        assert await event_bus.log.count(EventType.DEVICE_OFFLINE) == 1

        await host.record_poll_failure("roku:X1", offline_after=3)
        assert await event_bus.log.count(EventType.DEVICE_OFFLINE) == 1


class TestEntityStates:
    @pytest.mark.asyncio
    async def test_state_change_published_once(self, host, db, event_bus):
        update = EntityUpdate("media_player.den", "on", {"power_mode": "PowerOn"}, "Den")
        await host.upsert_entity_state("roku:X1", update)
        await host.upsert_entity_state("roku:X1", update)
        await host.upsert_entity_state("roku:X1", EntityUpdate("media_player.den", "off"))

        events = [e for e in await event_bus.replay(0) if e["event_type"] == EventType.ENTITY_STATE_CHANGED]
        assert [(e["payload"]["old_state"], e["payload"]["new_state"]) for e in events] == [
            (None, "on"),
            ("on", "off"),
        ]
        cursor = await db.execute("SELECT attributes FROM entity_states WHERE entity_id = 'media_player.den'")
        assert json.loads((await cursor.fetchone())[0]) == {}


class TestExtensionConfig:
    @pytest.mark.asyncio
    async def test_round_trip(self, api):
        assert await api.get_config() == {}
        await api.set_config({"log_level": "debug", "favorites": ["12"]})
        await api.set_config({"log_level": "info"})
        assert await api.get_config() == {"favorites": ["12"], "log_level": "info"}

    @pytest.mark.asyncio
    async def test_scoped_per_extension(self, host, api):
        await api.set_config({"log_level": "debug"})
        assert await host.api_for("other").get_config() == {}


# ---------------------------------------------------------------------------
# Extension API surfaces
# ---------------------------------------------------------------------------


class TestExtensionApi:
    def test_unknown_model(self, api):
        with pytest.raises(KeyError):
            api.model("missing")

    def test_route_method_validated(self, api):
        async def handler(request):
            return {"success": True}

        with pytest.raises(ValueError):
            api.register_route("TRACE", "/x", handler)

    def test_route_replaced_on_reregister(self, host, api):
        async def first(request):
            return {"success": True}

        async def second(request):
            return {"success": True}

        api.register_route("get", "/x", first)
        api.register_route("GET", "/x", second)
        assert [r.handler for r in host.routes] == [second]

    @pytest.mark.asyncio
    async def test_query_decodes_registry_json(self, host, api):
        await host.register_device(_descriptor())
        rows = await api.query("device_registry").where("device_type", "=", "roku").get()
        assert rows[0]["capabilities"] == ["power", "apps"]
        assert rows[0]["online"] is False

    @pytest.mark.asyncio
    async def test_broadcast_tags_source(self, api, event_bus):
        await api.broadcast(EventType.ROKU_DEVICE_REMOVED, {"deviceId": "roku:X1"})
        events = await event_bus.replay(0)
        assert events[-1]["source_id"] == "roku-integration"
