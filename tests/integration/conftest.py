# tests/integration/conftest.py
from __future__ import annotations

from typing import Any

import aiosqlite
import pytest
import pytest_asyncio

from roku_integration import EXTENSION_NAME
from roku_integration.config import Settings
from roku_integration.context import PluginContext
from roku_integration.ecp.client import AccessLevel, App, DeviceInfo, MobileAccess
from roku_integration.ecp.errors import EcpError, EcpUnreachableError
from roku_integration.host.events import EventBus, EventLog
from roku_integration.host.schema import ensure_schema
from roku_integration.host.sqlite_host import Host
from roku_integration.models import DeviceRecord, DeviceStatus
from roku_integration.store import MODEL_NAME, MODEL_SCHEMA, DeviceStore


# ---------------------------------------------------------------------------
# Fake ECP network
# ---------------------------------------------------------------------------


def make_info(
    serial: str | None = "X1",
    name: str | None = "Living Room",
    power_mode: str = "PowerOn",
    vendor: str = "Roku",
    model: str = "Roku Ultra",
) -> DeviceInfo:
    """A device-info document as the client would return it."""
    return DeviceInfo(
        serial_number=serial,
        friendly_device_name=name,
        power_mode=power_mode,
        vendor_name=vendor,
        model_name=model,
        model_number="4800X",
        software_version="12.5.0",
    )


class FakeRokuClient:
    """Stands in for ``RokuClient``; answers from a ``FakeRokuNetwork``."""

    def __init__(self, ip: str, network: FakeRokuNetwork) -> None:
        self.ip = ip
        self._network = network

    def _check(self, call: str, *args: Any) -> None:
        self._network.calls.append((self.ip, call, *args))
        error = self._network.errors.get(self.ip)
        if error is not None:
            raise error
        if self.ip not in self._network.devices:
            raise EcpUnreachableError(f"GET http://{self.ip}:8060/query/device-info failed")

    async def get_device_info(self) -> DeviceInfo:
        self._check("device-info")
        return self._network.devices[self.ip]

    async def get_apps(self) -> list[App]:
        self._check("apps")
        return list(self._network.apps)

    async def get_active_app(self) -> App | None:
        self._check("active-app")
        return self._network.active_apps.get(self.ip)

    async def keypress(self, key: str) -> None:
        self._check("keypress", key)

    async def launch_app(self, app_id: str, params: dict[str, str] | None = None) -> None:
        self._check("launch", app_id, params or {})

    async def power_on(self) -> None:
        self._check("keypress", "PowerOn")

    async def power_off(self) -> None:
        self._check("keypress", "PowerOff")

    async def check_mobile_control_access(self) -> MobileAccess:
        try:
            self._check("access")
        except EcpError:
            return MobileAccess.disabled()
        return MobileAccess(level=AccessLevel.FULL, can_control=True, can_query_apps=True)


class FakeRokuNetwork:
    """Devices keyed by IP. Unknown IPs behave like hosts that do not answer."""

    def __init__(self) -> None:
        self.devices: dict[str, DeviceInfo] = {}
        self.active_apps: dict[str, App | None] = {}
        self.errors: dict[str, EcpError] = {}
        self.apps: list[App] = [
            App(id="12", name="Netflix", version="5.2.1"),
            App(id="837", name="YouTube", version="2.1.0"),
        ]
        self.calls: list[tuple[Any, ...]] = []

    def add(self, ip: str, info: DeviceInfo, active_app: App | None = None) -> None:
        self.devices[ip] = info
        self.active_apps[ip] = active_app

    def move(self, old_ip: str, new_ip: str) -> None:
        self.devices[new_ip] = self.devices.pop(old_ip)
        self.active_apps[new_ip] = self.active_apps.pop(old_ip, None)

    def client(self, ip: str) -> FakeRokuClient:
        return FakeRokuClient(ip, self)


# ---------------------------------------------------------------------------
# Host fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db():
    """Create an in-memory SQLite database with full schema."""
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await ensure_schema(conn)
    yield conn
    await conn.close()


@pytest.fixture
def event_bus(db):
    """Create a real EventBus backed by the test database."""
    return EventBus(EventLog(db))


@pytest.fixture
def host(db, event_bus):
    return Host(db, event_bus)


@pytest.fixture
def api(host):
    return host.api_for(EXTENSION_NAME)


@pytest.fixture
def network():
    return FakeRokuNetwork()


@pytest.fixture
def info_factory():
    return make_info


@pytest.fixture
def settings():
    return Settings()


@pytest_asyncio.fixture
async def ctx(api, network, settings):
    """Plugin context with the device table created and fake ECP clients."""
    await api.register_model(MODEL_NAME, MODEL_SCHEMA)
    await api.model(MODEL_NAME).create_table()
    return PluginContext(
        api=api,
        store=DeviceStore(api),
        settings=settings,
        client_factory=network.client,
    )


@pytest.fixture
def seed_device(ctx):
    """Insert a local Roku record. Returns the stored record."""

    async def _seed(
        device_id: str = "roku:X1",
        ip_address: str = "192.168.1.50",
        name: str = "Living Room",
        serial_number: str | None = "X1",
        **extra: Any,
    ) -> DeviceRecord:
        record = DeviceRecord(
            device_id=device_id,
            ip_address=ip_address,
            name=name,
            model=extra.pop("model", "Roku Ultra"),
            serial_number=serial_number,
            software_version=extra.pop("software_version", "12.5.0"),
            power_mode=extra.pop("power_mode", "PowerOn"),
            status=extra.pop("status", DeviceStatus.ONLINE),
            metadata=extra.pop("metadata", {"vendorName": "Roku", "mac_address": None}),
            **extra,
        )
        return await ctx.store.create_device(record)

    return _seed
