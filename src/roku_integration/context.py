"""Per-install plugin state.

``PluginContext`` is built in ``init`` and dropped on uninstall. Every
handler receives it explicitly; nothing is kept in module globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from roku_integration import DEVICE_TYPE, EXTENSION_NAME
from roku_integration.config import Settings
from roku_integration.ecp.client import RokuClient
from roku_integration.host.base import DeviceDescriptor, ExtensionAPI
from roku_integration.models import DeviceRecord
from roku_integration.store import DeviceStore

ClientFactory = Callable[[str], RokuClient]

CAPABILITIES = ["power", "apps", "remote", "volume"]
DEFAULT_MANUFACTURER = "Roku"


def default_client_factory(settings: Settings) -> ClientFactory:
    """Factory building clients with the configured ECP port, timeout and agent."""

    def factory(ip: str) -> RokuClient:
        return RokuClient(
            ip,
            port=settings.ecp.port,
            timeout=settings.ecp.timeout_seconds,
            user_agent=settings.ecp.user_agent,
        )

    return factory


@dataclass
class PluginContext:
    api: ExtensionAPI
    store: DeviceStore
    settings: Settings = field(default_factory=Settings)
    client_factory: ClientFactory | None = None

    def client(self, ip: str) -> RokuClient:
        factory = self.client_factory or default_client_factory(self.settings)
        return factory(ip)

    def descriptor_for(
        self,
        record: DeviceRecord,
        *,
        device_id: str | None = None,
        serial_number: str | None = None,
        base_metadata: dict[str, Any] | None = None,
        previous_id: str | None = None,
    ) -> DeviceDescriptor:
        """Registry descriptor for a local record.

        Registry metadata is *base_metadata* (usually the current registry
        row's) overlaid with the local metadata, the serial and the raw
        power mode.
        """
        serial = record.serial_number or serial_number
        metadata = {
            **(base_metadata or {}),
            **record.metadata,
            "serial_number": serial,
            "power_mode": record.power_mode,
        }
        return DeviceDescriptor(
            device_id=device_id or record.device_id,
            name=record.name,
            type=DEVICE_TYPE,
            extension_source=EXTENSION_NAME,
            ip_address=record.ip_address,
            mac_address=record.mac_address,
            model=record.model or "Unknown",
            manufacturer=record.metadata.get("vendorName") or DEFAULT_MANUFACTURER,
            firmware_version=record.software_version,
            serial_number=serial,
            capabilities=list(CAPABILITIES),
            metadata=metadata,
            previous_id=previous_id,
        )
