"""Pydantic domain models for the Roku integration.

Rows come back from the host as plain dicts; these models give them
types at the plugin boundary. All models accept ``None`` for JSON
columns and coerce them to empty containers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


def utcnow_iso() -> str:
    """Current UTC time in the ISO format used for every stored timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class DeviceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class PowerState(str, Enum):
    ON = "on"
    STANDBY = "standby"
    OFF = "off"
    UNKNOWN = "unknown"


class MediaState(str, Enum):
    ON = "on"
    OFF = "off"
    IDLE = "idle"
    PLAYING = "playing"


# ---------------------------------------------------------------------------
# Candidate (transient)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Candidate:
    """A network-observed device awaiting identity verification and claim."""

    ip: str
    mac: str | None = None

    @classmethod
    def from_event(cls, raw: dict[str, Any]) -> Candidate:
        """Accept both ``ip``/``mac`` and ``ip_address``/``mac_address`` spellings."""
        ip = raw.get("ip") or raw.get("ip_address")
        if not ip:
            raise ValueError("Candidate is missing an IP address")
        return cls(ip=ip, mac=raw.get("mac") or raw.get("mac_address"))


# ---------------------------------------------------------------------------
# Stored rows
# ---------------------------------------------------------------------------

class _Row(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    @field_validator("metadata", "attributes", mode="before", check_fields=False)
    @classmethod
    def _none_to_dict(cls, value: Any) -> Any:
        return {} if value is None else value


class DeviceRecord(_Row):
    """A row of the plugin-owned ``roku_devices`` table."""

    id: int | None = None
    device_id: str
    ip_address: str
    name: str
    model: str | None = None
    serial_number: str | None = None
    software_version: str | None = None
    power_mode: str | None = None
    status: DeviceStatus = DeviceStatus.UNKNOWN
    metadata: dict[str, Any] = {}
    last_seen_at: str | None = None
    created_at: str | None = None

    @property
    def mac_address(self) -> str | None:
        return self.metadata.get("mac_address")

    def to_row(self) -> dict[str, Any]:
        """Column dict for inserts (no primary key)."""
        data = self.model_dump(mode="json", exclude={"id"})
        if data.get("created_at") is None:
            data.pop("created_at")
        return data


class RegistryRecord(_Row):
    """A row of the host-owned ``device_registry`` table."""

    id: str
    name: str | None = None
    friendly_name: str | None = None
    device_type: str | None = None
    extension_source: str | None = None
    ip_address: str | None = None
    mac_address: str | None = None
    model: str | None = None
    manufacturer: str | None = None
    serial_number: str | None = None
    firmware_version: str | None = None
    capabilities: list[str] = []
    metadata: dict[str, Any] = {}
    online: bool = False
    consecutive_failures: int = 0
    discovered_at: str | None = None
    last_seen_at: str | None = None

    @field_validator("capabilities", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def display_name(self) -> str:
        return self.friendly_name or self.name or "Unknown Roku"


class EntityStateRow(_Row):
    """A row of the host-owned ``entity_states`` table."""

    entity_id: str
    device_id: str | None = None
    state: str | None = None
    attributes: dict[str, Any] = {}
    friendly_name: str | None = None
    updated_at: str | None = None
