"""Identity resolution for discovered and manually added Rokus.

A candidate is matched against the local table by the most stable
identifier available: serial number, then MAC address, then IP address.
The winning record is refreshed in place; an unmatched candidate becomes
a new record anchored by its serial.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Sequence

from roku_integration.context import PluginContext
from roku_integration.ecp.client import DeviceInfo
from roku_integration.host.events import EventType
from roku_integration.identity import DeviceId, mac_match_key
from roku_integration.models import Candidate, DeviceRecord, DeviceStatus, utcnow_iso

logger = logging.getLogger(__name__)


class MatchTier(str, enum.Enum):
    SERIAL = "serial"
    MAC = "mac"
    IP = "ip"


@dataclass(frozen=True)
class Match:
    record: DeviceRecord
    tier: MatchTier


def match_device(
    records: Sequence[DeviceRecord],
    serial: str | None,
    mac: str | None,
    ip: str,
) -> Match | None:
    """Return the best known record for a sighting, or ``None`` for a new device.

    An address shared by several records resolves to the first of them.
    """
    if serial:
        for record in records:
            if record.serial_number == serial:
                return Match(record, MatchTier.SERIAL)

    mac_key = mac_match_key(mac)
    if mac_key:
        for record in records:
            if mac_match_key(record.mac_address) == mac_key:
                return Match(record, MatchTier.MAC)

    on_ip = [r for r in records if r.ip_address == ip]
    if len(on_ip) > 1:
        logger.warning(
            "%d Roku records share %s, using %s", len(on_ip), ip, on_ip[0].device_id
        )
    if on_ip:
        return Match(on_ip[0], MatchTier.IP)
    return None


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one verified sighting."""

    record: DeviceRecord
    created: bool = False
    ip_changed: bool = False
    tier: MatchTier | None = None


def new_record(info: DeviceInfo, ip: str, mac: str | None) -> DeviceRecord:
    """Full local record for a device seen for the first time."""
    device_id = DeviceId.for_device(info.serial_number, ip)
    return DeviceRecord(
        device_id=device_id.canonical,
        ip_address=ip,
        name=info.friendly_device_name or f"Roku {info.model_name or ''}".strip(),
        model=info.model_name,
        serial_number=info.serial_number,
        software_version=info.software_version,
        power_mode=info.power_mode,
        status=DeviceStatus.ONLINE,
        metadata={
            "modelNumber": info.model_number,
            "vendorName": info.vendor_name,
            "isTv": info.is_tv,
            "isStick": info.is_stick,
            "mac_address": mac_match_key(mac),
        },
        last_seen_at=utcnow_iso(),
    )


class IdentityResolver:
    """Resolve verified sightings against the local table and apply them."""

    def __init__(self, ctx: PluginContext) -> None:
        self._ctx = ctx

    async def match(self, serial: str | None, mac: str | None, ip: str) -> Match | None:
        records = await self._ctx.store.get_all_devices()
        match = match_device(records, serial, mac, ip)
        if match is not None:
            logger.debug("Matched Roku %s by %s", match.record.device_id, match.tier.value)
        return match

    async def resolve(self, serial: str | None, mac: str | None, ip: str) -> DeviceRecord | None:
        """Best known record for a sighting, ``None`` for a brand-new device."""
        match = await self.match(serial, mac, ip)
        return match.record if match else None

    async def apply(self, candidate: Candidate, info: DeviceInfo) -> Resolution:
        """Resolve a verified candidate and persist the sighting.

        New devices are created, registered and announced once with
        ``roku:device-added``. Known devices that moved are updated,
        re-registered and announced once with ``roku:ip-changed``.
        """
        match = await self.match(info.serial_number, candidate.mac, candidate.ip)
        if match is None:
            return await self._create(candidate, info)

        existing = match.record
        if existing.ip_address != candidate.ip:
            updated = await self._move(existing, candidate)
            return Resolution(updated, ip_changed=True, tier=match.tier)

        await self._ctx.store.update_device_status(
            existing.device_id,
            {"status": DeviceStatus.ONLINE, "last_seen_at": utcnow_iso()},
        )
        return Resolution(existing, tier=match.tier)

    async def _create(self, candidate: Candidate, info: DeviceInfo) -> Resolution:
        record = await self._ctx.store.create_device(new_record(info, candidate.ip, candidate.mac))
        await self._ctx.api.register_device(self._ctx.descriptor_for(record))
        logger.info("Registered new Roku %s at %s", record.name, candidate.ip)
        await self._ctx.api.broadcast(
            EventType.ROKU_DEVICE_ADDED,
            {"device": record.model_dump(mode="json", exclude={"id"})},
        )
        return Resolution(record, created=True)

    async def _move(self, existing: DeviceRecord, candidate: Candidate) -> DeviceRecord:
        old_ip = existing.ip_address
        now = utcnow_iso()
        logger.info("Roku %s moved: %s -> %s", existing.name, old_ip, candidate.ip)

        metadata = {
            **existing.metadata,
            "mac_address": mac_match_key(candidate.mac) or existing.mac_address,
            "previous_ip": old_ip,
            "ip_changed_at": now,
        }
        await self._ctx.store.update_device(
            existing.device_id,
            {
                "ip_address": candidate.ip,
                "status": DeviceStatus.ONLINE,
                "last_seen_at": now,
                "metadata": metadata,
            },
        )
        updated = existing.model_copy(update={
            "ip_address": candidate.ip,
            "status": DeviceStatus.ONLINE,
            "last_seen_at": now,
            "metadata": metadata,
        })
        await self._ctx.api.register_device(self._ctx.descriptor_for(updated))
        await self._ctx.api.broadcast(
            EventType.ROKU_IP_CHANGED,
            {
                "deviceId": existing.device_id,
                "name": existing.name,
                "oldIp": old_ip,
                "newIp": candidate.ip,
            },
        )
        return updated
