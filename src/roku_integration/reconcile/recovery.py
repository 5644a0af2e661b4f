"""Rebuild the local device table from surviving entity states.

When ``roku_devices`` is empty but entity-state rows for Rokus remain,
each distinct entity slug is traced back to an address through the device
registry and re-verified over ECP. Only devices that answer are recreated;
nothing is inferred for the rest.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from roku_integration import DEVICE_TYPE
from roku_integration.context import PluginContext
from roku_integration.ecp.errors import EcpError
from roku_integration.host.base import ExtensionAPI
from roku_integration.identity import DeviceId, lookup_ids, normalize_device_id, slugify, title_from_slug
from roku_integration.models import (
    DeviceRecord,
    DeviceStatus,
    EntityStateRow,
    RegistryRecord,
    utcnow_iso,
)

logger = logging.getLogger(__name__)

ENTITY_DOMAIN = "media_player"
LEGACY_DOMAIN = "roku"


@dataclass(frozen=True)
class OrphanSlug:
    slug: str
    device_id: str | None
    name: str


def collect_orphans(rows: Iterable[EntityStateRow]) -> list[OrphanSlug]:
    """Distinct device slugs among Roku entity rows, first row wins.

    Accepts ``media_player.<slug>`` rows whose attributes say
    ``device_type: roku`` and legacy ``roku.<slug>[.<signal>]`` rows.
    """
    orphans: dict[str, OrphanSlug] = {}
    for row in rows:
        parts = row.entity_id.split(".")
        if len(parts) < 2 or not parts[1]:
            continue
        if parts[0] == LEGACY_DOMAIN:
            pass
        elif parts[0] == ENTITY_DOMAIN and len(parts) == 2:
            if row.attributes.get("device_type") != DEVICE_TYPE:
                continue
        else:
            continue

        slug = parts[1]
        if slug in orphans:
            continue
        name = row.friendly_name or row.attributes.get("friendly_name") or title_from_slug(slug)
        orphans[slug] = OrphanSlug(slug=slug, device_id=row.device_id, name=name)
    return list(orphans.values())


def fuzzy_registry_match(slug: str, records: Iterable[RegistryRecord]) -> RegistryRecord | None:
    """First registry record whose slugified name contains *slug* or vice versa."""
    slug = slug.lower()
    for record in records:
        key = slugify(record.friendly_name or record.name or "")
        if not key:
            continue
        if key in slug or slug in key:
            return record
    return None


async def load_entity_rows(api: ExtensionAPI) -> list[EntityStateRow]:
    """Entity rows that may belong to Rokus (current and legacy naming)."""
    rows: list[dict] = []
    for pattern in (f"{LEGACY_DOMAIN}.%", f"{ENTITY_DOMAIN}.%"):
        rows.extend(await api.query("entity_states").where("entity_id", "LIKE", pattern).get())
    return [EntityStateRow.model_validate(row) for row in rows]


class RecoveryScanner:
    """Recreates local records for Rokus known only from entity states."""

    def __init__(self, ctx: PluginContext) -> None:
        self._ctx = ctx

    async def recover(self) -> list[DeviceRecord]:
        """Recover devices if the local table is empty. Returns what was created."""
        if await self._ctx.store.get_all_devices():
            return []

        rows = await load_entity_rows(self._ctx.api)
        orphans = collect_orphans(rows)
        if not orphans:
            logger.debug("No Roku entity states to recover from")
            return []
        logger.info("Local Roku table empty, attempting recovery of %d devices", len(orphans))

        recovered: list[DeviceRecord] = []
        seen: set[str] = set()
        for orphan in orphans:
            try:
                record = await self._recover_one(orphan, seen)
            except Exception:
                logger.warning("Recovery of %s failed", orphan.slug, exc_info=True)
                continue
            if record is not None:
                recovered.append(record)

        logger.info("Recovered %d of %d Roku devices", len(recovered), len(orphans))
        return recovered

    async def _find_registry_record(self, orphan: OrphanSlug) -> RegistryRecord | None:
        if orphan.device_id:
            for candidate_id in lookup_ids(orphan.device_id):
                rows = await self._ctx.api.query("device_registry").where("id", "=", candidate_id).get()
                if rows and rows[0].get("ip_address"):
                    return RegistryRecord.model_validate(rows[0])

        rows = await self._ctx.api.query("device_registry").where("device_type", "=", DEVICE_TYPE).get()
        return fuzzy_registry_match(
            orphan.slug,
            (RegistryRecord.model_validate(row) for row in rows if row.get("ip_address")),
        )

    async def _recover_one(self, orphan: OrphanSlug, seen: set[str]) -> DeviceRecord | None:
        registry = await self._find_registry_record(orphan)
        if registry is None or not registry.ip_address:
            logger.debug("No address for %s, needs rediscovery", orphan.slug)
            return None

        try:
            info = await self._ctx.client(registry.ip_address).get_device_info()
        except EcpError as exc:
            logger.debug("Could not reach %s at %s: %s", orphan.slug, registry.ip_address, exc)
            return None

        if info.serial_number:
            device_id = DeviceId.from_serial(info.serial_number).canonical
        else:
            device_id = normalize_device_id(orphan.device_id) or DeviceId.from_ip(registry.ip_address).canonical
        if device_id in seen:
            logger.debug("%s resolves to already recovered %s", orphan.slug, device_id)
            return None
        seen.add(device_id)

        record = DeviceRecord(
            device_id=device_id,
            ip_address=registry.ip_address,
            name=info.friendly_device_name or orphan.name,
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
                "mac_address": registry.mac_address,
            },
            last_seen_at=utcnow_iso(),
        )
        record = await self._ctx.store.create_device(record)
        logger.info("Recovered Roku %s at %s", record.name, record.ip_address)
        return record
