"""Merged device view over the registry, local table and entity states."""

from __future__ import annotations

from typing import Any, Iterable

from roku_integration.identity import lookup_ids, slugify, title_from_slug
from roku_integration.models import (
    DeviceRecord,
    DeviceStatus,
    EntityStateRow,
    PowerState,
    RegistryRecord,
)
from roku_integration.power import interpret_power_state
from roku_integration.reconcile.recovery import ENTITY_DOMAIN, LEGACY_DOMAIN, collect_orphans


def _power_by_key(entity_states: Iterable[EntityStateRow]) -> tuple[dict[str, dict], dict[str, dict]]:
    """Index power data by device id and by slug."""
    by_device: dict[str, dict[str, Any]] = {}
    by_slug: dict[str, dict[str, Any]] = {}
    for row in entity_states:
        parts = row.entity_id.split(".")
        if len(parts) < 2:
            continue
        if parts[0] == ENTITY_DOMAIN and len(parts) == 2:
            entry = {
                "power_mode": row.attributes.get("power_mode"),
                "power_state": row.attributes.get("power_state"),
                "active_app": row.attributes.get("active_app"),
                "state": row.state,
            }
            if row.device_id:
                by_device[row.device_id] = entry
            by_slug[parts[1]] = entry
        elif parts[0] == LEGACY_DOMAIN and len(parts) >= 3 and parts[2] == "power":
            mode = row.attributes.get("raw_power_mode") or row.state
            by_slug.setdefault(parts[1], {"power_mode": mode})
    return by_device, by_slug


def _power_fields(entry: dict[str, Any] | None, fallback_mode: str | None) -> dict[str, Any]:
    mode = (entry or {}).get("power_mode") or fallback_mode
    state = (entry or {}).get("power_state")
    if not state:
        state = interpret_power_state(mode).value if mode else PowerState.UNKNOWN.value
    return {
        "power_mode": mode,
        "power_state": state,
        "active_app": (entry or {}).get("active_app"),
    }


def merge_device_views(
    local: Iterable[DeviceRecord],
    registry: Iterable[RegistryRecord],
    entity_states: Iterable[EntityStateRow],
) -> list[dict[str, Any]]:
    """One entry per device, registry first.

    Local records not in the registry and entity slugs matching no device
    are appended with what little is known about them. Devices with no
    power data report ``power_state: unknown``.
    """
    local = list(local)
    entity_states = list(entity_states)
    by_device, by_slug = _power_by_key(entity_states)

    local_by_id: dict[str, DeviceRecord] = {}
    for record in local:
        for key in lookup_ids(record.device_id):
            local_by_id.setdefault(key, record)

    views: list[dict[str, Any]] = []
    used_local: set[str] = set()
    used_slugs: set[str] = set()

    for reg in registry:
        rec = local_by_id.get(reg.id)
        if rec is None and reg.serial_number:
            rec = next((r for r in local if r.serial_number == reg.serial_number), None)
        if rec is not None:
            used_local.add(rec.device_id)

        slug = slugify(reg.display_name)
        used_slugs.add(slug)
        entry = by_device.get(reg.id) or by_slug.get(slug)
        views.append({
            "id": reg.id,
            "device_id": reg.id,
            "name": reg.display_name,
            "ip_address": reg.ip_address,
            "status": DeviceStatus.ONLINE.value if reg.online else DeviceStatus.OFFLINE.value,
            "online": reg.online,
            "last_seen_at": reg.last_seen_at,
            "discovered_at": reg.discovered_at,
            "consecutive_failures": reg.consecutive_failures,
            "model": reg.model or (rec.model if rec else None),
            "manufacturer": reg.manufacturer,
            "serial_number": reg.serial_number or (rec.serial_number if rec else None),
            "firmware_version": reg.firmware_version or (rec.software_version if rec else None),
            "metadata": {**reg.metadata, **(rec.metadata if rec else {})},
            "source": "registry",
            **_power_fields(entry, rec.power_mode if rec else None),
        })

    for rec in local:
        if rec.device_id in used_local:
            continue
        slug = slugify(rec.name)
        used_slugs.add(slug)
        entry = by_device.get(rec.device_id) or by_slug.get(slug)
        views.append({
            "id": rec.device_id,
            "device_id": rec.device_id,
            "name": rec.name,
            "ip_address": rec.ip_address,
            "status": rec.status.value,
            "online": rec.status == DeviceStatus.ONLINE,
            "last_seen_at": rec.last_seen_at,
            "discovered_at": rec.created_at,
            "consecutive_failures": None,
            "model": rec.model,
            "manufacturer": rec.metadata.get("vendorName") or "Roku",
            "serial_number": rec.serial_number,
            "firmware_version": rec.software_version,
            "metadata": rec.metadata,
            "source": "local",
            **_power_fields(entry, rec.power_mode),
        })

    for orphan in collect_orphans(entity_states):
        if orphan.slug in used_slugs:
            continue
        used_slugs.add(orphan.slug)
        views.append({
            "id": orphan.slug,
            "device_id": orphan.device_id or orphan.slug,
            "name": orphan.name or title_from_slug(orphan.slug),
            "ip_address": None,
            "status": DeviceStatus.UNKNOWN.value,
            "online": False,
            "source": "entity",
            **_power_fields(by_slug.get(orphan.slug), None),
        })

    return views
