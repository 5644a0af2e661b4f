"""Device identifiers and the normalizers applied at every ingestion boundary.

A Roku is identified by ``roku:<serial>``. Older releases wrote
``roku-<serial>`` and devices without a serial fall back to a dashed IP
(``roku:192-168-1-50``). ``DeviceId`` parses all of these into one
structured value so call sites never branch on string patterns.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from roku_integration import DEVICE_TYPE

_ID_PATTERN = re.compile(r"^roku[:\-](.+)$", re.IGNORECASE)
_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class DeviceId:
    """Structured Roku device identifier.

    ``key`` is the serial number, or the dashed IP for devices that did
    not report one.
    """

    key: str

    @classmethod
    def parse(cls, raw: str | None) -> DeviceId | None:
        """Parse ``roku:KEY`` / ``roku-KEY`` (any prefix casing). Returns None otherwise."""
        if not raw:
            return None
        match = _ID_PATTERN.match(raw.strip())
        if match is None:
            return None
        return cls(key=match.group(1))

    @classmethod
    def from_serial(cls, serial: str) -> DeviceId:
        return cls(key=serial.strip())

    @classmethod
    def from_ip(cls, ip: str) -> DeviceId:
        return cls(key=ip.strip().replace(".", "-"))

    @classmethod
    def for_device(cls, serial: str | None, ip: str) -> DeviceId:
        """Serial-anchored id, or the IP fallback when no serial is known."""
        if serial:
            return cls.from_serial(serial)
        return cls.from_ip(ip)

    @property
    def canonical(self) -> str:
        return f"{DEVICE_TYPE}:{self.key}"

    @property
    def legacy(self) -> str:
        return f"{DEVICE_TYPE}-{self.key}"

    def __str__(self) -> str:
        return self.canonical


def normalize_device_id(raw: str | None) -> str | None:
    """Return the canonical form of *raw* if it is a Roku id, else *raw* unchanged."""
    parsed = DeviceId.parse(raw)
    return parsed.canonical if parsed is not None else raw


def normalize_mac(mac: str) -> str:
    """Normalize a MAC address to uppercase colon-separated format.

    Accepts colon, dash, dot (Cisco), or no-separator formats.

    Raises
    ------
    ValueError:
        If the input cannot be parsed as a valid MAC address.
    """
    mac = mac.strip()

    if ":" in mac:
        parts = mac.split(":")
    elif "-" in mac:
        parts = mac.split("-")
    elif "." in mac:
        # Cisco format: aaaa.bbbb.cccc
        groups = mac.split(".")
        if len(groups) == 3 and all(len(g) == 4 for g in groups):
            flat = "".join(groups).upper()
            if re.fullmatch(r"[0-9A-F]{12}", flat):
                return ":".join(flat[i : i + 2] for i in range(0, 12, 2))
        raise ValueError(f"Invalid MAC address: {mac!r}")
    else:
        flat = mac.upper()
        if len(flat) != 12 or not re.fullmatch(r"[0-9A-F]{12}", flat):
            raise ValueError(f"Invalid MAC address: {mac!r}")
        return ":".join(flat[i : i + 2] for i in range(0, 12, 2))

    if len(parts) != 6:
        raise ValueError(f"Invalid MAC address: {mac!r}")

    padded = []
    for part in parts:
        if not part or len(part) > 2 or not re.fullmatch(r"[0-9A-Fa-f]+", part):
            raise ValueError(f"Invalid MAC address: {mac!r}")
        padded.append(part.upper().zfill(2))

    return ":".join(padded)


def mac_match_key(mac: str | None) -> str | None:
    """Comparison key for a MAC that tolerates values ``normalize_mac`` rejects."""
    if not mac or not mac.strip():
        return None
    try:
        return normalize_mac(mac)
    except ValueError:
        return mac.strip().upper().replace("-", ":")


def slugify(name: str) -> str:
    """Lowercase, underscore-delimited entity key (``"The Hanger"`` -> ``"the_hanger"``)."""
    return _SLUG_STRIP.sub("_", name.lower()).strip("_")


def title_from_slug(slug: str) -> str:
    """Best-effort display name for a slug (``"the_hanger"`` -> ``"The Hanger"``)."""
    return " ".join(word.capitalize() for word in slug.split("_") if word)


def lookup_ids(device_id: str) -> list[str]:
    """Ids to try for *device_id*: as given, canonical, then legacy spelling."""
    parsed = DeviceId.parse(device_id)
    if parsed is None:
        return [device_id]
    ids = [parsed.canonical, parsed.legacy]
    if device_id not in ids:
        ids.insert(0, device_id)
    return ids
