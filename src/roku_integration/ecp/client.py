"""Async client for Roku's External Control Protocol (ECP).

ECP is plain HTTP on port 8060: ``GET /query/*`` returns XML documents,
``POST /keypress/*`` and ``POST /launch/*`` drive the device. Every request
opens a short-lived ``httpx.AsyncClient`` bounded by the client timeout; no
request is retried.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any
from urllib.parse import quote
from xml.etree import ElementTree

import httpx

from roku_integration.ecp.errors import (
    EcpError,
    EcpForbiddenError,
    EcpHTTPError,
    EcpParseError,
    EcpTimeoutError,
    EcpUnreachableError,
)

logger = logging.getLogger(__name__)

ECP_PORT = 8060
DEFAULT_TIMEOUT = 5.0  # seconds
DEFAULT_USER_AGENT = "Roku-Integration/1.0"

_INPUT_KEY_DELAY = 0.05  # seconds between literal keypresses
_LEADING_INT = re.compile(r"^\s*(-?\d+)")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DeviceInfo:
    """Parsed ``/query/device-info`` document."""

    serial_number: str | None = None
    device_id: str | None = None
    vendor_name: str | None = None
    model_name: str | None = None
    model_number: str | None = None
    friendly_device_name: str | None = None
    software_version: str | None = None
    software_build: str | None = None
    power_mode: str | None = None
    network_type: str | None = None
    wifi_mac: str | None = None
    ethernet_mac: str | None = None
    network_name: str | None = None
    country: str | None = None
    locale: str | None = None
    time_zone: str | None = None
    screen_size: str | None = None
    ui_resolution: str | None = None
    uptime: int | None = None
    ecp_version: str | None = None
    is_tv: bool = False
    is_stick: bool = False
    supports_private_listening: bool = False
    headphones_connected: bool = False
    supports_wake_on_wlan: bool = False
    supports_suspend: bool = False
    developer_enabled: bool = False
    raw: dict[str, str] = field(default_factory=dict)

    @property
    def mac_address(self) -> str | None:
        """MAC of the active interface as reported by the device."""
        if self.network_type == "ethernet":
            return self.ethernet_mac or self.wifi_mac
        return self.wifi_mac or self.ethernet_mac

    def as_dict(self) -> dict[str, Any]:
        """JSON-ready view: camelCase fields plus the raw kebab-case document."""
        data = asdict(self)
        raw = data.pop("raw")
        camel = {_camel(key): value for key, value in data.items()}
        return {**camel, "raw": raw}


@dataclass(frozen=True)
class App:
    """An installed channel or the current foreground app/screensaver."""

    id: str | None
    name: str
    type: str = "app"
    version: str | None = None
    subtype: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TvChannel:
    """One tuner channel on a Roku TV."""

    number: str
    name: str
    type: str | None = None
    user_hidden: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "name": self.name,
            "type": self.type,
            "userHidden": self.user_hidden,
        }


@dataclass(frozen=True)
class MediaPlayerState:
    """Parsed ``/query/media-player`` document."""

    state: str | None
    error: bool = False
    position_ms: int | None = None
    duration_ms: int | None = None
    is_live: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class AccessLevel(str, enum.Enum):
    FULL = "full"
    LIMITED = "limited"
    DISABLED = "disabled"


@dataclass(frozen=True)
class MobileAccess:
    """Result of probing how much ECP the device allows."""

    level: AccessLevel
    can_control: bool
    can_query_apps: bool
    reason: str | None = None

    @classmethod
    def disabled(cls, reason: str | None = "Device not responding to ECP") -> MobileAccess:
        return cls(level=AccessLevel.DISABLED, can_control=False, can_query_apps=False, reason=reason)

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "level": self.level.value,
            "canControl": self.can_control,
            "canQueryApps": self.can_query_apps,
        }
        if self.reason:
            data["reason"] = self.reason
        return data


# ---------------------------------------------------------------------------
# Parse helpers
# ---------------------------------------------------------------------------


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _parse_xml(content: bytes) -> ElementTree.Element:
    try:
        return ElementTree.fromstring(content)
    except ElementTree.ParseError as exc:
        raise EcpParseError("Failed to parse Roku XML response") from exc


def _text(el: ElementTree.Element | None) -> str | None:
    if el is None or el.text is None:
        return None
    text = el.text.strip()
    return text or None


def _flag(raw: dict[str, str], key: str) -> bool:
    return raw.get(key, "").lower() == "true"


def _leading_int(value: str | None) -> int | None:
    if not value:
        return None
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def parse_device_info(content: bytes) -> DeviceInfo:
    """Parse a ``<device-info>`` document."""
    root = _parse_xml(content)
    if root.tag != "device-info":
        raise EcpParseError(f"Unexpected root element <{root.tag}>")
    raw = {child.tag: (child.text or "").strip() for child in root}

    def get(key: str) -> str | None:
        return raw.get(key) or None

    return DeviceInfo(
        serial_number=get("serial-number"),
        device_id=get("device-id"),
        vendor_name=get("vendor-name"),
        model_name=get("model-name"),
        model_number=get("model-number"),
        friendly_device_name=get("friendly-device-name") or get("user-device-name"),
        software_version=get("software-version"),
        software_build=get("software-build"),
        power_mode=get("power-mode"),
        network_type=get("network-type"),
        wifi_mac=get("wifi-mac"),
        ethernet_mac=get("ethernet-mac"),
        network_name=get("network-name"),
        country=get("country"),
        locale=get("locale"),
        time_zone=get("time-zone"),
        screen_size=get("screen-size"),
        ui_resolution=get("ui-resolution"),
        uptime=_leading_int(get("uptime")),
        ecp_version=get("ecp-version"),
        is_tv=_flag(raw, "is-tv"),
        is_stick=_flag(raw, "is-stick"),
        supports_private_listening=_flag(raw, "supports-private-listening"),
        headphones_connected=_flag(raw, "headphones-connected"),
        supports_wake_on_wlan=_flag(raw, "supports-wake-on-wlan"),
        supports_suspend=_flag(raw, "supports-suspend"),
        developer_enabled=_flag(raw, "developer-enabled"),
        raw=raw,
    )


def parse_apps(content: bytes) -> list[App]:
    """Parse an ``<apps>`` document. Entries without an id are skipped."""
    root = _parse_xml(content)
    apps: list[App] = []
    for el in root.findall("app"):
        app_id = el.get("id")
        if not app_id:
            continue
        apps.append(App(
            id=app_id,
            name=_text(el) or "",
            type=el.get("type") or "app",
            version=el.get("version"),
            subtype=el.get("subtype"),
        ))
    return apps


def parse_active_app(content: bytes) -> App | None:
    """Parse an ``<active-app>`` document.

    A ``<screensaver>`` element wins over ``<app>``: the device reports both
    while the screensaver covers the home screen. An ``<app>`` without an id
    is the home screen and yields ``None``.
    """
    root = _parse_xml(content)
    screensaver = root.find("screensaver")
    if screensaver is not None:
        return App(id=screensaver.get("id"), name=_text(screensaver) or "", type="screensaver")

    app = root.find("app")
    if app is None or not app.get("id"):
        return None
    return App(id=app.get("id"), name=_text(app) or "", type="app", version=app.get("version"))


def parse_tv_channels(content: bytes) -> list[TvChannel]:
    """Parse a ``<tv-channels>`` document. Channels without a number are skipped."""
    root = _parse_xml(content)
    channels: list[TvChannel] = []
    for el in root.findall("channel"):
        number = _text(el.find("number"))
        if not number:
            continue
        channels.append(TvChannel(
            number=number,
            name=_text(el.find("name")) or "",
            type=_text(el.find("type")),
            user_hidden=(_text(el.find("user-hidden")) or "").lower() == "true",
        ))
    return channels


def parse_media_player(content: bytes) -> MediaPlayerState | None:
    """Parse a ``<player>`` document."""
    root = _parse_xml(content)
    if root.tag != "player":
        return None
    return MediaPlayerState(
        state=root.get("state"),
        error=root.get("error", "").lower() == "true",
        position_ms=_leading_int(_text(root.find("position"))),
        duration_ms=_leading_int(_text(root.find("duration"))),
        is_live=(_text(root.find("is_live")) or "").lower() == "true",
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RokuClient:
    """Typed wrapper over the documented ECP endpoints of one device.

    Parameters
    ----------
    ip:
        Device IP address.
    port:
        ECP port (8060 on every Roku).
    timeout:
        Per-request timeout in seconds.
    user_agent:
        Value sent in the ``User-Agent`` header.
    """

    def __init__(
        self,
        ip: str,
        port: int = ECP_PORT,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.ip = ip
        self.port = port
        self.timeout = timeout
        self._headers = {"User-Agent": user_agent}
        self.base_url = f"http://{ip}:{port}"

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                if method == "POST":
                    resp = await client.post(url, params=params, headers=self._headers, content=b"")
                else:
                    resp = await client.get(url, params=params, headers=self._headers)
        except httpx.TimeoutException as exc:
            raise EcpTimeoutError(f"Request timeout: {method} {url}") from exc
        except httpx.HTTPError as exc:
            raise EcpUnreachableError(f"{method} {url} failed: {exc}") from exc

        if resp.status_code == 403:
            raise EcpForbiddenError(403, f"HTTP 403: {method} {path} rejected by device")
        if not resp.is_success:
            raise EcpHTTPError(
                resp.status_code, f"HTTP {resp.status_code}: {resp.reason_phrase}"
            )
        return resp

    async def _get(self, path: str) -> bytes:
        resp = await self._request("GET", path)
        return resp.content

    async def _post(self, path: str, params: dict[str, str] | None = None) -> None:
        await self._request("POST", path, params=params)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_device_info(self) -> DeviceInfo:
        return parse_device_info(await self._get("/query/device-info"))

    async def get_apps(self) -> list[App]:
        return parse_apps(await self._get("/query/apps"))

    async def get_active_app(self) -> App | None:
        return parse_active_app(await self._get("/query/active-app"))

    async def get_media_player(self) -> MediaPlayerState | None:
        """Current playback state, or ``None`` if the device cannot say."""
        try:
            return parse_media_player(await self._get("/query/media-player"))
        except EcpError:
            logger.debug("media-player query failed for %s", self.ip, exc_info=True)
            return None

    async def get_tv_channels(self) -> list[TvChannel]:
        """Tuner channels; empty on players without a TV tuner."""
        try:
            return parse_tv_channels(await self._get("/query/tv-channels"))
        except EcpError:
            logger.debug("tv-channels query failed for %s", self.ip, exc_info=True)
            return []

    async def is_reachable(self) -> bool:
        try:
            await self.get_device_info()
            return True
        except EcpError:
            return False

    def app_icon_url(self, app_id: str) -> str:
        return f"{self.base_url}/query/icon/{quote(app_id, safe='')}"

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def keypress(self, key: str) -> None:
        await self._post(f"/keypress/{quote(key, safe='_')}")

    async def keydown(self, key: str) -> None:
        await self._post(f"/keydown/{quote(key, safe='_')}")

    async def keyup(self, key: str) -> None:
        await self._post(f"/keyup/{quote(key, safe='_')}")

    async def launch_app(self, app_id: str, params: dict[str, str] | None = None) -> None:
        await self._post(f"/launch/{quote(str(app_id), safe='')}", params=params or None)

    async def search(self, keyword: str, content_type: str = "tv-show", launch: bool = False) -> None:
        await self._post(
            "/search/browse",
            params={"keyword": keyword, "type": content_type, "launch": "true" if launch else "false"},
        )

    async def input_text(self, text: str) -> None:
        """Type *text* one literal keypress at a time."""
        for char in text:
            await self._post(f"/keypress/Lit_{quote(char, safe='')}")
            await asyncio.sleep(_INPUT_KEY_DELAY)

    async def power_on(self) -> None:
        """Send PowerOn, falling back to Home on players without a power key."""
        try:
            await self.keypress("PowerOn")
        except EcpHTTPError:
            logger.debug("PowerOn rejected by %s, sending Home", self.ip)
            await self.keypress("Home")

    async def power_off(self) -> None:
        await self.keypress("PowerOff")

    # ------------------------------------------------------------------
    # Access probing
    # ------------------------------------------------------------------

    async def check_mobile_control_access(self) -> MobileAccess:
        """Probe ``full`` / ``limited`` / ``disabled`` without sending any keypress.

        device-info answers even in the restricted mode; the app list is
        refused with 403 unless mobile control is permissive.
        """
        try:
            await self.get_device_info()
        except EcpError:
            return MobileAccess.disabled()

        try:
            await self.get_apps()
        except EcpForbiddenError:
            return MobileAccess(
                level=AccessLevel.LIMITED,
                can_control=False,
                can_query_apps=False,
                reason='Mobile control restricted - enable "Permissive" mode in Roku settings',
            )
        except EcpError:
            return MobileAccess(level=AccessLevel.LIMITED, can_control=False, can_query_apps=False)
        return MobileAccess(level=AccessLevel.FULL, can_control=True, can_query_apps=True)
