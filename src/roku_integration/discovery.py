"""Event-driven discovery handshake with the host's network scanner.

1. ``discovery:register-interest`` announces port 8060.
2. ``discovery:candidate-matched`` events addressed to this extension are
   verified over ECP and resolved against known devices.
3. Verified devices are claimed with ``discovery:claim-device``.
"""

from __future__ import annotations

import logging
from typing import Any

from roku_integration import DEVICE_TYPE, EXTENSION_NAME
from roku_integration.context import PluginContext
from roku_integration.ecp.client import ECP_PORT
from roku_integration.ecp.errors import EcpError
from roku_integration.host.events import EventType, Subscription
from roku_integration.models import Candidate
from roku_integration.reconcile.resolver import IdentityResolver, Resolution

logger = logging.getLogger(__name__)


def interest_payload() -> dict[str, Any]:
    return {
        "extensionName": EXTENSION_NAME,
        "deviceType": DEVICE_TYPE,
        "ports": [ECP_PORT],
        "macPrefixes": [],
    }


async def verify_candidate(ctx: PluginContext, candidate: Candidate) -> Resolution | None:
    """Fetch device-info from *candidate* and apply the sighting.

    Anything that answers ECP device-info is treated as a Roku; OEM TVs
    often report their own vendor name. Returns ``None`` when the
    candidate does not answer.
    """
    try:
        info = await ctx.client(candidate.ip).get_device_info()
    except EcpError as exc:
        logger.debug("Failed to verify Roku at %s: %s", candidate.ip, exc)
        return None
    logger.debug("Roku confirmed at %s (serial: %s)", candidate.ip, info.serial_number)
    return await IdentityResolver(ctx).apply(candidate, info)


class DiscoveryHandler:
    def __init__(self, ctx: PluginContext) -> None:
        self._ctx = ctx
        self._subscription: Subscription | None = None

    async def register(self) -> None:
        bus = self._ctx.api.event_bus
        await bus.emit(EventType.DISCOVERY_REGISTER_INTEREST, interest_payload())
        if self._subscription is None:
            self._subscription = bus.on(EventType.DISCOVERY_CANDIDATE_MATCHED, self.handle_event)
        logger.debug("Registered discovery interest for port %d", ECP_PORT)

    async def unregister(self) -> None:
        bus = self._ctx.api.event_bus
        if self._subscription is not None:
            bus.unsubscribe(self._subscription)
            self._subscription = None
        await bus.emit(
            EventType.DISCOVERY_UNREGISTER_HANDLER,
            {"extensionName": EXTENSION_NAME, "deviceType": DEVICE_TYPE},
        )

    async def handle_event(self, event: dict[str, Any]) -> None:
        """Handle one ``discovery:candidate-matched`` payload."""
        interest = event.get("matchedInterest") or {}
        if interest.get("extensionName") != EXTENSION_NAME:
            return

        raw = event.get("candidate") or {}
        try:
            candidate = Candidate.from_event(raw)
        except ValueError:
            logger.warning("Ignoring discovery candidate without an address: %r", raw)
            return

        resolution = await verify_candidate(self._ctx, candidate)
        if resolution is None:
            logger.debug("Device at %s is not a Roku or did not answer", candidate.ip)
            return

        record = resolution.record
        logger.debug("Claiming Roku %s at %s", record.device_id, candidate.ip)
        await self._ctx.api.event_bus.emit(
            EventType.DISCOVERY_CLAIM_DEVICE,
            {
                "candidate": raw,
                "deviceId": record.device_id,
                "name": record.name,
                "extensionName": EXTENSION_NAME,
                "metadata": {"deviceType": DEVICE_TYPE, "serialNumber": record.serial_number},
            },
        )
