"""Roku integration extension: lifecycle hooks wiring every surface to the host."""

from __future__ import annotations

import logging

from roku_integration import DEVICE_TYPE, EXTENSION_NAME, __version__
from roku_integration.actions import RokuActions
from roku_integration.config import Settings, apply_log_level
from roku_integration.context import ClientFactory, PluginContext
from roku_integration.discovery import DiscoveryHandler
from roku_integration.host.base import BaseExtension, ExtensionAPI
from roku_integration.inspector import RokuInspector
from roku_integration.poll_adapter import RokuPollAdapter
from roku_integration.reconcile.recovery import RecoveryScanner
from roku_integration.reconcile.registry_sync import RegistrySynchronizer
from roku_integration.routes import RokuRoutes
from roku_integration.store import MODEL_NAME, MODEL_SCHEMA, DeviceStore

logger = logging.getLogger(__name__)


class RokuIntegration(BaseExtension):
    """Discovers, polls and controls Roku devices.

    Parameters
    ----------
    settings:
        ECP and polling settings; defaults apply when omitted.
    client_factory:
        Builds an ECP client for an IP. Tests pass fakes here.
    """

    name = EXTENSION_NAME
    version = __version__

    def __init__(
        self,
        settings: Settings | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._client_factory = client_factory
        self.ctx: PluginContext | None = None
        self._discovery: DiscoveryHandler | None = None
        self._adapter: RokuPollAdapter | None = None
        self._inspector: RokuInspector | None = None

    async def _ensure_model(self, api: ExtensionAPI) -> None:
        await api.register_model(MODEL_NAME, MODEL_SCHEMA)
        await api.model(MODEL_NAME).create_table()

    async def on_install(self, api: ExtensionAPI) -> None:
        logger.info("Roku Integration installing...")
        await self._ensure_model(api)
        logger.info("Roku Integration installed")

    async def init(self, api: ExtensionAPI) -> None:
        await self._ensure_model(api)
        apply_log_level((await api.get_config()).get("log_level"))

        ctx = PluginContext(
            api=api,
            store=DeviceStore(api),
            settings=self._settings,
            client_factory=self._client_factory,
        )
        self.ctx = ctx

        # Adapter first so devices registered by the sync are polled at once
        self._adapter = RokuPollAdapter(ctx)
        api.register_poll_adapter(self._adapter)

        try:
            await RecoveryScanner(ctx).recover()
            await RegistrySynchronizer(ctx).sync()
        except Exception:
            logger.exception("Roku device reconciliation failed")

        RokuRoutes(ctx).register(api)
        RokuActions(ctx).register(api)

        self._discovery = DiscoveryHandler(ctx)
        await self._discovery.register()

        self._inspector = RokuInspector(ctx)
        api.register_inspector_panel(self._inspector.panel())
        logger.info("Roku Integration initialized")

    async def on_disable(self) -> None:
        if self.ctx is None:
            return
        self.ctx.api.unregister_poll_adapter(DEVICE_TYPE)
        logger.info("Roku Integration disabled")

    async def on_enable(self) -> None:
        if self.ctx is None:
            return
        if self._adapter is not None:
            self.ctx.api.register_poll_adapter(self._adapter)
        if self._inspector is not None:
            self.ctx.api.register_inspector_panel(self._inspector.panel())
        logger.info("Roku Integration enabled")

    async def on_uninstall(self) -> None:
        if self.ctx is None:
            return
        self.ctx.api.unregister_poll_adapter(DEVICE_TYPE)
        if self._discovery is not None:
            await self._discovery.unregister()
        self.ctx = None
        self._discovery = None
        self._adapter = None
        self._inspector = None
        logger.info("Roku Integration uninstalled")
