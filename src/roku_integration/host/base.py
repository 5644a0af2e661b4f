"""Abstract contracts between a home-automation host and its extensions.

Every extension subclasses ``BaseExtension`` and implements the lifecycle
hooks. The host hands each hook an ``ExtensionAPI``, the only way an
extension reaches persistent stores, the event bus, HTTP routing and the
polling manager.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass
class DeviceDescriptor:
    """Desired state of one ``device_registry`` row.

    ``previous_id`` names a row stored under an older identifier; the
    host renames that row to ``device_id`` instead of inserting a second
    one.
    """

    device_id: str
    name: str
    type: str
    extension_source: str
    ip_address: str | None = None
    mac_address: str | None = None
    model: str | None = None
    manufacturer: str | None = None
    firmware_version: str | None = None
    serial_number: str | None = None
    capabilities: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    previous_id: str | None = None


@dataclass
class EntityUpdate:
    """One entity-state row produced by a poll tick."""

    entity_id: str
    state: str
    attributes: dict[str, Any] = field(default_factory=dict)
    friendly_name: str | None = None


@dataclass
class RouteRequest:
    """Framework-neutral view of an HTTP request handed to route handlers."""

    params: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] = field(default_factory=dict)


RouteHandler = Callable[[RouteRequest], Awaitable[dict[str, Any]]]
ActionHandler = Callable[[dict[str, Any], dict[str, Any]], Awaitable[dict[str, Any]]]


@dataclass
class ActionSpec:
    key: str
    handler: ActionHandler
    label: str
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class InspectorTab:
    """A tab of a device inspector panel.

    Exactly one of ``fetch`` (returns data for the device) or
    ``component`` (a client-side widget name) is set.
    """

    id: str
    label: str
    fetch: Callable[[str], Awaitable[dict[str, Any]]] | None = None
    component: str | None = None


@dataclass
class InspectorPanel:
    device_type: str
    title: str
    tabs: list[InspectorTab] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Storage contracts
# ---------------------------------------------------------------------------


class Model(ABC):
    """Row-level access to one registered table."""

    @abstractmethod
    async def create_table(self) -> None: ...

    @abstractmethod
    async def find_all(self, where: dict[str, Any] | None = None) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def find_one(self, where: dict[str, Any]) -> dict[str, Any] | None: ...

    @abstractmethod
    async def create(self, data: dict[str, Any]) -> int:
        """Insert a row and return its primary key."""

    @abstractmethod
    async def update(self, pk: int, data: dict[str, Any]) -> None: ...

    @abstractmethod
    async def delete(self, pk: int) -> None: ...


class QueryBuilder(ABC):
    """Read-only filtered query over a host-owned table."""

    @abstractmethod
    def where(self, column: str, op: str, value: Any) -> QueryBuilder: ...

    @abstractmethod
    async def get(self) -> list[dict[str, Any]]: ...


# ---------------------------------------------------------------------------
# Poll adapter
# ---------------------------------------------------------------------------


class PollAdapter(ABC):
    """Per-device-type polling strategy driven by the host polling manager."""

    device_type: str
    extension_name: str

    @abstractmethod
    def create_client(self, device: dict[str, Any]) -> Any | None:
        """Build a protocol client for *device*, or ``None`` if it cannot be polled."""

    @abstractmethod
    def get_poll_interval(self, device: dict[str, Any]) -> float:
        """Interval between ticks for *device*, in milliseconds."""

    @abstractmethod
    async def poll_device(self, device: dict[str, Any], client: Any) -> list[EntityUpdate]:
        """Run one tick. Raising marks the device as failed for this tick."""


# ---------------------------------------------------------------------------
# Extension API
# ---------------------------------------------------------------------------


class ExtensionAPI(ABC):
    """Everything an extension may touch, scoped to one extension name."""

    name: str
    event_bus: Any

    # -- models ----------------------------------------------------------

    @abstractmethod
    async def register_model(self, name: str, schema: dict[str, Any]) -> None: ...

    @abstractmethod
    def model(self, name: str) -> Model: ...

    @abstractmethod
    def query(self, table: str) -> QueryBuilder: ...

    # -- device registry -------------------------------------------------

    @abstractmethod
    async def register_device(self, descriptor: DeviceDescriptor) -> bool:
        """Upsert a registry row. Returns ``False`` when nothing changed."""

    @abstractmethod
    async def unregister_device(self, device_id: str) -> None: ...

    # -- polling ---------------------------------------------------------

    @abstractmethod
    def register_poll_adapter(self, adapter: PollAdapter) -> None: ...

    @abstractmethod
    def unregister_poll_adapter(self, device_type: str) -> None: ...

    # -- surfaces --------------------------------------------------------

    @abstractmethod
    def register_route(self, method: str, path: str, handler: RouteHandler) -> None: ...

    @abstractmethod
    def register_action(
        self,
        key: str,
        handler: ActionHandler,
        label: str,
        meta: dict[str, Any] | None = None,
    ) -> None: ...

    @abstractmethod
    def register_inspector_panel(self, panel: InspectorPanel) -> None: ...

    # -- events & config -------------------------------------------------

    @abstractmethod
    async def broadcast(self, event: str, payload: dict[str, Any]) -> None:
        """Push an event to connected UI clients."""

    @abstractmethod
    async def get_config(self) -> dict[str, Any]: ...

    @abstractmethod
    async def set_config(self, values: dict[str, Any]) -> None: ...


# ---------------------------------------------------------------------------
# Extension lifecycle
# ---------------------------------------------------------------------------


class BaseExtension(ABC):
    """Base class that every host extension must extend.

    Class attributes:
        name:    Short identifier (e.g. ``"roku-integration"``).
        version: SemVer string.
    """

    name: str
    version: str

    @abstractmethod
    async def on_install(self, api: ExtensionAPI) -> None:
        """Create owned tables. Called once, before the first ``init``."""

    @abstractmethod
    async def init(self, api: ExtensionAPI) -> None:
        """Register surfaces and reconcile stored state."""

    @abstractmethod
    async def on_enable(self) -> None: ...

    @abstractmethod
    async def on_disable(self) -> None: ...

    @abstractmethod
    async def on_uninstall(self) -> None:
        """Release everything registered in ``init``."""
