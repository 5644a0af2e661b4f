"""Reference home-automation host: stores, event bus, polling and HTTP surface."""

from roku_integration.host.base import (
    BaseExtension,
    DeviceDescriptor,
    EntityUpdate,
    ExtensionAPI,
    InspectorPanel,
    InspectorTab,
    PollAdapter,
    RouteRequest,
)
from roku_integration.host.events import EventBus, EventLog, EventType
from roku_integration.host.sqlite_host import Host, SQLiteExtensionAPI

__all__ = [
    "BaseExtension",
    "DeviceDescriptor",
    "EntityUpdate",
    "EventBus",
    "EventLog",
    "EventType",
    "ExtensionAPI",
    "Host",
    "InspectorPanel",
    "InspectorTab",
    "PollAdapter",
    "RouteRequest",
    "SQLiteExtensionAPI",
]
