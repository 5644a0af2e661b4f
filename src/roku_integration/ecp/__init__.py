"""Roku External Control Protocol client."""

from roku_integration.ecp.client import (
    ECP_PORT,
    AccessLevel,
    App,
    DeviceInfo,
    MediaPlayerState,
    MobileAccess,
    RokuClient,
    TvChannel,
)
from roku_integration.ecp.errors import (
    EcpError,
    EcpForbiddenError,
    EcpHTTPError,
    EcpParseError,
    EcpTimeoutError,
    EcpUnreachableError,
)

__all__ = [
    "ECP_PORT",
    "AccessLevel",
    "App",
    "DeviceInfo",
    "EcpError",
    "EcpForbiddenError",
    "EcpHTTPError",
    "EcpParseError",
    "EcpTimeoutError",
    "EcpUnreachableError",
    "MediaPlayerState",
    "MobileAccess",
    "RokuClient",
    "TvChannel",
]
