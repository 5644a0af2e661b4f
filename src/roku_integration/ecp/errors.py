"""Exception hierarchy for ECP requests.

Callers branch on the class, never on message text:

- ``EcpUnreachableError`` / ``EcpTimeoutError``: the device did not answer
  (presumed offline).
- ``EcpForbiddenError``: HTTP 403, "Control by mobile apps" is restricted.
- ``EcpHTTPError``: any other non-success status.
- ``EcpParseError``: the device answered with XML we could not read.
"""

from __future__ import annotations


class EcpError(Exception):
    """Base class for all ECP client failures."""


class EcpUnreachableError(EcpError):
    """Connection refused, reset, or otherwise failed before a response."""


class EcpTimeoutError(EcpUnreachableError):
    """The request exceeded the client timeout and was cancelled."""


class EcpHTTPError(EcpError):
    """The device answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


class EcpForbiddenError(EcpHTTPError):
    """HTTP 403: mobile control is limited on the device."""


class EcpParseError(EcpError):
    """The response body was not the XML document we expected."""
