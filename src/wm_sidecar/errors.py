# Gateway error taxonomy.
# Created: 2026-10-16
#
# NotFound is not an exception (HandlerRegistry.resolve returns None) and
# network failures surface as httpx.TransportError.

from __future__ import annotations

import httpx


class GatewayError(Exception):
    """Base class for local-handler failures the dispatcher recovers from."""

    def __init__(self, endpoint: str, message: str) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.message = message


class HandlerLoadError(GatewayError):
    """Handler file exists but could not be imported or has no usable entry point."""


class HandlerInvocationError(GatewayError):
    """Handler raised, timed out, or returned something other than a response."""


def error_response(message: str, status_code: int) -> httpx.Response:
    """Build the ``{"error": ...}`` JSON body used for every gateway failure."""
    return httpx.Response(status_code, json={"error": message})
