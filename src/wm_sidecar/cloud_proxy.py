# Cloud proxy - relays a request verbatim to the remote origin.
# Created: 2026-10-16

from __future__ import annotations

import logging

import httpx

from wm_sidecar.models import GatewayRequest

logger = logging.getLogger(__name__)

# Owned by the outgoing connection, not by the original caller.
_HOP_BY_HOP = frozenset(
    {
        "host",
        "content-length",
        "connection",
        "keep-alive",
        "proxy-connection",
        "transfer-encoding",
        "te",
        "trailer",
        "upgrade",
    }
)

# httpx negotiates its own compression with the remote and hands back decoded
# bodies, so the caller's preferences must not reach the upstream.
_NEGOTIATED = frozenset({"accept-encoding"})


def forwardable_headers(headers: list[tuple[str, str]]) -> list[tuple[str, str]]:
    """Drop connection-level and negotiated headers, keeping repeated entries in order."""
    return [(k, v) for k, v in headers if k.lower() not in _HOP_BY_HOP | _NEGOTIATED]


class CloudProxy:
    """Transparent pass-through to ``remote_base``.

    Upstream status codes are never interpreted. Only network-level failures
    (``httpx.TransportError``) propagate to the caller.
    """

    def __init__(
        self,
        remote_base: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.remote_base = remote_base
        self.timeout = timeout
        self._transport = transport

    def upstream_url(self, request: GatewayRequest) -> str:
        return f"{self.remote_base}{request.target}"

    async def forward(self, request: GatewayRequest) -> httpx.Response:
        url = self.upstream_url(request)
        logger.debug("Proxying %s %s", request.method, url)

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport, follow_redirects=False
        ) as client:
            return await client.request(
                request.method,
                url,
                headers=forwardable_headers(request.headers),
                content=request.body if request.has_body else None,
            )
