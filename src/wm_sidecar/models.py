# Request model shared by the server, dispatcher, registry, and cloud proxy.
# Created: 2026-10-16

from __future__ import annotations

from dataclasses import dataclass, field

import httpx

API_PREFIX = "/api/"
INDEX_ENDPOINT = "index"

BODYLESS_METHODS = frozenset({"GET", "HEAD"})


def endpoint_from_path(path: str) -> str:
    """Map ``/api/<name>[/]`` to ``<name>``; the bare prefix maps to ``index``."""
    name = path[len(API_PREFIX) :] if path.startswith(API_PREFIX) else path
    if name.endswith("/"):
        name = name[:-1]
    return name or INDEX_ENDPOINT


@dataclass(frozen=True)
class GatewayRequest:
    """A fully buffered inbound request.

    Headers are kept as an ordered list of ``(name, value)`` pairs so repeated
    headers survive the trip to a handler or upstream.
    """

    method: str
    path: str
    query: str = ""
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes | None = None

    @property
    def endpoint(self) -> str:
        return endpoint_from_path(self.path)

    @property
    def target(self) -> str:
        """Path plus query string, exactly as received."""
        return f"{self.path}?{self.query}" if self.query else self.path

    @property
    def has_body(self) -> bool:
        return self.method.upper() not in BODYLESS_METHODS and self.body is not None

    def to_httpx(self, origin: str) -> httpx.Request:
        """Rebuild the request for a local handler, rooted at *origin*."""
        return httpx.Request(
            self.method,
            f"{origin}{self.target}",
            headers=self.headers,
            content=self.body if self.has_body else None,
        )
