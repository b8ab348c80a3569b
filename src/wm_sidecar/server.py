"""Loopback HTTP server for the desktop sidecar.

Only ``/api/`` traffic is accepted; everything else gets a JSON 404 before the
dispatcher is involved. Request bodies are buffered in full and responses are
read completely before anything is written back, so a failure never shows up
as a half-sent response.
"""

from __future__ import annotations

import logging
from functools import lru_cache

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from wm_sidecar.cloud_proxy import CloudProxy
from wm_sidecar.config import Settings, get_settings
from wm_sidecar.dispatcher import Dispatcher
from wm_sidecar.models import API_PREFIX, BODYLESS_METHODS, GatewayRequest
from wm_sidecar.registry import HandlerRegistry

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"

# Recomputed by the server; content-encoding is rebuilt by _response_headers.
_DROPPED_RESPONSE_HEADERS = frozenset(
    {"content-length", "content-encoding", "transfer-encoding", "connection"}
)


def build_dispatcher(settings: Settings) -> Dispatcher:
    return Dispatcher(
        settings,
        HandlerRegistry(settings.api_dir),
        CloudProxy(settings.remote_base, timeout=settings.upstream_timeout),
    )


def _request_path(request: Request) -> str:
    """Path as sent on the wire, percent-encoding intact."""
    raw = request.scope.get("raw_path")
    if not raw:
        return request.url.path
    return raw.decode("latin-1").split("?", 1)[0]


async def _to_gateway_request(request: Request) -> GatewayRequest:
    method = request.method.upper()
    body = None
    if method not in BODYLESS_METHODS:
        body = await request.body() or None
    return GatewayRequest(
        method=method,
        path=_request_path(request),
        query=request.url.query,
        headers=[(k.decode("latin-1"), v.decode("latin-1")) for k, v in request.headers.raw],
        body=body,
    )


@lru_cache(maxsize=1)
def decodable_encodings() -> frozenset[str]:
    """Content codings httpx undoes on its own in this environment.

    httpx advertises exactly what it can decode in its default Accept-Encoding;
    ``br`` and ``zstd`` appear only when their optional packages are installed.
    """
    with httpx.Client() as client:
        advertised = client.headers.get("accept-encoding", "")
    return frozenset(c.strip().lower() for c in advertised.split(",") if c.strip()) | {"identity"}


def _response_headers(upstream: httpx.Response) -> list[tuple[str, str]]:
    """Headers that describe ``upstream.content`` as httpx exposes it.

    Codings httpx already undid leave Content-Encoding; any it could not undo
    stay, since the bytes still carry them.
    """
    decoded = decodable_encodings()
    remaining = [
        c
        for c in upstream.headers.get_list("content-encoding", split_commas=True)
        if c and c.lower() not in decoded
    ]
    headers = [
        (k, v) for k, v in upstream.headers.multi_items() if k.lower() not in _DROPPED_RESPONSE_HEADERS
    ]
    if remaining:
        headers.append(("content-encoding", ", ".join(remaining)))
    return headers


async def _to_starlette(upstream: httpx.Response) -> Response:
    body = await upstream.aread()
    response = Response(content=body, status_code=upstream.status_code)
    for key, value in _response_headers(upstream):
        response.headers.append(key, value)
    return response


class GatewayEndpoint:
    """ASGI endpoint for the catch-all route.

    Being a plain ASGI callable rather than a function keeps Starlette from
    pinning it to a method list, so extension methods (PROPFIND, TRACE, ...)
    reach the boundary check and the dispatcher like any other.
    """

    def __init__(self, app: FastAPI):
        self.app = app

    async def __call__(self, scope, receive, send) -> None:
        request = Request(scope, receive)
        response = await self.handle(request)
        await response(scope, receive, send)

    async def handle(self, request: Request) -> Response:
        if not _request_path(request).startswith(API_PREFIX):
            return JSONResponse({"error": "Not found"}, status_code=404)

        try:
            inbound = await _to_gateway_request(request)
            upstream = await self.app.state.dispatcher.dispatch(inbound)
            return await _to_starlette(upstream)
        except Exception:
            logger.exception("Unhandled error serving %s %s", request.method, request.url.path)
            return JSONResponse({"error": "Internal server error"}, status_code=500)


def create_app(
    settings: Settings | None = None,
    dispatcher: Dispatcher | None = None,
) -> FastAPI:
    """Build the gateway application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="World Monitor Local API",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.dispatcher = dispatcher or build_dispatcher(settings)
    app.add_route("/{full_path:path}", GatewayEndpoint(app), include_in_schema=False)

    return app


def run_server(settings: Settings | None = None) -> None:
    """Serve the gateway on the loopback interface until interrupted."""
    import uvicorn

    settings = settings or get_settings()
    app = create_app(settings)

    logger.info(
        "Listening on http://%s:%d (apiDir=%s, remote=%s)",
        LOOPBACK_HOST,
        settings.port,
        settings.api_dir,
        settings.remote_base,
    )
    uvicorn.run(
        app,
        host=LOOPBACK_HOST,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )
