"""Request dispatch with local-first, cloud-fallback policy.

Changes:
  - 2026-10-16: Plain-function handlers run in a worker thread; a handler's own
    TimeoutError is no longer reported as a deadline hit.
  - 2026-10-16: Optional handler deadline (LOCAL_API_HANDLER_TIMEOUT); a timed-out
    handler is treated like one that raised.
  - 2026-10-16: Initial dispatcher - introspection endpoints, local handlers,
    cloud pass-through.

Local handlers are overrides, not the source of truth: every local failure
degrades to the cloud path, and only a failed cloud fallback after a failed
handler is reported to the caller.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime, timezone

import httpx

from wm_sidecar.cloud_proxy import CloudProxy
from wm_sidecar.config import Settings
from wm_sidecar.errors import HandlerInvocationError, error_response
from wm_sidecar.models import GatewayRequest
from wm_sidecar.registry import HandlerModule, HandlerSource
from wm_sidecar.schemas import (
    LocalInfo,
    LocalStatus,
    ServiceEntry,
    ServiceStatus,
    StatusSummary,
)

logger = logging.getLogger(__name__)

SERVICE_STATUS_PATH = "/api/service-status"
LOCAL_STATUS_PATH = "/api/local-status"

FALLBACK_UNAVAILABLE = "Local handler failed and cloud fallback unavailable"


def _json(model) -> httpx.Response:
    return httpx.Response(200, json=model.model_dump(by_alias=True))


class Dispatcher:
    """Route one request to an introspection endpoint, a local handler, or the cloud."""

    def __init__(self, settings: Settings, registry: HandlerSource, proxy: CloudProxy):
        self.settings = settings
        self.registry = registry
        self.proxy = proxy

    async def dispatch(self, request: GatewayRequest) -> httpx.Response:
        if request.path == SERVICE_STATUS_PATH:
            return self.service_status()
        if request.path == LOCAL_STATUS_PATH:
            return self.local_status()

        endpoint = request.endpoint
        module = self.registry.resolve(endpoint)
        if module is None:
            logger.debug("No local handler for %s, passing through to cloud", endpoint)
            return await self.proxy.forward(request)

        try:
            return await self._invoke(module, request)
        except Exception as e:
            logger.error(
                "Handler %s failed, using cloud fallback: %s", endpoint, e, exc_info=True
            )

        try:
            return await self.proxy.forward(request)
        except httpx.TransportError as e:
            logger.warning("Cloud fallback for %s unavailable: %s", endpoint, e)
            return error_response(FALLBACK_UNAVAILABLE, 502)

    async def _invoke(self, module: HandlerModule, request: GatewayRequest) -> httpx.Response:
        handler = await asyncio.to_thread(self.registry.load, module)
        outgoing = request.to_httpx(self.settings.local_origin)

        async def _call():
            # Plain functions may block; keep them off the event loop.
            if inspect.iscoroutinefunction(handler):
                result = handler(outgoing)
            else:
                result = await asyncio.to_thread(handler, outgoing)
            if inspect.isawaitable(result):
                result = await result
            return result

        timeout = self.settings.handler_timeout
        try:
            if timeout is not None:
                result = await asyncio.wait_for(_call(), timeout)
            else:
                result = await _call()
        except Exception as e:
            if timeout is not None and isinstance(e, asyncio.TimeoutError):
                message = f"Handler {module.endpoint} timed out after {timeout}s"
            else:
                message = f"Handler {module.endpoint} raised {type(e).__name__}: {e}"
            raise HandlerInvocationError(module.endpoint, message) from e

        if not isinstance(result, httpx.Response):
            raise HandlerInvocationError(
                module.endpoint,
                f"Handler {module.endpoint} returned {type(result).__name__}, not a response",
            )
        return result

    # ── Introspection ──────────────────────────────────────────────────

    def service_status(self) -> httpx.Response:
        s = self.settings
        return _json(
            ServiceStatus(
                timestamp=datetime.now(timezone.utc).isoformat(),
                summary=StatusSummary(operational=2),
                services=[
                    ServiceEntry(
                        id="local-api",
                        name="Local Desktop API",
                        category="dev",
                        description=f"Running on 127.0.0.1:{s.port}",
                    ),
                    ServiceEntry(
                        id="cloud-pass-through",
                        name="Cloud pass-through",
                        category="cloud",
                        description=f"Fallback target {s.remote_base}",
                    ),
                ],
                local=LocalInfo(mode=s.mode, port=s.port, remote_base=s.remote_base),
            )
        )

    def local_status(self) -> httpx.Response:
        s = self.settings
        return _json(
            LocalStatus(
                mode=s.mode,
                port=s.port,
                api_dir=str(s.api_dir),
                remote_base=s.remote_base,
            )
        )
