# Client runtime shim - desktop detection, base URLs, and local-first fetch.
# Created: 2026-10-16
#
# Application code always requests relative /api/... paths. Inside the desktop
# shell the shim points them at the loopback sidecar and retries against the
# cloud origin when the sidecar cannot be reached.

from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from wm_runtime.config import (
    DEFAULT_LOCAL_API_BASE,
    DEFAULT_REMOTE_HOST,
    DEFAULT_VARIANT,
    REMOTE_HOSTS,
    get_runtime_settings,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/"

# Injected by the desktop shell into the frontend's host context.
DESKTOP_MARKERS = ("__TAURI_INTERNALS__", "__TAURI__")

Fetch = Callable[..., Awaitable[httpx.Response]]


@dataclass(frozen=True)
class BaseUrlPair:
    local: str
    remote: str


def _host_globals() -> Mapping[str, Any] | None:
    """Globals of the embedding host, or None when there is no host context."""
    return os.environ


def normalize_base_url(base_url: str) -> str:
    return base_url[:-1] if base_url.endswith("/") else base_url


def is_desktop_runtime() -> bool:
    host = _host_globals()
    if host is None:
        return False
    return any(marker in host for marker in DESKTOP_MARKERS)


def get_api_base_url() -> str:
    """Loopback sidecar origin, or "" (relative URLs) outside the desktop shell."""
    if not is_desktop_runtime():
        return ""

    configured = get_runtime_settings().api_base_url
    if configured:
        return normalize_base_url(configured)
    return DEFAULT_LOCAL_API_BASE


def get_remote_api_base_url() -> str:
    settings = get_runtime_settings()
    if settings.remote_api_base_url:
        return normalize_base_url(settings.remote_api_base_url)

    variant = settings.variant or DEFAULT_VARIANT
    return REMOTE_HOSTS.get(variant) or REMOTE_HOSTS.get(DEFAULT_VARIANT) or DEFAULT_REMOTE_HOST


def to_runtime_url(path: str) -> str:
    if not path.startswith("/"):
        return path

    base_url = get_api_base_url()
    if not base_url:
        return path
    return f"{base_url}{path}"


async def native_fetch(
    url: str | httpx.URL,
    *,
    method: str = "GET",
    headers: Any = None,
    content: bytes | str | None = None,
    params: Any = None,
    json: Any = None,
    timeout: float | None = None,
) -> httpx.Response:
    """Plain HTTP request with no routing; no deadline unless *timeout* is given."""
    async with httpx.AsyncClient(timeout=timeout) as client:
        return await client.request(
            method, url, headers=headers, content=content, params=params, json=json
        )


@dataclass
class _RuntimeState:
    """Process-wide shim state, set up once by install_runtime_fetch_patch()."""

    fetch: Fetch
    fetch_patched: bool = False
    base_urls: BaseUrlPair | None = None


_state = _RuntimeState(fetch=native_fetch)


def get_base_urls() -> BaseUrlPair:
    """The (local, remote) pair, fixed for the lifetime of the shim."""
    if _state.base_urls is None:
        _state.base_urls = BaseUrlPair(get_api_base_url(), get_remote_api_base_url())
    return _state.base_urls


def is_fetch_patched() -> bool:
    return _state.fetch_patched


async def fetch(url: str | httpx.URL, **init: Any) -> httpx.Response:
    """Application-facing fetch; routed through the sidecar once patched."""
    return await _state.fetch(url, **init)


def install_runtime_fetch_patch() -> None:
    """Route /api/ fetches local-first with a cloud retry. Installs at most once."""
    if _state.fetch_patched or not is_desktop_runtime():
        return

    native = _state.fetch
    urls = get_base_urls()
    local_timeout = get_runtime_settings().local_timeout

    async def runtime_fetch(url: str | httpx.URL, **init: Any) -> httpx.Response:
        target = str(url)
        if not target.startswith(API_PREFIX):
            return await native(url, **init)

        local_init = dict(init)
        if local_timeout is not None:
            local_init.setdefault("timeout", local_timeout)
        try:
            return await native(f"{urls.local}{target}", **local_init)
        except Exception as e:
            logger.warning("Local API fetch failed for %s, falling back to cloud: %s", target, e)
            return await native(f"{urls.remote}{target}", **init)

    _state.fetch = runtime_fetch
    _state.fetch_patched = True
    logger.debug("Runtime fetch patch installed (local=%s, remote=%s)", urls.local, urls.remote)


def reset_runtime() -> None:
    """Drop the init state and cached settings so the shim can be set up again."""
    _state.fetch = native_fetch
    _state.fetch_patched = False
    _state.base_urls = None
    get_runtime_settings.cache_clear()
