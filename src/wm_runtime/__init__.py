"""Client runtime shim for frontends embedded in the desktop shell."""

from wm_runtime.runtime import (
    BaseUrlPair,
    fetch,
    get_api_base_url,
    get_base_urls,
    get_remote_api_base_url,
    install_runtime_fetch_patch,
    is_desktop_runtime,
    to_runtime_url,
)

__all__ = [
    "BaseUrlPair",
    "fetch",
    "get_api_base_url",
    "get_base_urls",
    "get_remote_api_base_url",
    "install_runtime_fetch_patch",
    "is_desktop_runtime",
    "to_runtime_url",
]
