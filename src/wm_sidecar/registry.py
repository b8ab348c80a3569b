# Handler registry - resolves endpoint names to handler files under api_dir.
# Created: 2026-10-16

from __future__ import annotations

import importlib.machinery
import importlib.util
import logging
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from wm_sidecar.errors import HandlerLoadError

logger = logging.getLogger(__name__)

ENTRY_POINT = "handler"

_UNSAFE_MODULE_CHARS = re.compile(r"[^0-9A-Za-z_]")


class _FreshSourceLoader(importlib.machinery.SourceFileLoader):
    """Source loader that always compiles from the file, never from __pycache__.

    The bytecode cache keys on mtime and size, so a handler edited twice within
    the same second could otherwise come back stale.
    """

    def get_code(self, fullname):
        return self.source_to_code(self.get_data(self.path), self.path)


@dataclass(frozen=True)
class HandlerModule:
    """A handler file that existed at resolve time."""

    endpoint: str
    path: Path


class HandlerSource(Protocol):
    """Protocol for handler lookups.

    ``resolve`` returns ``None`` when no local handler exists; ``load`` raises
    ``HandlerLoadError`` when the file is present but unusable.
    """

    def resolve(self, endpoint: str) -> HandlerModule | None: ...

    def load(self, module: HandlerModule) -> Callable[..., Any]: ...


class HandlerRegistry:
    """
    Filesystem-backed handler lookup.

    Usage:
        registry = HandlerRegistry(settings.api_dir)
        module = registry.resolve("weather")   # api_dir/weather.py or None
        handler = registry.load(module)        # fresh import every call

    Nothing is cached between calls, so edits to a handler file take effect on
    the next request without restarting the process.
    """

    def __init__(self, api_dir: Path, suffix: str = ".py"):
        self.api_dir = Path(api_dir)
        self.suffix = suffix

    def resolve(self, endpoint: str) -> HandlerModule | None:
        """Return the handler file for *endpoint*, or None if there is none."""
        parts = endpoint.split("/")
        if any(p in ("", ".", "..") for p in parts) or "\\" in endpoint:
            return None

        path = self.api_dir.joinpath(*parts).with_name(parts[-1] + self.suffix)
        try:
            path.resolve().relative_to(self.api_dir.resolve())
            if not path.is_file():
                return None
        except (ValueError, OSError):
            # Outside api_dir, or a name the filesystem rejects (too long, NUL).
            return None
        return HandlerModule(endpoint=endpoint, path=path)

    def load(self, module: HandlerModule) -> Callable[..., Any]:
        """Import *module* under a one-off name and return its entry point."""
        token = uuid.uuid4().hex
        name = f"wm_handler_{_UNSAFE_MODULE_CHARS.sub('_', module.endpoint)}_{token}"

        spec = importlib.util.spec_from_file_location(
            name, module.path, loader=_FreshSourceLoader(name, str(module.path))
        )
        if spec is None or spec.loader is None:
            raise HandlerLoadError(module.endpoint, f"Cannot import handler for {module.endpoint}")

        mod = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(mod)
        except Exception as e:
            raise HandlerLoadError(
                module.endpoint, f"Failed to import handler for {module.endpoint}: {e}"
            ) from e

        entry = getattr(mod, ENTRY_POINT, None)
        if not callable(entry):
            raise HandlerLoadError(module.endpoint, f"Invalid handler for {module.endpoint}")

        logger.debug("Loaded handler %s from %s", module.endpoint, module.path)
        return entry
