# Status schemas for the introspection endpoints.
# Created: 2026-10-16
#
# Wire format is camelCase to match what the desktop frontend already reads.

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatusSummary(_CamelModel):
    operational: int = 0
    degraded: int = 0
    outage: int = 0
    unknown: int = 0


class ServiceEntry(_CamelModel):
    """One component listed by the service-status report."""

    id: str
    name: str
    category: str
    status: str = "operational"
    description: str = ""


class LocalInfo(_CamelModel):
    enabled: bool = True
    mode: str
    port: int
    remote_base: str


class ServiceStatus(_CamelModel):
    success: bool = True
    timestamp: str
    summary: StatusSummary
    services: list[ServiceEntry]
    local: LocalInfo


class LocalStatus(_CamelModel):
    success: bool = True
    mode: str
    port: int
    api_dir: str
    remote_base: str
